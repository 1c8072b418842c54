from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

from pydantic import BaseModel

ALLOWED_DISCOUNTS = (0, 5, 10, 15, 20)
CURRENCY_SYMBOL = "Rs."


class PricedLine(Protocol):
    price: float
    quantity: int


class Pricing(BaseModel):
    subtotal: float
    discount: float  # percentage
    discount_amount: float
    total: float

    def rounded(self) -> "Pricing":
        """
        Cents for display and storage. Only subtotal and discount are rounded;
        total is derived from them so the printed lines always add up.
        """
        subtotal = round_currency(self.subtotal)
        discount_amount = round_currency(subtotal * self.discount / 100.0)
        return Pricing(
            subtotal=subtotal,
            discount=self.discount,
            discount_amount=discount_amount,
            total=round_currency(subtotal - discount_amount),
        )


def round_currency(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_currency(value: float) -> str:
    return f"{CURRENCY_SYMBOL}{round_currency(value):.2f}"


def calculate_pricing(items: Iterable[PricedLine], discount: float = 0) -> Pricing:
    subtotal = 0.0
    for it in items:
        subtotal += it.price * it.quantity

    total = subtotal * (1 - discount / 100.0)

    return Pricing(
        subtotal=subtotal,
        discount=discount,
        discount_amount=subtotal - total,
        total=total,
    )
