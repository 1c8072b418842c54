"""
Receipt preview generation.

``generate_receipt`` asks the AI collaborator for a formatted receipt and
returns an empty preview on any failure; ``format_receipt_locally`` builds the
same layout deterministically. ``PreviewCoordinator`` debounces bursts of
order edits from one register and tags each request with a sequence number so
that a slow, superseded response can never replace a newer one.
"""
import asyncio
import json
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

import ai_client
from pricing import format_currency, round_currency

logger = logging.getLogger(__name__)

RECEIPT_WIDTH = 32


class ReceiptLine(BaseModel):
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class ReceiptRequest(BaseModel):
    venue_name: str
    items: List[ReceiptLine]
    discount: float = 0
    subtotal: float
    discount_amount: Optional[float] = None
    total: float

    def discount_line_amount(self) -> float:
        if self.discount_amount is not None:
            return self.discount_amount
        return round_currency(self.subtotal - self.total)


class ReceiptPreview(BaseModel):
    receipt_preview: str = ""


class PreviewResult(BaseModel):
    sequence: int
    superseded: bool = False
    receipt_preview: str = ""
    fallback_used: bool = False


@ai_client.prompt("receipt-preview")
def _receipt_prompt(req: ReceiptRequest) -> str:
    items = json.dumps([it.model_dump() for it in req.items])
    return f"""You are a point-of-sale (POS) assistant for a cafe. Generate a receipt preview that is well-formatted, easy to read, and professional.

The receipt should have the following structure:
1.  A header with the venue name: {req.venue_name}
2.  A numbered list of items with quantity, name, and total price for that line item (price x quantity).
3.  A summary section with Subtotal, Discount (if applicable), and Total.
4.  A footer thanking the customer.

Use a fixed-width layout so it reads correctly in a monospace font.
- The item lines should be numbered.
- The prices should be aligned to the right.
- The summary section should be clearly separated.
- If the discount is 0, do not show the "Discount" line.

Here are the order details:
- Items: {items}
- Subtotal: {req.subtotal:.2f}
- Discount: {req.discount:g}% (amount {req.discount_line_amount():.2f})
- Total: {req.total:.2f}

Return the receipt text in the "receipt_preview" field.
"""


async def generate_receipt(req: ReceiptRequest) -> ReceiptPreview:
    """Single attempt; an empty preview tells the caller to format locally."""
    try:
        output = await ai_client.generate("receipt-preview", req, ReceiptPreview)
    except Exception:
        logger.warning("receipt preview generation failed", exc_info=True)
        return ReceiptPreview(receipt_preview="")
    if output is None or not output.receipt_preview.strip():
        return ReceiptPreview(receipt_preview="")
    return output


def _row(label: str, amount: str) -> str:
    gap = max(1, RECEIPT_WIDTH - len(label) - len(amount))
    return f"{label}{' ' * gap}{amount}"


def format_receipt_locally(req: ReceiptRequest) -> str:
    stars = "*" * RECEIPT_WIDTH
    rule = "-" * RECEIPT_WIDTH
    lines = [stars, req.venue_name.center(RECEIPT_WIDTH).rstrip(), stars, "", "Order Details:"]
    for n, it in enumerate(req.items, start=1):
        lines.append(_row(f"{n}. {it.quantity} x {it.name}", format_currency(it.price * it.quantity)))
    lines += ["", rule, _row("Subtotal:", format_currency(req.subtotal))]
    if req.discount > 0:
        lines.append(_row(f"Discount ({req.discount:g}%):", f"-{format_currency(req.discount_line_amount())}"))
    lines += [rule, _row("Total:", format_currency(req.total)), ""]
    lines += ["Thank you for dining!".center(RECEIPT_WIDTH).rstrip(), stars]
    return "\n".join(lines)


Formatter = Callable[[ReceiptRequest], Awaitable[ReceiptPreview]]


class PreviewCoordinator:
    def __init__(self, debounce_seconds: float = 0.5, formatter: Optional[Formatter] = None):
        self.debounce_seconds = debounce_seconds
        self._formatter = formatter
        self._sequence = 0
        self.latest: Optional[PreviewResult] = None

    @property
    def sequence(self) -> int:
        return self._sequence

    def _is_current(self, seq: int) -> bool:
        return seq == self._sequence

    async def submit(self, req: ReceiptRequest) -> PreviewResult:
        self._sequence += 1
        seq = self._sequence

        await asyncio.sleep(self.debounce_seconds)
        if not self._is_current(seq):
            return PreviewResult(sequence=seq, superseded=True)

        formatter = self._formatter or generate_receipt
        preview = await formatter(req)
        if not self._is_current(seq):
            logger.info("discarding superseded receipt preview %d (latest %d)", seq, self._sequence)
            return PreviewResult(sequence=seq, superseded=True)

        text = preview.receipt_preview
        result = PreviewResult(
            sequence=seq,
            receipt_preview=text or format_receipt_locally(req),
            fallback_used=not text,
        )
        self.latest = result
        return result


MAX_REGISTERS = 64

_coordinators: "OrderedDict[str, PreviewCoordinator]" = OrderedDict()


def coordinator_for(register_id: str, debounce_seconds: float = 0.5) -> PreviewCoordinator:
    """
    Coordinator for one register, created on first use. The least recently
    used register is dropped once MAX_REGISTERS are tracked.
    """
    c = _coordinators.get(register_id)
    if c is None:
        c = _coordinators[register_id] = PreviewCoordinator(debounce_seconds)
        while len(_coordinators) > MAX_REGISTERS:
            _coordinators.popitem(last=False)
    else:
        _coordinators.move_to_end(register_id)
        c.debounce_seconds = debounce_seconds
    return c
