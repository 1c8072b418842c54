"""
Customer view derived from three sources, keyed by normalized phone:

1. dedicated customer records (own the contact fields),
2. finalized bills (contribute visits, spend and first/last seen),
3. pending customer tabs (placeholder only when the phone is still unknown).

``merge_customers`` is a pure function; ``LiveCustomerView`` re-runs it
whenever one of its input snapshots changes.
"""
import re
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel

from pricing import round_currency

SORT_FIELDS = (
    "name",
    "phone",
    "email",
    "address",
    "first_seen",
    "last_seen",
    "total_visits",
    "total_spent",
    "reservation_count",
)

_NON_DIGIT = re.compile(r"\D")


class Customer(BaseModel):
    id: str
    name: str
    phone: str
    email: str = ""
    address: str = ""
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    total_visits: int = 0
    total_spent: float = 0.0
    reservation_count: int = 0


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Digits only, keeping one leading '+'. No country code is inferred."""
    if raw is None:
        return None
    raw = str(raw).strip()
    digits = _NON_DIGIT.sub("", raw)
    if not digits:
        return None
    return "+" + digits if raw.startswith("+") else digits


def _later(a: Optional[datetime], b: datetime) -> datetime:
    return b if a is None or b > a else a


def merge_customers(
    dedicated: Iterable[Dict[str, Any]],
    bills: Iterable[Dict[str, Any]],
    pending: Iterable[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Customer]:
    merged: Dict[str, Dict[str, Any]] = {}

    for rec in dedicated:
        phone = normalize_phone(rec.get("phone") or rec.get("id"))
        if not phone or phone in merged:
            continue
        created = rec.get("created_at")
        merged[phone] = {
            "id": phone,
            "phone": phone,
            "name": rec.get("name") or "",
            "email": rec.get("email") or "",
            "address": rec.get("address") or "",
            "first_seen": created,
            "last_seen": created,
            "total_visits": 0,
            "total_spent": 0.0,
        }

    # Chronological order makes first_seen the earliest bill for new keys.
    dated = [b for b in bills if isinstance(b.get("timestamp"), datetime)]
    dated.sort(key=lambda b: b["timestamp"])
    for bill in dated:
        details = bill.get("customer_details") or {}
        phone = normalize_phone(details.get("phone"))
        if not phone:
            continue
        ts = bill["timestamp"]
        total = float(bill.get("total") or 0)
        existing = merged.get(phone)
        if existing is not None:
            existing["total_spent"] += total
            existing["total_visits"] += 1
            existing["last_seen"] = _later(existing["last_seen"], ts)
            if existing["first_seen"] is None:
                existing["first_seen"] = ts
        else:
            merged[phone] = {
                "id": phone,
                "phone": phone,
                "name": details.get("name") or "",
                "email": details.get("email") or "",
                "address": details.get("address") or "",
                "first_seen": ts,
                "last_seen": ts,
                "total_visits": 1,
                "total_spent": total,
            }

    for tab in pending:
        if tab.get("type", "customer") != "customer":
            continue
        phone = normalize_phone(tab.get("mobile"))
        if not phone or phone in merged:
            continue
        txs = tab.get("transactions") or []
        first = txs[0].get("date") if txs else None
        if not isinstance(first, datetime):
            first = now or datetime.now(timezone.utc)
        merged[phone] = {
            "id": phone,
            "phone": phone,
            "name": tab.get("name") or "",
            "email": "",
            "address": "",
            "first_seen": first,
            "last_seen": first,
            "total_visits": 1,
            "total_spent": 0.0,
        }

    out = []
    for data in merged.values():
        data["total_spent"] = round_currency(data["total_spent"])
        out.append(Customer(**data))
    return out


def reservation_counts(tables: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts: Counter = Counter()
    for t in tables:
        details = t.get("reservation_details") or {}
        phone = normalize_phone(details.get("mobile"))
        if phone:
            counts[phone] += 1
    return dict(counts)


def filter_and_sort(
    customers: Iterable[Customer],
    search: str = "",
    sort_field: str = "last_seen",
    direction: Literal["asc", "desc"] = "desc",
    reservations: Optional[Dict[str, int]] = None,
) -> List[Customer]:
    if sort_field not in SORT_FIELDS:
        raise ValueError(f"Cannot sort by {sort_field!r}")

    rows = [c.model_copy(update={"reservation_count": (reservations or {}).get(c.phone, 0)}) for c in customers]

    term = (search or "").strip().lower()
    if term:
        rows = [c for c in rows if term in c.name.lower() or term in c.phone.lower()]

    present = [c for c in rows if getattr(c, sort_field) is not None]
    missing = [c for c in rows if getattr(c, sort_field) is None]
    present.sort(key=lambda c: getattr(c, sort_field), reverse=(direction == "desc"))
    return present + missing


class LiveCustomerView:
    """Latest snapshot of each source plus the merged result, rebuilt on every update."""

    SOURCES = ("customers", "bills", "pendingBills", "tables")

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, List[Dict[str, Any]]] = {}
        self._customers: List[Customer] = []

    @property
    def primed(self) -> bool:
        return all(s in self._snapshots for s in ("customers", "bills", "pendingBills"))

    def update(self, source: str, docs: List[Dict[str, Any]]) -> None:
        if source not in self.SOURCES:
            raise ValueError(f"Unknown source {source!r}")
        with self._lock:
            self._snapshots[source] = list(docs)
            self._customers = merge_customers(
                self._snapshots.get("customers", []),
                self._snapshots.get("bills", []),
                self._snapshots.get("pendingBills", []),
            )

    def customers(self) -> List[Customer]:
        with self._lock:
            return list(self._customers)

    def reservations(self) -> Dict[str, int]:
        with self._lock:
            return reservation_counts(self._snapshots.get("tables", []))
