import logging
import threading
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timezone
from typing import Annotated, List, Optional, Any, Dict, Literal

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, Field
from pymongo.errors import PyMongoError

# Database helpers (MongoDB)
import database
from database import db, oid, snapshot, to_str_id

from config import get_settings
from customers import Customer, LiveCustomerView, filter_and_sort, merge_customers, normalize_phone, reservation_counts
from log_config import RequestIDMiddleware, setup_json_logging
from menu_extraction import InvalidImageError, MenuExtractionError, extract_menu_from_image
from menu_store import load_manifest, load_menu, menu_document, save_menu, update_menu_item
from pricing import ALLOWED_DISCOUNTS, Pricing, calculate_pricing, round_currency
from receipts import PreviewResult, ReceiptLine, ReceiptRequest, coordinator_for, format_receipt_locally, generate_receipt
from reports import ReportResult, compile_and_send_report, filter_bills_for_period, summarize
from schemas import (
    Attendance,
    AttendanceStatus,
    CustomerDetails,
    InventoryItem,
    MenuCategory,
    MenuItem,
    OrderType,
    ReservationDetails,
    TableStatus,
)

logger = logging.getLogger(__name__)
settings = get_settings()

customer_view = LiveCustomerView()

TOTAL_TOLERANCE = 0.01
KITCHEN_FLOW = {"Pending": "In Preparation", "In Preparation": "Completed"}


# -----------------------------
# Pydantic Schemas (API layer)
# -----------------------------
class LineItemIn(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    code: str = ""


def _check_discount(v: float) -> float:
    if v not in ALLOWED_DISCOUNTS:
        raise ValueError(f"discount must be one of {ALLOWED_DISCOUNTS}")
    return v


Discount = Annotated[float, AfterValidator(_check_discount)]


class PricingRequest(BaseModel):
    items: List[LineItemIn]
    discount: Discount = 0


class ReceiptPreviewIn(BaseModel):
    items: List[ReceiptLine]
    discount: Discount = 0


class ReceiptPreviewOut(BaseModel):
    receipt_preview: str
    fallback_used: bool
    subtotal: float
    total: float


class BillCreate(BaseModel):
    order_items: List[LineItemIn] = Field(..., min_length=1)
    discount: Discount = 0
    total: Optional[float] = None
    order_type: OrderType = "Dine-In"
    table_id: Optional[int] = None
    customer_details: Optional[CustomerDetails] = None
    receipt_preview: str = ""


class BillOut(BaseModel):
    id: str
    order_items: List[LineItemIn]
    discount: float
    subtotal: float
    total: float
    timestamp: datetime
    order_type: OrderType
    table_id: Optional[int] = None
    customer_details: Optional[CustomerDetails] = None
    receipt_preview: str


class CustomerIn(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str
    email: str = ""
    address: str = ""


class PendingBillIn(BaseModel):
    name: str = Field(..., min_length=1)
    type: Literal["customer", "vendor"] = "customer"
    mobile: Optional[str] = None


class TransactionIn(BaseModel):
    amount: float
    description: Optional[str] = None
    date: Optional[datetime] = None


class PendingBillOut(BaseModel):
    id: str
    name: str
    type: str
    mobile: Optional[str] = None
    transactions: List[Dict[str, Any]] = []
    balance: float = 0.0


class VendorIn(BaseModel):
    name: str = Field(..., min_length=1)
    category: str
    phone: Optional[str] = None


class VendorOut(VendorIn):
    id: str


class ExpenseIn(BaseModel):
    date: datetime
    category: str
    description: str = ""
    amount: float = Field(..., ge=0)
    vendor_id: Optional[str] = None


class ExpenseOut(ExpenseIn):
    id: str
    vendor_name: str = "N/A"


class EmployeeIn(BaseModel):
    id: str = Field(..., min_length=1, description="e.g. E001 or UA101")
    name: str
    role: str
    salary: float = Field(..., ge=0)


class PayrollRow(EmployeeIn):
    total_advance: float
    remaining_salary: float


class AdvanceIn(BaseModel):
    employee_id: str
    amount: float = Field(..., gt=0)
    date: Optional[datetime] = None


class AdvanceOut(BaseModel):
    id: str
    employee_id: str
    amount: float
    date: datetime


class AttendanceIn(BaseModel):
    status: AttendanceStatus


class AttendanceNote(BaseModel):
    notes: str


class AttendanceOut(Attendance):
    id: str


class InventoryOut(InventoryItem):
    id: str


class StockChange(BaseModel):
    stock: Optional[float] = None
    delta: Optional[float] = None


class TableIn(BaseModel):
    status: TableStatus
    reservation_details: Optional[ReservationDetails] = None


class TableOut(TableIn):
    id: int


class KitchenOrderIn(BaseModel):
    items: List[LineItemIn] = Field(..., min_length=1)
    table_id: int = -1
    delivery_details: Optional[Dict[str, Any]] = None


class KitchenOrderOut(BaseModel):
    id: str
    items: List[LineItemIn]
    table_id: int
    status: str
    created_at: datetime
    delivery_details: Optional[Dict[str, Any]] = None


class SettingIn(BaseModel):
    value: Optional[str] = None


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)


class MenuImageIn(BaseModel):
    image_data_uri: str


class ReportRequest(BaseModel):
    report_type: Literal["daily", "monthly", "yearly"]
    recipient_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AdminSummary(BaseModel):
    bills_today: int
    revenue_today: float
    bills_this_month: int
    revenue_this_month: float
    expenses_this_month: float
    net_this_month: float


# -----------------------------
# FastAPI App
# -----------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = threading.Event()
    if settings.enable_change_streams:
        for source in LiveCustomerView.SOURCES:
            database.watch_collection(source, lambda docs, s=source: customer_view.update(s, docs), stop)
        logger.info("live customer view subscribed to %s", ", ".join(LiveCustomerView.SOURCES))
    yield
    stop.set()


app = FastAPI(title="Restaurant POS API - MongoDB", lifespan=lifespan)
setup_json_logging(settings.log_level)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.error("storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})


@app.get("/")
def root():
    return {"message": "Restaurant POS Backend Running", "driver": "mongodb", "db": settings.database_name}


@app.get("/health")
def health():
    try:
        db.command("ping")
        return {"status": "ok"}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# -----------------------------
# Helpers
# -----------------------------
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _venue_name() -> str:
    doc = db["settings"].find_one({"_id": "venue_name"})
    return (doc or {}).get("value") or settings.venue_name


def _receipt_request(items: List[ReceiptLine], pricing: Pricing) -> ReceiptRequest:
    p = pricing.rounded()
    return ReceiptRequest(
        venue_name=_venue_name(),
        items=items,
        discount=p.discount,
        subtotal=p.subtotal,
        discount_amount=p.discount_amount,
        total=p.total,
    )


def _bill_out(doc: Dict[str, Any]) -> BillOut:
    return BillOut(**to_str_id(doc))


def _pending_out(doc: Dict[str, Any]) -> PendingBillOut:
    d = to_str_id(doc)
    d["balance"] = round_currency(sum(float(t.get("amount") or 0) for t in d.get("transactions") or []))
    return PendingBillOut(**d)


def next_kitchen_order_id() -> str:
    highest = 0
    for d in db["orders"].find({}, {"_id": 1}):
        key = str(d["_id"])
        if key.startswith("K") and key[1:].isdigit():
            highest = max(highest, int(key[1:]))
    return f"K{highest + 1:03d}"


def _require(doc: Optional[Dict[str, Any]], what: str) -> Dict[str, Any]:
    if not doc:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return doc


# -----------------------------
# POS Pricing & Receipts
# -----------------------------
@app.post("/pos/pricing", response_model=Pricing)
def pos_pricing(payload: PricingRequest):
    return calculate_pricing(payload.items, payload.discount).rounded()


@app.post("/pos/receipt-preview", response_model=ReceiptPreviewOut)
async def pos_receipt_preview(payload: ReceiptPreviewIn):
    req = _receipt_request(payload.items, calculate_pricing(payload.items, payload.discount))
    preview = await generate_receipt(req)
    text = preview.receipt_preview
    return ReceiptPreviewOut(
        receipt_preview=text or format_receipt_locally(req),
        fallback_used=not text,
        subtotal=req.subtotal,
        total=req.total,
    )


@app.post("/registers/{register_id}/receipt-preview", response_model=PreviewResult)
async def register_receipt_preview(register_id: str, payload: ReceiptPreviewIn):
    req = _receipt_request(payload.items, calculate_pricing(payload.items, payload.discount))
    coordinator = coordinator_for(register_id, settings.receipt_debounce_ms / 1000.0)
    return await coordinator.submit(req)


# -----------------------------
# Bills
# -----------------------------
@app.post("/bills", response_model=BillOut)
def create_bill(payload: BillCreate):
    pricing = calculate_pricing(payload.order_items, payload.discount).rounded()
    # also accepts a total rounded straight from subtotal * (1 - d/100)
    if payload.total is not None and round_currency(abs(payload.total - pricing.total)) > TOTAL_TOLERANCE:
        raise HTTPException(
            status_code=400,
            detail=f"Total {payload.total:.2f} does not match computed total {pricing.total:.2f}",
        )

    receipt = payload.receipt_preview
    if not receipt:
        lines = [ReceiptLine(name=i.name, quantity=i.quantity, price=i.price) for i in payload.order_items]
        receipt = format_receipt_locally(_receipt_request(lines, pricing))

    bill_doc = {
        "order_items": [i.model_dump() for i in payload.order_items],
        "discount": payload.discount,
        "subtotal": pricing.subtotal,
        "total": pricing.total,
        "timestamp": _now(),
        "order_type": payload.order_type,
        "table_id": payload.table_id,
        "customer_details": payload.customer_details.model_dump() if payload.customer_details else None,
        "receipt_preview": receipt,
    }
    res = db["bills"].insert_one(bill_doc)
    saved = db["bills"].find_one({"_id": res.inserted_id})
    logger.info("bill %s created, total %.2f", res.inserted_id, pricing.total)
    return _bill_out(saved)


@app.get("/bills", response_model=List[BillOut])
def list_bills(limit: int = 50, offset: int = 0):
    cursor = db["bills"].find({}).sort("timestamp", -1).skip(offset).limit(limit)
    return [_bill_out(d) for d in cursor]


@app.delete("/bills/{bill_id}")
def delete_bill(bill_id: str):
    _id = oid(bill_id)
    if not _id:
        raise HTTPException(status_code=404, detail="Bill not found")
    res = db["bills"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Bill not found")
    return {"message": "deleted"}


# -----------------------------
# Customers
# -----------------------------
@app.get("/customers", response_model=List[Customer])
def list_customers(
    search: Optional[str] = Query(None, description="Substring of name or phone"),
    sort: str = "last_seen",
    direction: Literal["asc", "desc"] = "desc",
):
    if customer_view.primed:
        merged = customer_view.customers()
        reservations = customer_view.reservations()
    else:
        pending = snapshot("pendingBills", {"type": "customer"})
        merged = merge_customers(snapshot("customers"), snapshot("bills"), pending)
        reservations = reservation_counts(snapshot("tables"))
    try:
        return filter_and_sort(merged, search or "", sort, direction, reservations)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/customers", response_model=Customer)
def upsert_customer(payload: CustomerIn):
    phone = normalize_phone(payload.phone)
    if not phone:
        raise HTTPException(status_code=400, detail="A phone number is required")
    fields = {**payload.model_dump(), "phone": phone}
    db["customers"].update_one(
        {"_id": phone},
        {"$set": fields, "$setOnInsert": {"created_at": _now()}},
        upsert=True,
    )
    merged = merge_customers(
        snapshot("customers", {"_id": phone}),
        [b for b in snapshot("bills") if normalize_phone((b.get("customer_details") or {}).get("phone")) == phone],
        [],
    )
    return merged[0]


@app.delete("/customers/{phone}")
def delete_customer(phone: str):
    key = normalize_phone(phone)
    res = db["customers"].delete_one({"_id": key})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Customer not found")
    return {"message": "deleted"}


# -----------------------------
# Pending bills (running tabs)
# -----------------------------
@app.get("/pending-bills", response_model=List[PendingBillOut])
def list_pending_bills(type: Optional[Literal["customer", "vendor"]] = None):
    filt = {"type": type} if type else {}
    return [_pending_out(d) for d in db["pendingBills"].find(filt).sort("name", 1)]


@app.post("/pending-bills", response_model=PendingBillOut)
def create_pending_bill(payload: PendingBillIn):
    doc = payload.model_dump()
    doc["mobile"] = normalize_phone(payload.mobile)
    doc["transactions"] = []
    res = db["pendingBills"].insert_one(doc)
    return _pending_out(db["pendingBills"].find_one({"_id": res.inserted_id}))


@app.post("/pending-bills/{pending_id}/transactions", response_model=PendingBillOut)
def add_pending_transaction(pending_id: str, payload: TransactionIn):
    _id = oid(pending_id)
    if not _id:
        raise HTTPException(status_code=404, detail="Pending bill not found")
    tx = {
        "id": uuid.uuid4().hex,
        "amount": payload.amount,
        "date": payload.date or _now(),
        "description": payload.description,
    }
    res = db["pendingBills"].update_one({"_id": _id}, {"$push": {"transactions": tx}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Pending bill not found")
    return _pending_out(db["pendingBills"].find_one({"_id": _id}))


@app.delete("/pending-bills/{pending_id}")
def delete_pending_bill(pending_id: str):
    res = db["pendingBills"].delete_one({"_id": oid(pending_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Pending bill not found")
    return {"message": "deleted"}


# -----------------------------
# Vendors & Expenses
# -----------------------------
@app.get("/vendors", response_model=List[VendorOut])
def list_vendors():
    return [VendorOut(**to_str_id(d)) for d in db["vendors"].find({}).sort("name", 1)]


@app.post("/vendors", response_model=VendorOut)
def create_vendor(payload: VendorIn):
    res = db["vendors"].insert_one(payload.model_dump())
    return VendorOut(**to_str_id(db["vendors"].find_one({"_id": res.inserted_id})))


@app.put("/vendors/{vendor_id}", response_model=VendorOut)
def update_vendor(vendor_id: str, payload: VendorIn):
    _id = oid(vendor_id)
    if not _id:
        raise HTTPException(status_code=404, detail="Vendor not found")
    res = db["vendors"].update_one({"_id": _id}, {"$set": payload.model_dump()})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return VendorOut(**to_str_id(db["vendors"].find_one({"_id": _id})))


@app.delete("/vendors/{vendor_id}")
def delete_vendor(vendor_id: str):
    # expenses keep their vendor_id; it resolves to "N/A" on read
    res = db["vendors"].delete_one({"_id": oid(vendor_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return {"message": "deleted"}


@app.get("/expenses", response_model=List[ExpenseOut])
def list_expenses(limit: int = 100, offset: int = 0):
    vendor_names = {v["id"]: v.get("name") for v in snapshot("vendors")}
    out = []
    for d in db["expenses"].find({}).sort("date", -1).skip(offset).limit(limit):
        td = to_str_id(d)
        td["vendor_name"] = vendor_names.get(td.get("vendor_id")) or "N/A"
        out.append(ExpenseOut(**td))
    return out


@app.post("/expenses", response_model=ExpenseOut)
def create_expense(payload: ExpenseIn):
    res = db["expenses"].insert_one(payload.model_dump())
    return get_expense(str(res.inserted_id))


@app.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: str):
    d = _require(db["expenses"].find_one({"_id": oid(expense_id)}), "Expense")
    td = to_str_id(d)
    vendor = db["vendors"].find_one({"_id": oid(td.get("vendor_id"))}) if td.get("vendor_id") else None
    td["vendor_name"] = (vendor or {}).get("name") or "N/A"
    return ExpenseOut(**td)


@app.put("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(expense_id: str, payload: ExpenseIn):
    _id = oid(expense_id)
    if not _id:
        raise HTTPException(status_code=404, detail="Expense not found")
    res = db["expenses"].update_one({"_id": _id}, {"$set": payload.model_dump()})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Expense not found")
    return get_expense(expense_id)


@app.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str):
    res = db["expenses"].delete_one({"_id": oid(expense_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"message": "deleted"}


# -----------------------------
# Staff & Payroll
# -----------------------------
@app.get("/employees", response_model=List[EmployeeIn])
def list_employees():
    return [EmployeeIn(**to_str_id(d)) for d in db["employees"].find({}).sort("name", 1)]


@app.post("/employees", response_model=EmployeeIn)
def create_employee(payload: EmployeeIn):
    if db["employees"].find_one({"_id": payload.id}):
        raise HTTPException(status_code=400, detail=f"Employee {payload.id} already exists")
    doc = payload.model_dump()
    doc["_id"] = doc.pop("id")
    db["employees"].insert_one(doc)
    return payload


@app.delete("/employees/{employee_id}")
def delete_employee(employee_id: str):
    res = db["employees"].delete_one({"_id": employee_id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Employee not found")
    return {"message": "deleted"}


@app.get("/employees/payroll", response_model=List[PayrollRow])
def payroll():
    advanced: Dict[str, float] = {}
    for a in snapshot("advances"):
        advanced[a["employee_id"]] = advanced.get(a["employee_id"], 0.0) + float(a["amount"])
    rows = []
    for e in snapshot("employees"):
        taken = round_currency(advanced.get(e["id"], 0.0))
        rows.append(PayrollRow(**e, total_advance=taken, remaining_salary=round_currency(e["salary"] - taken)))
    rows.sort(key=lambda r: r.name)
    return rows


@app.post("/advances", response_model=AdvanceOut)
def create_advance(payload: AdvanceIn):
    _require(db["employees"].find_one({"_id": payload.employee_id}), "Employee")
    doc = {"employee_id": payload.employee_id, "amount": payload.amount, "date": payload.date or _now()}
    res = db["advances"].insert_one(doc)
    return AdvanceOut(**to_str_id(db["advances"].find_one({"_id": res.inserted_id})))


@app.delete("/advances/{advance_id}")
def delete_advance(advance_id: str):
    res = db["advances"].delete_one({"_id": oid(advance_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Advance not found")
    return {"message": "deleted"}


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def attendance_key(employee_id: str, day: date) -> str:
    return f"{employee_id}_{day.isoformat()}"


@app.get("/attendance", response_model=List[AttendanceOut])
def list_attendance(day: Optional[date] = None, employee_id: Optional[str] = None):
    filt: Dict[str, Any] = {}
    if day:
        filt["date"] = _day_start(day)
    if employee_id:
        filt["employee_id"] = employee_id
    return [AttendanceOut(**to_str_id(d)) for d in db["attendance"].find(filt).sort("employee_id", 1)]


@app.put("/attendance/{employee_id}/{day}", response_model=AttendanceOut)
def mark_attendance(employee_id: str, day: date, payload: AttendanceIn):
    _require(db["employees"].find_one({"_id": employee_id}), "Employee")
    key = attendance_key(employee_id, day)
    # merge: notes from an earlier marking survive a status change
    db["attendance"].update_one(
        {"_id": key},
        {"$set": {"employee_id": employee_id, "date": _day_start(day), "status": payload.status}},
        upsert=True,
    )
    return AttendanceOut(**to_str_id(db["attendance"].find_one({"_id": key})))


@app.put("/attendance/{employee_id}/{day}/notes", response_model=AttendanceOut)
def note_attendance(employee_id: str, day: date, payload: AttendanceNote):
    key = attendance_key(employee_id, day)
    res = db["attendance"].update_one({"_id": key}, {"$set": {"notes": payload.notes}})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Mark attendance before adding a note")
    return AttendanceOut(**to_str_id(db["attendance"].find_one({"_id": key})))


@app.delete("/attendance/{employee_id}/{day}")
def delete_attendance(employee_id: str, day: date):
    res = db["attendance"].delete_one({"_id": attendance_key(employee_id, day)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Attendance not found")
    return {"message": "deleted"}


# -----------------------------
# Inventory
# -----------------------------
def clamp_stock(stock: float, capacity: float) -> float:
    return max(0.0, min(capacity, stock))


@app.get("/inventory", response_model=List[InventoryOut])
def list_inventory():
    return [InventoryOut(**to_str_id(d)) for d in db["inventory"].find({}).sort("name", 1)]


@app.post("/inventory", response_model=InventoryOut)
def create_inventory_item(payload: InventoryItem):
    res = db["inventory"].insert_one(payload.model_dump())
    return InventoryOut(**to_str_id(db["inventory"].find_one({"_id": res.inserted_id})))


@app.put("/inventory/{item_id}", response_model=InventoryOut)
def update_inventory_item(item_id: str, payload: InventoryItem):
    _id = oid(item_id)
    if not _id:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    res = db["inventory"].update_one({"_id": _id}, {"$set": payload.model_dump()})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return InventoryOut(**to_str_id(db["inventory"].find_one({"_id": _id})))


@app.delete("/inventory/{item_id}")
def delete_inventory_item(item_id: str):
    res = db["inventory"].delete_one({"_id": oid(item_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return {"message": "deleted"}


@app.post("/inventory/{item_id}/stock", response_model=InventoryOut)
def change_stock(item_id: str, payload: StockChange):
    """Set ``stock`` or move it by ``delta``; the result is kept within 0..capacity."""
    if (payload.stock is None) == (payload.delta is None):
        raise HTTPException(status_code=400, detail="Give exactly one of stock or delta")
    _id = oid(item_id)
    item = _require(db["inventory"].find_one({"_id": _id}) if _id else None, "Inventory item")
    target = payload.stock if payload.stock is not None else float(item["stock"]) + payload.delta
    stock = clamp_stock(target, float(item["capacity"]))
    db["inventory"].update_one({"_id": _id}, {"$set": {"stock": stock}})
    return InventoryOut(**to_str_id({**item, "stock": stock}))


# -----------------------------
# Tables & Kitchen orders
# -----------------------------
@app.get("/tables", response_model=List[TableOut])
def list_tables():
    return [TableOut(id=d["_id"], **{k: v for k, v in d.items() if k != "_id"}) for d in db["tables"].find({}).sort("_id", 1)]


@app.put("/tables/{table_id}", response_model=TableOut)
def update_table(table_id: int, payload: TableIn):
    fields = payload.model_dump()
    if payload.status != "Reserved":
        fields["reservation_details"] = None
    elif fields["reservation_details"] and fields["reservation_details"].get("mobile"):
        fields["reservation_details"]["mobile"] = normalize_phone(fields["reservation_details"]["mobile"])
    db["tables"].update_one({"_id": table_id}, {"$set": fields}, upsert=True)
    return TableOut(id=table_id, **fields)


@app.post("/kitchen/orders", response_model=KitchenOrderOut)
def create_kitchen_order(payload: KitchenOrderIn):
    order_id = next_kitchen_order_id()
    doc = {
        "_id": order_id,
        "items": [i.model_dump() for i in payload.items],
        "table_id": payload.table_id,
        "status": "Pending",
        "created_at": _now(),
        "delivery_details": payload.delivery_details,
    }
    db["orders"].insert_one(doc)
    logger.info("kitchen order %s sent for table %s", order_id, payload.table_id)
    return KitchenOrderOut(**to_str_id(doc))


@app.get("/kitchen/orders", response_model=List[KitchenOrderOut])
def list_kitchen_orders(status: Optional[Literal["Pending", "In Preparation", "Completed"]] = None):
    filt = {"status": status} if status else {}
    return [KitchenOrderOut(**to_str_id(d)) for d in db["orders"].find(filt).sort("created_at", 1)]


@app.post("/kitchen/orders/{order_id}/advance", response_model=KitchenOrderOut)
def advance_kitchen_order(order_id: str):
    d = _require(db["orders"].find_one({"_id": order_id}), "Order")
    nxt = KITCHEN_FLOW.get(d["status"])
    if nxt is None:
        raise HTTPException(status_code=409, detail=f"Order {order_id} is already {d['status']}")
    db["orders"].update_one({"_id": order_id}, {"$set": {"status": nxt}})
    return KitchenOrderOut(**to_str_id({**d, "status": nxt}))


# -----------------------------
# Settings
# -----------------------------
@app.get("/settings/{key}")
def get_setting(key: str):
    d = _require(db["settings"].find_one({"_id": key}), "Setting")
    return {"key": key, "value": d.get("value")}


@app.put("/settings/{key}")
def put_setting(key: str, payload: SettingIn):
    db["settings"].update_one({"_id": key}, {"$set": {"value": payload.value}}, upsert=True)
    return {"key": key, "value": payload.value}


# -----------------------------
# Menu
# -----------------------------
@app.get("/menu", response_model=List[MenuCategory])
def get_menu():
    try:
        return load_menu(settings.menu_file_path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Menu not found")


@app.post("/save-menu")
def post_menu(document: List[Dict[str, Any]]):
    try:
        save_menu(settings.menu_file_path, document)
    except OSError:
        logger.error("failed to save menu", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": "Failed to update menu."})
    return {"success": True, "message": "Menu updated successfully."}


@app.get("/manifest")
def get_manifest():
    try:
        manifest = load_manifest(settings.manifest_path)
    except (FileNotFoundError, ValueError):
        return JSONResponse(status_code=404, content={"message": "Manifest not found."})
    return JSONResponse(content=manifest, media_type="application/manifest+json")


@app.put("/menu/items/{code}", response_model=MenuItem)
def edit_menu_item(code: str, payload: MenuItemUpdate):
    menu = get_menu()
    try:
        item = update_menu_item(menu, code, payload.name, payload.price, _now())
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Menu item {code} not found")
    save_menu(settings.menu_file_path, menu_document(menu))
    return item


@app.post("/menu/extract", response_model=List[MenuCategory])
async def extract_menu(payload: MenuImageIn):
    try:
        return await extract_menu_from_image(payload.image_data_uri)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MenuExtractionError as e:
        logger.error("menu extraction failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


# -----------------------------
# Reports & Admin
# -----------------------------
async def _run_report(report_type: str, recipient: str) -> ReportResult:
    return await compile_and_send_report(
        report_type,
        snapshot("bills"),
        snapshot("employees"),
        recipient,
        tz=settings.report_timezone,
    )


@app.post("/reports", response_model=ReportResult)
async def send_report(payload: ReportRequest):
    return await _run_report(payload.report_type, payload.recipient_email)


async def _scheduled_report(report_type: str):
    label = report_type.capitalize()
    if not settings.report_recipient:
        return JSONResponse(status_code=500, content={"message": "REPORT_RECIPIENT is not configured."})
    result = await _run_report(report_type, settings.report_recipient)
    if not result.success:
        return JSONResponse(status_code=500, content={"message": result.message or f"Failed to send {report_type} report."})
    return {"message": f"{label} report sent successfully."}


@app.get("/reports/daily")
async def daily_report():
    return await _scheduled_report("daily")


@app.get("/reports/monthly")
async def monthly_report():
    return await _scheduled_report("monthly")


@app.get("/admin/summary", response_model=AdminSummary)
def admin_summary():
    now = _now()
    tz = settings.report_timezone
    bills = snapshot("bills")
    today_count, today_revenue = summarize(filter_bills_for_period(bills, "daily", now, tz))
    month_count, month_revenue = summarize(filter_bills_for_period(bills, "monthly", now, tz))
    month_expenses = round_currency(sum(
        float(e.get("amount") or 0)
        for e in filter_bills_for_period(snapshot("expenses"), "monthly", now, tz, field="date")
    ))
    return AdminSummary(
        bills_today=today_count,
        revenue_today=today_revenue,
        bills_this_month=month_count,
        revenue_this_month=month_revenue,
        expenses_this_month=month_expenses,
        net_this_month=round_currency(month_revenue - month_expenses),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
