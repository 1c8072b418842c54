"""
Database Schemas for the Restaurant POS (MongoDB)

Each Pydantic model represents a document in a MongoDB collection. The
collection is named in the comment above each group.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

OrderType = Literal["Dine-In", "Take-Away", "Home-Delivery"]
TableStatus = Literal["Available", "Occupied", "Reserved", "Cleaning"]
KitchenStatus = Literal["Pending", "In Preparation", "Completed"]

# Menu (file-backed, see menu_store.py)
class MenuItemHistory(BaseModel):
    name: str
    price: float
    changed_at: datetime

class MenuItem(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    code: str
    category: Optional[str] = None
    ingredients: List[dict] = []
    recipe: List[dict] = []
    history: List[MenuItemHistory] = []

class MenuCategory(BaseModel):
    category: str
    items: List[MenuItem] = []

class OrderItem(MenuItem):
    quantity: int = Field(..., ge=1)

# bills
class CustomerDetails(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None

class Bill(BaseModel):
    order_items: List[OrderItem] = []
    discount: float = 0
    subtotal: float
    total: float
    timestamp: datetime
    order_type: OrderType = "Dine-In"
    table_id: Optional[int] = None
    customer_details: Optional[CustomerDetails] = None
    receipt_preview: str = ""

# pendingBills
class PendingBillTransaction(BaseModel):
    id: str
    amount: float
    date: datetime
    description: Optional[str] = None

class PendingBill(BaseModel):
    name: str
    type: Literal["customer", "vendor"] = "customer"
    mobile: Optional[str] = None
    transactions: List[PendingBillTransaction] = []

# customers (dedicated records; _id is the normalized phone)
class CustomerRecord(BaseModel):
    name: str
    phone: str
    email: str = ""
    address: str = ""
    created_at: Optional[datetime] = None

# expenses / vendors
class Vendor(BaseModel):
    name: str
    category: str
    phone: Optional[str] = None

class Expense(BaseModel):
    date: datetime
    category: str
    description: str = ""
    amount: float = Field(..., ge=0)
    vendor_id: Optional[str] = None

# employees / advances
class Employee(BaseModel):
    name: str
    role: str
    salary: float = Field(..., ge=0)

class Advance(BaseModel):
    employee_id: str
    date: datetime
    amount: float = Field(..., gt=0)

# tables
class ReservationDetails(BaseModel):
    name: str
    time: str
    mobile: Optional[str] = None

class Table(BaseModel):
    status: TableStatus = "Available"
    reservation_details: Optional[ReservationDetails] = None

# orders (kitchen order tickets)
class KitchenOrder(BaseModel):
    items: List[OrderItem]
    table_id: int = -1  # -1 for home delivery
    status: KitchenStatus = "Pending"
    created_at: datetime

# settings
class Setting(BaseModel):
    key: str
    value: Optional[str] = None

# inventory
class InventoryItem(BaseModel):
    name: str
    category: str
    stock: float = Field(..., ge=0)
    capacity: float = Field(..., gt=0)
    unit: str

# attendance (_id is "<employee_id>_<yyyy-mm-dd>")
AttendanceStatus = Literal["Present", "Absent", "Half-day"]

class Attendance(BaseModel):
    employee_id: str
    date: datetime
    status: AttendanceStatus
    notes: Optional[str] = None
