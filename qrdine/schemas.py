"""
Pydantic Schemas for Request/Response Validation

Guest-facing inputs accept the camelCase names used by the web client
(tableNumber, menuItemId, waiterId) as well as snake_case.
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from qrdine.core.money import line_subtotal, round_money
from qrdine.models import (
    MaintenanceStatus,
    OrderStatus,
    PaymentMethod,
    ReservationStatus,
    TableSection,
    TableStatus,
    UserRole,
)


def _coerce_str(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


# =============================================================================
# ENVELOPES
# =============================================================================

class ApiResponse(BaseModel):
    """Uniform success envelope."""
    success: bool = True
    message: Optional[str] = None
    data: Any = None


class ErrorResponse(BaseModel):
    """Uniform error envelope."""
    success: bool = False
    error: str
    message: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    qr_service: str
    realtime_connections: int
    timestamp: datetime


# =============================================================================
# AUTH & USERS
# =============================================================================

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: UserRole
    is_active: bool
    is_super_admin: bool
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    permissions: dict[str, List[str]] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.STAFF
    is_super_admin: bool = False
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    permissions: dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email format")
        return v.lower()


class UserUpdate(BaseModel):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    password: Optional[str] = Field(None, min_length=6)
    permissions: Optional[dict[str, List[str]]] = None


# =============================================================================
# MENU
# =============================================================================

class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    price: float
    category: str
    is_vegetarian: bool
    preparation_time: int
    is_available: bool


# =============================================================================
# TABLES
# =============================================================================

class TableCreate(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=20, alias="tableNumber")
    capacity: int = Field(..., ge=1, le=20)
    section: TableSection = TableSection.INDOOR
    status: TableStatus = TableStatus.AVAILABLE
    current_guests: int = Field(default=0, ge=0, alias="currentGuests")
    is_active: bool = True

    model_config = ConfigDict(populate_by_name=True)

    coerce_table_number = field_validator("table_number", mode="before")(_coerce_str)


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(None, min_length=1, max_length=20, alias="tableNumber")
    capacity: Optional[int] = Field(None, ge=1, le=20)
    section: Optional[TableSection] = None
    status: Optional[TableStatus] = None
    current_guests: Optional[int] = Field(None, ge=0, alias="currentGuests")
    is_active: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)

    coerce_table_number = field_validator("table_number", mode="before")(_coerce_str)


class AssignWaiterRequest(BaseModel):
    waiter_id: int = Field(..., alias="waiterId")

    model_config = ConfigDict(populate_by_name=True)


class ReportIssueRequest(BaseModel):
    issue: str = Field(..., min_length=1, max_length=500)


class ResolveIssueRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class ReservationCreate(BaseModel):
    date: date
    start_time: datetime
    end_time: datetime
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)
    guest_count: int = Field(default=1, ge=1, le=20)
    status: ReservationStatus = ReservationStatus.PENDING
    special_requests: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_window(self) -> "ReservationCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: date
    start_time: datetime
    end_time: datetime
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    guest_count: int
    status: ReservationStatus
    special_requests: Optional[str] = None


class MaintenanceEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    issue: str
    reported_date: Optional[datetime] = None
    resolved_date: Optional[datetime] = None
    status: MaintenanceStatus
    reported_by_id: Optional[int] = None
    resolved_by_id: Optional[int] = None
    notes: Optional[str] = None


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_number: str
    capacity: int
    status: TableStatus
    section: TableSection
    current_order_id: Optional[int] = None
    current_guests: int
    assigned_waiter_id: Optional[int] = None
    qr_code: Optional[str] = None
    is_active: bool
    last_order_time: Optional[datetime] = None
    total_orders_today: int
    reservations: List[ReservationResponse] = Field(default_factory=list)
    maintenance_log: List[MaintenanceEntryResponse] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    table_id: int
    date: date
    start_time: datetime
    end_time: datetime
    available: bool


class DailyStats(BaseModel):
    total_orders: int
    busy_tables: int
    tables_in_maintenance: int
    total_tables: int


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemRequest(BaseModel):
    """Single requested line; name and price come from the menu."""
    menu_item_id: int = Field(..., alias="menuItemId")
    quantity: int = Field(..., ge=1, le=99)

    model_config = ConfigDict(populate_by_name=True)


class OrderCreate(BaseModel):
    """Guest order placement. Emptiness checks happen in the order engine."""
    table_number: Optional[str] = Field(None, alias="tableNumber")
    items: List[OrderItemRequest] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    coerce_table_number = field_validator("table_number", mode="before")(_coerce_str)


class OrderItemSnapshot(BaseModel):
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    price: float


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_id: int
    items: List[OrderItemSnapshot]
    status: OrderStatus
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    bill_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def subtotal(self) -> float:
        return float(round_money(line_subtotal((item.price, item.quantity) for item in self.items)))


class StatusUpdate(BaseModel):
    status: Optional[str] = None


# =============================================================================
# BILLING
# =============================================================================

class PaymentRequest(BaseModel):
    method: Optional[str] = None
    discount: float = Field(default=0.0, ge=0)


class BillTotals(BaseModel):
    subtotal: float
    service_charge: float
    gst: float
    discount: float
    grand_total: float
    currency: str


class BillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_id: int
    order_ids: List[int]
    subtotal: float
    service_charge: float
    gst: float
    discount: float
    grand_total: float
    payment_method: PaymentMethod
    paid: bool
    processed_by_id: Optional[int] = None
    created_at: Optional[datetime] = None


class BillPreview(BaseModel):
    table_id: int
    orders: List[OrderResponse]
    totals: BillTotals


class PaymentResponse(BaseModel):
    table_id: int = Field(..., serialization_alias="tableId")
    method: PaymentMethod
    paid_orders: int
    bill: Optional[BillResponse] = None
