"""
SQLAlchemy Database Models

Entities for QR table ordering:
- Users (staff accounts with roles)
- Menu items (catalog consumed by order placement)
- Restaurant tables with reservations and maintenance log
- Orders (immutable item snapshots, forward-only status)
- Bills (persisted payment snapshots)
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from qrdine.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, enum.Enum):
    """Staff roles; each also names a role-room on the realtime channel."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    WAITER = "waiter"
    KITCHEN = "kitchen"
    CASHIER = "cashier"


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class TableSection(str, enum.Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    BALCONY = "balcony"
    PRIVATE = "private"
    ROOFTOP = "rooftop"


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MaintenanceStatus(str, enum.Enum):
    REPORTED = "reported"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class OrderStatus(str, enum.Enum):
    """Order status workflow. Members are declared in lifecycle order."""
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"

    @property
    def rank(self) -> int:
        return list(OrderStatus).index(self)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"


class User(Base):
    """Staff account. Passwords are stored only as bcrypt hashes."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.STAFF)
    is_active = Column(Boolean, nullable=False, default=True)
    is_super_admin = Column(Boolean, nullable=False, default=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)

    # module -> list of allowed actions
    permissions = Column(JSON, nullable=False, default=dict)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User {self.username} - {self.role.value}>"


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    category = Column(String(30), nullable=False, index=True)
    is_vegetarian = Column(Boolean, default=False)
    preparation_time = Column(Integer, nullable=False, default=10)  # minutes
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class RestaurantTable(Base):
    """
    Dining table tracked by the table registry.

    Invariant: current_guests never exceeds capacity. The registry checks
    it on every mutation before flushing.
    """
    __tablename__ = "restaurant_tables"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    table_number = Column(String(20), nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False)
    status = Column(
        Enum(TableStatus),
        nullable=False,
        default=TableStatus.AVAILABLE,
        index=True
    )
    section = Column(Enum(TableSection), nullable=False, default=TableSection.INDOOR)

    # Weak reference: the table only tracks which order is active
    current_order_id = Column(Integer, nullable=True)
    current_guests = Column(Integer, nullable=False, default=0)
    assigned_waiter_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    qr_code = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # =========================================================================
    # DAILY METADATA
    # =========================================================================
    last_order_time = Column(DateTime(timezone=True), nullable=True)
    total_orders_today = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    reservations = relationship(
        "Reservation",
        back_populates="table",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Reservation.start_time",
    )
    maintenance_log = relationship(
        "MaintenanceLogEntry",
        back_populates="table",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MaintenanceLogEntry.id",
    )

    def __repr__(self):
        return f"<Table {self.table_number} - {self.status.value}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_id = Column(
        Integer,
        ForeignKey("restaurant_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=True)
    customer_email = Column(String(255), nullable=True)
    guest_count = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(ReservationStatus),
        nullable=False,
        default=ReservationStatus.PENDING
    )
    special_requests = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    table = relationship("RestaurantTable", back_populates="reservations")

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: windows sharing a boundary instant do not conflict."""
        return (
            as_utc(start) < as_utc(self.end_time)
            and as_utc(end) > as_utc(self.start_time)
        )


class MaintenanceLogEntry(Base):
    __tablename__ = "maintenance_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_id = Column(
        Integer,
        ForeignKey("restaurant_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    issue = Column(Text, nullable=False)
    reported_date = Column(DateTime(timezone=True), default=utcnow)
    resolved_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(MaintenanceStatus),
        nullable=False,
        default=MaintenanceStatus.REPORTED
    )
    reported_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)

    table = relationship("RestaurantTable", back_populates="maintenance_log")


class Order(Base):
    """
    Guest order placed from a table.

    `items` is a JSON list of snapshots {menu_item_id, name, quantity, price}
    captured at placement; it is never rewritten afterwards.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    table_id = Column(
        Integer,
        ForeignKey("restaurant_tables.id"),
        nullable=False,
        index=True
    )
    items = Column(JSON, nullable=False)
    status = Column(
        Enum(OrderStatus),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True
    )

    # =========================================================================
    # PAYMENT INFO
    # =========================================================================
    is_paid = Column(Boolean, nullable=False, default=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Order #{self.id} - table {self.table_id} - {self.status.value}>"


class Bill(Base):
    """Payment snapshot covering every order settled in one payment."""
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    table_id = Column(
        Integer,
        ForeignKey("restaurant_tables.id"),
        nullable=False,
        index=True
    )
    order_ids = Column(JSON, nullable=False)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    service_charge = Column(Float, nullable=False)
    gst = Column(Float, nullable=False)
    discount = Column(Float, nullable=False, default=0.0)
    grand_total = Column(Float, nullable=False)

    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    paid = Column(Boolean, nullable=False, default=False)
    processed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Bill #{self.id} - table {self.table_id} - {self.grand_total}>"
