"""
SQLAlchemy Database Models

Table-ordering domain:
- Restaurants with their pricing settings and tables
- Menu items with customization groups
- Orders with an immutable line-item snapshot
- Service requests raised from a table
- Customer reviews
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from tableside.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status workflow, in forward order."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment axis, loosely coupled to the order status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ServiceRequestType(str, enum.Enum):
    SPECIAL_REQUEST = "special_request"
    CALL_SERVER = "call_server"
    SPECIAL_INSTRUCTIONS = "special_instructions"


class ServiceCategory(str, enum.Enum):
    TAKEOUT = "takeout"
    DIETARY = "dietary"
    PAYMENT = "payment"
    SPECIAL = "special"
    FAMILY = "family"
    BEVERAGE = "beverage"
    SEATING = "seating"
    MENU = "menu"


class ServiceRequestStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServicePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


class ReviewStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Restaurant(Base):
    """A restaurant and the settings the ordering flow depends on."""
    __tablename__ = "restaurants"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    tax_rate = Column(Numeric(7, 6), nullable=False)
    auto_confirm_orders = Column(Boolean, nullable=False, default=False)
    currency = Column(String(3), nullable=False, default="usd")

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Restaurant {self.id} - {self.name}>"


class DiningTable(Base):
    """A numbered table in a restaurant; the QR code on it carries ``table_number``."""
    __tablename__ = "dining_tables"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_dining_tables_number"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    restaurant_id = Column(String(32), nullable=False, index=True)
    table_number = Column(String(50), nullable=False)
    capacity = Column(Integer, nullable=False)
    status = Column(Enum(TableStatus), nullable=False, default=TableStatus.AVAILABLE)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<DiningTable {self.table_number} ({self.capacity}) - {self.status.value}>"


class MenuItem(Base):
    """
    A dish on a restaurant menu.

    ``customizations`` holds the ordered customization groups as JSON:
    ``[{"id", "name", "type", "required", "max_selections", "options": [{"name", "price"}]}]``.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        Index("ix_menu_items_restaurant_category", "restaurant_id", "category"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    restaurant_id = Column(String(32), nullable=False, index=True)

    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(60), nullable=False)
    image = Column(String(500), nullable=False, default="")
    available = Column(Boolean, nullable=False, default=True)

    # =========================================================================
    # ALLERGENS & DIETARY
    # =========================================================================
    allergens = Column(JSON, nullable=False, default=list)
    allergen_notes = Column(Text, nullable=False, default="")
    dietary_info = Column(JSON, nullable=False, default=list)

    customizations = Column(JSON, nullable=False, default=list)

    is_vegetarian = Column(Boolean, nullable=False, default=False)
    is_spicy = Column(Boolean, nullable=False, default=False)
    preparation_time = Column(Integer, nullable=True)
    calories = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<MenuItem {self.id} - {self.category}/{self.name}>"


class Order(Base):
    """
    A table order.

    ``items`` is a snapshot taken at order time; later menu edits never
    change it. Only status, payment and kitchen-note fields mutate.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_restaurant_status", "restaurant_id", "status"),
        Index("ix_orders_restaurant_table", "restaurant_id", "table_id"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    restaurant_id = Column(String(32), nullable=False, index=True)
    table_id = Column(String(50), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)
    special_instructions = Column(Text, nullable=False, default="")
    allergen_summary = Column(JSON, nullable=False, default=dict)
    kitchen_notes = Column(Text, nullable=False, default="")

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # STATUS & PAYMENT
    # =========================================================================
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_intent_id = Column(String(100), nullable=True, index=True)
    payment_error = Column(String(255), nullable=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    customer_email = Column(String(255), nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<Order {self.id} - table {self.table_id} - {self.status.value}>"


class ServiceRequest(Base):
    """A staff-assistance ticket raised from a table."""
    __tablename__ = "service_requests"
    __table_args__ = (
        Index("ix_service_requests_restaurant_status", "restaurant_id", "status"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    restaurant_id = Column(String(32), nullable=False, index=True)
    table_id = Column(String(50), nullable=False)

    request_type = Column(Enum(ServiceRequestType), nullable=False)
    category = Column(Enum(ServiceCategory), nullable=True)
    title = Column(String(120), nullable=False)
    note = Column(Text, nullable=False, default="")
    selected_options = Column(JSON, nullable=False, default=list)
    client_request_id = Column(String(64), nullable=True)

    status = Column(
        Enum(ServiceRequestStatus),
        nullable=False,
        default=ServiceRequestStatus.PENDING,
    )
    priority = Column(Enum(ServicePriority), nullable=False, default=ServicePriority.MEDIUM)
    admin_notes = Column(Text, nullable=True)
    assigned_to = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<ServiceRequest {self.id} - {self.title} - {self.status.value}>"


class Review(Base):
    """Customer review; ``helpful_count`` is only ever incremented server-side."""
    __tablename__ = "reviews"

    id = Column(String(32), primary_key=True, default=new_id)
    restaurant_id = Column(String(32), nullable=False, index=True)
    customer_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    table_number = Column(String(50), nullable=True)
    order_id = Column(String(32), nullable=True)
    helpful_count = Column(Integer, nullable=False, default=0)
    status = Column(Enum(ReviewStatus), nullable=False, default=ReviewStatus.APPROVED)

    # Staff replies: [{"message", "staff_name", "created_at"}]
    responses = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<Review {self.id} - {self.rating}/5>"
