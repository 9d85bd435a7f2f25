"""
Pydantic Schemas for Request/Response Validation

Every successful response is wrapped in ``ApiResult`` and every error in
``ErrorResponse``. Money fields are ``Decimal`` and serialise as 2-dp strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from tableside.models import (
    OrderStatus,
    PaymentStatus,
    ReviewStatus,
    ServiceCategory,
    ServicePriority,
    ServiceRequestStatus,
    ServiceRequestType,
    TableStatus,
)
from tableside.services.restaurants import ResetKind

T = TypeVar("T")


# =============================================================================
# ENVELOPES
# =============================================================================

class ApiResult(BaseModel, Generic[T]):
    """Success envelope."""
    success: bool = True
    message: str = ""
    data: Optional[T] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    payment_service: str
    notification_service: str
    timestamp: datetime


# =============================================================================
# RESTAURANTS
# =============================================================================

class RestaurantCreate(BaseModel):
    name: str = Field(..., max_length=120, examples=["Trattoria Roma"])
    tax_rate: Optional[Decimal] = Field(None, examples=["0.08"])
    auto_confirm_orders: Optional[bool] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3, examples=["usd"])


class RestaurantSettingsUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=120)
    tax_rate: Optional[Decimal] = None
    auto_confirm_orders: Optional[bool] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class RestaurantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    tax_rate: Decimal
    auto_confirm_orders: bool
    currency: str
    created_at: datetime


class ResetRequest(BaseModel):
    kind: ResetKind = Field(..., examples=["orders"])


class RestaurantStats(BaseModel):
    tables_count: int
    menu_items_count: int
    total_orders_count: int
    active_orders_count: int
    total_revenue: Decimal


# =============================================================================
# TABLES
# =============================================================================

class TableCreate(BaseModel):
    table_number: str = Field(..., max_length=50, examples=["T12"])
    capacity: int = Field(..., examples=[4])
    status: TableStatus = TableStatus.AVAILABLE


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(None, max_length=50)
    capacity: Optional[int] = None
    status: Optional[TableStatus] = None


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    table_number: str
    capacity: int
    status: TableStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


class TableOrderSummary(BaseModel):
    id: str
    status: OrderStatus
    total: Decimal
    item_count: int
    created_at: datetime


class KitchenLoad(BaseModel):
    orders_in_queue: int
    estimated_wait: str


class TableStatusResponse(BaseModel):
    table: TableResponse
    available: bool
    current_orders: list[TableOrderSummary]
    kitchen: KitchenLoad


# =============================================================================
# MENU
# =============================================================================

class CustomizationOptionSchema(BaseModel):
    name: str = Field(..., examples=["Thick"])
    price: Decimal = Field(default=Decimal("0"), examples=["1.50"])


class CustomizationGroupSchema(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., examples=["Crust Type"])
    type: str = Field(default="single", examples=["single", "multi"])
    required: bool = False
    max_selections: Optional[int] = None
    options: list[CustomizationOptionSchema] = Field(default_factory=list)


class MenuItemCreate(BaseModel):
    name: str = Field(..., max_length=120, examples=["Margherita Pizza"])
    description: str = Field(..., examples=["Fresh mozzarella, tomato sauce, basil"])
    price: Decimal = Field(..., examples=["12.99"])
    category: str = Field(..., max_length=60, examples=["pizza"])
    image: str = ""
    available: bool = True
    allergens: list[str] = Field(default_factory=list)
    allergen_notes: str = ""
    dietary_info: list[str] = Field(default_factory=list)
    customizations: list[CustomizationGroupSchema] = Field(default_factory=list)
    is_vegetarian: bool = False
    is_spicy: bool = False
    preparation_time: Optional[int] = Field(None, ge=0)
    calories: Optional[int] = Field(None, ge=0)


class MenuItemUpdate(BaseModel):
    """Partial update; only fields sent by the client are applied."""
    name: Optional[str] = Field(None, max_length=120)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    category: Optional[str] = Field(None, max_length=60)
    image: Optional[str] = None
    available: Optional[bool] = None
    allergens: Optional[list[str]] = None
    allergen_notes: Optional[str] = None
    dietary_info: Optional[list[str]] = None
    customizations: Optional[list[CustomizationGroupSchema]] = None
    is_vegetarian: Optional[bool] = None
    is_spicy: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, ge=0)
    calories: Optional[int] = Field(None, ge=0)


class AvailabilityUpdate(BaseModel):
    available: bool


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    name: str
    description: str
    price: Decimal
    category: str
    image: str
    available: bool
    allergens: list[str]
    allergen_notes: str
    dietary_info: list[str]
    customizations: list[dict[str, Any]]
    is_vegetarian: bool
    is_spicy: bool
    preparation_time: Optional[int] = None
    calories: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class MenuResponse(BaseModel):
    restaurant_id: str
    categories: dict[str, list[MenuItemResponse]]


class TableMenuResponse(BaseModel):
    """What a customer sees after scanning a table QR code."""
    table: TableResponse
    categories: dict[str, list[MenuItemResponse]]
    current_orders: list[TableOrderSummary]


class CategorySummary(BaseModel):
    name: str
    item_count: int
    available_count: int
    average_price: Decimal


class MenuStats(BaseModel):
    total_items: int
    available_items: int
    unavailable_items: int
    average_price: Decimal
    price_range: dict[str, Decimal]
    total_categories: int


# =============================================================================
# BULK IMPORT
# =============================================================================

class BulkUploadOptions(BaseModel):
    skip_duplicates: bool = True
    overwrite: bool = False
    validate_only: bool = False


class BulkUploadRequest(BaseModel):
    items: list[Any]
    options: BulkUploadOptions = Field(default_factory=BulkUploadOptions)


class BulkValidateRequest(BaseModel):
    items: list[Any]


class ValidationReportResponse(BaseModel):
    total: int
    valid: int
    invalid: int
    errors: list[str]


class ImportedItemSummary(BaseModel):
    id: str
    name: str
    category: str
    price: Decimal


class ImportReportResponse(BaseModel):
    successful: int
    failed: int
    skipped: int
    created: list[ImportedItemSummary]
    updated: list[ImportedItemSummary]
    errors: list[str]
    validate_only: bool = False


# =============================================================================
# CART & ORDERS
# =============================================================================

class AllergenPreferences(BaseModel):
    avoid_allergens: list[str] = Field(default_factory=list, examples=[["dairy"]])
    dietary_preferences: list[str] = Field(default_factory=list)
    special_instructions: str = ""


class CartLineInput(BaseModel):
    menu_item_id: str
    quantity: int = Field(default=1, ge=1, le=99)
    selections: dict[str, Union[str, list[str]]] = Field(
        default_factory=dict,
        examples=[{"Crust Type": "Thin", "Toppings": ["Olives", "Basil"]}],
    )
    allergen_preferences: Optional[AllergenPreferences] = None


class QuoteRequest(BaseModel):
    items: list[CartLineInput]


class QuoteLine(BaseModel):
    line_id: str
    menu_item_id: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    selections: dict[str, list[str]]


class QuoteResponse(BaseModel):
    lines: list[QuoteLine]
    item_count: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    tax_rate: Decimal


class OrderCreate(BaseModel):
    """Request schema for placing an order from a table."""
    table_id: str = Field(..., max_length=50, examples=["T12"])
    items: list[CartLineInput]
    customer_name: Optional[str] = Field(None, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20, examples=["+15551234567"])
    customer_email: Optional[str] = Field(None, max_length=255)
    special_instructions: str = Field(default="", max_length=500)


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    table_id: str
    items: list[dict[str, Any]]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    payment_error: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    special_instructions: str
    kitchen_notes: str
    allergen_summary: dict[str, Any]
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class KitchenNotesUpdate(BaseModel):
    notes: str = Field(..., max_length=1000)


class PaymentIntentResponse(BaseModel):
    order_id: str
    payment_intent_id: str
    client_secret: Optional[str]
    amount: Decimal
    currency: str
    provider: str


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(
        None, examples=["requested_by_customer", "duplicate", "fraudulent"]
    )


# =============================================================================
# SERVICE REQUESTS
# =============================================================================

class ServiceRequestItem(BaseModel):
    id: Optional[str] = Field(None, description="Client-side request id")
    category: Optional[ServiceCategory] = None
    title: str = Field(..., max_length=120, examples=["Nut allergy"])
    note: str = Field(default="", max_length=1000)
    selected_options: list[str] = Field(default_factory=list)


class ServiceRequestCreate(BaseModel):
    table_id: str = Field(..., max_length=50)
    requests: list[ServiceRequestItem]


class CallServerRequest(BaseModel):
    table_id: str = Field(..., max_length=50)
    message: Optional[str] = Field(None, max_length=500)


class SpecialInstructionsCreate(BaseModel):
    table_id: str = Field(..., max_length=50)
    note: str = Field(default="", max_length=1000)
    selected_options: list[str] = Field(default_factory=list)


class ServiceRequestUpdate(BaseModel):
    status: Optional[ServiceRequestStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[str] = Field(None, max_length=64)


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    table_id: str
    request_type: ServiceRequestType
    category: Optional[ServiceCategory] = None
    title: str
    note: str
    selected_options: list[str]
    status: ServiceRequestStatus
    priority: ServicePriority
    admin_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ServiceRequestStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_category: dict[str, int]


# =============================================================================
# REVIEWS
# =============================================================================

class ReviewCreate(BaseModel):
    customer_name: str = Field(..., max_length=100)
    rating: int = Field(..., examples=[5])
    comment: str = Field(..., max_length=2000)
    email: Optional[str] = Field(None, max_length=255)
    table_number: Optional[str] = Field(None, max_length=50)
    order_id: Optional[str] = None


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    customer_name: str
    rating: int
    comment: str
    table_number: Optional[str] = None
    order_id: Optional[str] = None
    helpful_count: int
    status: ReviewStatus
    responses: list[dict[str, Any]]
    created_at: datetime


class ReviewListResponse(BaseModel):
    reviews: list[ReviewResponse]
    pagination: dict[str, int]
    average_rating: Decimal
    total_reviews: int
    rating_distribution: dict[int, int]


class HelpfulResponse(BaseModel):
    review_id: str
    helpful_count: int


class ReviewReplyCreate(BaseModel):
    message: str = Field(..., max_length=1000)
    staff_name: Optional[str] = Field(None, max_length=100)


class ReviewStatusUpdate(BaseModel):
    status: ReviewStatus
