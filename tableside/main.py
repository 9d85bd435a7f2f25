"""
FastAPI Application Entry Point

Tableside - QR table ordering backend.
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - /restaurants/{id}, /restaurants/{id}/stats: Restaurant settings and dashboard counters
    - /restaurants/{id}/tables...: Table registry, QR landing menu and table status
    - /restaurants/{id}/menu...: Menu catalog, bulk import and export
    - /restaurants/{id}/cart/quote: Price a cart without ordering
    - /restaurants/{id}/orders, /orders/{id}...: Ordering, kitchen workflow, payment
    - /restaurants/{id}/service-requests, /service-requests/{id}: Staff assistance
    - /restaurants/{id}/reviews...: Customer reviews
    - POST /webhooks/stripe: Payment provider events
    - GET /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, File, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.config import get_settings, setup_logging
from tableside.core.errors import TablesideError, ValidationFailed
from tableside.database import engine, get_db, init_db
from tableside.models import OrderStatus, ReviewStatus, ServiceRequestStatus
from tableside.schemas import (
    ApiResult,
    AvailabilityUpdate,
    BulkUploadRequest,
    BulkValidateRequest,
    CallServerRequest,
    CategorySummary,
    ErrorResponse,
    HealthResponse,
    HelpfulResponse,
    ImportReportResponse,
    KitchenNotesUpdate,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    MenuResponse,
    MenuStats,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentIntentResponse,
    QuoteLine,
    QuoteRequest,
    QuoteResponse,
    RefundRequest,
    ResetRequest,
    RestaurantCreate,
    RestaurantResponse,
    RestaurantSettingsUpdate,
    RestaurantStats,
    ReviewCreate,
    ReviewListResponse,
    ReviewReplyCreate,
    ReviewResponse,
    ReviewStatusUpdate,
    ServiceRequestCreate,
    ServiceRequestResponse,
    ServiceRequestStats,
    ServiceRequestUpdate,
    SpecialInstructionsCreate,
    TableCreate,
    TableMenuResponse,
    TableResponse,
    TableStatusResponse,
    TableUpdate,
    ValidationReportResponse,
)
from tableside.services import (
    menu,
    menu_import,
    orders,
    restaurants,
    reviews,
    service_requests,
    spreadsheet,
    tables,
)
from tableside.services.notifications import get_notification_service
from tableside.services.payment import BasePaymentService, get_payment_service
from tableside.tasks import export_menu_to_excel, notify_order_ready

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    logger.info(f"✅ Payment Service: {get_payment_service().provider_name}")
    logger.info(f"✅ Notification Service: {get_notification_service().provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR table ordering backend: menus, carts, orders, payments and "
        "staff service requests. Mock services in development, real APIs in production."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_payment() -> BasePaymentService:
    """Payment service dependency; tests override it with a seeded mock."""
    return get_payment_service()


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    payment_service: BasePaymentService = Depends(get_payment),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    payment_status = "healthy" if await payment_service.health_check() else "unhealthy"
    notification_status = (
        "healthy" if await get_notification_service().health_check() else "unhealthy"
    )

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, payment_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        payment_service=payment_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# RESTAURANTS
# =============================================================================

@app.post(
    "/restaurants",
    response_model=ApiResult[RestaurantResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def create_restaurant(
    data: RestaurantCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[RestaurantResponse]:
    restaurant = await restaurants.create_restaurant(
        db,
        name=data.name,
        tax_rate=data.tax_rate,
        auto_confirm_orders=data.auto_confirm_orders,
        currency=data.currency,
    )
    return ApiResult(
        message="Restaurant created",
        data=RestaurantResponse.model_validate(restaurant),
    )


@app.get(
    "/restaurants/{restaurant_id}",
    response_model=ApiResult[RestaurantResponse],
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def get_restaurant(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[RestaurantResponse]:
    restaurant = await restaurants.get_restaurant(db, restaurant_id)
    return ApiResult(data=RestaurantResponse.model_validate(restaurant))


@app.patch(
    "/restaurants/{restaurant_id}/settings",
    response_model=ApiResult[RestaurantResponse],
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def update_restaurant_settings(
    restaurant_id: str,
    data: RestaurantSettingsUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[RestaurantResponse]:
    restaurant = await restaurants.update_settings(
        db, restaurant_id, data.model_dump(exclude_unset=True)
    )
    return ApiResult(
        message="Settings updated",
        data=RestaurantResponse.model_validate(restaurant),
    )


@app.post(
    "/restaurants/{restaurant_id}/reset",
    response_model=ApiResult[dict[str, int]],
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
    summary="Delete orders, menu, service requests or everything",
)
async def reset_restaurant(
    restaurant_id: str,
    data: ResetRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[dict[str, int]]:
    deleted = await restaurants.reset_data(db, restaurant_id, data.kind)
    return ApiResult(message=f"Reset {data.kind.value}", data=deleted)


@app.get(
    "/restaurants/{restaurant_id}/stats",
    response_model=ApiResult[RestaurantStats],
    responses=ERROR_RESPONSES,
    tags=["Restaurants"],
)
async def get_restaurant_stats(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[RestaurantStats]:
    stats = await restaurants.restaurant_stats(db, restaurant_id)
    return ApiResult(data=RestaurantStats(**stats))


# =============================================================================
# TABLES
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/tables",
    response_model=ApiResult[TableResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def create_table(
    restaurant_id: str,
    data: TableCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[TableResponse]:
    table = await tables.add_table(
        db, restaurant_id, data.table_number, data.capacity, data.status
    )
    return ApiResult(message="Table created", data=TableResponse.model_validate(table))


@app.get(
    "/restaurants/{restaurant_id}/tables",
    response_model=ApiResult[list[TableResponse]],
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def list_tables(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[TableResponse]]:
    found = await tables.list_tables(db, restaurant_id)
    return ApiResult(data=[TableResponse.model_validate(t) for t in found])


@app.get(
    "/restaurants/{restaurant_id}/tables/{table_number}",
    response_model=ApiResult[TableResponse],
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def get_table(
    restaurant_id: str,
    table_number: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[TableResponse]:
    table = await tables.get_table(db, restaurant_id, table_number)
    return ApiResult(data=TableResponse.model_validate(table))


@app.patch(
    "/restaurants/{restaurant_id}/tables/{table_number}",
    response_model=ApiResult[TableResponse],
    responses=ERROR_RESPONSES,
    tags=["Tables"],
)
async def update_table(
    restaurant_id: str,
    table_number: str,
    data: TableUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[TableResponse]:
    table = await tables.update_table(
        db, restaurant_id, table_number, data.model_dump(exclude_unset=True)
    )
    return ApiResult(message="Table updated", data=TableResponse.model_validate(table))


@app.delete("/restaurants/{restaurant_id}/tables/{table_number}", response_model=ApiResult[None],
            responses=ERROR_RESPONSES, tags=["Tables"])
async def delete_table(
    restaurant_id: str,
    table_number: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[None]:
    await tables.delete_table(db, restaurant_id, table_number)
    return ApiResult(message="Table deleted")


@app.get(
    "/restaurants/{restaurant_id}/tables/{table_number}/status",
    response_model=ApiResult[TableStatusResponse],
    responses=ERROR_RESPONSES,
    tags=["Tables"],
    summary="Open orders at a table and the current kitchen wait",
)
async def get_table_status(
    restaurant_id: str,
    table_number: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[TableStatusResponse]:
    status = await tables.table_status(db, restaurant_id, table_number)
    status["table"] = TableResponse.model_validate(status["table"])
    return ApiResult(data=TableStatusResponse(**status))


@app.get(
    "/restaurants/{restaurant_id}/tables/{table_number}/menu",
    response_model=ApiResult[TableMenuResponse],
    responses=ERROR_RESPONSES,
    tags=["Tables"],
    summary="Landing data for a scanned table QR code",
)
async def get_table_menu(
    restaurant_id: str,
    table_number: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[TableMenuResponse]:
    table = await tables.require_table(db, restaurant_id, table_number, ordering=True)
    grouped = await menu.get_menu_by_restaurant(db, restaurant_id)
    status = await tables.table_status(db, restaurant_id, table.table_number)
    return ApiResult(data=TableMenuResponse(
        table=TableResponse.model_validate(table),
        categories={
            category: [MenuItemResponse.model_validate(item) for item in items]
            for category, items in grouped.items()
        },
        current_orders=status["current_orders"],
    ))


# =============================================================================
# MENU
# =============================================================================

@app.get(
    "/restaurants/{restaurant_id}/menu",
    response_model=ApiResult[MenuResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
    summary="Customer menu grouped by category",
)
async def get_menu(
    restaurant_id: str,
    include_unavailable: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuResponse]:
    grouped = await menu.get_menu_by_restaurant(db, restaurant_id, include_unavailable)
    return ApiResult(data=MenuResponse(
        restaurant_id=restaurant_id,
        categories={
            category: [MenuItemResponse.model_validate(item) for item in items]
            for category, items in grouped.items()
        },
    ))


@app.get(
    "/restaurants/{restaurant_id}/menu/items",
    response_model=ApiResult[list[MenuItemResponse]],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def list_menu_items(
    restaurant_id: str,
    category: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[MenuItemResponse]]:
    await restaurants.get_restaurant(db, restaurant_id)
    items = await menu.list_items(db, restaurant_id)
    if category:
        items = [i for i in items if i.category == category.strip().lower()]
    return ApiResult(data=[MenuItemResponse.model_validate(i) for i in items])


@app.post(
    "/restaurants/{restaurant_id}/menu/items",
    response_model=ApiResult[MenuItemResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def create_menu_item(
    restaurant_id: str,
    data: MenuItemCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuItemResponse]:
    item = await menu.create_item(db, restaurant_id, data.model_dump())
    return ApiResult(message="Menu item created", data=MenuItemResponse.model_validate(item))


@app.get(
    "/restaurants/{restaurant_id}/menu/categories",
    response_model=ApiResult[list[CategorySummary]],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def list_menu_categories(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[CategorySummary]]:
    categories = await menu.list_categories(db, restaurant_id)
    return ApiResult(data=[CategorySummary(**c) for c in categories])


@app.get(
    "/restaurants/{restaurant_id}/menu/stats",
    response_model=ApiResult[MenuStats],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def get_menu_stats(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuStats]:
    return ApiResult(data=MenuStats(**await menu.menu_stats(db, restaurant_id)))


@app.get("/menu/items/{item_id}", response_model=ApiResult[MenuItemResponse],
         responses=ERROR_RESPONSES, tags=["Menu"])
async def get_menu_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuItemResponse]:
    item = await menu.get_item(db, item_id)
    return ApiResult(data=MenuItemResponse.model_validate(item))


@app.put("/menu/items/{item_id}", response_model=ApiResult[MenuItemResponse],
         responses=ERROR_RESPONSES, tags=["Menu"])
async def update_menu_item(
    item_id: str,
    data: MenuItemUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuItemResponse]:
    """Partial update; omitted fields keep their value."""
    item = await menu.update_item(db, item_id, data.model_dump(exclude_unset=True))
    return ApiResult(message="Menu item updated", data=MenuItemResponse.model_validate(item))


@app.delete("/menu/items/{item_id}", response_model=ApiResult[None],
            responses=ERROR_RESPONSES, tags=["Menu"])
async def delete_menu_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[None]:
    await menu.delete_item(db, item_id)
    return ApiResult(message="Menu item deleted")


@app.patch("/menu/items/{item_id}/availability", response_model=ApiResult[MenuItemResponse],
           responses=ERROR_RESPONSES, tags=["Menu"])
async def set_menu_item_availability(
    item_id: str,
    data: AvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[MenuItemResponse]:
    item = await menu.set_availability(db, item_id, data.available)
    return ApiResult(
        message=f"Item {'enabled' if data.available else 'disabled'}",
        data=MenuItemResponse.model_validate(item),
    )


# =============================================================================
# BULK IMPORT / EXPORT
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/menu/bulk-upload",
    response_model=ApiResult[ImportReportResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu Import"],
)
async def bulk_upload(
    restaurant_id: str,
    data: BulkUploadRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ImportReportResponse]:
    if not data.items:
        raise ValidationFailed("Items array is required and cannot be empty", field="items")

    report = await menu_import.import_records(
        db,
        restaurant_id,
        data.items,
        menu_import.ImportOptions(**data.options.model_dump()),
    )
    return ApiResult(
        message=f"{report.successful} items imported, {report.failed} failed, {report.skipped} skipped",
        data=ImportReportResponse(**vars(report)),
    )


@app.post(
    "/restaurants/{restaurant_id}/menu/validate-bulk",
    response_model=ApiResult[ValidationReportResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu Import"],
)
async def validate_bulk(
    restaurant_id: str,
    data: BulkValidateRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ValidationReportResponse]:
    await restaurants.get_restaurant(db, restaurant_id)
    report = menu_import.validate_records(data.items)
    return ApiResult(
        message=f"{report.valid} valid, {report.invalid} invalid",
        data=ValidationReportResponse(
            total=report.total,
            valid=report.valid,
            invalid=report.invalid,
            errors=report.errors,
        ),
    )


@app.post(
    "/restaurants/{restaurant_id}/menu/upload",
    response_model=ApiResult[ImportReportResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu Import"],
    summary="Import a CSV, XLSX or JSON menu file",
)
async def upload_menu_file(
    restaurant_id: str,
    file: UploadFile = File(...),
    skip_duplicates: bool = Query(True),
    overwrite: bool = Query(False),
    validate_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ImportReportResponse]:
    records = spreadsheet.parse_upload(file.filename or "", await file.read())
    if not records:
        raise ValidationFailed("The uploaded file contains no menu items", field="file")

    report = await menu_import.import_records(
        db,
        restaurant_id,
        records,
        menu_import.ImportOptions(
            skip_duplicates=skip_duplicates,
            overwrite=overwrite,
            validate_only=validate_only,
        ),
    )
    return ApiResult(
        message=f"{report.successful} items imported from {file.filename}",
        data=ImportReportResponse(**vars(report)),
    )


@app.get("/menu/template", tags=["Menu Import"], summary="Download the import template")
async def download_template(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
) -> Response:
    if format == "xlsx":
        return Response(
            content=spreadsheet.template_workbook(),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": 'attachment; filename="menu_template.xlsx"'},
        )
    return Response(
        content=spreadsheet.template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="menu_template.csv"'},
    )


@app.post(
    "/restaurants/{restaurant_id}/menu/export",
    response_model=ApiResult[dict[str, Any]],
    status_code=202,
    responses=ERROR_RESPONSES,
    tags=["Menu Import"],
    summary="Queue an XLSX export of the menu",
)
async def export_menu(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[dict[str, Any]]:
    await restaurants.get_restaurant(db, restaurant_id)
    rows = [spreadsheet.menu_item_row(item) for item in await menu.list_items(db, restaurant_id)]

    task = export_menu_to_excel.delay(restaurant_id, rows)
    logger.info(f"Menu export for {restaurant_id} queued as task {task.id}")

    return ApiResult(
        message="Menu export queued",
        data={"task_id": task.id, "items": len(rows), "path": str(spreadsheet.export_path(restaurant_id))},
    )


# =============================================================================
# CART
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/cart/quote",
    response_model=ApiResult[QuoteResponse],
    responses=ERROR_RESPONSES,
    tags=["Cart"],
    summary="Price a cart without placing an order",
)
async def quote_cart(
    restaurant_id: str,
    data: QuoteRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[QuoteResponse]:
    cart, totals = await orders.quote(
        db, restaurant_id, [line.model_dump() for line in data.items]
    )
    lines = [
        QuoteLine(
            line_id=line.line_id,
            menu_item_id=line.menu_item_id,
            name=line.item.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
            selections={group: list(names) for group, names in line.selections},
        )
        for line in cart.lines
    ]
    return ApiResult(data=QuoteResponse(
        lines=lines,
        item_count=cart.item_count,
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
        tax_rate=totals.tax_rate,
    ))


# =============================================================================
# ORDERS
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/orders",
    response_model=ApiResult[OrderResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def create_order(
    restaurant_id: str,
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    """Place an order from a table; totals are always recomputed server-side."""
    logger.info(f"Creating order for table {data.table_id}")

    order = await orders.create_order(
        db,
        restaurant_id,
        table_id=data.table_id,
        items=[line.model_dump() for line in data.items],
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_email=data.customer_email,
        special_instructions=data.special_instructions,
    )
    return ApiResult(message="Order placed successfully!", data=OrderResponse.model_validate(order))


@app.get(
    "/restaurants/{restaurant_id}/orders",
    response_model=ApiResult[list[OrderResponse]],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def list_orders(
    restaurant_id: str,
    status: Optional[OrderStatus] = Query(None),
    table_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[OrderResponse]]:
    """Retrieve the restaurant's orders, newest first."""
    await restaurants.get_restaurant(db, restaurant_id)
    found = await orders.list_orders(db, restaurant_id, status=status, table_id=table_id, limit=limit)
    return ApiResult(data=[OrderResponse.model_validate(o) for o in found])


@app.get("/orders/{order_id}", response_model=ApiResult[OrderResponse],
         responses=ERROR_RESPONSES, tags=["Orders"])
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    order = await orders.get_order(db, order_id)
    return ApiResult(data=OrderResponse.model_validate(order))


def _announce_ready(order) -> None:
    """Queue the pickup SMS when an order with a phone number turns ready."""
    if order.status == OrderStatus.READY and order.customer_phone:
        notify_order_ready.delay(order.id, order.customer_phone)


@app.patch("/orders/{order_id}/status", response_model=ApiResult[OrderResponse],
           responses=ERROR_RESPONSES, tags=["Kitchen"])
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    order = await orders.update_status(db, order_id, data.status)
    _announce_ready(order)
    return ApiResult(
        message=f"Order is now {order.status.value}",
        data=OrderResponse.model_validate(order),
    )


@app.post("/orders/{order_id}/advance", response_model=ApiResult[OrderResponse],
          responses=ERROR_RESPONSES, tags=["Kitchen"])
async def advance_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    """Move the order one step along pending → confirmed → preparing → ready → served."""
    order = await orders.advance(db, order_id)
    _announce_ready(order)
    return ApiResult(
        message=f"Order is now {order.status.value}",
        data=OrderResponse.model_validate(order),
    )


@app.post("/orders/{order_id}/cancel", response_model=ApiResult[OrderResponse],
          responses=ERROR_RESPONSES, tags=["Kitchen"])
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    order = await orders.cancel_order(db, order_id)
    return ApiResult(message="Order cancelled", data=OrderResponse.model_validate(order))


@app.put("/orders/{order_id}/kitchen-notes", response_model=ApiResult[OrderResponse],
         responses=ERROR_RESPONSES, tags=["Kitchen"])
async def set_kitchen_notes(
    order_id: str,
    data: KitchenNotesUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[OrderResponse]:
    order = await orders.set_kitchen_notes(db, order_id, data.notes)
    return ApiResult(message="Kitchen notes saved", data=OrderResponse.model_validate(order))


# =============================================================================
# PAYMENTS
# =============================================================================

@app.post(
    "/orders/{order_id}/payment-intent",
    response_model=ApiResult[PaymentIntentResponse],
    responses={**ERROR_RESPONSES, 402: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def create_payment_intent(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    payment_service: BasePaymentService = Depends(get_payment),
) -> ApiResult[PaymentIntentResponse]:
    order, result = await orders.create_payment_intent(db, order_id, payment_service)
    return ApiResult(
        message="Payment started",
        data=PaymentIntentResponse(
            order_id=order.id,
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret,
            amount=result.amount,
            currency=result.currency,
            provider=payment_service.provider_name,
        ),
    )


@app.post(
    "/orders/{order_id}/confirm-payment",
    response_model=ApiResult[OrderResponse],
    responses={**ERROR_RESPONSES, 402: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def confirm_payment(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    payment_service: BasePaymentService = Depends(get_payment),
) -> ApiResult[OrderResponse]:
    """Check the provider for the payment outcome and record it on the order."""
    order = await orders.confirm_payment(db, order_id, payment_service)
    return ApiResult(
        message=f"Payment {order.payment_status.value}",
        data=OrderResponse.model_validate(order),
    )


@app.post(
    "/orders/{order_id}/refund",
    response_model=ApiResult[OrderResponse],
    responses={**ERROR_RESPONSES, 402: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def refund_order(
    order_id: str,
    data: RefundRequest,
    db: AsyncSession = Depends(get_db),
    payment_service: BasePaymentService = Depends(get_payment),
) -> ApiResult[OrderResponse]:
    order = await orders.refund_order(db, order_id, payment_service, reason=data.reason)
    return ApiResult(message="Payment refunded", data=OrderResponse.model_validate(order))


@app.post("/webhooks/stripe", tags=["Payments"], summary="Payment provider webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    payment_service: BasePaymentService = Depends(get_payment),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
) -> dict[str, Any]:
    payload = await request.body()

    event = await payment_service.verify_webhook(payload, stripe_signature or "")
    if event is None:
        raise ValidationFailed("Invalid webhook payload or signature", field="stripe-signature")

    logger.info(f"Payment webhook received: {event.get('type', 'unknown')}")
    return await orders.handle_payment_event(db, event)


# =============================================================================
# SERVICE REQUESTS
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/service-requests",
    response_model=ApiResult[list[ServiceRequestResponse]],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Service Requests"],
)
async def create_service_requests(
    restaurant_id: str,
    data: ServiceRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[ServiceRequestResponse]]:
    created = await service_requests.create_requests(
        db,
        restaurant_id,
        data.table_id,
        [r.model_dump(mode="json") for r in data.requests],
    )
    return ApiResult(
        message=f"{len(created)} requests sent to staff",
        data=[ServiceRequestResponse.model_validate(r) for r in created],
    )


@app.post(
    "/restaurants/{restaurant_id}/service-requests/call-server",
    response_model=ApiResult[ServiceRequestResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Service Requests"],
)
async def call_server(
    restaurant_id: str,
    data: CallServerRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ServiceRequestResponse]:
    request = await service_requests.call_server(db, restaurant_id, data.table_id, data.message)
    return ApiResult(
        message="A server is on the way",
        data=ServiceRequestResponse.model_validate(request),
    )


@app.post(
    "/restaurants/{restaurant_id}/service-requests/special-instructions",
    response_model=ApiResult[ServiceRequestResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Service Requests"],
)
async def submit_special_instructions(
    restaurant_id: str,
    data: SpecialInstructionsCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ServiceRequestResponse]:
    request = await service_requests.submit_special_instructions(
        db, restaurant_id, data.table_id, data.note, data.selected_options
    )
    return ApiResult(
        message="Instructions sent to staff",
        data=ServiceRequestResponse.model_validate(request),
    )


@app.get(
    "/restaurants/{restaurant_id}/service-requests",
    response_model=ApiResult[list[ServiceRequestResponse]],
    responses=ERROR_RESPONSES,
    tags=["Service Requests"],
)
async def list_service_requests(
    restaurant_id: str,
    status: Optional[ServiceRequestStatus] = Query(None),
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[list[ServiceRequestResponse]]:
    await restaurants.get_restaurant(db, restaurant_id)
    found = await service_requests.list_requests(db, restaurant_id, status=status, limit=limit)
    return ApiResult(data=[ServiceRequestResponse.model_validate(r) for r in found])


@app.get(
    "/restaurants/{restaurant_id}/service-requests/stats",
    response_model=ApiResult[ServiceRequestStats],
    responses=ERROR_RESPONSES,
    tags=["Service Requests"],
)
async def service_request_stats(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ServiceRequestStats]:
    stats = await service_requests.request_stats(db, restaurant_id)
    return ApiResult(data=ServiceRequestStats(**stats))


@app.patch("/service-requests/{request_id}", response_model=ApiResult[ServiceRequestResponse],
           responses=ERROR_RESPONSES, tags=["Service Requests"])
async def update_service_request(
    request_id: str,
    data: ServiceRequestUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ServiceRequestResponse]:
    request = await service_requests.update_request(
        db, request_id, status=data.status, notes=data.notes, assigned_to=data.assigned_to
    )
    return ApiResult(
        message="Service request updated",
        data=ServiceRequestResponse.model_validate(request),
    )


# =============================================================================
# REVIEWS
# =============================================================================

@app.post(
    "/restaurants/{restaurant_id}/reviews",
    response_model=ApiResult[ReviewResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def create_review(
    restaurant_id: str,
    data: ReviewCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ReviewResponse]:
    review = await reviews.create_review(db, restaurant_id, **data.model_dump())
    return ApiResult(message="Thank you for your review!", data=ReviewResponse.model_validate(review))


@app.get(
    "/restaurants/{restaurant_id}/reviews",
    response_model=ApiResult[ReviewListResponse],
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def list_reviews(
    restaurant_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    rating: Optional[int] = Query(None, ge=1, le=5),
    status: ReviewStatus = Query(ReviewStatus.APPROVED),
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ReviewListResponse]:
    listing = await reviews.list_reviews(
        db, restaurant_id, page=page, limit=limit, rating=rating, status=status
    )
    listing["reviews"] = [ReviewResponse.model_validate(r) for r in listing["reviews"]]
    return ApiResult(data=ReviewListResponse(**listing))


@app.get(
    "/restaurants/{restaurant_id}/reviews/{review_id}",
    response_model=ApiResult[ReviewResponse],
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def get_review(
    restaurant_id: str,
    review_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ReviewResponse]:
    review = await reviews.get_review(db, restaurant_id, review_id)
    return ApiResult(data=ReviewResponse.model_validate(review))


@app.post(
    "/restaurants/{restaurant_id}/reviews/{review_id}/helpful",
    response_model=ApiResult[HelpfulResponse],
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def mark_review_helpful(
    restaurant_id: str,
    review_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[HelpfulResponse]:
    count = await reviews.mark_helpful(db, restaurant_id, review_id)
    return ApiResult(data=HelpfulResponse(review_id=review_id, helpful_count=count))


@app.post(
    "/restaurants/{restaurant_id}/reviews/{review_id}/responses",
    response_model=ApiResult[ReviewResponse],
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
    summary="Reply to a review as staff",
)
async def add_review_response(
    restaurant_id: str,
    review_id: str,
    data: ReviewReplyCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ReviewResponse]:
    review = await reviews.add_response(
        db, restaurant_id, review_id, data.message, staff_name=data.staff_name
    )
    return ApiResult(message="Response added", data=ReviewResponse.model_validate(review))


@app.patch(
    "/restaurants/{restaurant_id}/reviews/{review_id}/status",
    response_model=ApiResult[ReviewResponse],
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def update_review_status(
    restaurant_id: str,
    review_id: str,
    data: ReviewStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[ReviewResponse]:
    review = await reviews.update_review_status(db, restaurant_id, review_id, data.status)
    return ApiResult(
        message="Review status updated",
        data=ReviewResponse.model_validate(review),
    )


@app.delete("/restaurants/{restaurant_id}/reviews/{review_id}", response_model=ApiResult[None],
            responses=ERROR_RESPONSES, tags=["Reviews"])
async def delete_review(
    restaurant_id: str,
    review_id: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResult[None]:
    await reviews.delete_review(db, restaurant_id, review_id)
    return ApiResult(message="Review deleted")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(TablesideError)
async def tableside_error_handler(request: Request, exc: TablesideError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, detail=exc.detail).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report each invalid field as ``location: message``."""
    problems = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Validation Error", detail="; ".join(problems)).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
