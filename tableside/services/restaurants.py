"""
Restaurant settings and administrative reset.
"""

import enum
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.core.errors import NotFound, ValidationFailed
from tableside.models import (
    DiningTable,
    MenuItem,
    Order,
    OrderStatus,
    Restaurant,
    ServiceRequest,
    TableStatus,
)
from tableside.services.lifecycle import ACTIVE_ORDER_STATUSES
from tableside.services.pricing import money, validate_tax_rate

logger = logging.getLogger(__name__)


class ResetKind(str, enum.Enum):
    ORDERS = "orders"
    MENU = "menu"
    REQUESTS = "requests"
    TABLES = "tables"
    ALL = "all"


RESET_TABLES = {
    ResetKind.ORDERS: (Order,),
    ResetKind.MENU: (MenuItem,),
    ResetKind.REQUESTS: (ServiceRequest,),
    ResetKind.TABLES: (DiningTable,),
    ResetKind.ALL: (Order, MenuItem, ServiceRequest, DiningTable),
}


async def get_restaurant(db: AsyncSession, restaurant_id: str) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFound("Restaurant", restaurant_id)
    return restaurant


async def create_restaurant(
    db: AsyncSession,
    name: str,
    tax_rate=None,
    auto_confirm_orders: Optional[bool] = None,
    currency: Optional[str] = None,
) -> Restaurant:
    settings = get_settings()

    if not name or not name.strip():
        raise ValidationFailed("Restaurant name is required", field="name")

    restaurant = Restaurant(
        name=name.strip(),
        tax_rate=validate_tax_rate(settings.default_tax_rate if tax_rate is None else tax_rate),
        auto_confirm_orders=(
            settings.default_auto_confirm_orders
            if auto_confirm_orders is None else auto_confirm_orders
        ),
        currency=(currency or settings.stripe_currency).lower(),
    )
    db.add(restaurant)
    await db.commit()

    logger.info(f"Restaurant {restaurant.id} created: {restaurant.name}")
    return restaurant


async def update_settings(db: AsyncSession, restaurant_id: str, changes: dict) -> Restaurant:
    """Apply a partial settings update; ``None`` values are ignored."""
    restaurant = await get_restaurant(db, restaurant_id)

    if changes.get("name") is not None:
        if not changes["name"].strip():
            raise ValidationFailed("Restaurant name is required", field="name")
        restaurant.name = changes["name"].strip()
    if changes.get("tax_rate") is not None:
        restaurant.tax_rate = validate_tax_rate(changes["tax_rate"])
    if changes.get("auto_confirm_orders") is not None:
        restaurant.auto_confirm_orders = changes["auto_confirm_orders"]
    if changes.get("currency") is not None:
        restaurant.currency = changes["currency"].lower()

    await db.commit()
    logger.info(f"Restaurant {restaurant_id} settings updated")
    return restaurant


async def reset_data(db: AsyncSession, restaurant_id: str, kind: ResetKind) -> dict[str, int]:
    """
    Delete a restaurant's orders, menu, service requests, tables or all of them.

    This is the only path that removes orders. Clearing orders frees every
    table. Returns deleted row counts per table.
    """
    await get_restaurant(db, restaurant_id)

    deleted = {}
    for model in RESET_TABLES[kind]:
        result = await db.execute(delete(model).where(model.restaurant_id == restaurant_id))
        deleted[model.__tablename__] = result.rowcount or 0
    if kind == ResetKind.ORDERS:
        await db.execute(
            update(DiningTable)
            .where(DiningTable.restaurant_id == restaurant_id)
            .values(status=TableStatus.AVAILABLE)
        )
    await db.commit()

    logger.warning(f"Restaurant {restaurant_id} reset ({kind.value}): {deleted}")
    return deleted


async def restaurant_stats(db: AsyncSession, restaurant_id: str) -> dict:
    """Dashboard counters; revenue counts orders that reached the table."""
    await get_restaurant(db, restaurant_id)

    async def count(model, *conditions) -> int:
        query = select(func.count(model.id)).where(model.restaurant_id == restaurant_id, *conditions)
        return (await db.execute(query)).scalar() or 0

    revenue = (await db.execute(
        select(func.coalesce(func.sum(Order.total), 0)).where(
            Order.restaurant_id == restaurant_id,
            Order.status.in_((OrderStatus.SERVED, OrderStatus.COMPLETED)),
        )
    )).scalar()

    return {
        "tables_count": await count(DiningTable),
        "menu_items_count": await count(MenuItem),
        "total_orders_count": await count(Order),
        "active_orders_count": await count(
            Order,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        ),
        "total_revenue": money(Decimal(str(revenue or 0))),
    }
