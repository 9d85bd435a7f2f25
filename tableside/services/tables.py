"""
Table Registry

The tables a restaurant has put QR codes on. Orders and service requests
are only accepted for registered tables, and a table being cleaned takes
no orders.

Tables are addressed by ``table_number`` (the value printed in the QR
link), not by their row id.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound, StateConflict, ValidationFailed
from tableside.models import DiningTable, Order, OrderStatus, ServiceRequest, TableStatus
from tableside.services.lifecycle import ACTIVE_ORDER_STATUSES
from tableside.services.restaurants import get_restaurant

logger = logging.getLogger(__name__)

KITCHEN_QUEUE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING)

# (orders in queue above, estimate), checked top down
WAIT_ESTIMATES = (
    (10, "25-35 minutes"),
    (5, "15-25 minutes"),
    (0, "10-20 minutes"),
)
NO_WAIT = "Ready to order"


def _clean_number(table_number: Any) -> str:
    number = str(table_number or "").strip()
    if not number:
        raise ValidationFailed("Table number is required", field="table_number")
    if len(number) > 50:
        raise ValidationFailed("Table number is too long", field="table_number")
    return number


def _clean_capacity(capacity: Any) -> int:
    if isinstance(capacity, bool):
        raise ValidationFailed("Capacity must be at least 1", field="capacity")
    try:
        value = int(capacity)
    except (TypeError, ValueError):
        raise ValidationFailed("Capacity must be at least 1", field="capacity")
    if value < 1:
        raise ValidationFailed("Capacity must be at least 1", field="capacity")
    return value


def _clean_status(status: Any) -> TableStatus:
    try:
        return TableStatus(status)
    except ValueError:
        raise ValidationFailed(f"Unknown table status: {status}", field="status")


def estimate_wait(orders_in_queue: int) -> str:
    for above, estimate in WAIT_ESTIMATES:
        if orders_in_queue > above:
            return estimate
    return NO_WAIT


async def _find_table(db: AsyncSession, restaurant_id: str, table_number: str) -> Optional[DiningTable]:
    result = await db.execute(
        select(DiningTable).where(
            DiningTable.restaurant_id == restaurant_id,
            DiningTable.table_number == table_number,
        )
    )
    return result.scalars().first()


async def get_table(db: AsyncSession, restaurant_id: str, table_number: str) -> DiningTable:
    await get_restaurant(db, restaurant_id)
    number = _clean_number(table_number)
    table = await _find_table(db, restaurant_id, number)
    if table is None:
        raise NotFound("Table", number)
    return table


async def list_tables(db: AsyncSession, restaurant_id: str) -> list[DiningTable]:
    await get_restaurant(db, restaurant_id)
    result = await db.execute(
        select(DiningTable)
        .where(DiningTable.restaurant_id == restaurant_id)
        .order_by(DiningTable.table_number)
    )
    return list(result.scalars().all())


async def add_table(
    db: AsyncSession,
    restaurant_id: str,
    table_number: Any,
    capacity: Any,
    status: Any = TableStatus.AVAILABLE,
) -> DiningTable:
    await get_restaurant(db, restaurant_id)
    number = _clean_number(table_number)

    if await _find_table(db, restaurant_id, number) is not None:
        raise ValidationFailed(f"Table number {number} already exists", field="table_number")

    table = DiningTable(
        restaurant_id=restaurant_id,
        table_number=number,
        capacity=_clean_capacity(capacity),
        status=_clean_status(status),
    )
    db.add(table)
    await db.commit()

    logger.info(f"Table {number} added to restaurant {restaurant_id}")
    return table


async def update_table(
    db: AsyncSession, restaurant_id: str, table_number: str, changes: dict
) -> DiningTable:
    """
    Partial update; ``None`` values are ignored.

    Renumbering a table moves its orders and service requests to the new
    number so table history stays attached.
    """
    table = await get_table(db, restaurant_id, table_number)
    old_number = table.table_number

    if changes.get("capacity") is not None:
        table.capacity = _clean_capacity(changes["capacity"])
    if changes.get("status") is not None:
        table.status = _clean_status(changes["status"])

    if changes.get("table_number") is not None:
        new_number = _clean_number(changes["table_number"])
        if new_number != old_number:
            if await _find_table(db, restaurant_id, new_number) is not None:
                raise ValidationFailed(
                    f"Table number {new_number} already exists", field="table_number"
                )
            for model in (Order, ServiceRequest):
                await db.execute(
                    update(model)
                    .where(model.restaurant_id == restaurant_id, model.table_id == old_number)
                    .values(table_id=new_number)
                )
            table.table_number = new_number
            logger.info(f"Table {old_number} renumbered to {new_number}")

    await db.commit()
    return table


async def delete_table(db: AsyncSession, restaurant_id: str, table_number: str) -> None:
    table = await get_table(db, restaurant_id, table_number)

    active = await _count_orders(db, restaurant_id, ACTIVE_ORDER_STATUSES, table.table_number)
    if active:
        raise StateConflict(
            f"Cannot delete table with {active} active orders", current=table.status.value
        )

    await db.delete(table)
    await db.commit()
    logger.info(f"Table {table.table_number} removed from restaurant {restaurant_id}")


async def require_table(
    db: AsyncSession, restaurant_id: str, table_id: Any, ordering: bool = False
) -> DiningTable:
    """
    Resolve the table a customer scanned.

    With ``ordering`` set, a table being cleaned is refused.
    """
    if not str(table_id or "").strip():
        raise ValidationFailed("Table ID is required", field="table_id")

    table = await get_table(db, restaurant_id, table_id)
    if ordering and table.status == TableStatus.CLEANING:
        raise StateConflict(
            "Table is currently being cleaned; please wait for staff",
            current=table.status.value,
        )
    return table


async def _count_orders(
    db: AsyncSession,
    restaurant_id: str,
    statuses: tuple,
    table_number: Optional[str] = None,
) -> int:
    query = select(func.count(Order.id)).where(
        Order.restaurant_id == restaurant_id, Order.status.in_(statuses)
    )
    if table_number is not None:
        query = query.where(Order.table_id == table_number)
    return (await db.execute(query)).scalar() or 0


async def active_orders(db: AsyncSession, restaurant_id: str, table_number: str) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(
            Order.restaurant_id == restaurant_id,
            Order.table_id == table_number,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        )
        .order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def table_status(db: AsyncSession, restaurant_id: str, table_number: str) -> dict[str, Any]:
    """The table, its open orders and a wait estimate from the kitchen queue."""
    table = await get_table(db, restaurant_id, table_number)
    current = await active_orders(db, restaurant_id, table.table_number)
    in_queue = await _count_orders(db, restaurant_id, KITCHEN_QUEUE_STATUSES)

    return {
        "table": table,
        "available": table.status != TableStatus.CLEANING,
        "current_orders": [
            {
                "id": order.id,
                "status": order.status,
                "total": order.total,
                "item_count": sum(line["quantity"] for line in order.items),
                "created_at": order.created_at,
            }
            for order in current
        ],
        "kitchen": {
            "orders_in_queue": in_queue,
            "estimated_wait": estimate_wait(in_queue),
        },
    }
