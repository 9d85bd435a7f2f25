"""
Service-Request Tracker

Staff-assistance tickets raised from a table. Customers only create them;
every status change is a staff action. Priority is fixed at creation.
"""

import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound, ValidationFailed
from tableside.models import (
    ServiceCategory,
    ServiceRequest,
    ServiceRequestStatus,
    ServiceRequestType,
)
from tableside.services.lifecycle import check_service_transition, default_priority
from tableside.services.restaurants import get_restaurant
from tableside.services.tables import require_table

logger = logging.getLogger(__name__)

CALL_SERVER_TITLE = "Server Assistance"
CALL_SERVER_MESSAGE = "Customer needs assistance"
SPECIAL_INSTRUCTIONS_TITLE = "Special Instructions"
MAX_LIST_LIMIT = 100


def _new_request(
    restaurant_id: str,
    table_id: str,
    request_type: ServiceRequestType,
    title: str,
    note: str = "",
    category: Optional[ServiceCategory] = None,
    selected_options: Optional[Sequence[str]] = None,
    client_request_id: Optional[str] = None,
) -> ServiceRequest:
    return ServiceRequest(
        restaurant_id=restaurant_id,
        table_id=table_id,
        request_type=request_type,
        category=category,
        title=title,
        note=note,
        selected_options=list(selected_options or []),
        client_request_id=client_request_id,
        status=ServiceRequestStatus.PENDING,
        priority=default_priority(request_type, category),
    )


async def create_requests(
    db: AsyncSession,
    restaurant_id: str,
    table_id: str,
    requests: Sequence[Mapping[str, Any]],
) -> list[ServiceRequest]:
    """Create one ticket per submitted special request."""
    table_id = (await require_table(db, restaurant_id, table_id)).table_number
    if not requests:
        raise ValidationFailed("At least one request is required", field="requests")

    created = []
    for entry in requests:
        title = (entry.get("title") or "").strip()
        if not title:
            raise ValidationFailed("Every request needs a title", field="title")

        category = entry.get("category")
        if category:
            try:
                category = ServiceCategory(category)
            except ValueError:
                raise ValidationFailed(f"Unknown request category: {category}", field="category")
        created.append(_new_request(
            restaurant_id,
            table_id,
            ServiceRequestType.SPECIAL_REQUEST,
            title=title,
            note=(entry.get("note") or "").strip(),
            category=category or None,
            selected_options=entry.get("selected_options"),
            client_request_id=entry.get("id"),
        ))

    db.add_all(created)
    await db.commit()

    logger.info(f"{len(created)} special requests created for table {table_id}")
    return created


async def call_server(
    db: AsyncSession, restaurant_id: str, table_id: str, message: Optional[str] = None
) -> ServiceRequest:
    table_id = (await require_table(db, restaurant_id, table_id)).table_number

    request = _new_request(
        restaurant_id,
        table_id,
        ServiceRequestType.CALL_SERVER,
        title=CALL_SERVER_TITLE,
        note=(message or "").strip() or CALL_SERVER_MESSAGE,
    )
    db.add(request)
    await db.commit()

    logger.info(f"Server called to table {table_id}")
    return request


async def submit_special_instructions(
    db: AsyncSession,
    restaurant_id: str,
    table_id: str,
    note: str,
    selected_options: Optional[Sequence[str]] = None,
) -> ServiceRequest:
    table_id = (await require_table(db, restaurant_id, table_id)).table_number
    if not (note or "").strip() and not selected_options:
        raise ValidationFailed("Instructions cannot be empty", field="note")

    request = _new_request(
        restaurant_id,
        table_id,
        ServiceRequestType.SPECIAL_INSTRUCTIONS,
        title=SPECIAL_INSTRUCTIONS_TITLE,
        note=(note or "").strip(),
        selected_options=selected_options,
    )
    db.add(request)
    await db.commit()
    return request


async def get_request(db: AsyncSession, request_id: str) -> ServiceRequest:
    request = await db.get(ServiceRequest, request_id)
    if request is None:
        raise NotFound("Service request", request_id)
    return request


async def update_request(
    db: AsyncSession,
    request_id: str,
    status: Optional[ServiceRequestStatus] = None,
    notes: Optional[str] = None,
    assigned_to: Optional[str] = None,
) -> ServiceRequest:
    """
    Staff update. A status equal to the current one is accepted and only
    the notes / assignee change. ``None`` leaves a field alone; an empty
    string clears it.
    """
    request = await get_request(db, request_id)

    if status is not None and check_service_transition(request.status, status):
        logger.info(f"Service request {request_id}: {request.status.value} -> {status.value}")
        request.status = status
    if notes is not None:
        request.admin_notes = notes.strip() or None
    if assigned_to is not None:
        request.assigned_to = assigned_to.strip() or None

    await db.commit()
    return request


async def list_requests(
    db: AsyncSession,
    restaurant_id: str,
    status: Optional[ServiceRequestStatus] = None,
    limit: int = MAX_LIST_LIMIT,
) -> list[ServiceRequest]:
    query = select(ServiceRequest).where(ServiceRequest.restaurant_id == restaurant_id)
    if status is not None:
        query = query.where(ServiceRequest.status == status)

    limit = max(1, min(limit, MAX_LIST_LIMIT))
    result = await db.execute(query.order_by(ServiceRequest.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def request_stats(db: AsyncSession, restaurant_id: str) -> dict[str, Any]:
    """Counts by status and by category ("none" for uncategorised tickets)."""
    await get_restaurant(db, restaurant_id)

    by_status = {s.value: 0 for s in ServiceRequestStatus}
    rows = await db.execute(
        select(ServiceRequest.status, func.count(ServiceRequest.id))
        .where(ServiceRequest.restaurant_id == restaurant_id)
        .group_by(ServiceRequest.status)
    )
    for status, count in rows.all():
        by_status[status.value] = count

    by_category: dict[str, int] = {}
    rows = await db.execute(
        select(ServiceRequest.category, func.count(ServiceRequest.id))
        .where(ServiceRequest.restaurant_id == restaurant_id)
        .group_by(ServiceRequest.category)
    )
    for category, count in rows.all():
        by_category[category.value if category else "none"] = count

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_category": by_category,
    }
