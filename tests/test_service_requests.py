from __future__ import annotations

import pytest

from tableside.core.errors import NotFound, StateConflict, ValidationFailed
from tableside.models import (
    ServiceCategory,
    ServicePriority,
    ServiceRequestStatus,
    ServiceRequestType,
)
from tableside.services import service_requests


async def test_special_requests_get_priority_by_category(db, restaurant) -> None:
    created = await service_requests.create_requests(db, restaurant.id, "T4", [
        {"id": "req-1", "category": "dietary", "title": "Nut allergy", "note": "severe"},
        {"id": "req-2", "category": "beverage", "title": "Extra ice", "selected_options": ["Water"]},
    ])

    assert [r.priority for r in created] == [ServicePriority.HIGH, ServicePriority.MEDIUM]
    assert created[0].category == ServiceCategory.DIETARY
    assert created[0].client_request_id == "req-1"
    assert created[1].selected_options == ["Water"]
    assert all(r.status == ServiceRequestStatus.PENDING for r in created)


async def test_request_validation(db, restaurant) -> None:
    with pytest.raises(ValidationFailed):
        await service_requests.create_requests(db, restaurant.id, "T4", [])
    with pytest.raises(ValidationFailed):
        await service_requests.create_requests(db, restaurant.id, "T4", [{"title": " "}])
    with pytest.raises(ValidationFailed):
        await service_requests.create_requests(db, restaurant.id, "T4", [{"title": "x", "category": "karaoke"}])
    with pytest.raises(ValidationFailed):
        await service_requests.call_server(db, restaurant.id, "")


async def test_call_server_defaults(db, restaurant) -> None:
    request = await service_requests.call_server(db, restaurant.id, "T9")

    assert request.request_type == ServiceRequestType.CALL_SERVER
    assert request.title == "Server Assistance"
    assert request.note == "Customer needs assistance"
    assert request.priority == ServicePriority.HIGH


async def test_special_instructions_need_content(db, restaurant) -> None:
    with pytest.raises(ValidationFailed):
        await service_requests.submit_special_instructions(db, restaurant.id, "T2", "  ")

    request = await service_requests.submit_special_instructions(
        db, restaurant.id, "T2", "", selected_options=["Birthday candle"]
    )
    assert request.request_type == ServiceRequestType.SPECIAL_INSTRUCTIONS


async def test_staff_update_flow(db, restaurant) -> None:
    (request,) = await service_requests.create_requests(
        db, restaurant.id, "T1", [{"category": "dietary", "title": "Gluten free"}]
    )

    request = await service_requests.update_request(
        db, request.id, status=ServiceRequestStatus.COMPLETED, notes="Told the kitchen", assigned_to="sam"
    )
    assert request.status == ServiceRequestStatus.COMPLETED
    assert request.admin_notes == "Told the kitchen"
    assert request.assigned_to == "sam"

    # Same status only updates the notes
    request = await service_requests.update_request(
        db, request.id, status=ServiceRequestStatus.COMPLETED, notes="Done"
    )
    assert request.admin_notes == "Done"

    with pytest.raises(StateConflict):
        await service_requests.update_request(db, request.id, status=ServiceRequestStatus.IN_PROGRESS)


async def test_staff_can_clear_notes_and_unassign(db, restaurant) -> None:
    request = await service_requests.call_server(db, restaurant.id, "T3")
    await service_requests.update_request(db, request.id, notes="Bring the card reader", assigned_to="sam")

    request = await service_requests.update_request(db, request.id, notes="", assigned_to="")
    assert request.admin_notes is None
    assert request.assigned_to is None

    request = await service_requests.update_request(db, request.id, notes="Back on it")
    assert request.admin_notes == "Back on it"
    assert request.assigned_to is None


async def test_unknown_request(db) -> None:
    with pytest.raises(NotFound):
        await service_requests.update_request(db, "missing", status=ServiceRequestStatus.COMPLETED)


async def test_list_and_stats(db, restaurant) -> None:
    await service_requests.call_server(db, restaurant.id, "T1")
    created = await service_requests.create_requests(db, restaurant.id, "T2", [
        {"category": "dietary", "title": "Vegan"},
        {"category": "seating", "title": "High chair"},
    ])
    await service_requests.update_request(db, created[0].id, status=ServiceRequestStatus.IN_PROGRESS)

    pending = await service_requests.list_requests(db, restaurant.id, status=ServiceRequestStatus.PENDING)
    assert len(pending) == 2

    stats = await service_requests.request_stats(db, restaurant.id)
    assert stats["total"] == 3
    assert stats["by_status"] == {"pending": 2, "in_progress": 1, "completed": 0, "cancelled": 0}
    assert stats["by_category"] == {"none": 1, "dietary": 1, "seating": 1}
