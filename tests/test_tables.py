from __future__ import annotations

from decimal import Decimal

import pytest

from tableside.core.errors import NotFound, StateConflict, ValidationFailed
from tableside.models import TableStatus
from tableside.services import orders, restaurants, service_requests, tables
from tableside.services.restaurants import ResetKind


def salad(menu_items, quantity=1):
    return [{"menu_item_id": menu_items["salad"].id, "quantity": quantity}]


async def test_add_table(db, restaurant) -> None:
    table = await tables.add_table(db, restaurant.id, " Patio 1 ", capacity="6")

    assert table.table_number == "Patio 1"
    assert table.capacity == 6
    assert table.status == TableStatus.AVAILABLE
    assert len(await tables.list_tables(db, restaurant.id)) == 13


async def test_add_table_validation(db, restaurant) -> None:
    with pytest.raises(ValidationFailed, match="already exists"):
        await tables.add_table(db, restaurant.id, "T1", capacity=2)
    with pytest.raises(ValidationFailed):
        await tables.add_table(db, restaurant.id, "  ", capacity=2)
    with pytest.raises(ValidationFailed):
        await tables.add_table(db, restaurant.id, "Bar 1", capacity=0)
    with pytest.raises(ValidationFailed):
        await tables.add_table(db, restaurant.id, "Bar 1", capacity=2, status="dirty")
    with pytest.raises(NotFound):
        await tables.add_table(db, "missing", "T1", capacity=2)


async def test_update_table(db, restaurant) -> None:
    table = await tables.update_table(
        db, restaurant.id, "T2", {"capacity": 8, "status": "reserved", "table_number": None}
    )

    assert (table.table_number, table.capacity, table.status) == ("T2", 8, TableStatus.RESERVED)


async def test_renumbering_moves_orders_and_requests(db, restaurant, menu_items) -> None:
    await orders.create_order(db, restaurant.id, "T5", salad(menu_items))
    await service_requests.call_server(db, restaurant.id, "T5")

    await tables.update_table(db, restaurant.id, "T5", {"table_number": "Patio 1"})

    assert len(await orders.list_orders(db, restaurant.id, table_id="Patio 1")) == 1
    assert await orders.list_orders(db, restaurant.id, table_id="T5") == []
    (request,) = await service_requests.list_requests(db, restaurant.id)
    assert request.table_id == "Patio 1"
    with pytest.raises(NotFound):
        await tables.get_table(db, restaurant.id, "T5")


async def test_renumbering_onto_taken_number_is_rejected(db, restaurant) -> None:
    with pytest.raises(ValidationFailed, match="already exists"):
        await tables.update_table(db, restaurant.id, "T5", {"table_number": "T6"})


async def test_delete_blocked_by_active_orders(db, restaurant, menu_items) -> None:
    order = await orders.create_order(db, restaurant.id, "T2", salad(menu_items))

    with pytest.raises(StateConflict, match="1 active orders"):
        await tables.delete_table(db, restaurant.id, "T2")

    await orders.cancel_order(db, order.id)
    await tables.delete_table(db, restaurant.id, "T2")
    with pytest.raises(NotFound):
        await tables.get_table(db, restaurant.id, "T2")


async def test_unregistered_table_is_rejected(db, restaurant, menu_items) -> None:
    with pytest.raises(NotFound):
        await orders.create_order(db, restaurant.id, "T99", salad(menu_items))
    with pytest.raises(NotFound):
        await service_requests.call_server(db, restaurant.id, "T99")
    with pytest.raises(NotFound):
        await service_requests.create_requests(db, restaurant.id, "T99", [{"title": "Vegan"}])
    with pytest.raises(ValidationFailed):
        await orders.create_order(db, restaurant.id, " ", salad(menu_items))

    assert await orders.list_orders(db, restaurant.id) == []


async def test_table_being_cleaned_takes_no_orders(db, restaurant, menu_items) -> None:
    await tables.update_table(db, restaurant.id, "T3", {"status": TableStatus.CLEANING})

    with pytest.raises(StateConflict) as exc:
        await orders.create_order(db, restaurant.id, "T3", salad(menu_items))
    assert exc.value.detail == "cleaning"

    # Guests can still ask for a server
    request = await service_requests.call_server(db, restaurant.id, "T3")
    assert request.table_id == "T3"


async def test_order_marks_table_occupied(db, restaurant, menu_items) -> None:
    await tables.update_table(db, restaurant.id, "T4", {"status": "reserved"})

    await orders.create_order(db, restaurant.id, "T1", salad(menu_items))
    await orders.create_order(db, restaurant.id, "T4", salad(menu_items))

    assert (await tables.get_table(db, restaurant.id, "T1")).status == TableStatus.OCCUPIED
    assert (await tables.get_table(db, restaurant.id, "T4")).status == TableStatus.RESERVED


async def test_orders_reset_frees_tables(db, restaurant, menu_items) -> None:
    await orders.create_order(db, restaurant.id, "T1", salad(menu_items))

    await restaurants.reset_data(db, restaurant.id, ResetKind.ORDERS)

    assert (await tables.get_table(db, restaurant.id, "T1")).status == TableStatus.AVAILABLE


@pytest.mark.parametrize(
    "in_queue, expected",
    [
        (0, "Ready to order"),
        (1, "10-20 minutes"),
        (5, "10-20 minutes"),
        (6, "15-25 minutes"),
        (10, "15-25 minutes"),
        (11, "25-35 minutes"),
    ],
)
def test_estimate_wait(in_queue, expected) -> None:
    assert tables.estimate_wait(in_queue) == expected


async def test_table_status(db, restaurant, menu_items) -> None:
    mine = await orders.create_order(db, restaurant.id, "T7", salad(menu_items, quantity=3))
    other = await orders.create_order(db, restaurant.id, "T8", salad(menu_items))
    for _ in range(3):
        await orders.advance(db, other.id)

    status = await tables.table_status(db, restaurant.id, "T7")

    assert status["table"].table_number == "T7"
    assert status["available"] is True
    assert [o["id"] for o in status["current_orders"]] == [mine.id]
    assert status["current_orders"][0]["item_count"] == 3
    # the READY order at T8 has left the kitchen queue
    assert status["kitchen"] == {"orders_in_queue": 1, "estimated_wait": "10-20 minutes"}


async def test_restaurant_stats(db, restaurant, menu_items) -> None:
    served = await orders.create_order(db, restaurant.id, "T1", salad(menu_items, quantity=2))
    await orders.create_order(db, restaurant.id, "T2", salad(menu_items))
    cancelled = await orders.create_order(db, restaurant.id, "T3", salad(menu_items))
    for _ in range(4):
        await orders.advance(db, served.id)
    await orders.cancel_order(db, cancelled.id)

    stats = await restaurants.restaurant_stats(db, restaurant.id)

    assert stats == {
        "tables_count": 12,
        "menu_items_count": 2,
        "total_orders_count": 3,
        "active_orders_count": 1,
        "total_revenue": Decimal("10.80"),
    }


# =============================================================================
# API
# =============================================================================

async def test_table_routes(client, seeded) -> None:
    base = f"/restaurants/{seeded['restaurant_id']}/tables"

    response = await client.post(base, json={"table_number": "Bar 1", "capacity": 2})
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "available"

    response = await client.post(base, json={"table_number": "Bar 1", "capacity": 2})
    assert response.status_code == 400
    assert "already exists" in response.json()["error"]

    assert len((await client.get(base)).json()["data"]) == 13

    response = await client.patch(f"{base}/Bar 1", json={"table_number": "Bar 2", "capacity": 3})
    assert response.json()["data"]["table_number"] == "Bar 2"
    assert response.json()["data"]["capacity"] == 3

    assert (await client.delete(f"{base}/Bar 2")).status_code == 200
    assert (await client.get(f"{base}/Bar 2")).status_code == 404


async def test_table_menu_and_status_routes(client, seeded) -> None:
    rid = seeded["restaurant_id"]
    order = (await client.post(f"/restaurants/{rid}/orders", json={
        "table_id": "T6", "items": [{"menu_item_id": seeded["salad"]}],
    })).json()["data"]

    landing = (await client.get(f"/restaurants/{rid}/tables/T6/menu")).json()["data"]
    assert set(landing["categories"]) == {"pizza", "salads"}
    assert landing["current_orders"][0]["id"] == order["id"]
    assert landing["current_orders"][0]["total"] == "5.40"

    status = (await client.get(f"/restaurants/{rid}/tables/T6/status")).json()["data"]
    assert status["table"]["status"] == "occupied"
    assert status["kitchen"]["estimated_wait"] == "10-20 minutes"

    await client.patch(f"/restaurants/{rid}/tables/T6", json={"status": "cleaning"})
    response = await client.get(f"/restaurants/{rid}/tables/T6/menu")
    assert response.status_code == 409
    assert response.json()["detail"] == "cleaning"
    status = (await client.get(f"/restaurants/{rid}/tables/T6/status")).json()["data"]
    assert status["available"] is False


async def test_unregistered_table_routes(client, seeded) -> None:
    rid = seeded["restaurant_id"]

    response = await client.post(f"/restaurants/{rid}/orders", json={
        "table_id": "T404", "items": [{"menu_item_id": seeded["salad"]}],
    })
    assert response.status_code == 404
    response = await client.post(
        f"/restaurants/{rid}/service-requests/call-server", json={"table_id": "T404"}
    )
    assert response.status_code == 404
    assert (await client.get(f"/restaurants/{rid}/tables/T404/menu")).status_code == 404


async def test_stats_route(client, seeded) -> None:
    rid = seeded["restaurant_id"]
    await client.post(f"/restaurants/{rid}/orders", json={
        "table_id": "T1", "items": [{"menu_item_id": seeded["salad"]}],
    })

    stats = (await client.get(f"/restaurants/{rid}/stats")).json()["data"]

    assert stats == {
        "tables_count": 12,
        "menu_items_count": 2,
        "total_orders_count": 1,
        "active_orders_count": 1,
        "total_revenue": "0.00",
    }
    assert (await client.get("/restaurants/missing/stats")).status_code == 404
