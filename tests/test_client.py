from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from tableside import main
from tableside.client import TableOrderingClient, TableOrderingError


@pytest.fixture()
async def table(client, seeded):
    transport = httpx.ASGITransport(app=main.app)
    async with TableOrderingClient(
        "http://testserver", seeded["restaurant_id"], "T8", transport=transport
    ) as table:
        yield table


def items(seeded):
    return [{"menu_item_id": seeded["salad"], "quantity": 2}]


async def test_customer_flow(table, seeded) -> None:
    menu = await table.get_menu()
    assert "pizza" in menu["categories"]

    quote = await table.quote(items(seeded))
    assert quote["total"] == "10.80"

    order = await table.create_order(items(seeded), customer_name="Ana")
    assert order["table_id"] == "T8"

    intent = await table.create_payment_intent(order["id"])
    assert intent["client_secret"]
    paid = await table.confirm_payment(order["id"])
    assert paid["payment_status"] == "completed"


async def test_error_envelope_is_raised(table) -> None:
    with pytest.raises(TableOrderingError) as exc:
        await table.get_order("missing")

    assert exc.value.status_code == 404
    assert "not found" in str(exc.value)


async def test_service_requests_and_reviews(table) -> None:
    called = await table.call_server("Need water")
    assert called["note"] == "Need water"

    tickets = await table.create_service_requests([{"category": "dietary", "title": "Vegan"}])
    assert tickets[0]["priority"] == "high"

    review = await table.submit_review("Ana", 5, "Great")
    assert review["table_number"] == "T8"
    assert await table.mark_helpful(review["id"]) == 1
    assert await table.mark_helpful(review["id"]) == 2


async def test_watch_stops_on_terminal_status(table, client, seeded) -> None:
    order = await table.create_order(items(seeded))
    await client.post(f"/orders/{order['id']}/cancel")

    seen = [o["status"] async for o in table.watch_order(order["id"], interval=0.01, deadline=5)]

    assert seen == ["cancelled"]


async def test_watch_reports_changes_until_deadline(table, client, seeded) -> None:
    order = await table.create_order(items(seeded))

    async def kitchen():
        await asyncio.sleep(0.05)
        await client.post(f"/orders/{order['id']}/advance")

    staff = asyncio.create_task(kitchen())
    started = time.monotonic()
    seen = [o["status"] async for o in table.watch_order(order["id"], interval=0.01, deadline=0.5)]
    await staff

    assert seen == ["pending", "confirmed"]
    assert time.monotonic() - started < 3


async def test_watch_stops_when_cancelled(table, seeded) -> None:
    order = await table.create_order(items(seeded))
    stop = asyncio.Event()
    seen = []

    async for update in table.watch_order(order["id"], interval=10, stop_event=stop):
        seen.append(update["status"])
        stop.set()

    assert seen == ["pending"]


async def test_table_landing_and_status(table, seeded) -> None:
    order = await table.create_order(items(seeded))

    landing = await table.get_table_menu()
    assert landing["table"]["table_number"] == "T8"
    assert landing["table"]["status"] == "occupied"
    assert [o["id"] for o in landing["current_orders"]] == [order["id"]]

    status = await table.get_table_status()
    assert status["current_orders"][0]["item_count"] == 2
    assert status["kitchen"] == {"orders_in_queue": 1, "estimated_wait": "10-20 minutes"}
