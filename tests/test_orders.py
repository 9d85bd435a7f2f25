from __future__ import annotations

from decimal import Decimal

import pytest

from tableside.core.errors import NotFound, PaymentFailed, StateConflict, ValidationFailed
from tableside.models import OrderStatus, PaymentStatus
from tableside.services import orders, restaurants
from tableside.services.menu import set_availability, update_item


def pizza_line(menu_items, quantity=1, **extra):
    return {
        "menu_item_id": menu_items["pizza"].id,
        "quantity": quantity,
        "selections": {"Crust Type": "Thin"},
        **extra,
    }


async def place(db, restaurant, menu_items, **kwargs):
    items = [pizza_line(menu_items, quantity=2), {"menu_item_id": menu_items["salad"].id}]
    return await orders.create_order(db, restaurant.id, "T12", items, **kwargs)


async def test_create_order_computes_totals(db, restaurant, menu_items) -> None:
    order = await place(db, restaurant, menu_items)

    assert order.subtotal == Decimal("25.00")
    assert order.tax == Decimal("2.00")
    assert order.total == Decimal("27.00")
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert [line["quantity"] for line in order.items] == [2, 1]


async def test_order_snapshot_survives_menu_edits(db, restaurant, menu_items) -> None:
    order = await place(db, restaurant, menu_items)

    await update_item(db, menu_items["pizza"].id, {"price": "99.00", "name": "Renamed"})
    fetched = await orders.get_order(db, order.id)

    assert fetched.items[0]["name"] == "Margherita Pizza"
    assert fetched.items[0]["price"] == "10.00"
    assert fetched.total == Decimal("27.00")


async def test_auto_confirm_setting(db, restaurant, menu_items) -> None:
    await restaurants.update_settings(db, restaurant.id, {"auto_confirm_orders": True})

    order = await place(db, restaurant, menu_items)

    assert order.status == OrderStatus.CONFIRMED
    assert order.confirmed_at is not None


async def test_empty_order_rejected(db, restaurant) -> None:
    with pytest.raises(ValidationFailed):
        await orders.create_order(db, restaurant.id, "T1", [])


async def test_unavailable_item_rejected(db, restaurant, menu_items) -> None:
    await set_availability(db, menu_items["salad"].id, False)

    with pytest.raises(ValidationFailed):
        await orders.create_order(db, restaurant.id, "T1", [{"menu_item_id": menu_items["salad"].id}])


async def test_allergen_preferences_are_summarised(db, restaurant, menu_items) -> None:
    items = [
        pizza_line(menu_items, allergen_preferences={
            "avoid_allergens": ["dairy"], "special_instructions": "no cheese",
        }),
        pizza_line(menu_items, allergen_preferences={"dietary_preferences": ["vegetarian"]}),
    ]

    order = await orders.create_order(db, restaurant.id, "T3", items)

    assert len(order.items) == 1
    assert order.items[0]["quantity"] == 2
    assert order.allergen_summary == {
        "has_allergen_concerns": True,
        "avoided_allergens": ["dairy"],
        "special_instructions_count": 1,
        "dietary_preferences": ["vegetarian"],
    }


async def test_staff_workflow(db, restaurant, menu_items) -> None:
    order = await place(db, restaurant, menu_items)

    order = await orders.update_status(db, order.id, OrderStatus.CONFIRMED)
    assert order.status == OrderStatus.CONFIRMED

    with pytest.raises(StateConflict):
        await orders.update_status(db, order.id, OrderStatus.SERVED)

    for expected in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED):
        order = await orders.advance(db, order.id)
        assert order.status == expected

    with pytest.raises(StateConflict):
        await orders.cancel_order(db, order.id)


async def test_list_orders_filters(db, restaurant, menu_items) -> None:
    first = await place(db, restaurant, menu_items)
    await orders.create_order(db, restaurant.id, "T7", [{"menu_item_id": menu_items["salad"].id}])
    await orders.update_status(db, first.id, OrderStatus.CONFIRMED)

    assert [o.id for o in await orders.list_orders(db, restaurant.id, status=OrderStatus.CONFIRMED)] == [first.id]
    assert len(await orders.list_orders(db, restaurant.id, table_id="T7")) == 1
    assert len(await orders.list_orders(db, restaurant.id)) == 2


async def test_unknown_order(db) -> None:
    with pytest.raises(NotFound):
        await orders.get_order(db, "nope")


async def test_payment_success_confirms_pending_order(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)

    order, intent = await orders.create_payment_intent(db, order.id, payment_service)
    assert order.payment_status == PaymentStatus.PROCESSING
    assert intent.amount == Decimal("27.00")

    order = await orders.confirm_payment(db, order.id, payment_service)
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.status == OrderStatus.CONFIRMED

    # Confirming again is a no-op
    again = await orders.confirm_payment(db, order.id, payment_service)
    assert again.payment_status == PaymentStatus.COMPLETED


async def test_payment_decline_is_recorded_and_retryable(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    order, intent = await orders.create_payment_intent(db, order.id, payment_service)
    payment_service.set_outcome(intent.payment_intent_id, succeeded=False, error_code="insufficient_funds")

    with pytest.raises(PaymentFailed) as exc:
        await orders.confirm_payment(db, order.id, payment_service)
    assert exc.value.error_code == "insufficient_funds"

    order = await orders.get_order(db, order.id)
    assert order.payment_status == PaymentStatus.FAILED
    assert order.status == OrderStatus.PENDING
    assert "insufficient funds" in order.payment_error

    order, retry = await orders.create_payment_intent(db, order.id, payment_service)
    assert retry.payment_intent_id != intent.payment_intent_id
    assert order.payment_status == PaymentStatus.PROCESSING
    order = await orders.confirm_payment(db, order.id, payment_service)
    assert order.payment_status == PaymentStatus.COMPLETED


async def test_cancelled_order_cannot_be_paid(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    await orders.cancel_order(db, order.id)

    with pytest.raises(StateConflict):
        await orders.create_payment_intent(db, order.id, payment_service)


async def test_confirm_without_intent(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)

    with pytest.raises(StateConflict):
        await orders.confirm_payment(db, order.id, payment_service)


async def test_webhook_success_event(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    order, intent = await orders.create_payment_intent(db, order.id, payment_service)

    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": intent.payment_intent_id, "metadata": {"order_id": order.id}}},
    }
    result = await orders.handle_payment_event(db, event)

    assert result == {"received": True, "handled": True, "order_id": order.id}
    order = await orders.get_order(db, order.id)
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.status == OrderStatus.CONFIRMED


async def test_webhook_failure_event_found_by_intent_id(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    order, intent = await orders.create_payment_intent(db, order.id, payment_service)

    event = {
        "type": "payment_intent.payment_failed",
        "data": {"object": {
            "id": intent.payment_intent_id,
            "last_payment_error": {"message": "Your card was declined."},
        }},
    }
    result = await orders.handle_payment_event(db, event)

    assert result["handled"]
    order = await orders.get_order(db, order.id)
    assert order.payment_status == PaymentStatus.FAILED
    assert order.payment_error == "Your card was declined."


async def test_webhook_ignores_other_events(db) -> None:
    result = await orders.handle_payment_event(db, {"type": "charge.refunded", "data": {"object": {}}})
    assert result == {"received": True, "handled": False}


async def test_refund_completed_payment(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    await orders.create_payment_intent(db, order.id, payment_service)
    await orders.confirm_payment(db, order.id, payment_service)

    order = await orders.refund_order(db, order.id, payment_service, reason="requested_by_customer")
    assert order.payment_status == PaymentStatus.REFUNDED

    with pytest.raises(StateConflict):
        await orders.refund_order(db, order.id, payment_service)


async def test_late_success_event_after_refund_is_acknowledged(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)
    order, intent = await orders.create_payment_intent(db, order.id, payment_service)
    await orders.confirm_payment(db, order.id, payment_service)
    await orders.refund_order(db, order.id, payment_service)

    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": intent.payment_intent_id, "metadata": {"order_id": order.id}}},
    }
    result = await orders.handle_payment_event(db, event)

    assert result == {"received": True, "handled": False, "order_id": order.id}
    order = await orders.get_order(db, order.id)
    assert order.payment_status == PaymentStatus.REFUNDED


async def test_refund_requires_completed_payment(db, restaurant, menu_items, payment_service) -> None:
    order = await place(db, restaurant, menu_items)

    with pytest.raises(StateConflict):
        await orders.refund_order(db, order.id, payment_service)


async def test_quote_does_not_persist(db, restaurant, menu_items) -> None:
    cart, totals = await orders.quote(db, restaurant.id, [pizza_line(menu_items, quantity=3)])

    assert totals.total == Decimal("32.40")
    assert cart.item_count == 3
    assert await orders.list_orders(db, restaurant.id) == []
