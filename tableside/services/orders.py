"""
Order Service

Creates orders from a table's submission, runs the kitchen workflow and
keeps the payment axis in step with the payment provider.

Payment policy (shared by the confirm endpoint and the webhook):
    - succeeded: payment -> completed; a pending order is confirmed
    - failed:    payment -> failed; the order stays where it is and the
                 customer may start a new attempt
"""

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound, PaymentFailed, StateConflict, ValidationFailed
from tableside.models import Order, OrderStatus, PaymentStatus, TableStatus, utc_now
from tableside.services.lifecycle import (
    apply_order_status,
    check_payment_transition,
    next_order_status,
)
from tableside.services.menu import load_catalog
from tableside.services.payment import BasePaymentService, PaymentResult
from tableside.services.pricing import Cart, MenuCatalog, OrderTotals
from tableside.services.restaurants import get_restaurant
from tableside.services.tables import require_table

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200

# Provider statuses that mean "not decided yet"
UNSETTLED_INTENT_STATUSES = {"processing", "requires_action", "requires_confirmation"}


# =============================================================================
# CART ASSEMBLY
# =============================================================================

def _clean_preferences(raw: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    raw = raw or {}
    return {
        "avoid_allergens": sorted({a.strip() for a in raw.get("avoid_allergens") or [] if a.strip()}),
        "dietary_preferences": sorted(
            {d.strip() for d in raw.get("dietary_preferences") or [] if d.strip()}
        ),
        "special_instructions": (raw.get("special_instructions") or "").strip(),
    }


def _merge_preferences(current: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    notes = [n for n in (current["special_instructions"], extra["special_instructions"]) if n]
    return {
        "avoid_allergens": sorted(set(current["avoid_allergens"]) | set(extra["avoid_allergens"])),
        "dietary_preferences": sorted(
            set(current["dietary_preferences"]) | set(extra["dietary_preferences"])
        ),
        "special_instructions": "; ".join(dict.fromkeys(notes)),
    }


def build_cart(
    catalog: MenuCatalog,
    tax_rate: Decimal,
    items: Sequence[Mapping[str, Any]],
) -> tuple[Cart, dict[str, dict[str, Any]]]:
    """
    Price a submission through the cart engine.

    Each entry is ``{menu_item_id, quantity, selections, allergen_preferences}``.
    Entries that resolve to the same line are merged, preferences included.
    Returns the cart and the allergen preferences per cart line.
    """
    if not items:
        raise ValidationFailed("Order must contain at least one item", field="items")

    cart = Cart(catalog, tax_rate=tax_rate)
    preferences: dict[str, dict[str, Any]] = {}

    for entry in items:
        quantity = entry.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationFailed("quantity must be a positive integer", field="quantity")

        line = cart.add_item(entry["menu_item_id"], entry.get("selections"))
        if quantity > 1:
            cart.update_quantity(line.line_id, quantity - 1)

        prefs = _clean_preferences(entry.get("allergen_preferences"))
        if line.line_id in preferences:
            preferences[line.line_id] = _merge_preferences(preferences[line.line_id], prefs)
        else:
            preferences[line.line_id] = prefs

    return cart, preferences


def summarize_allergens(snapshot: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Kitchen-facing roll-up of the allergen preferences in an order."""
    avoided: set[str] = set()
    dietary: set[str] = set()
    instructions = 0
    concerns = False

    for line in snapshot:
        prefs = line.get("allergen_preferences") or {}
        avoided.update(prefs.get("avoid_allergens") or [])
        dietary.update(prefs.get("dietary_preferences") or [])
        if prefs.get("special_instructions"):
            instructions += 1
        if prefs.get("avoid_allergens") or prefs.get("special_instructions"):
            concerns = True

    return {
        "has_allergen_concerns": concerns,
        "avoided_allergens": sorted(avoided),
        "special_instructions_count": instructions,
        "dietary_preferences": sorted(dietary),
    }


async def quote(
    db: AsyncSession, restaurant_id: str, items: Sequence[Mapping[str, Any]]
) -> tuple[Cart, OrderTotals]:
    """Price a prospective order without persisting anything."""
    restaurant = await get_restaurant(db, restaurant_id)
    catalog = await load_catalog(db, restaurant_id)
    cart, _ = build_cart(catalog, Decimal(restaurant.tax_rate), items)
    return cart, cart.quote()


# =============================================================================
# CREATE / READ
# =============================================================================

async def create_order(
    db: AsyncSession,
    restaurant_id: str,
    table_id: str,
    items: Sequence[Mapping[str, Any]],
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    customer_email: Optional[str] = None,
    special_instructions: str = "",
) -> Order:
    restaurant = await get_restaurant(db, restaurant_id)
    table = await require_table(db, restaurant_id, table_id, ordering=True)
    catalog = await load_catalog(db, restaurant_id)
    cart, preferences = build_cart(catalog, Decimal(restaurant.tax_rate), items)

    totals = cart.quote()
    snapshot = cart.snapshot_lines(preferences)
    now = utc_now()

    order = Order(
        restaurant_id=restaurant_id,
        table_id=table.table_number,
        items=snapshot,
        special_instructions=(special_instructions or "").strip(),
        allergen_summary=summarize_allergens(snapshot),
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        customer_name=customer_name,
        customer_phone=customer_phone,
        customer_email=customer_email,
        created_at=now,
    )
    if restaurant.auto_confirm_orders:
        apply_order_status(order, OrderStatus.CONFIRMED, now)
    if table.status == TableStatus.AVAILABLE:
        table.status = TableStatus.OCCUPIED

    db.add(order)
    await db.commit()

    logger.info(
        f"Order {order.id} created for table {order.table_id} "
        f"({cart.item_count} items, total ${totals.total}, {order.status.value})"
    )
    return order


async def get_order(db: AsyncSession, order_id: str) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFound("Order", order_id)
    return order


async def list_orders(
    db: AsyncSession,
    restaurant_id: str,
    status: Optional[OrderStatus] = None,
    table_id: Optional[str] = None,
    limit: int = 50,
) -> list[Order]:
    query = select(Order).where(Order.restaurant_id == restaurant_id)
    if status is not None:
        query = query.where(Order.status == status)
    if table_id:
        query = query.where(Order.table_id == table_id)

    limit = max(1, min(limit, MAX_LIST_LIMIT))
    result = await db.execute(query.order_by(Order.created_at.desc()).limit(limit))
    return list(result.scalars().all())


# =============================================================================
# KITCHEN WORKFLOW
# =============================================================================

async def update_status(db: AsyncSession, order_id: str, target: OrderStatus) -> Order:
    """Staff move: exactly the next status, or a pre-served cancellation."""
    order = await get_order(db, order_id)
    previous = order.status

    apply_order_status(order, target)
    await db.commit()

    logger.info(f"Order {order_id}: {previous.value} -> {target.value}")
    return order


async def advance(db: AsyncSession, order_id: str) -> Order:
    order = await get_order(db, order_id)
    target = next_order_status(order.status)
    if target is None:
        raise StateConflict(f"Order is already {order.status.value}", current=order.status.value)
    return await update_status(db, order_id, target)


async def cancel_order(db: AsyncSession, order_id: str) -> Order:
    return await update_status(db, order_id, OrderStatus.CANCELLED)


async def set_kitchen_notes(db: AsyncSession, order_id: str, notes: str) -> Order:
    order = await get_order(db, order_id)
    order.kitchen_notes = (notes or "").strip()
    await db.commit()
    return order


# =============================================================================
# PAYMENTS
# =============================================================================

def _record_success(order: Order) -> None:
    if order.payment_status == PaymentStatus.FAILED:
        check_payment_transition(order.payment_status, PaymentStatus.PROCESSING)
        order.payment_status = PaymentStatus.PROCESSING
    check_payment_transition(order.payment_status, PaymentStatus.COMPLETED)
    order.payment_status = PaymentStatus.COMPLETED
    order.payment_error = None

    if order.status == OrderStatus.PENDING:
        apply_order_status(order, OrderStatus.CONFIRMED)


def _record_failure(order: Order, message: Optional[str]) -> None:
    if order.payment_status == PaymentStatus.PROCESSING:
        order.payment_status = PaymentStatus.FAILED
    order.payment_error = (message or "Payment failed")[:255]


async def create_payment_intent(
    db: AsyncSession, order_id: str, payment_service: BasePaymentService
) -> tuple[Order, PaymentResult]:
    """Start (or restart) a card payment for the order's total."""
    order = await get_order(db, order_id)

    if order.status == OrderStatus.CANCELLED:
        raise StateConflict("Cancelled orders cannot be paid", current=order.status.value)
    if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        raise StateConflict("Order is already paid", current=order.payment_status.value)

    restaurant = await get_restaurant(db, order.restaurant_id)
    result = await payment_service.create_payment_intent(
        amount=Decimal(order.total),
        currency=restaurant.currency,
        metadata={
            "order_id": order.id,
            "restaurant_id": order.restaurant_id,
            "table_id": order.table_id,
        },
    )

    if not result.success:
        order.payment_error = result.error_message
        await db.commit()
        logger.warning(f"Order {order_id}: payment intent failed - {result.error_code}")
        raise PaymentFailed(result.error_message or "Could not start payment", result.error_code)

    if order.payment_status != PaymentStatus.PROCESSING:
        check_payment_transition(order.payment_status, PaymentStatus.PROCESSING)
        order.payment_status = PaymentStatus.PROCESSING
    order.payment_intent_id = result.payment_intent_id
    order.payment_error = None
    await db.commit()

    logger.info(f"Order {order_id}: payment intent {result.payment_intent_id} created")
    return order, result


async def confirm_payment(
    db: AsyncSession, order_id: str, payment_service: BasePaymentService
) -> Order:
    """
    Ask the provider how the payment went and record the outcome.

    Raises:
        PaymentFailed: the provider reports a failed payment (already
            recorded on the order)
    """
    order = await get_order(db, order_id)

    if order.payment_status == PaymentStatus.COMPLETED:
        return order
    if not order.payment_intent_id:
        raise StateConflict(
            "No payment has been started for this order",
            current=order.payment_status.value,
        )
    if order.payment_status == PaymentStatus.REFUNDED:
        raise StateConflict("Payment has been refunded", current=order.payment_status.value)

    result = await payment_service.retrieve_payment(order.payment_intent_id)

    if result.success:
        _record_success(order)
        await db.commit()
        logger.info(f"Order {order_id}: payment completed ({order.status.value})")
        return order

    if result.status in UNSETTLED_INTENT_STATUSES and not result.error_code:
        logger.info(f"Order {order_id}: payment still {result.status}")
        return order

    _record_failure(order, result.error_message)
    await db.commit()
    logger.warning(f"Order {order_id}: payment failed - {result.error_code}")
    raise PaymentFailed(result.error_message or "Payment failed", result.error_code)


async def _order_for_intent(db: AsyncSession, intent: Mapping[str, Any]) -> Optional[Order]:
    order_id = (intent.get("metadata") or {}).get("order_id")
    if order_id:
        order = await db.get(Order, order_id)
        if order is not None:
            return order
    result = await db.execute(select(Order).where(Order.payment_intent_id == intent.get("id")))
    return result.scalars().first()


async def handle_payment_event(db: AsyncSession, event: Mapping[str, Any]) -> dict[str, Any]:
    """Apply a payment-provider webhook event to its order."""
    event_type = event.get("type")
    intent = (event.get("data") or {}).get("object") or {}

    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        logger.info(f"Unhandled event type: {event_type}")
        return {"received": True, "handled": False}

    order = await _order_for_intent(db, intent)
    if order is None:
        logger.warning(f"Webhook {event_type} for unknown intent {intent.get('id')}")
        return {"received": True, "handled": False}

    if event_type == "payment_intent.succeeded":
        if order.payment_status == PaymentStatus.REFUNDED:
            logger.info(f"Ignoring late success for refunded order: {order.id}")
            return {"received": True, "handled": False, "order_id": order.id}
        if order.payment_status != PaymentStatus.COMPLETED:
            if order.payment_status == PaymentStatus.PENDING:
                order.payment_status = PaymentStatus.PROCESSING
            order.payment_intent_id = intent.get("id") or order.payment_intent_id
            _record_success(order)
        logger.info(f"Payment succeeded for order: {order.id}")
    else:
        if order.payment_status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            order.payment_status = PaymentStatus.PROCESSING
            error = intent.get("last_payment_error") or {}
            _record_failure(order, error.get("message"))
        logger.error(f"Payment failed for order: {order.id}")

    await db.commit()
    return {"received": True, "handled": True, "order_id": order.id}


async def refund_order(
    db: AsyncSession,
    order_id: str,
    payment_service: BasePaymentService,
    reason: Optional[str] = None,
) -> Order:
    order = await get_order(db, order_id)
    check_payment_transition(order.payment_status, PaymentStatus.REFUNDED)

    result = await payment_service.refund_payment(order.payment_intent_id, reason=reason)
    if not result.success:
        raise PaymentFailed(result.error_message or "Refund failed", "refund_failed")

    order.payment_status = PaymentStatus.REFUNDED
    await db.commit()

    logger.info(f"Order {order_id}: refunded ({result.refund_id})")
    return order
