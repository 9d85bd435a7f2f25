from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from tableside.core.errors import NotFound, ValidationFailed
from tableside.database import build_session_maker
from tableside.models import ReviewStatus
from tableside.services import reviews


async def test_create_review_validation(db, restaurant) -> None:
    with pytest.raises(ValidationFailed):
        await reviews.create_review(db, restaurant.id, "Ana", 6, "Great")
    with pytest.raises(ValidationFailed):
        await reviews.create_review(db, restaurant.id, "Ana", 0, "Great")
    with pytest.raises(ValidationFailed):
        await reviews.create_review(db, restaurant.id, " ", 5, "Great")
    with pytest.raises(ValidationFailed):
        await reviews.create_review(db, restaurant.id, "Ana", 5, "")


async def test_list_reviews_summary(db, restaurant) -> None:
    for rating in (5, 4, 4, 2):
        await reviews.create_review(db, restaurant.id, "Guest", rating, "Dinner", table_number="T1")

    listing = await reviews.list_reviews(db, restaurant.id, page=1, limit=3)

    assert len(listing["reviews"]) == 3
    assert listing["pagination"] == {"page": 1, "limit": 3, "total": 4, "pages": 2}
    assert listing["average_rating"] == Decimal("3.75")
    assert listing["rating_distribution"] == {1: 0, 2: 1, 3: 0, 4: 2, 5: 1}

    only_fours = await reviews.list_reviews(db, restaurant.id, rating=4)
    assert only_fours["total_reviews"] == 2


async def test_empty_review_list(db, restaurant) -> None:
    listing = await reviews.list_reviews(db, restaurant.id)

    assert listing["reviews"] == []
    assert listing["average_rating"] == Decimal("0.00")


async def test_mark_helpful_returns_server_count(db, restaurant) -> None:
    review = await reviews.create_review(db, restaurant.id, "Ana", 5, "Lovely pasta")

    assert await reviews.mark_helpful(db, restaurant.id, review.id) == 1
    assert await reviews.mark_helpful(db, restaurant.id, review.id) == 2


async def test_concurrent_helpful_clicks_are_not_lost(engine, db, restaurant) -> None:
    review = await reviews.create_review(db, restaurant.id, "Ana", 5, "Lovely pasta")
    session_maker = build_session_maker(engine)

    async def click():
        async with session_maker() as session:
            return await reviews.mark_helpful(session, restaurant.id, review.id)

    for _ in range(4):
        await asyncio.gather(click(), click())

    async with session_maker() as session:
        fetched = await reviews.get_review(session, restaurant.id, review.id)
    assert fetched.helpful_count == 8


async def test_mark_helpful_unknown_review(db, restaurant) -> None:
    with pytest.raises(NotFound):
        await reviews.mark_helpful(db, restaurant.id, "missing")


async def test_staff_reply_is_appended(db, restaurant) -> None:
    review = await reviews.create_review(db, restaurant.id, "Ana", 3, "Slow service")
    assert review.responses == []

    await reviews.add_response(db, restaurant.id, review.id, " Sorry about the wait ", staff_name="Marco")
    await reviews.add_response(db, restaurant.id, review.id, "Hope to see you again")

    stored = await reviews.get_review(db, restaurant.id, review.id)
    assert [r["message"] for r in stored.responses] == ["Sorry about the wait", "Hope to see you again"]
    assert [r["staff_name"] for r in stored.responses] == ["Marco", None]
    assert all(r["created_at"] for r in stored.responses)

    with pytest.raises(ValidationFailed):
        await reviews.add_response(db, restaurant.id, review.id, "  ")
    with pytest.raises(NotFound):
        await reviews.add_response(db, restaurant.id, "missing", "Thanks")


async def test_rejected_reviews_leave_public_listing(db, restaurant) -> None:
    kept = await reviews.create_review(db, restaurant.id, "Ana", 5, "Lovely")
    spam = await reviews.create_review(db, restaurant.id, "Bot", 1, "Buy now")
    assert spam.status == ReviewStatus.APPROVED

    await reviews.update_review_status(db, restaurant.id, spam.id, "rejected")

    public = await reviews.list_reviews(db, restaurant.id)
    assert [r.id for r in public["reviews"]] == [kept.id]
    assert public["average_rating"] == Decimal("5.00")
    assert public["rating_distribution"][1] == 0

    rejected = await reviews.list_reviews(db, restaurant.id, status=ReviewStatus.REJECTED)
    assert [r.id for r in rejected["reviews"]] == [spam.id]

    with pytest.raises(ValidationFailed):
        await reviews.update_review_status(db, restaurant.id, kept.id, "hidden")


async def test_delete_review(db, restaurant) -> None:
    review = await reviews.create_review(db, restaurant.id, "Ana", 4, "Good")

    await reviews.delete_review(db, restaurant.id, review.id)

    with pytest.raises(NotFound):
        await reviews.get_review(db, restaurant.id, review.id)
    with pytest.raises(NotFound):
        await reviews.delete_review(db, restaurant.id, review.id)
