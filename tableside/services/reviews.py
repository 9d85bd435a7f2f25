"""
Customer reviews.

``helpful_count`` is only ever changed by a single UPDATE ... SET n = n + 1,
so concurrent "helpful" clicks never lose increments; whatever count a
client shows is a hint until it fetches again.
"""

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound, ValidationFailed
from tableside.models import Review, ReviewStatus
from tableside.services.pricing import money
from tableside.services.restaurants import get_restaurant

logger = logging.getLogger(__name__)


async def create_review(
    db: AsyncSession,
    restaurant_id: str,
    customer_name: str,
    rating: int,
    comment: str,
    email: Optional[str] = None,
    table_number: Optional[str] = None,
    order_id: Optional[str] = None,
) -> Review:
    await get_restaurant(db, restaurant_id)

    if not customer_name or not customer_name.strip():
        raise ValidationFailed("Customer name is required", field="customer_name")
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5", field="rating")
    if not comment or not comment.strip():
        raise ValidationFailed("Comment is required", field="comment")

    review = Review(
        restaurant_id=restaurant_id,
        customer_name=customer_name.strip(),
        email=email,
        rating=rating,
        comment=comment.strip(),
        table_number=table_number,
        order_id=order_id,
        helpful_count=0,
        status=ReviewStatus.APPROVED,
        responses=[],
    )
    db.add(review)
    await db.commit()

    logger.info(f"Review {review.id} ({rating}/5) submitted for restaurant {restaurant_id}")
    return review


async def get_review(db: AsyncSession, restaurant_id: str, review_id: str) -> Review:
    result = await db.execute(
        select(Review).where(Review.id == review_id, Review.restaurant_id == restaurant_id)
    )
    review = result.scalars().first()
    if review is None:
        raise NotFound("Review", review_id)
    return review


async def list_reviews(
    db: AsyncSession,
    restaurant_id: str,
    page: int = 1,
    limit: int = 10,
    rating: Optional[int] = None,
    status: ReviewStatus = ReviewStatus.APPROVED,
) -> dict[str, Any]:
    """
    Newest-first page of reviews plus the restaurant's rating summary.

    Customers see approved reviews only; staff pass ``status`` to work
    through the moderation queue. The distribution counts the same status.
    """
    await get_restaurant(db, restaurant_id)

    conditions = [Review.restaurant_id == restaurant_id, Review.status == status]
    if rating is not None:
        conditions.append(Review.rating == rating)

    total = (await db.execute(select(func.count(Review.id)).where(*conditions))).scalar() or 0
    average = (await db.execute(select(func.avg(Review.rating)).where(*conditions))).scalar()

    result = await db.execute(
        select(Review)
        .where(*conditions)
        .order_by(Review.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    distribution = {score: 0 for score in range(1, 6)}
    rows = await db.execute(
        select(Review.rating, func.count(Review.id))
        .where(Review.restaurant_id == restaurant_id, Review.status == status)
        .group_by(Review.rating)
    )
    for score, count in rows.all():
        distribution[score] = count

    return {
        "reviews": list(result.scalars().all()),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
        "average_rating": money(Decimal(str(average))) if average is not None else Decimal("0.00"),
        "total_reviews": total,
        "rating_distribution": distribution,
    }


async def mark_helpful(db: AsyncSession, restaurant_id: str, review_id: str) -> int:
    """Atomically increment and return the authoritative helpful count."""
    result = await db.execute(
        update(Review)
        .where(Review.id == review_id, Review.restaurant_id == restaurant_id)
        .values(helpful_count=Review.helpful_count + 1)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFound("Review", review_id)
    await db.commit()

    count = await db.execute(select(Review.helpful_count).where(Review.id == review_id))
    return count.scalar_one()


async def add_response(
    db: AsyncSession,
    restaurant_id: str,
    review_id: str,
    message: str,
    staff_name: Optional[str] = None,
) -> Review:
    """Append a staff reply to the review's thread."""
    if not message or not message.strip():
        raise ValidationFailed("Response message is required", field="message")

    review = await get_review(db, restaurant_id, review_id)
    review.responses = list(review.responses or []) + [{
        "message": message.strip(),
        "staff_name": (staff_name or "").strip() or None,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }]
    await db.commit()

    logger.info(f"Staff replied to review {review_id}")
    return review


async def update_review_status(
    db: AsyncSession, restaurant_id: str, review_id: str, status: ReviewStatus
) -> Review:
    try:
        status = ReviewStatus(status)
    except ValueError:
        raise ValidationFailed(f"Unknown review status: {status}", field="status")

    review = await get_review(db, restaurant_id, review_id)
    if review.status != status:
        logger.info(f"Review {review_id}: {review.status.value} -> {status.value}")
        review.status = status
        await db.commit()
    return review


async def delete_review(db: AsyncSession, restaurant_id: str, review_id: str) -> None:
    review = await get_review(db, restaurant_id, review_id)
    await db.delete(review)
    await db.commit()
    logger.warning(f"Review {review_id} deleted from restaurant {restaurant_id}")
