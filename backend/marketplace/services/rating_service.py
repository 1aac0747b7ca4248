# Overview: Service-layer operations for ratings; one rating per completed order, seller averages.

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError
from ..models import Buyer, Order, Rating, Seller
from ..time_utils import utcnow
from ..validation import validate_rating_stars
from .order_service import get_order_for_actor

logger = logging.getLogger(__name__)


def recompute_seller_rating(seller_id: int) -> Seller:
    """Average rounded to one decimal; zero when the seller has no ratings."""
    avg, count = (
        db.session.query(func.avg(Rating.stars), func.count(Rating.id))
        .filter(Rating.seller_id == seller_id)
        .one()
    )
    seller = db.session.get(Seller, seller_id)
    seller.rating_average = round(float(avg), 1) if count else 0.0
    seller.rating_count = count
    return seller


def rate_order(buyer: Buyer, order_id: int, stars, description: str | None = None) -> Rating:
    order = get_order_for_actor(order_id, buyer)
    if order.status != "completed":
        raise InvalidTransitionError("Only completed orders can be rated", {"status": order.status})
    if order.rating_stars is not None:
        raise ConflictError("Order already rated")

    stars = validate_rating_stars(stars)
    text = str(description).strip() if description else None
    now = utcnow()

    rating = Rating(
        order_id=order.id,
        buyer_id=buyer.id,
        seller_id=order.seller_id,
        stars=stars,
        description=text,
        created_at=now,
    )
    db.session.add(rating)
    order.rating_stars = stars
    order.rating_description = text
    order.rated_at = now
    try:
        db.session.flush()
        recompute_seller_rating(order.seller_id)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Order already rated")

    logger.info("Order %s rated %d by buyer %s", order.order_number, stars, buyer.id)
    return rating


def list_seller_ratings(seller_id: int, limit: int = 50) -> list[Rating]:
    return (
        db.session.query(Rating)
        .filter_by(seller_id=seller_id)
        .order_by(Rating.id.desc())
        .limit(limit)
        .all()
    )
