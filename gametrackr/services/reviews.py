from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models import Game, GameReview, User
from ..websocket import review_manager

logger = logging.getLogger(__name__)


def serialize_review(review: GameReview) -> Dict[str, Any]:
    game = review.game
    return {
        "id": review.id,
        "game_id": review.game_id,
        "user_id": review.user_id,
        "username": review.user.username if review.user else "",
        "rating": review.rating,
        "content": review.content,
        "status": review.status,
        "game_title": game.title if game else None,
        "game_cover_url": game.cover_image_url if game else None,
        "created_at": review.created_at,
        "updated_at": review.updated_at,
    }


def upsert_review(
    db: Session,
    user: User,
    game: Game,
    *,
    rating: int,
    content: str,
    status: Optional[str] = None,
) -> GameReview:
    """Create the user's review of a game, or overwrite the one they already wrote."""
    review = (
        db.query(GameReview)
        .filter(GameReview.user_id == user.id, GameReview.game_id == game.id)
        .first()
    )
    if review is None:
        review = GameReview(user_id=user.id, game_id=game.id)
        db.add(review)
    review.rating = rating
    review.content = content
    if status is not None:
        review.status = status
    db.commit()
    db.refresh(review)
    return review


async def notify_review_saved(review_data: Dict[str, Any]) -> None:
    delivered = await review_manager.broadcast(
        {"type": "new_review", "gameId": review_data["game_id"], "review": review_data}
    )
    logger.debug("new_review for game %s delivered to %d sockets", review_data["game_id"], delivered)


async def notify_review_deleted(game_id: str, review_id: str) -> None:
    await review_manager.broadcast({"type": "review_deleted", "gameId": game_id, "reviewId": review_id})
