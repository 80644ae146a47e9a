import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models import Game, GameReview, User
from ..schemas import ReviewEnvelopeOut, ReviewIn, ReviewListOut, ReviewUpdate
from ..services.catalog import create_game
from ..services.reviews import (
    notify_review_deleted,
    notify_review_saved,
    serialize_review,
    upsert_review,
)
from .deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _reviews_query(db: Session):
    return db.query(GameReview).options(joinedload(GameReview.user), joinedload(GameReview.game))


def _owned_review_or_404(db: Session, review_id: str, user: User) -> GameReview:
    review = (
        _reviews_query(db)
        .filter(GameReview.id == review_id, GameReview.user_id == user.id)
        .first()
    )
    if not review:
        raise HTTPException(status_code=404, detail="Review not found or not owned by user")
    return review


@router.get("/game/{game_id}", response_model=ReviewListOut)
def list_reviews_for_game(game_id: str, db: Session = Depends(get_db)):
    reviews = (
        _reviews_query(db)
        .filter(GameReview.game_id == game_id)
        .order_by(GameReview.created_at.desc())
        .all()
    )
    return {"reviews": [serialize_review(review) for review in reviews]}


@router.get("/user/{user_id}", response_model=ReviewListOut)
def list_reviews_for_user(user_id: str, db: Session = Depends(get_db)):
    reviews = (
        _reviews_query(db)
        .filter(GameReview.user_id == user_id)
        .order_by(GameReview.created_at.desc())
        .all()
    )
    return {"reviews": [serialize_review(review) for review in reviews]}


@router.get("/me", response_model=ReviewListOut)
def list_my_reviews(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_reviews_for_user(current_user.id, db)


@router.post("/", response_model=ReviewEnvelopeOut, status_code=status.HTTP_201_CREATED)
async def submit_review(
    payload: ReviewIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    game = db.query(Game).filter(Game.id == payload.game_id).first()
    if game is None:
        title = (payload.game_title or "").strip()
        if not title:
            raise HTTPException(status_code=404, detail="Game not found")
        game = create_game(db, {"title": title, "cover_image_url": payload.game_cover_url})
        logger.info("Catalogued %s on first review by %s", title, current_user.username)

    review = upsert_review(
        db,
        current_user,
        game,
        rating=payload.rating,
        content=payload.content,
        status=payload.status,
    )
    data = serialize_review(review)
    await notify_review_saved(data)
    return {"review": data}


@router.patch("/{review_id}", response_model=ReviewEnvelopeOut)
def update_review(
    review_id: str,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = _owned_review_or_404(db, review_id, current_user)
    if payload.rating is not None:
        review.rating = payload.rating
    if payload.content is not None:
        review.content = payload.content
    if payload.status is not None:
        review.status = payload.status
    db.commit()
    db.refresh(review)
    return {"review": serialize_review(review)}


@router.delete("/{review_id}")
async def delete_review(
    review_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = _owned_review_or_404(db, review_id, current_user)
    game_id = review.game_id
    db.delete(review)
    db.commit()
    await notify_review_deleted(game_id, review_id)
    return {"success": True, "gameId": game_id}
