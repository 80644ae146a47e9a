import logging
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models import Game, GameReview, User
from ..schemas import (
    GameIn,
    GameOut,
    GamePageOut,
    GameReviewIn,
    RatingStatsOut,
    ReviewOut,
    ReviewPageOut,
)
from ..services.catalog import (
    all_rating_stats,
    create_game,
    game_rating_stats,
    list_games_with_ratings,
    merge_unique,
    mirror_games,
    resolve_ordering,
    search_local,
    serialize_game,
    serialize_games,
)
from ..services.igdb import IGDBClient, IGDBError, IGDBGame
from ..services.reviews import notify_review_saved, serialize_review, upsert_review
from ..services.sanitize import clean_optional
from .deps import get_current_user, get_igdb

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_game_or_404(db: Session, game_id: str) -> Game:
    game = db.query(Game).filter(Game.id == game_id).first()
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


def _top_up_from_igdb(
    db: Session,
    igdb: IGDBClient,
    local: List[Dict],
    total: int,
    *,
    limit: int,
    offset: int,
    fetch: Callable[[int], List[IGDBGame]],
) -> tuple[List[Dict], int]:
    """Fill a short first page with mirrored IGDB results."""
    if offset != 0 or total >= limit or not igdb.configured:
        return local, total
    try:
        remote = fetch(limit)
    except IGDBError as exc:
        logger.warning("IGDB lookup failed, serving local results only: %s", exc)
        return local, total
    if not remote:
        return local, total

    mirrored = mirror_games(db, remote)
    merged = merge_unique(local, serialize_games(db, mirrored))[:limit]
    return merged, total + (len(merged) - len(local))


@router.get("/", response_model=GamePageOut)
def list_games(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    db: Session = Depends(get_db),
):
    games, total = list_games_with_ratings(db, limit=limit, offset=offset, sort_by=sort_by, order=order)
    return {"games": games, "total": total, "limit": limit, "offset": offset}


@router.get("/search", response_model=GamePageOut)
def search_games(
    q: str = "",
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    igdb: IGDBClient = Depends(get_igdb),
):
    query = q.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Search query is required")

    found, total = search_local(db, query, limit=limit, offset=offset)
    games, total = _top_up_from_igdb(
        db,
        igdb,
        serialize_games(db, found),
        total,
        limit=limit,
        offset=offset,
        fetch=lambda size: igdb.search_games(query, size),
    )
    return {"games": games, "total": total, "limit": limit, "offset": offset}


@router.get("/popular", response_model=GamePageOut)
def popular_games(
    ordering: str = "-metacritic",
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    igdb: IGDBClient = Depends(get_igdb),
):
    sort_by, order = resolve_ordering(ordering)
    local, total = list_games_with_ratings(db, limit=limit, offset=offset, sort_by=sort_by, order=order)
    games, total = _top_up_from_igdb(
        db, igdb, local, total, limit=limit, offset=offset, fetch=igdb.popular_games
    )
    return {"games": games, "total": total, "limit": limit, "offset": offset}


@router.get("/recent", response_model=GamePageOut)
def recent_games(
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    igdb: IGDBClient = Depends(get_igdb),
):
    local, total = list_games_with_ratings(
        db,
        limit=limit,
        offset=offset,
        sort_by="release_date",
        order="DESC",
        released_only=True,
    )
    games, total = _top_up_from_igdb(
        db, igdb, local, total, limit=limit, offset=offset, fetch=igdb.recent_games
    )
    return {"games": games, "total": total, "limit": limit, "offset": offset}


@router.get("/ratings", response_model=List[RatingStatsOut])
def list_ratings(db: Session = Depends(get_db)):
    return all_rating_stats(db)


@router.post("/", response_model=GameOut, status_code=status.HTTP_201_CREATED)
def add_game(
    payload: GameIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump()
    data["title"] = payload.title.strip()
    data["description"] = clean_optional(payload.description)
    game = create_game(db, data)
    db.commit()
    db.refresh(game)
    logger.info("User %s added game %s", current_user.username, game.title)
    return serialize_game(game)


@router.post("/import/{igdb_id}", response_model=GameOut, status_code=status.HTTP_201_CREATED)
def import_game(
    igdb_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    igdb: IGDBClient = Depends(get_igdb),
):
    try:
        item = igdb.get_game(igdb_id)
    except IGDBError as exc:
        logger.error("IGDB import of %s failed: %s", igdb_id, exc)
        raise HTTPException(status_code=502, detail="Game metadata service unavailable") from exc
    if item is None:
        raise HTTPException(status_code=404, detail="Game not found on IGDB")
    game = mirror_games(db, [item])[0]
    return serialize_game(game, game_rating_stats(db, game.id))


@router.get("/{game_id}", response_model=GameOut)
def get_game(game_id: str, db: Session = Depends(get_db)):
    game = _get_game_or_404(db, game_id)
    return serialize_game(game, game_rating_stats(db, game.id))


@router.get("/{game_id}/ratings", response_model=RatingStatsOut)
def get_game_ratings(game_id: str, db: Session = Depends(get_db)):
    game = _get_game_or_404(db, game_id)
    average, count = game_rating_stats(db, game.id)
    return {"game_id": game.id, "average_rating": average, "rating_count": count}


@router.get("/{game_id}/reviews", response_model=ReviewPageOut)
def list_game_reviews(
    game_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    game = _get_game_or_404(db, game_id)
    query = db.query(GameReview).filter(GameReview.game_id == game.id)
    total = query.count()
    reviews = (
        query.options(joinedload(GameReview.user), joinedload(GameReview.game))
        .order_by(GameReview.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "reviews": [serialize_review(review) for review in reviews],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("/{game_id}/reviews", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def review_game(
    game_id: str,
    payload: GameReviewIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    game = _get_game_or_404(db, game_id)
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
    return data
