from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Game, GameReview, GameTag
from .igdb import IGDBGame

logger = logging.getLogger(__name__)

SORT_FIELDS = ("title", "release_date", "avg_rating", "review_count")
_ORDERING_ALIASES = {
    "metacritic": "avg_rating",
    "rating": "avg_rating",
    "released": "release_date",
    "name": "title",
}

RatingStats = Tuple[float, int]


def _round_rating(value: Any) -> float:
    return round(float(value or 0.0), 1)


def normalize_sort(sort_by: Optional[str], order: Optional[str]) -> Tuple[str, str]:
    field = str(sort_by or "").strip().lower()
    direction = str(order or "").strip().upper()
    if field not in SORT_FIELDS:
        field = "avg_rating"
    if direction not in ("ASC", "DESC"):
        direction = "DESC"
    return field, direction


def resolve_ordering(ordering: Optional[str]) -> Tuple[str, str]:
    """Translate a `-field` style ordering into a whitelisted (field, direction)."""
    raw = str(ordering or "-avg_rating").strip()
    direction = "DESC" if raw.startswith("-") else "ASC"
    field = raw.lstrip("-").lower()
    field = _ORDERING_ALIASES.get(field, field)
    return normalize_sort(field, direction)


def _tag_names(game: Game) -> List[str]:
    return sorted(tag.name for tag in (game.tags or []))


def serialize_game(game: Game, stats: Optional[RatingStats] = None) -> Dict[str, Any]:
    avg_rating, review_count = stats or (0.0, 0)
    return {
        "id": game.id,
        "external_id": game.external_id,
        "title": game.title,
        "release_date": game.release_date,
        "developer": game.developer,
        "publisher": game.publisher,
        "cover_image_url": game.cover_image_url,
        "description": game.description,
        "tags": _tag_names(game),
        "avg_rating": _round_rating(avg_rating),
        "review_count": int(review_count or 0),
        "created_at": game.created_at,
    }


def _attach_tags(db: Session, game: Game, names: Iterable[str]) -> None:
    wanted: List[str] = []
    for raw in names:
        name = str(raw or "").strip()[:80]
        if name and name not in wanted:
            wanted.append(name)
    if not wanted:
        return
    existing = {tag.name: tag for tag in db.query(GameTag).filter(GameTag.name.in_(wanted)).all()}
    current = {tag.name for tag in game.tags}
    for name in wanted:
        if name in current:
            continue
        tag = existing.get(name)
        if tag is None:
            tag = GameTag(name=name)
            db.add(tag)
            existing[name] = tag
        game.tags.append(tag)


def create_game(db: Session, data: Dict[str, Any]) -> Game:
    game = Game(
        external_id=data.get("external_id"),
        title=data["title"],
        release_date=data.get("release_date"),
        developer=data.get("developer"),
        publisher=data.get("publisher"),
        cover_image_url=data.get("cover_image_url"),
        description=data.get("description"),
    )
    db.add(game)
    _attach_tags(db, game, data.get("tags") or [])
    db.flush()
    return game


def upsert_game(db: Session, data: Dict[str, Any]) -> Game:
    """Create or refresh a catalogue entry keyed by its external id."""
    external_id = data.get("external_id")
    game = None
    if external_id:
        game = db.query(Game).filter(Game.external_id == external_id).first()
    if game is None:
        return create_game(db, data)

    game.title = data.get("title") or game.title
    for key in ("release_date", "developer", "publisher", "cover_image_url", "description"):
        value = data.get(key)
        if value:
            setattr(game, key, value)
    _attach_tags(db, game, data.get("tags") or [])
    db.flush()
    return game


def mirror_games(db: Session, items: Sequence[IGDBGame]) -> List[Game]:
    games: List[Game] = []
    for item in items:
        games.append(upsert_game(db, item.to_dict()))
    db.commit()
    if games:
        logger.info("Mirrored %d games from IGDB", len(games))
    return games


def rating_stats_for(db: Session, game_ids: Iterable[str]) -> Dict[str, RatingStats]:
    ids = [game_id for game_id in set(game_ids) if game_id]
    if not ids:
        return {}
    rows = (
        db.query(
            GameReview.game_id,
            func.avg(GameReview.rating),
            func.count(GameReview.id),
        )
        .filter(GameReview.game_id.in_(ids))
        .group_by(GameReview.game_id)
        .all()
    )
    return {str(game_id): (_round_rating(avg), int(count or 0)) for game_id, avg, count in rows}


def game_rating_stats(db: Session, game_id: str) -> RatingStats:
    return rating_stats_for(db, [game_id]).get(game_id, (0.0, 0))


def all_rating_stats(db: Session) -> List[Dict[str, Any]]:
    rows = (
        db.query(
            GameReview.game_id,
            func.avg(GameReview.rating),
            func.count(GameReview.id),
        )
        .group_by(GameReview.game_id)
        .all()
    )
    return [
        {
            "game_id": str(game_id),
            "average_rating": _round_rating(avg),
            "rating_count": int(count or 0),
        }
        for game_id, avg, count in rows
    ]


def list_games_with_ratings(
    db: Session,
    *,
    limit: int,
    offset: int,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
    released_only: bool = False,
) -> Tuple[List[Dict[str, Any]], int]:
    field, direction = normalize_sort(sort_by, order)
    avg_col = func.coalesce(func.avg(GameReview.rating), 0).label("avg_rating")
    count_col = func.count(GameReview.id).label("review_count")

    query = db.query(Game, avg_col, count_col).outerjoin(GameReview, GameReview.game_id == Game.id)
    total_query = db.query(func.count(Game.id))
    if released_only:
        query = query.filter(Game.release_date.isnot(None))
        total_query = total_query.filter(Game.release_date.isnot(None))
    query = query.group_by(Game.id)

    sort_column = {
        "title": Game.title,
        "release_date": Game.release_date,
        "avg_rating": avg_col,
        "review_count": count_col,
    }[field]
    ordered = sort_column.desc() if direction == "DESC" else sort_column.asc()
    if field == "release_date":
        ordered = ordered.nulls_last()
    rows = query.order_by(ordered, Game.title.asc()).offset(offset).limit(limit).all()

    games = [serialize_game(game, (avg, count)) for game, avg, count in rows]
    return games, int(total_query.scalar() or 0)


def search_local(db: Session, query: str, *, limit: int, offset: int) -> Tuple[List[Game], int]:
    pattern = f"%{query.strip()}%"
    base = db.query(Game).filter(Game.title.ilike(pattern))
    total = base.count()
    games = base.order_by(Game.title.asc()).offset(offset).limit(limit).all()
    return games, total


def serialize_games(db: Session, games: Sequence[Game]) -> List[Dict[str, Any]]:
    stats = rating_stats_for(db, [game.id for game in games])
    return [serialize_game(game, stats.get(game.id)) for game in games]


def merge_unique(local: Sequence[Dict[str, Any]], remote: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    merged = list(local)
    seen = {item["id"] for item in merged}
    for item in remote:
        if item["id"] in seen:
            continue
        seen.add(item["id"])
        merged.append(item)
    return merged
