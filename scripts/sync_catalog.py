from __future__ import annotations

import argparse
import json
import logging
import sys

from gametrackr.core.logging import configure_logging
from gametrackr.db import Base, SessionLocal, engine
from gametrackr.migrations import ensure_schema
from gametrackr.services.catalog import mirror_games
from gametrackr.services.igdb import IGDBError, get_igdb_client

logger = logging.getLogger("sync_catalog")


def fetch_items(args: argparse.Namespace):
    client = get_igdb_client()
    if args.mode == "popular":
        return client.popular_games(args.limit)
    if args.mode == "recent":
        return client.recent_games(args.limit)
    if not args.query:
        raise SystemExit("--query is required in search mode")
    return client.search_games(args.query, args.limit)


def main() -> int:
    parser = argparse.ArgumentParser(description="Mirror IGDB games into the GameTrackr catalogue")
    parser.add_argument("mode", choices=("popular", "recent", "search"), help="Which IGDB listing to mirror")
    parser.add_argument("--query", default="", help="Search text for search mode")
    parser.add_argument("--limit", type=int, default=20, help="Number of games to fetch (max 500)")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()
    args.limit = min(max(args.limit, 1), 500)

    configure_logging(args.log_level)
    Base.metadata.create_all(bind=engine)
    ensure_schema()

    try:
        items = fetch_items(args)
    except IGDBError as exc:
        logger.error("IGDB request failed: %s", exc)
        return 1

    with SessionLocal() as db:
        games = mirror_games(db, items)
        mirrored = [{"id": game.id, "external_id": game.external_id, "title": game.title} for game in games]
    print(json.dumps(mirrored, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
