import logging

from sqlalchemy.orm import Session

from .models import Game
from .services.catalog import upsert_game

logger = logging.getLogger(__name__)

SAMPLE_GAMES = [
    {
        "external_id": "seed:the-witcher-3",
        "title": "The Witcher 3: Wild Hunt",
        "release_date": "2015-05-19",
        "developer": "CD Projekt Red",
        "publisher": "CD Projekt",
        "description": "Geralt of Rivia searches a war-torn continent for his adopted daughter.",
        "tags": ["Role-playing (RPG)", "Adventure"],
    },
    {
        "external_id": "seed:hades",
        "title": "Hades",
        "release_date": "2020-09-17",
        "developer": "Supergiant Games",
        "publisher": "Supergiant Games",
        "description": "A rogue-like dungeon crawler about escaping the underworld.",
        "tags": ["Role-playing (RPG)", "Indie"],
    },
    {
        "external_id": "seed:celeste",
        "title": "Celeste",
        "release_date": "2018-01-25",
        "developer": "Maddy Makes Games",
        "publisher": "Maddy Makes Games",
        "description": "A precision platformer about climbing a mountain.",
        "tags": ["Platform", "Indie"],
    },
    {
        "external_id": "seed:portal-2",
        "title": "Portal 2",
        "release_date": "2011-04-19",
        "developer": "Valve",
        "publisher": "Valve",
        "description": "First-person puzzles built around a portal gun.",
        "tags": ["Puzzle", "Shooter"],
    },
    {
        "external_id": "seed:stardew-valley",
        "title": "Stardew Valley",
        "release_date": "2016-02-26",
        "developer": "ConcernedApe",
        "publisher": "ConcernedApe",
        "description": "Inherit an old farm plot and build a life in Pelican Town.",
        "tags": ["Simulator", "Indie"],
    },
]


def seed_games(db: Session) -> int:
    """Insert the sample catalogue when the games table is empty."""
    if db.query(Game.id).first() is not None:
        return 0
    for data in SAMPLE_GAMES:
        upsert_game(db, data)
    db.commit()
    logger.info("Seeded %d sample games", len(SAMPLE_GAMES))
    return len(SAMPLE_GAMES)
