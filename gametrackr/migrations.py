import logging

from sqlalchemy import inspect, text

from .db import engine

logger = logging.getLogger(__name__)


def _timestamp_type() -> str:
    return "TIMESTAMP" if engine.dialect.name == "postgresql" else "DATETIME"


def ensure_schema() -> None:
    """Add columns that older databases created before they existed."""
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    timestamp_type = _timestamp_type()

    if "users" in tables:
        columns = {col["name"] for col in inspector.get_columns("users")}
        alters = []
        if "avatar_url" not in columns:
            alters.append("ALTER TABLE users ADD COLUMN avatar_url VARCHAR(500)")
        if "bio" not in columns:
            alters.append("ALTER TABLE users ADD COLUMN bio TEXT")
        if "last_login" not in columns:
            alters.append(f"ALTER TABLE users ADD COLUMN last_login {timestamp_type}")
        if "updated_at" not in columns:
            alters.append(f"ALTER TABLE users ADD COLUMN updated_at {timestamp_type}")
        _apply_alters(alters)

    if "games" in tables:
        columns = {col["name"] for col in inspector.get_columns("games")}
        alters = []
        if "external_id" not in columns:
            alters.append("ALTER TABLE games ADD COLUMN external_id VARCHAR(64)")
        if "developer" not in columns:
            alters.append("ALTER TABLE games ADD COLUMN developer VARCHAR(120)")
        if "publisher" not in columns:
            alters.append("ALTER TABLE games ADD COLUMN publisher VARCHAR(120)")
        if "cover_image_url" not in columns:
            alters.append("ALTER TABLE games ADD COLUMN cover_image_url VARCHAR(500)")
        if "description" not in columns:
            alters.append("ALTER TABLE games ADD COLUMN description TEXT")
        if "updated_at" not in columns:
            alters.append(f"ALTER TABLE games ADD COLUMN updated_at {timestamp_type}")
        _apply_alters(alters)

    if "game_reviews" in tables:
        columns = {col["name"] for col in inspector.get_columns("game_reviews")}
        alters = []
        if "status" not in columns:
            alters.append("ALTER TABLE game_reviews ADD COLUMN status VARCHAR(20)")
        if "updated_at" not in columns:
            alters.append(f"ALTER TABLE game_reviews ADD COLUMN updated_at {timestamp_type}")
        _apply_alters(alters)


def _apply_alters(statements: list[str]) -> None:
    if not statements:
        return
    with engine.begin() as connection:
        for statement in statements:
            logger.info("Applying schema change: %s", statement)
            connection.execute(text(statement))
