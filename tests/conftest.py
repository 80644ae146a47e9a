"""
Shared fixtures for the GameTrackr API tests.

The environment is pinned before the application is imported so every test
run gets its own SQLite file, fast password hashing, no sample data and no
real IGDB credentials.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="gametrackr-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{(_TEST_DIR / 'test.sqlite').as_posix()}"
os.environ["SEED_SAMPLE_GAMES"] = "0"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ["RATE_LIMIT_DEFAULT_PER_MINUTE"] = "0"
os.environ["RATE_LIMIT_LOGIN_PER_MINUTE"] = "0"
os.environ["IGDB_CLIENT_ID"] = ""
os.environ["IGDB_CLIENT_SECRET"] = ""
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from gametrackr.core.cache import cache_client  # noqa: E402
from gametrackr.db import Base, engine  # noqa: E402
from gametrackr.main import app  # noqa: E402
from gametrackr.routes.deps import get_igdb  # noqa: E402
from gametrackr.services.igdb import IGDBError, IGDBGame  # noqa: E402
from gametrackr.websocket import chat_manager, review_manager  # noqa: E402


# =============================================================================
# Fakes
# =============================================================================


def make_igdb_game(igdb_id: int, title: str, release_date: Optional[str] = "2020-01-01", **extra) -> IGDBGame:
    return IGDBGame(
        external_id=f"igdb:{igdb_id}",
        title=title,
        release_date=release_date,
        developer=extra.get("developer", "Studio"),
        publisher=extra.get("publisher", "Publisher"),
        cover_image_url=extra.get("cover_image_url", f"https://images.igdb.com/{igdb_id}.jpg"),
        description=extra.get("description", f"About {title}"),
        tags=extra.get("tags", ["Adventure"]),
    )


class FakeIGDB:
    """In-memory stand-in for IGDBClient."""

    configured = True

    def __init__(self) -> None:
        self.games = [
            make_igdb_game(1, "Zelda: Breath of the Wild", "2017-03-03", tags=["Adventure", "Role-playing (RPG)"]),
            make_igdb_game(2, "Zelda: Tears of the Kingdom", "2023-05-12"),
            make_igdb_game(3, "Elden Ring", "2022-02-25", tags=["Role-playing (RPG)"]),
        ]
        self.fail = False
        self.calls: list[tuple] = []

    def _check(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail:
            raise IGDBError("IGDB API error: 503")

    def search_games(self, query: str, limit: int = 10):
        self._check("search", query, limit)
        needle = query.lower()
        return [game for game in self.games if needle in game.title.lower()][:limit]

    def popular_games(self, limit: int = 10):
        self._check("popular", limit)
        return self.games[:limit]

    def recent_games(self, limit: int = 10):
        self._check("recent", limit)
        return sorted(self.games, key=lambda game: game.release_date or "", reverse=True)[:limit]

    def get_game(self, igdb_id: int):
        self._check("get", igdb_id)
        for game in self.games:
            if game.external_id == f"igdb:{igdb_id}":
                return game
        return None


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    cache_client.clear()
    chat_manager.active_connections.clear()
    review_manager.active_connections.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_igdb():
    fake = FakeIGDB()
    app.dependency_overrides[get_igdb] = lambda: fake
    return fake


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register_user(
    client: TestClient,
    username: str = "alice",
    email: Optional[str] = None,
    password: str = "secret1",
) -> tuple[str, dict]:
    """Register a user and return (token, user); the client's cookie jar is left empty."""
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": email or f"{username}@example.com", "password": password},
    )
    assert response.status_code == 201, response.text
    client.cookies.clear()
    body = response.json()
    return body["token"], body["user"]


def create_game(client: TestClient, token: str, title: str = "Hollow Knight", **fields) -> dict:
    response = client.post("/api/games/", json={"title": title, **fields}, headers=auth_headers(token))
    assert response.status_code == 201, response.text
    return response.json()


def send_ascii_json(client: TestClient, method: str, url: str, payload: dict, token: Optional[str] = None):
    """Send ``payload`` with non-ASCII escaped, so lone surrogates reach the server as ``\\udXXX`` escapes."""
    headers = {"Content-Type": "application/json"}
    if token:
        headers.update(auth_headers(token))
    return client.request(method, url, content=json.dumps(payload), headers=headers)
