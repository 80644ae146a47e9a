"""
Tests for the IGDB client with mocked HTTP.
"""

import pytest
import requests

from gametrackr.services.igdb import (
    IGDBClient,
    IGDBError,
    normalize_cover_url,
    normalize_igdb_game,
    normalize_release_date,
)

RAW_GAME = {
    "id": 1942,
    "name": "The Witcher 3: Wild Hunt",
    "cover": {"url": "//images.igdb.com/igdb/image/upload/t_thumb/co1wyy.jpg"},
    "first_release_date": 1431993600,
    "summary": "<p>Geralt hunts monsters.</p>",
    "genres": [{"name": "Role-playing (RPG)"}, {"name": "Adventure"}],
    "involved_companies": [
        {"company": {"name": "WB Games"}, "developer": False, "publisher": True},
        {"company": {"name": "CD Projekt RED"}, "developer": True, "publisher": False},
    ],
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Records POSTs and replays queued responses for the token and API endpoints."""

    def __init__(self, api_responses=None, token_response=None):
        self.token_response = token_response or FakeResponse(200, {"access_token": "tok", "expires_in": 3600})
        self.api_responses = list(api_responses or [])
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if "twitch" in url:
            return self.token_response
        if isinstance(self.api_responses[0], Exception):
            raise self.api_responses.pop(0)
        return self.api_responses.pop(0)


def make_client(session):
    return IGDBClient(
        "client-id",
        "client-secret",
        api_url="https://api.igdb.test/v4",
        auth_url="https://id.twitch.test/oauth2/token",
        session=session,
    )


class TestNormalization:
    """Mapping raw IGDB payloads onto catalogue fields."""

    def test_normalize_full_game(self):
        game = normalize_igdb_game(RAW_GAME)

        assert game.external_id == "igdb:1942"
        assert game.title == "The Witcher 3: Wild Hunt"
        assert game.release_date == "2015-05-19"
        assert game.developer == "CD Projekt RED"
        assert game.publisher == "WB Games"
        assert game.cover_image_url == "https://images.igdb.com/igdb/image/upload/t_cover_big/co1wyy.jpg"
        assert game.description == "Geralt hunts monsters."
        assert game.tags == ["Role-playing (RPG)", "Adventure"]

    def test_minimal_game(self):
        game = normalize_igdb_game({"id": 7, "name": "Tiny"})

        assert game.release_date is None
        assert game.cover_image_url is None
        assert game.tags == []

    def test_rejects_entries_without_id_or_name(self):
        assert normalize_igdb_game({"name": "No id"}) is None
        assert normalize_igdb_game({"id": 1, "name": "  "}) is None
        assert normalize_igdb_game("nonsense") is None

    def test_cover_and_date_helpers(self):
        assert normalize_cover_url("https://x/t_thumb/a.jpg") == "https://x/t_cover_big/a.jpg"
        assert normalize_cover_url(None) is None
        assert normalize_release_date(0) == "1970-01-01"
        assert normalize_release_date("soon") is None


class TestIGDBClient:
    """Token handling, querying and caching."""

    def test_unconfigured_client_raises(self):
        client = IGDBClient("", "", session=FakeSession())

        assert client.configured is False
        with pytest.raises(IGDBError, match="not configured"):
            client.search_games("zelda")

    def test_search_sends_headers_and_body(self):
        session = FakeSession([FakeResponse(200, [RAW_GAME])])
        client = make_client(session)

        games = client.search_games('the "witcher"', limit=5)

        assert [game.external_id for game in games] == ["igdb:1942"]
        token_call, api_call = session.calls
        assert token_call[1]["params"]["grant_type"] == "client_credentials"
        url, kwargs = api_call
        assert url == "https://api.igdb.test/v4/games"
        assert kwargs["headers"]["Client-ID"] == "client-id"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        body = kwargs["data"].decode("utf-8")
        assert 'search "the \\"witcher\\""' in body
        assert "limit 5;" in body

    def test_token_is_reused(self):
        session = FakeSession([FakeResponse(200, []), FakeResponse(200, [])])
        client = make_client(session)

        client.popular_games(3)
        client.recent_games(3)

        token_calls = [call for call in session.calls if "twitch" in call[0]]
        assert len(token_calls) == 1

    def test_responses_are_cached(self):
        session = FakeSession([FakeResponse(200, [RAW_GAME])])
        client = make_client(session)

        first = client.get_game(1942)
        second = client.get_game(1942)

        assert first == second
        assert len([call for call in session.calls if "igdb.test" in call[0]]) == 1

    def test_blank_search_skips_http(self):
        session = FakeSession()

        assert make_client(session).search_games("   ") == []
        assert session.calls == []

    def test_token_failure(self):
        session = FakeSession(token_response=FakeResponse(400, {}))

        with pytest.raises(IGDBError, match="access token"):
            make_client(session).popular_games()

    def test_api_error_status(self):
        session = FakeSession([FakeResponse(500, {"message": "boom"})])

        with pytest.raises(IGDBError, match="500"):
            make_client(session).popular_games()

    def test_unauthorized_resets_token(self):
        session = FakeSession([FakeResponse(401, {}), FakeResponse(200, [])])
        client = make_client(session)

        with pytest.raises(IGDBError):
            client.popular_games()
        client.popular_games()

        token_calls = [call for call in session.calls if "twitch" in call[0]]
        assert len(token_calls) == 2

    def test_network_error(self):
        session = FakeSession([requests.ConnectionError("down")])

        with pytest.raises(IGDBError, match="request failed"):
            make_client(session).recent_games()

    def test_unknown_game(self):
        session = FakeSession([FakeResponse(200, [])])

        assert make_client(session).get_game(5) is None
