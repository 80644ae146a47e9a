from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from ..core.cache import cache_client
from ..core.config import (
    IGDB_API_URL,
    IGDB_CACHE_TTL_SECONDS,
    IGDB_CLIENT_ID,
    IGDB_CLIENT_SECRET,
    IGDB_RECENT_WINDOW_DAYS,
    IGDB_REQUEST_TIMEOUT_SECONDS,
    TWITCH_AUTH_URL,
)
from .sanitize import clean_optional

logger = logging.getLogger(__name__)

EXTERNAL_ID_PREFIX = "igdb:"
_GAME_FIELDS = (
    "name, cover.url, first_release_date, summary, genres.name, "
    "involved_companies.company.name, involved_companies.developer, "
    "involved_companies.publisher"
)
# Refresh a minute early so a token never expires mid-request.
_TOKEN_EXPIRY_MARGIN_SECONDS = 60


class IGDBError(RuntimeError):
    pass


@dataclass
class IGDBGame:
    external_id: str
    title: str
    release_date: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    cover_image_url: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "title": self.title,
            "release_date": self.release_date,
            "developer": self.developer,
            "publisher": self.publisher,
            "cover_image_url": self.cover_image_url,
            "description": self.description,
            "tags": list(self.tags),
        }


def external_id_for(igdb_id: Any) -> str:
    return f"{EXTERNAL_ID_PREFIX}{igdb_id}"


def normalize_cover_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    cover = str(url).replace("t_thumb", "t_cover_big")
    if cover.startswith("//"):
        cover = f"https:{cover}"
    return cover


def normalize_release_date(timestamp: Any) -> Optional[str]:
    if timestamp in (None, ""):
        return None
    try:
        moment = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return moment.date().isoformat()


def _company_name(companies: List[Dict[str, Any]], role: str) -> Optional[str]:
    for entry in companies:
        if not isinstance(entry, dict) or not entry.get(role):
            continue
        company = entry.get("company") or {}
        name = company.get("name") if isinstance(company, dict) else None
        if name:
            return str(name)[:120]
    return None


def normalize_igdb_game(raw: Dict[str, Any]) -> Optional[IGDBGame]:
    if not isinstance(raw, dict):
        return None
    igdb_id = raw.get("id")
    title = str(raw.get("name") or "").strip()
    if igdb_id is None or not title:
        return None

    cover = raw.get("cover") or {}
    companies = raw.get("involved_companies") or []
    tags: List[str] = []
    for genre in raw.get("genres") or []:
        name = str((genre or {}).get("name") or "").strip() if isinstance(genre, dict) else ""
        if name and name not in tags:
            tags.append(name)

    return IGDBGame(
        external_id=external_id_for(igdb_id),
        title=title[:200],
        release_date=normalize_release_date(raw.get("first_release_date")),
        developer=_company_name(companies, "developer"),
        publisher=_company_name(companies, "publisher"),
        cover_image_url=normalize_cover_url(cover.get("url") if isinstance(cover, dict) else None),
        description=clean_optional(raw.get("summary")),
        tags=tags,
    )


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').strip()


class IGDBClient:
    """Thin client for the IGDB v4 API authenticated with Twitch client credentials."""

    def __init__(
        self,
        client_id: str = IGDB_CLIENT_ID,
        client_secret: str = IGDB_CLIENT_SECRET,
        *,
        api_url: str = IGDB_API_URL,
        auth_url: str = TWITCH_AUTH_URL,
        timeout: float = IGDB_REQUEST_TIMEOUT_SECONDS,
        cache_ttl: int = IGDB_CACHE_TTL_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _access_token(self) -> str:
        if not self.configured:
            raise IGDBError("IGDB API credentials not configured")
        with self._token_lock:
            now = time.time()
            if self._token and now < self._token_expires_at:
                return self._token
            try:
                response = self._session.post(
                    self.auth_url,
                    params={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "client_credentials",
                    },
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise IGDBError(f"Failed to authenticate with IGDB API: {exc}") from exc
            if response.status_code != 200:
                raise IGDBError(f"Failed to get access token: {response.status_code}")
            try:
                data = response.json()
                token = str(data["access_token"])
                expires_in = int(data.get("expires_in") or 0)
            except (ValueError, KeyError, TypeError) as exc:
                raise IGDBError("Malformed IGDB token response") from exc

            self._token = token
            self._token_expires_at = now + max(0, expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS)
            logger.debug("Obtained new IGDB API access token")
            return token

    def _query(self, endpoint: str, body: str) -> List[Dict[str, Any]]:
        digest = hashlib.sha256(f"{endpoint}|{body}".encode("utf-8")).hexdigest()
        cache_key = f"igdb:{endpoint}:{digest}"
        cached = cache_client.get_json(cache_key)
        if cached is not None:
            return cached

        token = self._access_token()
        try:
            response = self._session.post(
                f"{self.api_url}/{endpoint}",
                data=body.encode("utf-8"),
                headers={
                    "Client-ID": self.client_id,
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "text/plain",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise IGDBError(f"IGDB API request failed: {exc}") from exc

        if response.status_code == 401:
            # Token revoked server side; the next call fetches a fresh one.
            self._token = None
        if response.status_code != 200:
            raise IGDBError(f"IGDB API error: {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise IGDBError("IGDB API returned invalid JSON") from exc
        if not isinstance(payload, list):
            raise IGDBError("IGDB API returned an unexpected payload")

        cache_client.set_json(cache_key, payload, ttl=self.cache_ttl)
        return payload

    def _games(self, body: str) -> List[IGDBGame]:
        games: List[IGDBGame] = []
        for raw in self._query("games", body):
            game = normalize_igdb_game(raw)
            if game:
                games.append(game)
        return games

    def search_games(self, query: str, limit: int = 10) -> List[IGDBGame]:
        cleaned = _escape_query(query)
        if not cleaned:
            return []
        return self._games(f'search "{cleaned}"; fields {_GAME_FIELDS}; limit {int(limit)};')

    def get_game(self, igdb_id: int) -> Optional[IGDBGame]:
        games = self._games(f"fields {_GAME_FIELDS}; where id = {int(igdb_id)};")
        return games[0] if games else None

    def popular_games(self, limit: int = 10) -> List[IGDBGame]:
        return self._games(
            f"fields {_GAME_FIELDS}; where total_rating_count != null; "
            f"sort total_rating_count desc; limit {int(limit)};"
        )

    def recent_games(self, limit: int = 10) -> List[IGDBGame]:
        now = int(time.time())
        since = now - IGDB_RECENT_WINDOW_DAYS * 24 * 60 * 60
        return self._games(
            f"fields {_GAME_FIELDS}; "
            f"where first_release_date > {since} & first_release_date < {now}; "
            f"sort first_release_date desc; limit {int(limit)};"
        )


_client: Optional[IGDBClient] = None
_client_lock = threading.Lock()


def get_igdb_client() -> IGDBClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = IGDBClient()
    return _client
