import os
from pathlib import Path


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            cleaned = value.strip().strip('"').strip("'")
            os.environ[key] = cleaned
    except OSError:
        return


def _load_env() -> None:
    current = Path(__file__).resolve()
    for candidate in (current.parents[1] / ".env", current.parents[2] / ".env"):
        _load_env_file(candidate)


_load_env()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _default_database_url() -> str:
    explicit_path = os.getenv("DATABASE_PATH", "").strip()
    if explicit_path:
        return f"sqlite:///{Path(explicit_path).as_posix()}"

    backend_root = Path(__file__).resolve().parents[2]
    dev_db = (backend_root / "data" / "database.sqlite").resolve()
    return f"sqlite:///{dev_db.as_posix()}"


def _normalize_cors(origins: str) -> list[str]:
    items: list[str] = []
    for raw in origins.split(","):
        value = raw.strip()
        if value and value not in items:
            items.append(value)
    return items


ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower() or "development"
IS_PRODUCTION = ENVIRONMENT == "production"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

DATABASE_URL = os.getenv("DATABASE_URL", _default_database_url())
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "2"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))

SECRET_KEY = os.getenv("SECRET_KEY", os.getenv("JWT_SECRET", "change-me-in-prod"))
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(30 * 24 * 60)))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "auth_token")
AUTH_COOKIE_SECURE = _env_flag("AUTH_COOKIE_SECURE", "true" if IS_PRODUCTION else "false")
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "260000"))

RATING_MIN = int(os.getenv("RATING_MIN", "1"))
RATING_MAX = int(os.getenv("RATING_MAX", "5"))
REVIEW_MAX_LENGTH = int(os.getenv("REVIEW_MAX_LENGTH", "2000"))
CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", "50"))
CHAT_MESSAGE_MAX_LENGTH = int(os.getenv("CHAT_MESSAGE_MAX_LENGTH", "1000"))

_DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000,http://127.0.0.1:3000,"
    "http://localhost:8080,http://127.0.0.1:8080"
)
CORS_ORIGINS = _normalize_cors(os.getenv("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS))

IGDB_CLIENT_ID = os.getenv("IGDB_CLIENT_ID", "").strip()
IGDB_CLIENT_SECRET = os.getenv("IGDB_CLIENT_SECRET", "").strip()
IGDB_API_URL = os.getenv("IGDB_API_URL", "https://api.igdb.com/v4").rstrip("/")
TWITCH_AUTH_URL = os.getenv("TWITCH_AUTH_URL", "https://id.twitch.tv/oauth2/token")
IGDB_REQUEST_TIMEOUT_SECONDS = float(os.getenv("IGDB_REQUEST_TIMEOUT_SECONDS", "10"))
IGDB_CACHE_TTL_SECONDS = int(os.getenv("IGDB_CACHE_TTL_SECONDS", "900"))
IGDB_RECENT_WINDOW_DAYS = int(os.getenv("IGDB_RECENT_WINDOW_DAYS", "90"))

RATE_LIMIT_DEFAULT_PER_MINUTE = int(os.getenv("RATE_LIMIT_DEFAULT_PER_MINUTE", "240"))
RATE_LIMIT_LOGIN_PER_MINUTE = int(os.getenv("RATE_LIMIT_LOGIN_PER_MINUTE", "20"))

SEED_SAMPLE_GAMES = _env_flag("SEED_SAMPLE_GAMES", "false" if IS_PRODUCTION else "true")
