import json
import logging
import threading
import time
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.cache import cache_client
from .core.config import CORS_ORIGINS, SEED_SAMPLE_GAMES
from .core.logging import configure_logging
from .db import Base, SessionLocal, engine
from .middleware import RateLimitMiddleware
from .middleware.rate_limit import add_cors_headers
from .migrations import ensure_schema
from .models import User
from .routes import auth, chat, games, reviews, users
from .routes.deps import user_from_token
from .seed import seed_games
from .services.chat import message_frame, normalize_message, store_message, system_frame
from .services.sanitize import is_encodable
from .websocket import chat_manager, review_manager

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="GameTrackr API", version=__version__)

_BASE_SCHEMA_LOCK = threading.Lock()
_BASE_SCHEMA_READY = False


def _ensure_base_schema() -> None:
    global _BASE_SCHEMA_READY
    if _BASE_SCHEMA_READY:
        return
    with _BASE_SCHEMA_LOCK:
        if _BASE_SCHEMA_READY:
            return
        try:
            Base.metadata.create_all(bind=engine)
        except OperationalError as exc:
            # Two workers starting against one SQLite file can race here.
            if "already exists" not in str(exc).lower():
                raise
        _BASE_SCHEMA_READY = True


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {"detail": ...} with CORS headers for allowed origins."""
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )
    return add_cors_headers(response, request)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Rejected input is not echoed back; it may not be encodable.
    detail = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    response = JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": detail})
    return add_cors_headers(response, request)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    return add_cors_headers(response, request)


# Executed in reverse order of addition: CORS runs first, then rate limiting.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = int(getattr(response, "status_code", 500) or 500)
        return response
    finally:
        latency_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            status_code,
            latency_ms,
        )


@app.on_event("startup")
def on_startup() -> None:
    _ensure_base_schema()
    ensure_schema()
    cache_client.connect()

    if SEED_SAMPLE_GAMES:
        db = SessionLocal()
        try:
            seed_games(db)
        finally:
            db.close()
    logger.info("GameTrackr API %s started", __version__)


@app.on_event("shutdown")
def on_shutdown() -> None:
    cache_client.disconnect()


@app.get("/api/health")
def health_check():
    return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}


@app.head("/api/health")
def health_check_head():
    return Response(status_code=200)


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(games.router, prefix="/api/games", tags=["games"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])


def _socket_identity(token: Optional[str]) -> Optional[tuple[str, str]]:
    if not token:
        return None
    with SessionLocal() as db:
        user = user_from_token(db, token)
        if user is None:
            return None
        return user.id, user.username


def _parse_frame(raw: str) -> Optional[dict]:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _error_frame(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message, "timestamp": datetime.utcnow().isoformat()}


@app.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket, token: Optional[str] = None):
    identity = _socket_identity(token)
    if identity is None:
        logger.info("Rejected chat socket without a valid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    user_id, username = identity

    connection_id = await chat_manager.connect(websocket)
    await chat_manager.send(
        connection_id,
        {"type": "system", "content": "Welcome to the chat!", "timestamp": datetime.utcnow().isoformat()},
    )
    await chat_manager.broadcast(system_frame(f"{username} has joined the chat"))
    try:
        while True:
            data = _parse_frame(await websocket.receive_text())
            if data is None:
                await chat_manager.send(connection_id, _error_frame("Invalid message format"))
                continue

            kind = data.get("type")
            if kind == "heartbeat":
                await chat_manager.send(connection_id, {"type": "pong"})
            elif kind == "message":
                raw_content = data.get("content")
                if raw_content is not None and not (isinstance(raw_content, str) and is_encodable(raw_content)):
                    await chat_manager.send(connection_id, _error_frame("Message content must be text"))
                    continue
                content = normalize_message(raw_content)
                if not content:
                    await chat_manager.send(connection_id, _error_frame("Message is empty"))
                    continue
                with SessionLocal() as db:
                    user = db.get(User, user_id)
                    if user is None:
                        logger.info("Closing chat socket for deleted user %s", user_id)
                        await chat_manager.send(connection_id, _error_frame("User no longer exists"))
                        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                        break
                    frame = message_frame(store_message(db, user, content))
                await chat_manager.broadcast(frame)
            else:
                await chat_manager.send(connection_id, _error_frame("Unknown message type"))
    except WebSocketDisconnect:
        pass
    finally:
        chat_manager.disconnect(connection_id)
        await chat_manager.broadcast(system_frame(f"{username} has left the chat"))


@app.websocket("/ws/reviews")
async def reviews_websocket(websocket: WebSocket, token: Optional[str] = None):
    identity = _socket_identity(token)
    if token and identity is None:
        logger.warning("Invalid token on review socket, continuing anonymously")

    connection_id = await review_manager.connect(websocket)
    await review_manager.send(
        connection_id,
        {
            "type": "system",
            "message": "Connected to review notification system",
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
    try:
        while True:
            data = _parse_frame(await websocket.receive_text())
            if data is None:
                await review_manager.send(connection_id, _error_frame("Invalid message format"))
            elif data.get("type") == "heartbeat":
                await review_manager.send(connection_id, {"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        review_manager.disconnect(connection_id)
