from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..core.config import CHAT_HISTORY_LIMIT, CHAT_MESSAGE_MAX_LENGTH
from ..models import ChatMessage, User
from .sanitize import clean_text

SYSTEM_USER_ID = 0
SYSTEM_USERNAME = "System"


def normalize_message(content: Optional[str]) -> str:
    return clean_text(content or "")[:CHAT_MESSAGE_MAX_LENGTH]


def serialize_message(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "user_id": message.user_id,
        "username": message.user.username if message.user else "",
        "content": message.content,
        "created_at": message.created_at,
    }


def store_message(db: Session, user: User, content: str) -> ChatMessage:
    message = ChatMessage(user_id=user.id, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def recent_messages(db: Session, limit: int = CHAT_HISTORY_LIMIT) -> List[ChatMessage]:
    """Latest messages, returned oldest first."""
    messages = (
        db.query(ChatMessage)
        .options(joinedload(ChatMessage.user))
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(messages))


def message_frame(message: ChatMessage) -> Dict[str, Any]:
    return {
        "type": "message",
        "id": message.id,
        "userId": message.user_id,
        "username": message.user.username if message.user else "",
        "content": message.content,
        "timestamp": message.created_at.isoformat() if message.created_at else None,
    }


def system_frame(content: str) -> Dict[str, Any]:
    return {
        "type": "system",
        "userId": SYSTEM_USER_ID,
        "username": SYSTEM_USERNAME,
        "content": content,
        "timestamp": datetime.utcnow().isoformat(),
    }
