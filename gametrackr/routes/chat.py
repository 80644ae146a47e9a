from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import User
from ..schemas import ChatMessageIn, ChatMessageOut
from ..services.chat import (
    message_frame,
    normalize_message,
    recent_messages,
    serialize_message,
    store_message,
)
from ..websocket import chat_manager
from .deps import get_current_user

router = APIRouter()


@router.get("/messages", response_model=List[ChatMessageOut])
def list_messages(db: Session = Depends(get_db)):
    return [serialize_message(message) for message in recent_messages(db)]


@router.post("/messages", response_model=ChatMessageOut, status_code=status.HTTP_201_CREATED)
async def post_message(
    payload: ChatMessageIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    content = normalize_message(payload.content)
    if not content:
        raise HTTPException(status_code=400, detail="Message is empty")

    message = store_message(db, current_user, content)
    await chat_manager.broadcast(message_frame(message))
    return serialize_message(message)
