from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..core.config import AUTH_COOKIE_NAME
from ..db import get_db
from ..models import User
from ..services.igdb import IGDBClient, get_igdb_client
from ..services.security import decode_access_token


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(AUTH_COOKIE_NAME) or None


def user_from_token(db: Session, token: Optional[str]) -> Optional[User]:
    payload = decode_access_token(token)
    if not payload:
        return None
    return db.query(User).filter(User.id == str(payload["sub"])).first()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user = user_from_token(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return user


def get_igdb() -> IGDBClient:
    return get_igdb_client()
