import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import ACCESS_TOKEN_EXPIRE_MINUTES, AUTH_COOKIE_NAME, AUTH_COOKIE_SECURE
from ..db import get_db
from ..models import User
from ..schemas import AuthOut, CurrentUserOut, UserCreate, UserLogin
from ..services.security import create_access_token, hash_password, verify_password
from .deps import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=AUTH_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, response: Response, db: Session = Depends(get_db)):
    email = str(payload.email).lower()
    if db.query(User).filter(func.lower(User.username) == payload.username.lower()).first():
        raise HTTPException(status_code=409, detail="Username already exists")
    if db.query(User).filter(func.lower(User.email) == email).first():
        raise HTTPException(status_code=409, detail="Email already exists")

    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.username)

    token = create_access_token(user)
    _set_auth_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/login", response_model=AuthOut)
def login(payload: UserLogin, response: Response, db: Session = Depends(get_db)):
    query = db.query(User)
    if payload.username:
        user = query.filter(func.lower(User.username) == payload.username.strip().lower()).first()
    else:
        user = query.filter(func.lower(User.email) == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)

    token = create_access_token(user)
    _set_auth_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout():
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(AUTH_COOKIE_NAME, path="/")
    return response


@router.get("/me", response_model=CurrentUserOut)
def me(current_user: User = Depends(get_current_user)):
    return {"user": current_user}
