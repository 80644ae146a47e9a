from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from ..models import GameReview, User, UserFollow
from ..schemas import UserListOut, UserOut, UserProfileOut, UserUpdate
from ..services.reviews import serialize_review
from ..services.sanitize import clean_optional
from ..services.security import hash_password
from .deps import get_current_user

router = APIRouter()

_AVATAR_URL = "https://api.dicebear.com/7.x/identicon/svg?seed={seed}"


def generated_avatar(username: str) -> str:
    return _AVATAR_URL.format(seed=quote(username))


def _serialize_public_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "avatar_url": user.avatar_url or generated_avatar(user.username),
        "bio": user.bio,
        "created_at": user.created_at,
    }


def _get_user_or_404(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _follow_counts(db: Session, user_id: str) -> tuple[int, int]:
    followers = db.query(func.count(UserFollow.follower_id)).filter(UserFollow.followed_id == user_id).scalar() or 0
    following = db.query(func.count(UserFollow.followed_id)).filter(UserFollow.follower_id == user_id).scalar() or 0
    return int(followers), int(following)


@router.get("/", response_model=UserListOut)
def list_users(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(User)
    total = query.count()
    users = query.order_by(User.username.asc()).offset(offset).limit(limit).all()
    return {
        "users": [_serialize_public_user(user) for user in users],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserOut)
def update_me(
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.email is not None:
        email = str(payload.email).lower()
        taken = (
            db.query(User)
            .filter(func.lower(User.email) == email, User.id != current_user.id)
            .first()
        )
        if taken:
            raise HTTPException(status_code=409, detail="Email already exists")
        current_user.email = email
    if payload.password is not None:
        current_user.password_hash = hash_password(payload.password)
    if payload.avatar_url is not None:
        current_user.avatar_url = payload.avatar_url.strip() or None
    if payload.bio is not None:
        current_user.bio = clean_optional(payload.bio)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.get("/{username}", response_model=UserProfileOut)
def get_user_profile(username: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, username)
    reviews = (
        db.query(GameReview)
        .options(joinedload(GameReview.game), joinedload(GameReview.user))
        .filter(GameReview.user_id == user.id)
        .order_by(GameReview.created_at.desc())
        .all()
    )
    followers, following = _follow_counts(db, user.id)
    return {
        "user": _serialize_public_user(user),
        "reviews": [serialize_review(review) for review in reviews],
        "followers": followers,
        "following": following,
    }


@router.post("/{username}/follow")
def follow_user(
    username: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    target = _get_user_or_404(db, username)
    if target.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    existing = (
        db.query(UserFollow)
        .filter(UserFollow.follower_id == current_user.id, UserFollow.followed_id == target.id)
        .first()
    )
    if not existing:
        db.add(UserFollow(follower_id=current_user.id, followed_id=target.id))
        db.commit()
    followers, _ = _follow_counts(db, target.id)
    return {"username": target.username, "following": True, "followers": followers}


@router.delete("/{username}/follow")
def unfollow_user(
    username: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    target = _get_user_or_404(db, username)
    if target.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    db.query(UserFollow).filter(
        UserFollow.follower_id == current_user.id,
        UserFollow.followed_id == target.id,
    ).delete(synchronize_session=False)
    db.commit()
    followers, _ = _follow_counts(db, target.id)
    return {"username": target.username, "following": False, "followers": followers}


def _follow_page(users_query, limit: int, offset: int) -> dict:
    total = users_query.count()
    users = users_query.order_by(User.username.asc()).offset(offset).limit(limit).all()
    return {
        "users": [_serialize_public_user(user) for user in users],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{username}/followers", response_model=UserListOut)
def list_followers(
    username: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, username)
    query = (
        db.query(User)
        .join(UserFollow, UserFollow.follower_id == User.id)
        .filter(UserFollow.followed_id == target.id)
    )
    return _follow_page(query, limit, offset)


@router.get("/{username}/following", response_model=UserListOut)
def list_following(
    username: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, username)
    query = (
        db.query(User)
        .join(UserFollow, UserFollow.followed_id == User.id)
        .filter(UserFollow.follower_id == target.id)
    )
    return _follow_page(query, limit, offset)
