import re
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .core.config import (
    CHAT_MESSAGE_MAX_LENGTH,
    MIN_PASSWORD_LENGTH,
    RATING_MAX,
    RATING_MIN,
    REVIEW_MAX_LENGTH,
)
from .models import REVIEW_STATUSES
from .services.sanitize import clean_text, is_encodable

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _validate_text(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_encodable(value):
        raise ValueError("must be valid UTF-8 text")
    return value


def _validate_password(value: str) -> str:
    _validate_text(value)
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(value) > 100:
        raise ValueError("cannot exceed 100 characters")
    return value


def _validate_review_content(value: str) -> str:
    cleaned = clean_text(_validate_text(value))
    if not cleaned:
        raise ValueError("Review content is required")
    if len(cleaned) > REVIEW_MAX_LENGTH:
        raise ValueError(f"cannot exceed {REVIEW_MAX_LENGTH} characters")
    return cleaned


def _validate_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in REVIEW_STATUSES:
        raise ValueError(f"must be one of {', '.join(REVIEW_STATUSES)}")
    return normalized


class UserCreate(BaseModel):
    username: str
    email: EmailStr
    password: str

    @field_validator("username")
    @classmethod
    def username_format(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("must be at least 3 characters")
        if len(value) > 30:
            raise ValueError("cannot exceed 30 characters")
        if not _USERNAME_RE.match(value):
            raise ValueError("can only contain letters, numbers, underscores, and hyphens")
        return value

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        return _validate_password(value)


class UserLogin(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(min_length=1)

    @field_validator("username", "email", "password")
    @classmethod
    def identifier_text(cls, value: Optional[str]) -> Optional[str]:
        return _validate_text(value)

    @model_validator(mode="after")
    def require_identifier(self):
        if not (self.username or self.email):
            raise ValueError("Username and password are required")
        return self


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("password")
    @classmethod
    def password_length(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_password(value)

    @field_validator("bio")
    @classmethod
    def bio_text(cls, value: Optional[str]) -> Optional[str]:
        return _validate_text(value)


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserPublicOut(BaseModel):
    id: str
    username: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthOut(BaseModel):
    user: UserOut
    token: str
    token_type: str = "bearer"


class CurrentUserOut(BaseModel):
    user: UserOut


class UserListOut(BaseModel):
    users: List[UserPublicOut]
    total: int
    limit: int
    offset: int


class GameIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    release_date: Optional[str] = Field(default=None, max_length=20)
    developer: Optional[str] = Field(default=None, max_length=120)
    publisher: Optional[str] = Field(default=None, max_length=120)
    cover_image_url: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", "developer", "publisher", "description")
    @classmethod
    def text_fields(cls, value: Optional[str]) -> Optional[str]:
        return _validate_text(value)


class GameOut(BaseModel):
    id: str
    external_id: Optional[str] = None
    title: str
    release_date: Optional[str] = None
    developer: Optional[str] = None
    publisher: Optional[str] = None
    cover_image_url: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    avg_rating: float = 0.0
    review_count: int = 0
    created_at: Optional[datetime] = None


class GamePageOut(BaseModel):
    games: List[GameOut]
    total: int
    limit: int
    offset: int


class RatingStatsOut(BaseModel):
    game_id: str
    average_rating: float
    rating_count: int


class ReviewIn(BaseModel):
    game_id: str = Field(alias="gameId", min_length=1)
    rating: int = Field(ge=RATING_MIN, le=RATING_MAX)
    content: str
    status: Optional[str] = None
    game_title: Optional[str] = Field(default=None, alias="gameTitle", max_length=200)
    game_cover_url: Optional[str] = Field(default=None, alias="gameCoverUrl", max_length=500)

    class Config:
        populate_by_name = True

    @field_validator("game_id", "game_title")
    @classmethod
    def game_reference_text(cls, value: Optional[str]) -> Optional[str]:
        return _validate_text(value)

    @field_validator("content")
    @classmethod
    def content_required(cls, value: str) -> str:
        return _validate_review_content(value)

    @field_validator("status")
    @classmethod
    def status_known(cls, value: Optional[str]) -> Optional[str]:
        return _validate_status(value)


class GameReviewIn(BaseModel):
    rating: int = Field(ge=RATING_MIN, le=RATING_MAX)
    content: str
    status: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_required(cls, value: str) -> str:
        return _validate_review_content(value)

    @field_validator("status")
    @classmethod
    def status_known(cls, value: Optional[str]) -> Optional[str]:
        return _validate_status(value)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=RATING_MIN, le=RATING_MAX)
    content: Optional[str] = None
    status: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_required(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_review_content(value)

    @field_validator("status")
    @classmethod
    def status_known(cls, value: Optional[str]) -> Optional[str]:
        return _validate_status(value)

    @model_validator(mode="after")
    def require_any_field(self):
        if self.rating is None and self.content is None and self.status is None:
            raise ValueError("At least one field must be provided for update")
        return self


class ReviewOut(BaseModel):
    id: str
    game_id: str
    user_id: str
    username: str
    rating: int
    content: str
    status: Optional[str] = None
    game_title: Optional[str] = None
    game_cover_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ReviewEnvelopeOut(BaseModel):
    review: ReviewOut


class ReviewListOut(BaseModel):
    reviews: List[ReviewOut]


class ReviewPageOut(BaseModel):
    reviews: List[ReviewOut]
    total: int
    limit: int
    offset: int


class UserProfileOut(BaseModel):
    user: UserPublicOut
    reviews: List[ReviewOut]
    followers: int = 0
    following: int = 0


class ChatMessageIn(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_length(cls, value: str) -> str:
        _validate_text(value)
        if len(value) > CHAT_MESSAGE_MAX_LENGTH:
            raise ValueError(f"cannot exceed {CHAT_MESSAGE_MAX_LENGTH} characters")
        return value


class ChatMessageOut(BaseModel):
    id: str
    user_id: str
    username: str
    content: str
    created_at: datetime
