import uuid
from datetime import datetime
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .core.config import RATING_MAX, RATING_MIN
from .db import Base


REVIEW_STATUSES = ("played", "playing", "want_to_play", "dropped")


def generate_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    reviews = relationship("GameReview", back_populates="user", cascade="all, delete", passive_deletes=True)
    chat_messages = relationship("ChatMessage", back_populates="user", cascade="all, delete", passive_deletes=True)


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=generate_id)
    external_id = Column(String(64), unique=True, index=True, nullable=True)
    title = Column(String(200), nullable=False, index=True)
    release_date = Column(String(20), nullable=True)
    developer = Column(String(120), nullable=True)
    publisher = Column(String(120), nullable=True)
    cover_image_url = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reviews = relationship("GameReview", back_populates="game", cascade="all, delete", passive_deletes=True)
    tags = relationship("GameTag", secondary="game_tag_relations", back_populates="games")


class GameReview(Base):
    __tablename__ = "game_reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "game_id", name="uq_game_review"),
        CheckConstraint(
            f"rating >= {RATING_MIN} AND rating <= {RATING_MAX}",
            name="ck_game_review_rating",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="reviews")
    game = relationship("Game", back_populates="reviews")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", back_populates="chat_messages")


class GameTag(Base):
    __tablename__ = "game_tags"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(80), unique=True, nullable=False)

    games = relationship("Game", secondary="game_tag_relations", back_populates="tags")


class GameTagRelation(Base):
    __tablename__ = "game_tag_relations"

    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True, index=True)
    tag_id = Column(String(36), ForeignKey("game_tags.id", ondelete="CASCADE"), primary_key=True, index=True)


class UserFollow(Base):
    __tablename__ = "user_follows"
    __table_args__ = (
        CheckConstraint("follower_id != followed_id", name="ck_user_follow_self"),
    )

    follower_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    followed_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    follower = relationship("User", foreign_keys=[follower_id])
    followed = relationship("User", foreign_keys=[followed_id])
