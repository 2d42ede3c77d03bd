"""Database models for users and their word review progress."""
import enum
import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from quickswipe.config import INITIAL_EASE_FACTOR
from quickswipe.models.base import Base, TimestampMixin


def new_id() -> str:
    """Generate an opaque record identifier."""
    return str(uuid.uuid4())


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to timestamps read back without a zone (SQLite drops it)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class WordStatus(str, enum.Enum):
    """Mastery status of a word for a user."""
    UNKNOWN = "unknown"
    KNOWN = "known"


class User(Base, TimestampMixin):
    """User model."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    api_token = Column(String, unique=True, nullable=False, index=True)
    telegram_id = Column(Integer, unique=True, nullable=True)
    username = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False)

    # Relationships
    progress = relationship(
        "WordProgress",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class WordProgress(Base, TimestampMixin):
    """Spaced repetition state of one word for one user."""

    __tablename__ = "word_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "word_id", name="uq_word_progress_user_word"),
    )

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    word_id = Column(Integer, nullable=False)
    ease_factor = Column(Float, nullable=False, default=INITIAL_EASE_FACTOR)
    interval = Column(Integer, nullable=False, default=1)  # in days
    repetitions = Column(Integer, nullable=False, default=0)
    next_review_date = Column(DateTime(timezone=True), nullable=True)
    last_review_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(
            WordStatus,
            name="word_status",
            values_callable=lambda statuses: [status.value for status in statuses],
        ),
        nullable=False,
        default=WordStatus.UNKNOWN,
    )

    # Relationships
    user = relationship("User", back_populates="progress")

    def to_dict(self) -> dict:
        """Serialize the record the way the progress endpoints expose it."""
        next_review_date = as_utc(self.next_review_date)
        last_review_date = as_utc(self.last_review_date)
        return {
            "id": self.id,
            "userId": self.user_id,
            "wordId": self.word_id,
            "easeFactor": self.ease_factor,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "nextReviewDate": next_review_date.isoformat() if next_review_date else None,
            "lastReviewDate": last_review_date.isoformat() if last_review_date else None,
            "status": self.status.value if self.status else None,
        }
