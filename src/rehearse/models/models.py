"""Database models for speeches and their practice history."""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from rehearse.models.base import Base, TimestampMixin


class Speech(Base, TimestampMixin):
    """Speech model."""

    __tablename__ = "speeches"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    title = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    goal_date = Column(Date, nullable=True)
    visibility_percent = Column(Float, default=100.0)
    cued_text = Column(Text, nullable=True)  # hidden words wrapped in brackets
    target_visibility_percent = Column(Float, default=100.0)  # what the deadline and trend allow

    # Relationships
    card = relationship("PracticeCard", back_populates="speech", uselist=False)
    mastery = relationship("WordMastery", back_populates="speech")
    sessions = relationship("PracticeSession", back_populates="speech")


class PracticeCard(Base, TimestampMixin):
    """Spaced repetition state of a speech."""

    __tablename__ = "practice_cards"

    id = Column(Integer, primary_key=True)
    speech_id = Column(Integer, ForeignKey("speeches.id"), unique=True, nullable=False)
    state = Column(String, default="new")  # new, learning, review, relearning
    interval_minutes = Column(Integer, default=0)
    ease_factor = Column(Float, default=2.5)
    learning_step = Column(Integer, default=0)
    consecutive_struggles = Column(Integer, default=0)
    last_accuracy = Column(Float, nullable=True)
    performance_trend = Column(Float, default=0.0)  # -1 (declining) to +1 (improving)
    next_review_at = Column(DateTime(timezone=True), nullable=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_count = Column(Integer, default=0)

    # Relationships
    speech = relationship("Speech", back_populates="card")


class WordMastery(Base, TimestampMixin):
    """Per-word performance history within a speech."""

    __tablename__ = "word_mastery"
    __table_args__ = (UniqueConstraint("speech_id", "word", name="uq_word_mastery_speech_word"),)

    id = Column(Integer, primary_key=True)
    speech_id = Column(Integer, ForeignKey("speeches.id"), nullable=False)
    word = Column(String, nullable=False)  # normalized form
    correct_count = Column(Integer, default=0)
    missed_count = Column(Integer, default=0)
    hesitated_count = Column(Integer, default=0)
    is_simple = Column(Boolean, default=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    speech = relationship("Speech", back_populates="mastery")


class PracticeSession(Base, TimestampMixin):
    """Completed practice attempt."""

    __tablename__ = "practice_sessions"

    id = Column(Integer, primary_key=True)
    speech_id = Column(Integer, ForeignKey("speeches.id"), nullable=False)
    accuracy = Column(Float, nullable=False)
    weighted_accuracy = Column(Float, nullable=False)
    visibility_percent = Column(Float, nullable=False)
    duration_seconds = Column(Float, default=0.0)
    correct_count = Column(Integer, default=0)
    hesitated_count = Column(Integer, default=0)
    skipped_count = Column(Integer, default=0)
    missed_count = Column(Integer, default=0)
    user_rating = Column(String, nullable=True)  # again, hard, good, easy
    strategy = Column(String, nullable=False)  # sm2, adaptive

    # Relationships
    speech = relationship("Speech", back_populates="sessions")
