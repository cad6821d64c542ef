"""SQLAlchemy ORM database models."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LearningSessionRecord(Base):
    """Learning session table - one row per (user, course) pair."""
    __tablename__ = "learning_sessions"

    id = Column(String, primary_key=True)  # uuid4; rows are looked up by (user_id, course_id)
    user_id = Column(String, nullable=False)
    course_id = Column(String, nullable=False)
    current_phase = Column(String, nullable=False)  # Denormalized for listing
    current_concept = Column(String, nullable=True)
    state_json = Column(Text, nullable=False)  # Full SessionDocument serialized
    created_at = Column(DateTime(timezone=True), default=_utc_now)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_session_user_course"),
        Index("idx_session_user_updated", "user_id", "updated_at"),
    )


class CourseRecord(Base):
    """Course table - course content as authored."""
    __tablename__ = "courses"

    name = Column(String, primary_key=True)
    course_json = Column(Text, nullable=False)  # Course serialized with its document aliases
    created_at = Column(DateTime(timezone=True), default=_utc_now)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)
