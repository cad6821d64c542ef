"""
Learning Session Model

The unit of learner state for one (user, course) pair.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from learning.models.progress import ConceptProgress, utc_now


Phase = Literal[
    "initialization",
    "high-level",
    "concept-learning",
    "memorization",
    "drawing-connections",
]

PHASE_ORDER: tuple[Phase, ...] = (
    "initialization",
    "high-level",
    "concept-learning",
    "memorization",
    "drawing-connections",
)


class ConversationEntry(BaseModel):
    """Individual message in the tutoring conversation."""

    role: Literal["user", "assistant"] = Field(description="Role of the message sender")
    content: str = Field(description="Message content text")
    timestamp: datetime = Field(default_factory=utc_now, description="When the message was created")


class LearningSession(BaseModel):
    """Complete learner state for one course."""

    # Identification
    user_id: str = Field(frozen=True)
    course_id: str = Field(frozen=True)

    # Phase pointer
    current_phase: Phase = "initialization"
    current_concept: Optional[str] = None

    # Progress
    concepts_progress: dict[str, ConceptProgress] = Field(default_factory=dict)
    conversation_history: list[ConversationEntry] = Field(default_factory=list)

    # Learner preferences
    existing_understanding: str = "Some - I know the basics"
    time_available: str = "15-60min"

    # Timing
    start_time: datetime = Field(default_factory=utc_now, frozen=True)
    last_activity_time: datetime = Field(default_factory=utc_now)

    @property
    def session_key(self) -> str:
        return f"{self.user_id}:{self.course_id}"

    def touch(self) -> None:
        self.last_activity_time = utc_now()

    def get_concept_progress(self, concept_name: str) -> Optional[ConceptProgress]:
        return self.concepts_progress.get(concept_name)

    def recent_history(self, limit: int) -> list[ConversationEntry]:
        return self.conversation_history[-limit:] if limit > 0 else []

    def add_conversation_entry(self, role: str, content: str) -> ConversationEntry:
        """Append a message to the conversation log."""
        entry = ConversationEntry(role=role, content=content)
        self.conversation_history.append(entry)
        self.touch()
        return entry


def create_learning_session(
    course_id: str,
    user_id: str,
    existing_understanding: Optional[str] = None,
    time_available: Optional[str] = None,
) -> LearningSession:
    """Factory for a fresh session in the initialization phase."""
    session = LearningSession(user_id=user_id, course_id=course_id)
    if existing_understanding:
        session.existing_understanding = existing_understanding
    if time_available:
        session.time_available = time_available
    return session
