"""Pydantic API request/response schemas."""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from learning.models.progress import SpecialQuestionType
from learning.models.session import LearningSession, Phase
from learning.services.phase_service import PhaseSignal
from learning.utils.report_utils import ProgressReport
from learning.utils.selection_utils import ConnectionPair


class StartSessionRequest(BaseModel):
    """Request to start (or resume) the session for a course."""
    course_id: str
    existing_understanding: Optional[str] = None
    time_available: Optional[str] = None


class UpdateSessionRequest(BaseModel):
    """Phase change and/or preference update. Omitted fields are left alone."""
    phase: Optional[Phase] = None
    concept: Optional[str] = None
    existing_understanding: Optional[str] = None
    time_available: Optional[str] = None


class AnswerRequest(BaseModel):
    """A learner's answer to the question they were just asked."""
    question: str
    answer: str
    concept: Optional[str] = None  # Defaults to the session's current concept
    item: Optional[str] = None  # Memorization only


class SpecialQuestionRequest(BaseModel):
    """A remedial question asked for a concept the learner already engaged."""
    concept: str
    type: SpecialQuestionType
    question: str
    answer: str = ""
    target_item: Optional[str] = None
    connected_item: Optional[str] = None


class AnswerOutcome(BaseModel):
    """Result of scoring and recording one answer."""
    phase: Phase
    concept: Optional[str] = None
    comprehension: int
    response: str = ""
    target_topic: Optional[str] = None
    follow_up: Optional[str] = None
    readiness: PhaseSignal
    connection: Optional[ConnectionPair] = None
    next_item: Optional[str] = Field(default=None, description="Next flashcard due, memorization only")
    skipped: bool = False


class SessionView(BaseModel):
    """Session summary returned by the session endpoints."""
    user_id: str
    course_id: str
    current_phase: Phase
    current_concept: Optional[str] = None
    existing_understanding: str
    time_available: str
    start_time: datetime
    last_activity_time: datetime
    message_count: int = 0
    created: bool = False
    progress: Optional[ProgressReport] = None

    @classmethod
    def from_session(
        cls,
        session: LearningSession,
        created: bool = False,
        progress: Optional[ProgressReport] = None,
    ) -> "SessionView":
        return cls(
            user_id=session.user_id,
            course_id=session.course_id,
            current_phase=session.current_phase,
            current_concept=session.current_concept,
            existing_understanding=session.existing_understanding,
            time_available=session.time_available,
            start_time=session.start_time,
            last_activity_time=session.last_activity_time,
            message_count=len(session.conversation_history),
            created=created,
            progress=progress,
        )


class ConnectionResponse(BaseModel):
    """Best-performing / worst-struggling pair for a concept, if any."""
    concept: str
    pair: Optional[ConnectionPair] = None


class CourseListResponse(BaseModel):
    courses: List[str]
