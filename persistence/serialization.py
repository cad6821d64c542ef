"""
Storage representation of a learning session.

Nested progress maps are written as explicit sequences of records, each
carrying its own key (concept_name, item_name, topic_name), so the stored
form does not depend on how a backend orders map keys. Attempt order is
kept exactly.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from learning.models.progress import (
    AbstractQuestion,
    ConceptProgress,
    ItemProgress,
    SpecialQuestion,
    TopicProgress,
)
from learning.models.session import ConversationEntry, LearningSession, Phase


class ConceptProgressDocument(BaseModel):
    concept_name: str
    items_progress: list[ItemProgress] = Field(default_factory=list)
    topic_progress: list[TopicProgress] = Field(default_factory=list)
    abstract_questions_asked: list[AbstractQuestion] = Field(default_factory=list)
    special_questions_asked: list[SpecialQuestion] = Field(default_factory=list)
    global_position_counter: int = 0


class SessionDocument(BaseModel):
    user_id: str
    course_id: str
    current_phase: Phase
    current_concept: Optional[str] = None
    concepts_progress: list[ConceptProgressDocument] = Field(default_factory=list)
    conversation_history: list[ConversationEntry] = Field(default_factory=list)
    existing_understanding: str
    time_available: str
    start_time: datetime
    last_activity_time: datetime


def session_to_document(session: LearningSession) -> SessionDocument:
    concepts = [
        ConceptProgressDocument(
            concept_name=concept_name,
            items_progress=list(progress.items_progress.values()),
            topic_progress=list(progress.topic_progress.values()),
            abstract_questions_asked=progress.abstract_questions_asked,
            special_questions_asked=progress.special_questions_asked,
            global_position_counter=progress.global_position_counter,
        )
        for concept_name, progress in session.concepts_progress.items()
    ]

    return SessionDocument(
        user_id=session.user_id,
        course_id=session.course_id,
        current_phase=session.current_phase,
        current_concept=session.current_concept,
        concepts_progress=concepts,
        conversation_history=session.conversation_history,
        existing_understanding=session.existing_understanding,
        time_available=session.time_available,
        start_time=session.start_time,
        last_activity_time=session.last_activity_time,
    )


def document_to_session(document: SessionDocument) -> LearningSession:
    concepts_progress = {
        doc.concept_name: ConceptProgress(
            concept_name=doc.concept_name,
            items_progress={item.item_name: item for item in doc.items_progress},
            topic_progress={topic.topic_name: topic for topic in doc.topic_progress},
            abstract_questions_asked=doc.abstract_questions_asked,
            special_questions_asked=doc.special_questions_asked,
            global_position_counter=doc.global_position_counter,
        )
        for doc in document.concepts_progress
    }

    return LearningSession(
        user_id=document.user_id,
        course_id=document.course_id,
        current_phase=document.current_phase,
        current_concept=document.current_concept,
        concepts_progress=concepts_progress,
        conversation_history=document.conversation_history,
        existing_understanding=document.existing_understanding,
        time_available=document.time_available,
        start_time=document.start_time,
        last_activity_time=document.last_activity_time,
    )


def dump_session(session: LearningSession) -> str:
    return session_to_document(session).model_dump_json()


def load_session(payload: str | bytes) -> LearningSession:
    """Rebuild a session from dump_session output. Raises pydantic.ValidationError on bad input."""
    return document_to_session(SessionDocument.model_validate_json(payload))
