"""
Progress Models

Per-concept learning progress: attempts, item (flashcard) progress,
topic progress and the remedial question logs.
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from learning.utils.constants import (
    INITIAL_EASE,
    MAX_COMPREHENSION,
    MIN_COMPREHENSION,
)


Comprehension = Annotated[int, Field(ge=MIN_COMPREHENSION, le=MAX_COMPREHENSION)]

SpecialQuestionType = Literal["elaboration", "connection", "high-level"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Evaluation(BaseModel):
    """Scored judgement of a single answer."""

    model_config = ConfigDict(frozen=True)

    comprehension: Comprehension = Field(description="Demonstrated understanding, 0-5")
    response: str = Field(default="", description="Feedback shown to the learner")
    target_topic: Optional[str] = Field(default=None, description="Topic the answer was scored against")


class Attempt(BaseModel):
    """One answered question. Never modified once recorded."""

    model_config = ConfigDict(frozen=True)

    question: str
    user_answer: str
    evaluation: Evaluation
    timestamp: datetime = Field(default_factory=utc_now)


class ItemProgress(BaseModel):
    """Progress on one memorization item (e.g. a flashcard term)."""

    item_name: str
    attempts: list[Attempt] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0, description="Attempts scored at or above the success threshold")

    # Spaced repetition schedule, in flashcard positions within the concept
    ease_factor: float = INITIAL_EASE
    interval: int = 0
    last_review_position: int = 0
    next_due_position: int = 0


class TopicProgress(BaseModel):
    """Progress on one high-level topic of a concept."""

    topic_name: str
    current_comprehension: Comprehension = Field(default=MIN_COMPREHENSION, description="Highest score demonstrated so far")
    attempts: list[Attempt] = Field(default_factory=list)


class AbstractQuestion(BaseModel):
    """An abstract / synthesis question and the learner's answer."""

    question: str
    answer: str
    timestamp: datetime = Field(default_factory=utc_now)


class WeakTopic(BaseModel):
    topic: str
    comprehension: Comprehension


class SpecialQuestion(BaseModel):
    """A remedial question asked during memorization."""

    type: SpecialQuestionType
    question: str
    answer: str = ""
    target_item: Optional[str] = None
    connected_item: Optional[str] = None
    weak_topics: list[WeakTopic] = Field(default_factory=list)
    struggling_items: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class ConceptProgress(BaseModel):
    """Everything recorded for one concept of a course. Created on first use."""

    concept_name: str
    items_progress: dict[str, ItemProgress] = Field(default_factory=dict)
    topic_progress: dict[str, TopicProgress] = Field(default_factory=dict)
    abstract_questions_asked: list[AbstractQuestion] = Field(default_factory=list)
    special_questions_asked: list[SpecialQuestion] = Field(default_factory=list)
    global_position_counter: int = Field(default=0, ge=0, description="Flashcards shown for this concept")
