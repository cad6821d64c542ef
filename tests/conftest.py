"""Pytest configuration and shared fixtures."""
import pytest

from config import Settings
from learning.models.course import Concept, Course, MemorizeField
from learning.models.progress import Attempt, Evaluation
from learning.models.session import LearningSession


@pytest.fixture
def settings():
    """Settings for an in-memory backend, isolated from any .env file."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        database_url="sqlite://",
        evaluator_url="http://evaluator.test",
        evaluator_timeout_seconds=0.5,
    )


@pytest.fixture
def wine_course():
    """A two-concept course with overview topics and flashcards."""
    return Course(
        name="Wine Tasting",
        background_knowledge=["Acidity", "Sweetness", "Body"],
        concepts=[
            Concept(
                name="Wine",
                high_level=["Tannin structure", "Acidity balance"],
                memorize=MemorizeField(fields=["definition"], items=["Tannin", "Acidity", "Body"]),
            ),
            Concept(
                name="Cheese",
                high_level=["Rind types"],
                memorize=MemorizeField(fields=["texture"], items=["Brie", "Cheddar"]),
            ),
        ],
        drawing_connections=["Pairing wine with cheese"],
    )


@pytest.fixture
def session():
    """A fresh session in the initialization phase."""
    return LearningSession(user_id="user-1", course_id="Wine Tasting")


@pytest.fixture
def make_attempt():
    """Factory for attempts with a given score."""
    def _make(comprehension: int, target_topic=None, question="Q?", answer="A.", response="ok"):
        return Attempt(
            question=question,
            user_answer=answer,
            evaluation=Evaluation(
                comprehension=comprehension,
                response=response,
                target_topic=target_topic,
            ),
        )
    return _make
