"""
Progress mutation operations.

The only code that writes into a session's concept progress. Every
operation either applies completely (including the activity timestamp)
or raises before touching anything.
"""

from typing import Optional

from learning.exceptions import ConceptNotFoundError, InvalidAttemptError
from learning.models.progress import (
    AbstractQuestion,
    Attempt,
    ConceptProgress,
    ItemProgress,
    SpecialQuestion,
    TopicProgress,
)
from learning.models.session import LearningSession
from learning.utils.constants import SUCCESS_COMPREHENSION


def ensure_concept_progress(session: LearningSession, concept_name: str) -> ConceptProgress:
    """Return the concept's progress, creating an empty record on first use."""
    progress = session.concepts_progress.get(concept_name)
    if progress is None:
        progress = ConceptProgress(concept_name=concept_name)
        session.concepts_progress[concept_name] = progress
    return progress


def is_success(attempt: Attempt) -> bool:
    return attempt.evaluation.comprehension >= SUCCESS_COMPREHENSION


def record_item_attempt(
    session: LearningSession,
    concept_name: str,
    item_name: str,
    attempt: Attempt,
) -> ItemProgress:
    """Append a flashcard attempt; a success bumps the item's success count."""
    concept = ensure_concept_progress(session, concept_name)

    item = concept.items_progress.get(item_name)
    if item is None:
        item = ItemProgress(item_name=item_name)
        concept.items_progress[item_name] = item

    item.attempts.append(attempt)
    if is_success(attempt):
        item.success_count += 1

    session.touch()
    return item


def record_topic_attempt(
    session: LearningSession,
    concept_name: str,
    attempt: Attempt,
) -> TopicProgress:
    """
    Append a topic attempt and raise the topic's comprehension if it improved.

    Comprehension never goes down: a weaker answer only means the learner did
    not show a higher level this time.

    Raises:
        InvalidAttemptError: The evaluation does not name a target topic.
    """
    topic_name = attempt.evaluation.target_topic
    if not topic_name:
        raise InvalidAttemptError("target_topic", "topic attempts must name the topic they were scored against")

    concept = ensure_concept_progress(session, concept_name)

    topic = concept.topic_progress.get(topic_name)
    if topic is None:
        topic = TopicProgress(topic_name=topic_name)
        concept.topic_progress[topic_name] = topic

    topic.attempts.append(attempt)
    topic.current_comprehension = max(topic.current_comprehension, attempt.evaluation.comprehension)

    session.touch()
    return topic


def record_abstract_qa(
    session: LearningSession,
    concept_name: str,
    question: str,
    answer: str,
) -> AbstractQuestion:
    entry = AbstractQuestion(question=question, answer=answer)
    ensure_concept_progress(session, concept_name).abstract_questions_asked.append(entry)
    session.touch()
    return entry


def record_special_question(
    session: LearningSession,
    concept_name: str,
    question: SpecialQuestion,
) -> SpecialQuestion:
    """
    Log a remedial question for a concept the learner has already engaged.

    Raises:
        ConceptNotFoundError: The concept has no progress yet.
    """
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        raise ConceptNotFoundError(concept_name)

    concept.special_questions_asked.append(question)
    session.touch()
    return question


def advance_position(session: LearningSession, concept_name: str) -> int:
    """
    Count one more flashcard shown for a concept and return the new position.

    Raises:
        ConceptNotFoundError: The concept has no progress yet.
    """
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        raise ConceptNotFoundError(concept_name)

    concept.global_position_counter += 1
    return concept.global_position_counter


def get_position(session: LearningSession, concept_name: str) -> int:
    concept = session.concepts_progress.get(concept_name)
    return concept.global_position_counter if concept else 0


def get_item_progress(
    session: LearningSession,
    concept_name: str,
    item_name: str,
) -> Optional[ItemProgress]:
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        return None
    return concept.items_progress.get(item_name)
