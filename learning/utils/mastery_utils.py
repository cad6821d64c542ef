"""
Mastery rules.

Pure functions answering "is this mastered?" and "what is left?" over a
session's recorded progress. Absent progress always reads as not mastered.
"""

from typing import Iterable, Optional

from learning.models.session import LearningSession
from learning.utils.constants import (
    HIGH_LEVEL_CONCEPT,
    ITEM_MASTERY_SUCCESSES,
    MIN_COMPREHENSION,
    OVERVIEW_TOPIC_THRESHOLD,
    TOPIC_MASTERY_COMPREHENSION,
)


def is_item_mastered(session: LearningSession, concept_name: str, item_name: str) -> bool:
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        return False

    item = concept.items_progress.get(item_name)
    return item is not None and item.success_count >= ITEM_MASTERY_SUCCESSES


def unmastered_items(
    session: LearningSession,
    concept_name: str,
    all_items: Optional[Iterable[str]] = None,
) -> set[str]:
    """
    Items of a concept that still need work.

    Recorded items below the success requirement are always included. When
    the caller passes the concept's full item list, items never attempted
    are included too.
    """
    concept = session.concepts_progress.get(concept_name)
    recorded = concept.items_progress if concept else {}

    remaining = {
        name for name, item in recorded.items()
        if item.success_count < ITEM_MASTERY_SUCCESSES
    }
    if all_items is not None:
        remaining.update(name for name in all_items if name not in recorded)
    return remaining


def topic_threshold(concept_name: str) -> int:
    """
    Comprehension a topic needs before it stops counting as unmastered.

    Overview topics (tracked under the "high-level" concept) only need to be
    good enough to proceed; deep-dive topics need full mastery.
    """
    if concept_name == HIGH_LEVEL_CONCEPT:
        return OVERVIEW_TOPIC_THRESHOLD
    return TOPIC_MASTERY_COMPREHENSION


def is_topic_mastered(session: LearningSession, concept_name: str, topic_name: str) -> bool:
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        return False

    topic = concept.topic_progress.get(topic_name)
    return topic is not None and topic.current_comprehension >= TOPIC_MASTERY_COMPREHENSION


def topics_comprehension(
    session: LearningSession,
    concept_name: str,
    all_topics: Iterable[str],
) -> dict[str, int]:
    """Current comprehension for every topic, 0 for topics never attempted."""
    concept = session.concepts_progress.get(concept_name)
    recorded = concept.topic_progress if concept else {}

    return {
        topic: recorded[topic].current_comprehension if topic in recorded else MIN_COMPREHENSION
        for topic in all_topics
    }


def unmastered_topics(
    session: LearningSession,
    concept_name: str,
    all_topics: Iterable[str],
) -> list[str]:
    """Topics below the concept's threshold, in the order given."""
    threshold = topic_threshold(concept_name)
    return [
        topic
        for topic, comprehension in topics_comprehension(session, concept_name, all_topics).items()
        if comprehension < threshold
    ]
