"""
Selection algorithms for remedial questioning.

Mean-based struggling/performing selection is a separate policy from the
success-count mastery rule; the two are intentionally not unified.
"""

from typing import Iterable, Optional
from pydantic import BaseModel

from learning.models.progress import ItemProgress, WeakTopic
from learning.models.session import LearningSession
from learning.utils.constants import (
    PERFORMING_THRESHOLD,
    STRUGGLING_THRESHOLD,
    TOPIC_MASTERY_COMPREHENSION,
)
from learning.utils.mastery_utils import topics_comprehension


class ItemScore(BaseModel):
    item: str
    average_comprehension: float


class ConnectionPair(BaseModel):
    """A well-known item to bridge from and a struggling item to bridge to."""

    performing_item: str
    struggling_item: str


def average_comprehension(item: ItemProgress) -> Optional[float]:
    if not item.attempts:
        return None
    return sum(a.evaluation.comprehension for a in item.attempts) / len(item.attempts)


def _scored_items(session: LearningSession, concept_name: str) -> list[ItemScore]:
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        return []

    scores = []
    for name, item in concept.items_progress.items():
        mean = average_comprehension(item)
        if mean is not None:
            scores.append(ItemScore(item=name, average_comprehension=mean))
    return scores


def struggling_items(
    session: LearningSession,
    concept_name: str,
    threshold: float = STRUGGLING_THRESHOLD,
) -> list[ItemScore]:
    """Attempted items with mean comprehension <= threshold, worst first."""
    selected = [s for s in _scored_items(session, concept_name) if s.average_comprehension <= threshold]
    return sorted(selected, key=lambda s: s.average_comprehension)


def performing_items(
    session: LearningSession,
    concept_name: str,
    threshold: float = PERFORMING_THRESHOLD,
) -> list[ItemScore]:
    """Attempted items with mean comprehension >= threshold, best first."""
    selected = [s for s in _scored_items(session, concept_name) if s.average_comprehension >= threshold]
    return sorted(selected, key=lambda s: s.average_comprehension, reverse=True)


def last_attempt_comprehension(
    session: LearningSession,
    concept_name: str,
    item_name: str,
) -> Optional[int]:
    concept = session.concepts_progress.get(concept_name)
    if concept is None:
        return None

    item = concept.items_progress.get(item_name)
    if item is None or not item.attempts:
        return None
    return item.attempts[-1].evaluation.comprehension


def weak_topics(
    session: LearningSession,
    concept_name: str,
    all_topics: Iterable[str],
) -> list[WeakTopic]:
    """Topics short of full mastery, weakest first."""
    weak = [
        WeakTopic(topic=topic, comprehension=score)
        for topic, score in topics_comprehension(session, concept_name, all_topics).items()
        if score < TOPIC_MASTERY_COMPREHENSION
    ]
    return sorted(weak, key=lambda w: w.comprehension)


def connection_pair(
    session: LearningSession,
    concept_name: str,
    anchor_item: Optional[str] = None,
    struggling_threshold: float = STRUGGLING_THRESHOLD,
    performing_threshold: float = PERFORMING_THRESHOLD,
) -> Optional[ConnectionPair]:
    """
    Pair the best-performing item with the worst-struggling one.

    When anchor_item is given (the item just answered well) it is used as the
    performing side. Returns None when either side is missing or both sides
    are the same item.
    """
    struggling = struggling_items(session, concept_name, struggling_threshold)
    if not struggling:
        return None

    if anchor_item is not None:
        performing_name = anchor_item
    else:
        performing = performing_items(session, concept_name, performing_threshold)
        if not performing:
            return None
        performing_name = performing[0].item

    worst = next((s.item for s in struggling if s.item != performing_name), None)
    if worst is None:
        return None
    return ConnectionPair(performing_item=performing_name, struggling_item=worst)
