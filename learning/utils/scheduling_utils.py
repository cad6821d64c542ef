"""
Spaced repetition for memorization items.

Positions count flashcards shown within a concept, not wall-clock time:
an item with interval 3 comes back after three more cards.
"""

import math
from typing import Iterable, Optional

from learning.models.progress import ItemProgress
from learning.models.session import LearningSession
from learning.utils.constants import INITIAL_EASE, ITEM_MASTERY_SUCCESSES, MAX_EASE, MIN_EASE


def update_ease_factor(comprehension: int, current_ease: float) -> float:
    """Shrink the ease of poorly recalled cards, grow it for perfect recall."""
    new_ease = current_ease
    if comprehension <= 1:
        new_ease *= 0.8
    elif comprehension <= 3:
        new_ease *= 0.85
    elif comprehension == 5:
        new_ease *= 1.15

    return max(MIN_EASE, min(MAX_EASE, new_ease))


def calculate_interval(comprehension: int, ease_factor: float) -> int:
    """Cards until the item should be shown again."""
    if comprehension <= 1:
        return 1
    elif comprehension <= 3:
        return max(2, math.floor(ease_factor * 0.8))
    elif comprehension == 4:
        return math.ceil(ease_factor * 3)
    else:
        return math.ceil(ease_factor * 5)


def apply_review(item: ItemProgress, comprehension: int, position: int) -> ItemProgress:
    """Reschedule an item after it was reviewed at the given position."""
    item.ease_factor = update_ease_factor(comprehension, item.ease_factor)
    item.interval = calculate_interval(comprehension, item.ease_factor)
    item.last_review_position = position
    item.next_due_position = position + item.interval
    return item


def next_due_item(
    session: LearningSession,
    concept_name: str,
    all_items: Iterable[str],
) -> Optional[str]:
    """
    The next flashcard to show for a concept.

    Mastered items are skipped. Items never reviewed are due immediately.
    Overdue items come first, earliest due first; otherwise the item due
    soonest. Ties keep the order of all_items.
    """
    concept = session.concepts_progress.get(concept_name)
    recorded = concept.items_progress if concept else {}
    position = concept.global_position_counter if concept else 0

    candidates: list[tuple[int, str]] = []
    for name in all_items:
        item = recorded.get(name)
        if item is not None and item.success_count >= ITEM_MASTERY_SUCCESSES:
            continue
        due = item.next_due_position if item is not None else 0
        candidates.append((due, name))

    if not candidates:
        return None

    overdue = [c for c in candidates if c[0] <= position]
    pool = overdue or candidates
    return min(pool, key=lambda c: c[0])[1]


def difficulty_label(ease_factor: float) -> str:
    if ease_factor == INITIAL_EASE:
        return "new"
    if ease_factor < 2:
        return "difficult"
    if ease_factor > 3:
        return "easy"
    return "medium"
