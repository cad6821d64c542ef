"""
Phase transitions.

Readiness is advisory: these rules only say whether the learner could move
on. Moving is an explicit update_session_phase call made by whoever
confirms the transition with the learner.
"""

import logging
from typing import Optional, Sequence
from pydantic import BaseModel

from learning.models.course import Concept
from learning.models.session import PHASE_ORDER, LearningSession, Phase
from learning.utils.constants import HIGH_LEVEL_READY_MEAN
from learning.utils.mastery_utils import unmastered_items, unmastered_topics

logger = logging.getLogger("learning.phase_service")


class PhaseSignal(BaseModel):
    """Outcome of a readiness check."""

    phase: Phase
    concept: Optional[str] = None
    ready_to_advance: bool = False
    suggested_phase: Optional[Phase] = None


def next_phase(phase: Phase) -> Optional[Phase]:
    """The phase after this one, or None for the terminal phase."""
    index = PHASE_ORDER.index(phase)
    if index + 1 < len(PHASE_ORDER):
        return PHASE_ORDER[index + 1]
    return None


def high_level_ready(batch_scores: Sequence[int]) -> bool:
    """Ready when the latest batch of overview topic scores averages at least 3.5."""
    if not batch_scores:
        return False
    return sum(batch_scores) / len(batch_scores) >= HIGH_LEVEL_READY_MEAN


def concept_learning_ready(session: LearningSession, concept: Concept) -> bool:
    return not unmastered_topics(session, concept.name, concept.high_level)


def memorization_ready(session: LearningSession, concept: Concept) -> bool:
    return not unmastered_items(session, concept.name, concept.memorize.items)


def drawing_connections_complete(follow_up: Optional[str]) -> bool:
    """The synthesis phase ends when the evaluator stops asking follow-ups."""
    return not follow_up


def check_readiness(
    session: LearningSession,
    phase: Phase,
    concept: Optional[Concept] = None,
    batch_scores: Sequence[int] = (),
    follow_up: Optional[str] = None,
) -> PhaseSignal:
    """Evaluate the readiness rule for the given phase."""
    if phase == "high-level":
        ready = high_level_ready(batch_scores)
    elif phase == "concept-learning":
        ready = concept is not None and concept_learning_ready(session, concept)
    elif phase == "memorization":
        ready = concept is not None and memorization_ready(session, concept)
    elif phase == "drawing-connections":
        ready = drawing_connections_complete(follow_up)
    else:
        ready = False

    return PhaseSignal(
        phase=phase,
        concept=concept.name if concept else None,
        ready_to_advance=ready,
        suggested_phase=next_phase(phase) if ready else None,
    )


def update_session_phase(
    session: LearningSession,
    new_phase: Phase,
    current_concept: Optional[str] = None,
) -> None:
    """Move the session's phase pointer. A missing concept keeps the current one."""
    previous = session.current_phase
    session.current_phase = new_phase
    if current_concept:
        session.current_concept = current_concept
    session.touch()

    logger.info(
        f"Session {session.session_key} phase {previous} -> {new_phase}"
        + (f" (concept: {session.current_concept})" if session.current_concept else "")
    )
