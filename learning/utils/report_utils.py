"""Progress reporting over a session and its course."""

from typing import Optional
from pydantic import BaseModel, Field

from learning.models.course import Course
from learning.models.session import LearningSession, Phase
from learning.utils.constants import HIGH_LEVEL_CONCEPT
from learning.utils.mastery_utils import is_item_mastered, topics_comprehension
from learning.utils.scheduling_utils import difficulty_label
from learning.utils.selection_utils import last_attempt_comprehension


class ItemScoreView(BaseModel):
    success_count: int
    last_comprehension: Optional[int] = None
    mastered: bool
    difficulty: str


class ProgressReport(BaseModel):
    """Completion figures and per-topic / per-item scores for one session."""

    course_id: str
    current_phase: Phase
    current_concept: Optional[str] = None
    concepts_completed: int = 0
    total_concepts: int = 0
    items_mastered: int = 0
    total_items: int = 0
    overall_completion: float = 0.0
    topic_scores: dict[str, int] = Field(default_factory=dict, description="Keyed concept:topic")
    item_scores: dict[str, ItemScoreView] = Field(default_factory=dict, description="Keyed concept:item")


def build_progress_report(session: LearningSession, course: Course) -> ProgressReport:
    report = ProgressReport(
        course_id=session.course_id,
        current_phase=session.current_phase,
        current_concept=session.current_concept,
        total_concepts=len(course.concepts),
    )

    if HIGH_LEVEL_CONCEPT in session.concepts_progress or session.current_phase == "high-level":
        overview = topics_comprehension(session, HIGH_LEVEL_CONCEPT, course.high_level_topics())
        for topic, score in overview.items():
            report.topic_scores[f"{HIGH_LEVEL_CONCEPT}:{topic}"] = score

    for concept in course.concepts:
        items = concept.memorize.items
        report.total_items += len(items)

        mastered = [item for item in items if is_item_mastered(session, concept.name, item)]
        report.items_mastered += len(mastered)
        if concept.name in session.concepts_progress and len(mastered) == len(items):
            report.concepts_completed += 1

        progress = session.concepts_progress.get(concept.name)
        if progress is None:
            continue

        for topic_name, topic in progress.topic_progress.items():
            report.topic_scores[f"{concept.name}:{topic_name}"] = topic.current_comprehension

        for item_name, item in progress.items_progress.items():
            report.item_scores[f"{concept.name}:{item_name}"] = ItemScoreView(
                success_count=item.success_count,
                last_comprehension=last_attempt_comprehension(session, concept.name, item_name),
                mastered=is_item_mastered(session, concept.name, item_name),
                difficulty=difficulty_label(item.ease_factor),
            )

    if report.total_items:
        report.overall_completion = round(report.items_mastered / report.total_items * 100, 2)
    return report
