"""
Session lifecycle management.

Every mutating operation runs under the session's lock and follows the same
sequence: load, (evaluate), mutate in memory, save. Nothing is written into
the session before an evaluation result is in hand, so evaluator failures,
timeouts and cancellation leave stored progress untouched. A failed save is
raised to the caller; the in-memory session keeps the mutation.
"""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from config import Settings, get_settings
from learning.exceptions import (
    CourseContentNotFoundError,
    EvaluationFailedError,
    InvalidAttemptError,
    LearningError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    StoreFailureError,
)
from learning.models.course import Concept, Course
from learning.models.progress import Attempt, Evaluation, SpecialQuestion, SpecialQuestionType
from learning.models.schemas import AnswerOutcome
from learning.models.session import LearningSession, Phase, create_learning_session
from learning.services.evaluator import (
    AnswerEvaluator,
    EvaluationContext,
    EvaluationResult,
    PreviousAttempt,
    TopicScore,
)
from learning.services.phase_service import check_readiness, update_session_phase
from learning.services.session_locks import SessionLockRegistry
from learning.utils.constants import (
    DRAWING_CONNECTIONS_CONCEPT,
    HIGH_LEVEL_CONCEPT,
    MAX_COMPREHENSION,
    PREVIOUS_ATTEMPTS_LIMIT,
    RECENT_HISTORY_LIMIT,
    SKIP_COMMAND,
)
from learning.utils.mastery_utils import topics_comprehension, unmastered_topics
from learning.utils.progress_utils import (
    advance_position,
    get_item_progress,
    record_abstract_qa,
    record_item_attempt,
    record_special_question,
    record_topic_attempt,
)
from learning.utils.report_utils import ProgressReport, build_progress_report
from learning.utils.scheduling_utils import apply_review, next_due_item
from learning.utils.selection_utils import ConnectionPair, connection_pair, struggling_items, weak_topics

logger = logging.getLogger("learning.session_service")


class SessionService:
    """Orchestrates session creation, answer processing and phase changes."""

    def __init__(
        self,
        session_store,
        course_store,
        evaluator: AnswerEvaluator,
        locks: Optional[SessionLockRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_store = session_store
        self.course_store = course_store
        self.evaluator = evaluator
        self.locks = locks or SessionLockRegistry()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(
        self,
        course_id: str,
        user_id: str,
        existing_understanding: Optional[str] = None,
        time_available: Optional[str] = None,
    ) -> LearningSession:
        """
        Create and persist a new session.

        Raises:
            CourseNotFoundError: Unknown course.
            SessionAlreadyExistsError: The pair already has a session.
        """
        async with self.locks.hold(course_id, user_id):
            self.course_store.load(course_id)
            if self.session_store.load(course_id, user_id) is not None:
                raise SessionAlreadyExistsError(course_id, user_id)
            return self._create(course_id, user_id, existing_understanding, time_available)

    async def start_session(
        self,
        course_id: str,
        user_id: str,
        existing_understanding: Optional[str] = None,
        time_available: Optional[str] = None,
    ) -> tuple[LearningSession, bool]:
        """Resume the pair's session, creating it first if needed. Returns (session, created)."""
        async with self.locks.hold(course_id, user_id):
            self.course_store.load(course_id)
            existing = self.session_store.load(course_id, user_id)
            if existing is not None:
                logger.info(f"Resumed session {existing.session_key} in phase {existing.current_phase}")
                return existing, False
            return self._create(course_id, user_id, existing_understanding, time_available), True

    def _create(
        self,
        course_id: str,
        user_id: str,
        existing_understanding: Optional[str],
        time_available: Optional[str],
    ) -> LearningSession:
        session = create_learning_session(
            course_id=course_id,
            user_id=user_id,
            existing_understanding=existing_understanding or self.settings.default_existing_understanding,
            time_available=time_available or self.settings.default_time_available,
        )
        self.save_session(session)
        logger.info(f"Created session {session.session_key}")
        return session

    def load_session(self, course_id: str, user_id: str) -> LearningSession:
        session = self.session_store.load(course_id, user_id)
        if session is None:
            raise SessionNotFoundError(course_id, user_id)
        return session

    def save_session(self, session: LearningSession) -> None:
        try:
            self.session_store.save(session)
        except StoreFailureError as e:
            logger.error(f"Failed to save session {session.session_key}: {e.message}")
            raise

    async def add_conversation_entry(self, course_id: str, user_id: str, role: str, content: str) -> LearningSession:
        async with self.locks.hold(course_id, user_id):
            session = self.load_session(course_id, user_id)
            session.add_conversation_entry(role, content)
            self.save_session(session)
            return session

    async def update_preferences(
        self,
        course_id: str,
        user_id: str,
        existing_understanding: Optional[str] = None,
        time_available: Optional[str] = None,
    ) -> LearningSession:
        async with self.locks.hold(course_id, user_id):
            session = self.load_session(course_id, user_id)
            if existing_understanding:
                session.existing_understanding = existing_understanding
            if time_available:
                session.time_available = time_available
            session.touch()
            self.save_session(session)
            logger.info(f"Updated preferences for session {session.session_key}")
            return session

    async def change_phase(
        self,
        course_id: str,
        user_id: str,
        new_phase: Phase,
        concept_name: Optional[str] = None,
    ) -> LearningSession:
        """
        Move the session to a new phase once the learner confirmed it.

        Raises:
            CourseContentNotFoundError: concept_name is not part of the course.
        """
        async with self.locks.hold(course_id, user_id):
            session = self.load_session(course_id, user_id)
            if concept_name:
                course = self.course_store.load(course_id)
                self._require_concept(course, concept_name)
            update_session_phase(session, new_phase, concept_name)
            self.save_session(session)
            return session

    async def record_special_question(
        self,
        course_id: str,
        user_id: str,
        concept_name: str,
        question_type: SpecialQuestionType,
        question: str,
        answer: str = "",
        target_item: Optional[str] = None,
        connected_item: Optional[str] = None,
    ) -> SpecialQuestion:
        """
        Log a remedial question together with the weak spots that prompted it.

        Raises:
            ConceptNotFoundError: The learner has not engaged the concept yet.
        """
        async with self.locks.hold(course_id, user_id):
            session = self.load_session(course_id, user_id)
            course = self.course_store.load(course_id)
            concept = course.get_concept(concept_name)
            topics = concept.high_level if concept else []

            special = SpecialQuestion(
                type=question_type,
                question=question,
                answer=answer,
                target_item=target_item,
                connected_item=connected_item,
                weak_topics=weak_topics(session, concept_name, topics),
                struggling_items=[s.item for s in struggling_items(session, concept_name)],
            )
            record_special_question(session, concept_name, special)
            self.save_session(session)
            logger.info(f"Recorded {question_type} question for {concept_name} in session {session.session_key}")
            return special

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_progress(self, course_id: str, user_id: str) -> ProgressReport:
        session = self.load_session(course_id, user_id)
        course = self.course_store.load(course_id)
        return build_progress_report(session, course)

    def suggest_connection(self, course_id: str, user_id: str, concept_name: str) -> Optional[ConnectionPair]:
        session = self.load_session(course_id, user_id)
        return connection_pair(session, concept_name)

    def next_item(self, course_id: str, user_id: str, concept_name: str) -> Optional[str]:
        """Next flashcard due for a concept, or None when every item is mastered."""
        session = self.load_session(course_id, user_id)
        course = self.course_store.load(course_id)
        concept = self._require_concept(course, concept_name)
        return next_due_item(session, concept.name, concept.memorize.items)

    # ------------------------------------------------------------------
    # Answer processing
    # ------------------------------------------------------------------

    async def submit_answer(
        self,
        course_id: str,
        user_id: str,
        question: str,
        answer: str,
        concept_name: Optional[str] = None,
        item_name: Optional[str] = None,
    ) -> AnswerOutcome:
        """
        Score an answer and record it according to the session's phase.

        Raises:
            SessionNotFoundError: No session for the pair.
            InvalidAttemptError: The answer cannot be scored in this phase,
                or the evaluator result is unusable.
            CourseContentNotFoundError: Unknown concept or item.
            EvaluationFailedError: The evaluator failed or timed out.
            StoreFailureError: The session could not be saved.
        """
        async with self.locks.hold(course_id, user_id):
            session = self.load_session(course_id, user_id)
            course = self.course_store.load(course_id)
            phase = session.current_phase

            if phase == "initialization":
                raise InvalidAttemptError("phase", "answers are only scored once the session has left initialization")

            concept = self._resolve_concept(session, course, phase, concept_name)
            if phase == "memorization":
                self._require_item(course, concept, item_name)

            skipped = answer.strip() == SKIP_COMMAND and phase in ("high-level", "concept-learning")
            if skipped:
                result = self._skip_result(session, course, phase, concept)
            else:
                context = self._build_context(session, course, phase, concept, item_name)
                result = await self._evaluate(question, answer, context)

            outcome = self._apply_result(session, course, phase, concept, item_name, question, answer, result)
            outcome.skipped = skipped

            session.add_conversation_entry("user", answer)
            if result.response:
                session.add_conversation_entry("assistant", result.response)

            self.save_session(session)

            logger.info(
                f"Scored answer for session {session.session_key}: phase={phase} "
                f"concept={outcome.concept} comprehension={outcome.comprehension} "
                f"ready={outcome.readiness.ready_to_advance}"
            )
            return outcome

    def _resolve_concept(
        self,
        session: LearningSession,
        course: Course,
        phase: Phase,
        concept_name: Optional[str],
    ) -> Optional[Concept]:
        name = concept_name or session.current_concept
        if phase == "high-level":
            return None
        if not name:
            if phase == "drawing-connections":
                return None
            raise InvalidAttemptError("concept", f"a concept is required in the {phase} phase")
        return self._require_concept(course, name)

    def _require_concept(self, course: Course, concept_name: str) -> Concept:
        concept = course.get_concept(concept_name)
        if concept is None:
            raise CourseContentNotFoundError(course.name, "concept", concept_name)
        return concept

    def _require_item(self, course: Course, concept: Concept, item_name: Optional[str]) -> None:
        if not item_name:
            raise InvalidAttemptError("item", "memorization answers must name the item being recalled")
        if item_name not in concept.memorize.items:
            raise CourseContentNotFoundError(course.name, "item", item_name)

    def _build_context(
        self,
        session: LearningSession,
        course: Course,
        phase: Phase,
        concept: Optional[Concept],
        item_name: Optional[str],
    ) -> EvaluationContext:
        context = EvaluationContext(
            phase=phase,
            course_name=course.name,
            concept=concept,
            item_name=item_name,
            recent_history=session.recent_history(RECENT_HISTORY_LIMIT),
            existing_understanding=session.existing_understanding,
        )

        if phase == "high-level":
            topics = course.high_level_topics()
            context.topics = topics
            context.unmastered_topics = unmastered_topics(session, HIGH_LEVEL_CONCEPT, topics)
            context.topics_comprehension = topics_comprehension(session, HIGH_LEVEL_CONCEPT, topics)

        elif phase == "concept-learning":
            context.topics = list(concept.high_level)
            context.unmastered_topics = unmastered_topics(session, concept.name, concept.high_level)
            context.topics_comprehension = topics_comprehension(session, concept.name, concept.high_level)

        elif phase == "memorization":
            context.weak_topics = weak_topics(session, concept.name, concept.high_level)
            item = get_item_progress(session, concept.name, item_name)
            if item is not None:
                context.previous_attempts = [
                    PreviousAttempt(user_answer=a.user_answer, response=a.evaluation.response)
                    for a in item.attempts[-PREVIOUS_ATTEMPTS_LIMIT:]
                ]

        elif phase == "drawing-connections":
            context.topics = list(course.drawing_connections)
            context.other_concepts = [
                name for name in course.concept_names if concept is None or name != concept.name
            ]

        return context

    async def _evaluate(self, question: str, answer: str, context: EvaluationContext) -> EvaluationResult:
        timeout = self.settings.evaluator_timeout_seconds
        try:
            result = await asyncio.wait_for(
                self.evaluator.evaluate(question, answer, context),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Evaluator timed out after {timeout}s (phase={context.phase})")
            raise EvaluationFailedError(f"timed out after {timeout}s", e)
        except EvaluationFailedError as e:
            logger.error(f"Evaluator failed (phase={context.phase}): {e.message}")
            raise
        except LearningError:
            raise
        except Exception as e:
            logger.error(f"Evaluator raised {type(e).__name__} (phase={context.phase}): {e}")
            raise EvaluationFailedError(str(e), e)

        if isinstance(result, EvaluationResult):
            return result
        try:
            return EvaluationResult.model_validate(result)
        except ValidationError as e:
            logger.error(f"Evaluator returned a malformed result (phase={context.phase}): {e}")
            raise EvaluationFailedError("malformed evaluation result", e)

    def _skip_result(
        self,
        session: LearningSession,
        course: Course,
        phase: Phase,
        concept: Optional[Concept],
    ) -> EvaluationResult:
        """Full marks for the first topic still open, without asking the evaluator."""
        if phase == "high-level":
            remaining = unmastered_topics(session, HIGH_LEVEL_CONCEPT, course.high_level_topics())
        else:
            remaining = unmastered_topics(session, concept.name, concept.high_level)
        if not remaining:
            raise InvalidAttemptError("answer", "there is no open topic to skip")

        return EvaluationResult(
            comprehension=MAX_COMPREHENSION,
            response=f"Skipped {remaining[0]}.",
            target_topic=remaining[0],
        )

    def _apply_result(
        self,
        session: LearningSession,
        course: Course,
        phase: Phase,
        concept: Optional[Concept],
        item_name: Optional[str],
        question: str,
        answer: str,
        result: EvaluationResult,
    ) -> AnswerOutcome:
        """Write the scored answer into the session. Validates the result before touching anything."""
        concept_name = concept.name if concept else None
        batch_scores: list[int] = []
        connection = None
        next_item = None

        def attempt_for(comprehension: int, target_topic: Optional[str]) -> Attempt:
            return Attempt(
                question=question,
                user_answer=answer,
                evaluation=Evaluation(
                    comprehension=comprehension,
                    response=result.response,
                    target_topic=target_topic,
                ),
            )

        if phase == "high-level":
            scores = self._overview_scores(course, result)
            for score in scores:
                record_topic_attempt(session, HIGH_LEVEL_CONCEPT, attempt_for(score.comprehension, score.topic))
            batch_scores = [score.comprehension for score in scores]
            concept_name = HIGH_LEVEL_CONCEPT

        elif phase == "concept-learning":
            if not result.target_topic:
                raise InvalidAttemptError("target_topic", "concept answers must be scored against a topic")
            if result.target_topic not in concept.high_level:
                raise InvalidAttemptError("target_topic", f"{result.target_topic} is not a topic of {concept.name}")
            record_topic_attempt(session, concept.name, attempt_for(result.comprehension, result.target_topic))

        elif phase == "memorization":
            item = record_item_attempt(session, concept.name, item_name, attempt_for(result.comprehension, None))
            position = advance_position(session, concept.name)
            apply_review(item, result.comprehension, position)
            if result.comprehension == MAX_COMPREHENSION:
                connection = connection_pair(session, concept.name, anchor_item=item_name)
            next_item = next_due_item(session, concept.name, concept.memorize.items)

        elif phase == "drawing-connections":
            concept_name = concept_name or DRAWING_CONNECTIONS_CONCEPT
            record_abstract_qa(session, concept_name, question, answer)

        readiness = check_readiness(
            session,
            phase,
            concept=concept,
            batch_scores=batch_scores,
            follow_up=result.follow_up,
        )

        return AnswerOutcome(
            phase=phase,
            concept=concept_name,
            comprehension=result.comprehension,
            response=result.response,
            target_topic=result.target_topic,
            follow_up=result.follow_up,
            readiness=readiness,
            connection=connection,
            next_item=next_item,
        )

    def _overview_scores(self, course: Course, result: EvaluationResult) -> list[TopicScore]:
        """The overview topics an answer was scored against. One answer may cover several."""
        scores = list(result.topic_scores)
        if not scores and result.target_topic:
            scores = [TopicScore(topic=result.target_topic, comprehension=result.comprehension)]
        if not scores:
            raise InvalidAttemptError("target_topic", "overview answers must be scored against at least one topic")

        known = set(course.high_level_topics())
        for score in scores:
            if score.topic not in known:
                raise InvalidAttemptError("target_topic", f"{score.topic} is not an overview topic of {course.name}")
        return scores
