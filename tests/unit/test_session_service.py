"""Unit tests for learning/services/session_service.py

Covers the lifecycle operations, answer processing per phase, the skip
command, and the failure paths: evaluator errors and timeouts must leave
stored progress untouched, store failures must surface without undoing the
in-memory change.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from learning.exceptions import (
    ConceptNotFoundError,
    CourseContentNotFoundError,
    CourseNotFoundError,
    EvaluationFailedError,
    InvalidAttemptError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    StoreFailureError,
)
from learning.models.session import LearningSession
from learning.services.evaluator import EvaluationResult, TopicScore
from learning.services.session_service import SessionService
from learning.utils.mastery_utils import is_item_mastered
from persistence.repositories import InMemoryCourseStore, InMemorySessionStore

COURSE = "Wine Tasting"
USER = "user-1"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def evaluator():
    mock = MagicMock()
    mock.evaluate = AsyncMock(return_value=EvaluationResult(comprehension=3, response="Fair."))
    return mock


@pytest.fixture
def service(settings, wine_course, evaluator):
    return SessionService(
        session_store=InMemorySessionStore(),
        course_store=InMemoryCourseStore([wine_course]),
        evaluator=evaluator,
        settings=settings,
    )


async def _in_phase(service, phase, concept=None):
    await service.start_session(COURSE, USER)
    return await service.change_phase(COURSE, USER, phase, concept)


def _scored(comprehension, **kwargs):
    return EvaluationResult(comprehension=comprehension, response=kwargs.pop("response", "Feedback."), **kwargs)


# ===========================================================================
# Lifecycle
# ===========================================================================

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_session_uses_default_preferences(self, service, settings):
        session = await service.create_session(COURSE, USER)

        assert session.current_phase == "initialization"
        assert session.existing_understanding == settings.default_existing_understanding
        assert service.load_session(COURSE, USER).session_key == "user-1:Wine Tasting"

    @pytest.mark.asyncio
    async def test_create_session_twice_rejected(self, service):
        await service.create_session(COURSE, USER)

        with pytest.raises(SessionAlreadyExistsError):
            await service.create_session(COURSE, USER)

    @pytest.mark.asyncio
    async def test_create_session_unknown_course(self, service):
        with pytest.raises(CourseNotFoundError):
            await service.create_session("Cooking", USER)

    @pytest.mark.asyncio
    async def test_start_session_resumes(self, service):
        first, created = await service.start_session(COURSE, USER, time_available="5min")
        again, created_again = await service.start_session(COURSE, USER, time_available="2h")

        assert created is True
        assert created_again is False
        assert again.start_time == first.start_time
        assert again.time_available == "5min"

    def test_load_missing_session(self, service):
        with pytest.raises(SessionNotFoundError) as exc_info:
            service.load_session(COURSE, "nobody")
        assert exc_info.value.user_id == "nobody"

    @pytest.mark.asyncio
    async def test_update_preferences(self, service):
        await service.start_session(COURSE, USER)
        await service.update_preferences(COURSE, USER, existing_understanding="None at all")

        session = service.load_session(COURSE, USER)
        assert session.existing_understanding == "None at all"
        assert session.time_available == "15-60min"

    @pytest.mark.asyncio
    async def test_add_conversation_entry(self, service):
        await service.start_session(COURSE, USER)
        await service.add_conversation_entry(COURSE, USER, "assistant", "Welcome!")

        history = service.load_session(COURSE, USER).conversation_history
        assert [(e.role, e.content) for e in history] == [("assistant", "Welcome!")]

    @pytest.mark.asyncio
    async def test_change_phase_unknown_concept(self, service):
        await service.start_session(COURSE, USER)

        with pytest.raises(CourseContentNotFoundError):
            await service.change_phase(COURSE, USER, "concept-learning", "Beer")

    @pytest.mark.asyncio
    async def test_change_phase_persisted(self, service):
        await _in_phase(service, "concept-learning", "Wine")

        session = service.load_session(COURSE, USER)
        assert (session.current_phase, session.current_concept) == ("concept-learning", "Wine")


# ===========================================================================
# Answers per phase
# ===========================================================================

class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_initialization_rejects_answers(self, service, evaluator):
        await service.start_session(COURSE, USER)

        with pytest.raises(InvalidAttemptError):
            await service.submit_answer(COURSE, USER, "q", "a")
        evaluator.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_high_level_batch_signals_readiness(self, service, evaluator):
        await _in_phase(service, "high-level")
        evaluator.evaluate.return_value = _scored(4, topic_scores=[
            TopicScore(topic="Acidity", comprehension=4),
            TopicScore(topic="Sweetness", comprehension=3),
        ])

        outcome = await service.submit_answer(COURSE, USER, "What shapes a wine?", "Acid and sugar.")

        assert outcome.concept == "high-level"
        assert outcome.readiness.ready_to_advance is True
        assert outcome.readiness.suggested_phase == "concept-learning"

        session = service.load_session(COURSE, USER)
        topics = session.concepts_progress["high-level"].topic_progress
        assert topics["Acidity"].current_comprehension == 4
        assert topics["Sweetness"].current_comprehension == 3
        assert [e.role for e in session.conversation_history] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_high_level_context_lists_open_topics(self, service, evaluator):
        await _in_phase(service, "high-level")
        evaluator.evaluate.return_value = _scored(1, target_topic="Body")

        outcome = await service.submit_answer(COURSE, USER, "q", "a")

        context = evaluator.evaluate.call_args.args[2]
        assert context.topics == ["Acidity", "Sweetness", "Body"]
        assert context.unmastered_topics == ["Acidity", "Sweetness", "Body"]
        assert outcome.readiness.ready_to_advance is False

    @pytest.mark.asyncio
    async def test_high_level_unknown_topic_rejected(self, service, evaluator):
        await _in_phase(service, "high-level")
        evaluator.evaluate.return_value = _scored(5, target_topic="Astrology")

        with pytest.raises(InvalidAttemptError):
            await service.submit_answer(COURSE, USER, "q", "a")

        session = service.load_session(COURSE, USER)
        assert session.concepts_progress == {}
        assert session.conversation_history == []

    @pytest.mark.asyncio
    async def test_concept_learning_records_topic(self, service, evaluator):
        await _in_phase(service, "concept-learning", "Wine")
        evaluator.evaluate.return_value = _scored(5, target_topic="Tannin structure")

        outcome = await service.submit_answer(COURSE, USER, "q", "a")

        assert outcome.concept == "Wine"
        assert outcome.readiness.ready_to_advance is False
        topic = service.load_session(COURSE, USER).concepts_progress["Wine"].topic_progress["Tannin structure"]
        assert topic.current_comprehension == 5

    @pytest.mark.asyncio
    async def test_concept_learning_requires_target_topic(self, service, evaluator):
        await _in_phase(service, "concept-learning", "Wine")
        evaluator.evaluate.return_value = _scored(4)

        with pytest.raises(InvalidAttemptError) as exc_info:
            await service.submit_answer(COURSE, USER, "q", "a")

        assert exc_info.value.field == "target_topic"
        assert service.load_session(COURSE, USER).concepts_progress == {}

    @pytest.mark.asyncio
    async def test_memorization_masters_item_and_offers_connection(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")

        evaluator.evaluate.return_value = _scored(1)
        await service.submit_answer(COURSE, USER, "Define acidity", "No idea", item_name="Acidity")

        evaluator.evaluate.return_value = _scored(4)
        first = await service.submit_answer(COURSE, USER, "Define tannin", "Bitter compounds", item_name="Tannin")
        assert first.connection is None

        evaluator.evaluate.return_value = _scored(5)
        second = await service.submit_answer(COURSE, USER, "Define tannin", "Polyphenols", item_name="Tannin")

        session = service.load_session(COURSE, USER)
        assert is_item_mastered(session, "Wine", "Tannin") is True
        assert session.concepts_progress["Wine"].global_position_counter == 3
        assert second.connection.performing_item == "Tannin"
        assert second.connection.struggling_item == "Acidity"
        assert second.next_item == "Body"

    @pytest.mark.asyncio
    async def test_memorization_context_includes_previous_attempts(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        evaluator.evaluate.return_value = _scored(2, response="Close.")
        await service.submit_answer(COURSE, USER, "q", "first try", item_name="Tannin")
        await service.submit_answer(COURSE, USER, "q", "second try", item_name="Tannin")

        context = evaluator.evaluate.call_args.args[2]
        assert [p.user_answer for p in context.previous_attempts] == ["first try"]
        assert context.item_name == "Tannin"

    @pytest.mark.asyncio
    async def test_memorization_requires_known_item(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")

        with pytest.raises(InvalidAttemptError):
            await service.submit_answer(COURSE, USER, "q", "a")
        with pytest.raises(CourseContentNotFoundError):
            await service.submit_answer(COURSE, USER, "q", "a", item_name="Brie")
        evaluator.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_drawing_connections_completes_without_follow_up(self, service, evaluator):
        await _in_phase(service, "drawing-connections")
        evaluator.evaluate.return_value = _scored(4, follow_up="What about cheese rinds?")

        first = await service.submit_answer(COURSE, USER, "How do wine and cheese pair?", "Fat and tannin.")
        evaluator.evaluate.return_value = _scored(5)
        second = await service.submit_answer(COURSE, USER, "What about cheese rinds?", "Washed rinds need acid.")

        assert first.concept == "drawing-connections"
        assert first.readiness.ready_to_advance is False
        assert second.readiness.ready_to_advance is True
        log = service.load_session(COURSE, USER).concepts_progress["drawing-connections"].abstract_questions_asked
        assert [q.question for q in log] == ["How do wine and cheese pair?", "What about cheese rinds?"]


# ===========================================================================
# Skip command
# ===========================================================================

class TestSkip:
    @pytest.mark.asyncio
    async def test_skip_marks_first_open_topic(self, service, evaluator):
        await _in_phase(service, "concept-learning", "Wine")

        outcome = await service.submit_answer(COURSE, USER, "q", "/skip")

        assert outcome.skipped is True
        assert outcome.target_topic == "Tannin structure"
        evaluator.evaluate.assert_not_called()
        topic = service.load_session(COURSE, USER).concepts_progress["Wine"].topic_progress["Tannin structure"]
        assert topic.current_comprehension == 5

    @pytest.mark.asyncio
    async def test_skip_with_nothing_open(self, service):
        await _in_phase(service, "concept-learning", "Wine")
        await service.submit_answer(COURSE, USER, "q", "/skip")
        await service.submit_answer(COURSE, USER, "q", "/skip")

        with pytest.raises(InvalidAttemptError):
            await service.submit_answer(COURSE, USER, "q", "/skip")


# ===========================================================================
# Failure paths
# ===========================================================================

class TestFailures:
    @pytest.mark.asyncio
    async def test_evaluator_failure_leaves_session_untouched(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        before = service.load_session(COURSE, USER)
        evaluator.evaluate.side_effect = EvaluationFailedError("service unavailable")

        with pytest.raises(EvaluationFailedError):
            await service.submit_answer(COURSE, USER, "q", "a", item_name="Tannin")

        assert service.load_session(COURSE, USER).model_dump() == before.model_dump()
        assert len(service.locks) == 0

    @pytest.mark.asyncio
    async def test_unexpected_evaluator_error_wrapped(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        evaluator.evaluate.side_effect = RuntimeError("model crashed")

        with pytest.raises(EvaluationFailedError) as exc_info:
            await service.submit_answer(COURSE, USER, "q", "a", item_name="Tannin")
        assert isinstance(exc_info.value.original_error, RuntimeError)

    @pytest.mark.asyncio
    async def test_evaluator_timeout(self, settings, wine_course):
        async def slow(question, answer, context):
            await asyncio.sleep(5)

        evaluator = MagicMock()
        evaluator.evaluate = slow
        service = SessionService(
            session_store=InMemorySessionStore(),
            course_store=InMemoryCourseStore([wine_course]),
            evaluator=evaluator,
            settings=settings.model_copy(update={"evaluator_timeout_seconds": 0.05}),
        )
        await _in_phase(service, "memorization", "Wine")

        with pytest.raises(EvaluationFailedError) as exc_info:
            await service.submit_answer(COURSE, USER, "q", "a", item_name="Tannin")

        assert "timed out" in exc_info.value.message
        assert service.load_session(COURSE, USER).concepts_progress == {}

    @pytest.mark.asyncio
    async def test_cancelled_answer_leaves_session_untouched(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        before = service.load_session(COURSE, USER)
        started = asyncio.Event()
        release = asyncio.Event()

        async def suspended(question, answer, context):
            started.set()
            await release.wait()
            return _scored(5)

        evaluator.evaluate = suspended
        task = asyncio.create_task(service.submit_answer(COURSE, USER, "q", "a", item_name="Tannin"))
        await started.wait()
        assert service.locks.is_locked(COURSE, USER)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        after = service.load_session(COURSE, USER)
        assert after.concepts_progress == {}
        assert after.conversation_history == before.conversation_history
        assert after.model_dump() == before.model_dump()
        assert len(service.locks) == 0

    @pytest.mark.asyncio
    async def test_store_failure_keeps_in_memory_change(self, settings, wine_course, evaluator):
        held = LearningSession(user_id=USER, course_id=COURSE, current_phase="memorization", current_concept="Wine")
        store = MagicMock()
        store.load.return_value = held
        store.save.side_effect = StoreFailureError("save", OSError("disk full"))
        service = SessionService(store, InMemoryCourseStore([wine_course]), evaluator, settings=settings)
        evaluator.evaluate.return_value = _scored(4)

        with pytest.raises(StoreFailureError):
            await service.submit_answer(COURSE, USER, "q", "a", item_name="Tannin")

        assert held.concepts_progress["Wine"].items_progress["Tannin"].success_count == 1
        store.save.assert_called_once_with(held)

    @pytest.mark.asyncio
    async def test_concurrent_answers_not_lost(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")

        async def slow_score(question, answer, context):
            await asyncio.sleep(0.01)
            return _scored(4)

        evaluator.evaluate = slow_score

        await asyncio.gather(
            service.submit_answer(COURSE, USER, "q", "a1", item_name="Tannin"),
            service.submit_answer(COURSE, USER, "q", "a2", item_name="Tannin"),
        )

        item = service.load_session(COURSE, USER).concepts_progress["Wine"].items_progress["Tannin"]
        assert item.success_count == 2
        assert len(item.attempts) == 2


# ===========================================================================
# Special questions and views
# ===========================================================================

class TestSpecialQuestionsAndViews:
    @pytest.mark.asyncio
    async def test_special_question_for_unengaged_concept(self, service):
        await service.start_session(COURSE, USER)

        with pytest.raises(ConceptNotFoundError):
            await service.record_special_question(COURSE, USER, "Wine", "elaboration", "Tell me about tannin")

    @pytest.mark.asyncio
    async def test_special_question_captures_weak_spots(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        evaluator.evaluate.return_value = _scored(1)
        await service.submit_answer(COURSE, USER, "q", "a", item_name="Body")

        special = await service.record_special_question(
            COURSE, USER, "Wine", "high-level", "How does body relate to tannin?",
        )

        assert special.struggling_items == ["Body"]
        assert [w.topic for w in special.weak_topics] == ["Tannin structure", "Acidity balance"]
        stored = service.load_session(COURSE, USER).concepts_progress["Wine"].special_questions_asked
        assert stored[0].question == "How does body relate to tannin?"

    @pytest.mark.asyncio
    async def test_progress_and_connection_views(self, service, evaluator):
        await _in_phase(service, "memorization", "Wine")
        for item_name, score in [("Tannin", 5), ("Acidity", 0)]:
            evaluator.evaluate.return_value = _scored(score)
            await service.submit_answer(COURSE, USER, "q", "a", item_name=item_name)

        report = service.get_progress(COURSE, USER)
        pair = service.suggest_connection(COURSE, USER, "Wine")

        assert report.item_scores["Wine:Tannin"].success_count == 1
        assert (pair.performing_item, pair.struggling_item) == ("Tannin", "Acidity")
        assert service.next_item(COURSE, USER, "Wine") == "Body"
