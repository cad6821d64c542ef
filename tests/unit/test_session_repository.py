"""Unit tests for persistence/serialization.py and persistence/repositories/session_repository.py

Every backend must give back exactly what was saved, attempt order included.
"""

import json
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from database import DatabaseManager
from learning.exceptions import StoreFailureError
from learning.models.progress import SpecialQuestion, WeakTopic
from learning.models.session import LearningSession
from learning.utils.progress_utils import (
    advance_position,
    record_abstract_qa,
    record_item_attempt,
    record_special_question,
    record_topic_attempt,
)
from learning.utils.scheduling_utils import apply_review
from persistence.repositories.session_repository import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SqlSessionStore,
    encode_key,
)
from persistence.serialization import dump_session, load_session


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def rich_session(session, make_attempt):
    """Two concepts, two items and two topics each, several attempts per entry."""
    session.current_phase = "memorization"
    session.current_concept = "Cheese"
    for concept, items in {"Wine": ["Tannin", "Acidity"], "Cheese": ["Brie", "Cheddar"]}.items():
        for item_name in items:
            for i, score in enumerate([2, 4, 5]):
                item = record_item_attempt(
                    session, concept, item_name,
                    make_attempt(score, question=f"{concept}/{item_name}/{i}"),
                )
                apply_review(item, score, advance_position(session, concept))
        for topic in ["T1", "T2"]:
            for i, score in enumerate([3, 1]):
                record_topic_attempt(
                    session, concept,
                    make_attempt(score, target_topic=topic, question=f"{concept}/{topic}/{i}"),
                )
    record_abstract_qa(session, "Wine", "Why?", "Because.")
    record_special_question(session, "Cheese", SpecialQuestion(
        type="high-level",
        question="Big picture?",
        weak_topics=[WeakTopic(topic="T2", comprehension=1)],
        struggling_items=["Brie"],
    ))
    session.add_conversation_entry("user", "hello")
    session.add_conversation_entry("assistant", "hi")
    return session


def _assert_same(loaded, original):
    assert loaded.model_dump() == original.model_dump()
    for concept_name, concept in original.concepts_progress.items():
        for item_name, item in concept.items_progress.items():
            assert [a.question for a in loaded.concepts_progress[concept_name].items_progress[item_name].attempts] == \
                [a.question for a in item.attempts]


# ===========================================================================
# Serialization
# ===========================================================================

class TestSerialization:
    def test_round_trip(self, rich_session):
        _assert_same(load_session(dump_session(rich_session)), rich_session)

    def test_maps_stored_as_keyed_sequences(self, rich_session):
        document = json.loads(dump_session(rich_session))

        concepts = document["concepts_progress"]
        assert isinstance(concepts, list)
        assert {c["concept_name"] for c in concepts} == {"Wine", "Cheese"}
        wine = next(c for c in concepts if c["concept_name"] == "Wine")
        assert [i["item_name"] for i in wine["items_progress"]] == ["Tannin", "Acidity"]
        assert {t["topic_name"] for t in wine["topic_progress"]} == {"T1", "T2"}

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            load_session('{"user_id": "u"}')


# ===========================================================================
# Backends
# ===========================================================================

class TestInMemorySessionStore:
    def test_missing_returns_none(self):
        assert InMemorySessionStore().load("Wine Tasting", "user-1") is None

    def test_round_trip(self, rich_session):
        store = InMemorySessionStore()
        store.save(rich_session)

        _assert_same(store.load("Wine Tasting", "user-1"), rich_session)
        assert len(store) == 1

    def test_load_returns_independent_copy(self, session):
        store = InMemorySessionStore()
        store.save(session)

        loaded = store.load("Wine Tasting", "user-1")
        loaded.current_phase = "high-level"

        assert store.load("Wine Tasting", "user-1").current_phase == "initialization"

    def test_keyed_by_user_and_course(self, session):
        store = InMemorySessionStore()
        store.save(session)
        store.save(LearningSession(user_id="user-2", course_id="Wine Tasting", current_phase="high-level"))

        assert store.load("Wine Tasting", "user-1").current_phase == "initialization"
        assert store.load("Wine Tasting", "user-2").current_phase == "high-level"

    def test_colon_in_ids_does_not_collide(self):
        store = InMemorySessionStore()
        store.save(LearningSession(user_id="google:42", course_id="Wine"))

        assert store.load("42:Wine", "google") is None

        store.save(LearningSession(user_id="google", course_id="42:Wine", current_phase="high-level"))
        assert store.load("Wine", "google:42").current_phase == "initialization"
        assert len(store) == 2


class TestJsonFileSessionStore:
    def test_round_trip(self, tmp_path, rich_session):
        store = JsonFileSessionStore(tmp_path)
        store.save(rich_session)

        assert (tmp_path / "sessions" / "user-1+Wine%20Tasting.json").exists()
        _assert_same(store.load("Wine Tasting", "user-1"), rich_session)

    def test_missing_returns_none(self, tmp_path):
        assert JsonFileSessionStore(tmp_path).load("Wine Tasting", "user-1") is None

    def test_corrupt_file_is_store_failure(self, tmp_path, session):
        store = JsonFileSessionStore(tmp_path)
        store.save(session)
        (tmp_path / "sessions" / "user-1+Wine%20Tasting.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreFailureError) as exc_info:
            store.load("Wine Tasting", "user-1")
        assert exc_info.value.operation == "load"

    def test_unwritable_directory_is_store_failure(self, tmp_path, session):
        blocker = tmp_path / "blocked"
        blocker.write_text("file, not a directory", encoding="utf-8")

        with pytest.raises(StoreFailureError) as exc_info:
            JsonFileSessionStore(blocker).save(session)
        assert exc_info.value.operation == "save"

    def test_encode_key(self):
        assert encode_key("Wine Tasting") == "Wine%20Tasting"
        assert encode_key("../etc") == "..%2Fetc"
        assert encode_key("a+b") == "a%2Bb"

    def test_similar_course_names_do_not_share_a_file(self, tmp_path):
        store = JsonFileSessionStore(tmp_path)
        store.save(LearningSession(user_id="user-1", course_id="Intro to Wine"))

        assert store.load("Intro_to_Wine", "user-1") is None
        assert store.load("Intro to Wine", "user-1").course_id == "Intro to Wine"

    def test_separator_in_ids_does_not_collide(self, tmp_path):
        store = JsonFileSessionStore(tmp_path)
        store.save(LearningSession(user_id="u+1", course_id="Wine"))
        store.save(LearningSession(user_id="u", course_id="1+Wine", current_phase="high-level"))

        assert store.load("Wine", "u+1").current_phase == "initialization"
        assert store.load("1+Wine", "u").current_phase == "high-level"
        assert len(list((tmp_path / "sessions").glob("*.json"))) == 2

    def test_file_holding_another_session_is_ignored(self, tmp_path, session):
        store = JsonFileSessionStore(tmp_path)
        store.save(session)
        stray = tmp_path / "sessions" / "user-1+Wine%20Tasting.json"
        stray.rename(tmp_path / "sessions" / "user-2+Wine%20Tasting.json")

        assert store.load("Wine Tasting", "user-2") is None


class TestSqlSessionStore:
    @pytest.fixture
    def db_manager(self, settings):
        manager = DatabaseManager(settings)
        manager.create_tables()
        yield manager
        manager.close()

    def test_round_trip(self, db_manager, rich_session):
        store = SqlSessionStore(db_manager)
        store.save(rich_session)

        _assert_same(store.load("Wine Tasting", "user-1"), rich_session)

    def test_save_is_upsert(self, db_manager, session):
        from persistence.models.entities import LearningSessionRecord

        store = SqlSessionStore(db_manager)
        store.save(session)
        session.current_phase = "high-level"
        session.current_concept = "Wine"
        store.save(session)

        with db_manager.session_scope() as db:
            rows = db.query(LearningSessionRecord).all()
            assert len(rows) == 1
            assert rows[0].current_phase == "high-level"
            assert rows[0].current_concept == "Wine"

        assert store.load("Wine Tasting", "user-1").current_phase == "high-level"

    def test_missing_returns_none(self, db_manager):
        assert SqlSessionStore(db_manager).load("Wine Tasting", "nobody") is None

    def test_colon_in_ids_does_not_collide(self, db_manager):
        from persistence.models.entities import LearningSessionRecord

        store = SqlSessionStore(db_manager)
        store.save(LearningSession(user_id="google:42", course_id="Wine"))
        assert store.load("42:Wine", "google") is None

        store.save(LearningSession(user_id="google", course_id="42:Wine", current_phase="high-level"))

        first = store.load("Wine", "google:42")
        second = store.load("42:Wine", "google")
        assert (first.user_id, first.current_phase) == ("google:42", "initialization")
        assert (second.user_id, second.current_phase) == ("google", "high-level")
        with db_manager.session_scope() as db:
            assert db.query(LearningSessionRecord).count() == 2

    def test_row_holding_another_session_is_ignored(self, db_manager, session):
        from persistence.models.entities import LearningSessionRecord

        store = SqlSessionStore(db_manager)
        store.save(session)
        with db_manager.session_scope() as db:
            db.query(LearningSessionRecord).one().user_id = "user-2"

        assert store.load("Wine Tasting", "user-2") is None

    def test_database_error_is_store_failure(self, session):
        manager = MagicMock()
        manager.session_scope.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        with pytest.raises(StoreFailureError) as exc_info:
            SqlSessionStore(manager).save(session)
        assert exc_info.value.details["error_type"] == "OperationalError"
