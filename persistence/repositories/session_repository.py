"""Session data access layer."""
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote
from uuid import uuid4
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from database import DatabaseManager
from learning.exceptions import StoreFailureError
from learning.models.session import LearningSession
from persistence.models.entities import LearningSessionRecord
from persistence.serialization import dump_session, load_session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Durable home of learning sessions, keyed by (user, course)."""

    def load(self, course_id: str, user_id: str) -> Optional[LearningSession]:
        ...

    def save(self, session: LearningSession) -> None:
        ...


def _belongs_to(session: LearningSession, course_id: str, user_id: str) -> bool:
    return session.course_id == course_id and session.user_id == user_id


class InMemorySessionStore:
    """
    Process-local store for tests and development.

    Sessions are kept in their serialized form, so every load returns an
    independent copy exactly as a durable backend would.
    """

    def __init__(self):
        self._documents: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def load(self, course_id: str, user_id: str) -> Optional[LearningSession]:
        with self._lock:
            payload = self._documents.get((user_id, course_id))
        if payload is None:
            return None
        return load_session(payload)

    def save(self, session: LearningSession) -> None:
        payload = dump_session(session)
        with self._lock:
            self._documents[(session.user_id, session.course_id)] = payload

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


def encode_key(value: str) -> str:
    """Reversible filename-safe form of an identifier; distinct ids never share a name."""
    return quote(value, safe="")


class JsonFileSessionStore:
    """One JSON document per session under <data_dir>/sessions."""

    def __init__(self, data_dir: str | Path):
        self.sessions_dir = Path(data_dir) / "sessions"

    def _path(self, course_id: str, user_id: str) -> Path:
        # "+" is always percent-encoded, so it cannot occur inside either part
        return self.sessions_dir / f"{encode_key(user_id)}+{encode_key(course_id)}.json"

    def load(self, course_id: str, user_id: str) -> Optional[LearningSession]:
        path = self._path(course_id, user_id)
        if not path.exists():
            return None
        try:
            session = load_session(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to load session from {path}: {e}")
            raise StoreFailureError("load", e)
        if not _belongs_to(session, course_id, user_id):
            logger.warning(f"Session file {path} holds {session.session_key}, ignoring it")
            return None
        return session

    def save(self, session: LearningSession) -> None:
        path = self._path(session.course_id, session.user_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(dump_session(session), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to save session to {path}: {e}")
            raise StoreFailureError("save", e)


class SqlSessionStore:
    """Sessions stored as JSON documents in the learning_sessions table."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def _find(db, course_id: str, user_id: str) -> Optional[LearningSessionRecord]:
        return (
            db.query(LearningSessionRecord)
            .filter(
                LearningSessionRecord.user_id == user_id,
                LearningSessionRecord.course_id == course_id,
            )
            .first()
        )

    def load(self, course_id: str, user_id: str) -> Optional[LearningSession]:
        try:
            with self.db_manager.session_scope() as db:
                row = self._find(db, course_id, user_id)
                payload = row.state_json if row else None
        except SQLAlchemyError as e:
            raise StoreFailureError("load", e)

        if payload is None:
            return None
        try:
            session = load_session(payload)
        except ValidationError as e:
            logger.error(f"Stored session for user {user_id} in course {course_id} is unreadable: {e}")
            raise StoreFailureError("load", e)
        if not _belongs_to(session, course_id, user_id):
            logger.warning(f"Row for user {user_id} in course {course_id} holds {session.session_key}, ignoring it")
            return None
        return session

    def save(self, session: LearningSession) -> None:
        """Upsert the session row for its (user, course) pair."""
        payload = dump_session(session)
        try:
            with self.db_manager.session_scope() as db:
                row = self._find(db, session.course_id, session.user_id)
                if row is None:
                    row = LearningSessionRecord(
                        id=str(uuid4()),
                        user_id=session.user_id,
                        course_id=session.course_id,
                    )
                    db.add(row)
                row.state_json = payload
                row.current_phase = session.current_phase
                row.current_concept = session.current_concept
        except SQLAlchemyError as e:
            raise StoreFailureError("save", e)
