"""
Per-process wiring.

One LearningContext is built at startup and handed to request handlers;
there are no module-level manager instances.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import Settings
from database import DatabaseManager
from learning.services.evaluator import AnswerEvaluator, RemoteAnswerEvaluator
from learning.services.session_locks import SessionLockRegistry
from learning.services.session_service import SessionService
from persistence.repositories import (
    CourseStore,
    InMemoryCourseStore,
    InMemorySessionStore,
    JsonFileCourseStore,
    JsonFileSessionStore,
    SessionStore,
    SqlCourseStore,
    SqlSessionStore,
)

logger = logging.getLogger(__name__)


@dataclass
class LearningContext:
    settings: Settings
    session_store: SessionStore
    course_store: CourseStore
    evaluator: AnswerEvaluator
    locks: SessionLockRegistry
    session_service: SessionService
    db_manager: Optional[DatabaseManager] = None

    def close(self) -> None:
        if self.db_manager is not None:
            self.db_manager.close()


def build_context(
    settings: Settings,
    evaluator: Optional[AnswerEvaluator] = None,
    session_store: Optional[SessionStore] = None,
    course_store: Optional[CourseStore] = None,
) -> LearningContext:
    """Build stores, evaluator and service for the configured backend. Explicit arguments win."""
    db_manager = None

    if session_store is None or course_store is None:
        if settings.storage_backend == "sql":
            db_manager = DatabaseManager(settings)
            db_manager.create_tables()
            session_store = session_store or SqlSessionStore(db_manager)
            course_store = course_store or SqlCourseStore(db_manager)
        elif settings.storage_backend == "file":
            session_store = session_store or JsonFileSessionStore(settings.data_dir)
            course_store = course_store or JsonFileCourseStore(settings.data_dir)
        else:
            session_store = session_store or InMemorySessionStore()
            course_store = course_store or InMemoryCourseStore()

    if evaluator is None:
        evaluator = RemoteAnswerEvaluator(settings.evaluator_url, settings.evaluator_timeout_seconds)

    locks = SessionLockRegistry()
    service = SessionService(
        session_store=session_store,
        course_store=course_store,
        evaluator=evaluator,
        locks=locks,
        settings=settings,
    )
    logger.info(f"Learning context ready (storage backend: {settings.storage_backend})")

    return LearningContext(
        settings=settings,
        session_store=session_store,
        course_store=course_store,
        evaluator=evaluator,
        locks=locks,
        session_service=service,
        db_manager=db_manager,
    )
