"""Course data access layer. Courses are read-only to the learning core."""
import logging
import threading
from pathlib import Path
from typing import Protocol
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from database import DatabaseManager
from learning.exceptions import CourseNotFoundError, StoreFailureError
from learning.models.course import Course
from persistence.models.entities import CourseRecord
from persistence.repositories.session_repository import encode_key

logger = logging.getLogger(__name__)


class CourseStore(Protocol):
    def load(self, course_id: str) -> Course:
        ...

    def save(self, course: Course) -> None:
        ...

    def list_names(self) -> list[str]:
        ...


def _dump_course(course: Course) -> str:
    return course.model_dump_json(by_alias=True)


class InMemoryCourseStore:
    def __init__(self, courses: list[Course] | None = None):
        self._courses: dict[str, str] = {}
        self._lock = threading.Lock()
        for course in courses or []:
            self.save(course)

    def load(self, course_id: str) -> Course:
        with self._lock:
            payload = self._courses.get(course_id)
        if payload is None:
            raise CourseNotFoundError(course_id)
        return Course.model_validate_json(payload)

    def save(self, course: Course) -> None:
        with self._lock:
            self._courses[course.name] = _dump_course(course)

    def list_names(self) -> list[str]:
        with self._lock:
            return sorted(self._courses)


class JsonFileCourseStore:
    """One JSON document per course under <data_dir>/courses."""

    def __init__(self, data_dir: str | Path):
        self.courses_dir = Path(data_dir) / "courses"

    def _path(self, course_id: str) -> Path:
        return self.courses_dir / f"{encode_key(course_id)}.json"

    def load(self, course_id: str) -> Course:
        path = self._path(course_id)
        if not path.exists():
            raise CourseNotFoundError(course_id)
        try:
            course = Course.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to load course from {path}: {e}")
            raise StoreFailureError("load_course", e)
        if course.name != course_id:
            raise CourseNotFoundError(course_id)
        return course

    def save(self, course: Course) -> None:
        path = self._path(course.name)
        try:
            self.courses_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(_dump_course(course), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save course to {path}: {e}")
            raise StoreFailureError("save_course", e)
        logger.info(f"Course saved to {path}")

    def list_names(self) -> list[str]:
        if not self.courses_dir.exists():
            return []
        names = []
        for path in sorted(self.courses_dir.glob("*.json")):
            try:
                names.append(Course.model_validate_json(path.read_text(encoding="utf-8")).name)
            except (OSError, ValidationError) as e:
                raise StoreFailureError("list_courses", e)
        return names


class SqlCourseStore:
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def load(self, course_id: str) -> Course:
        try:
            with self.db_manager.session_scope() as db:
                row = db.get(CourseRecord, course_id)
                payload = row.course_json if row else None
        except SQLAlchemyError as e:
            raise StoreFailureError("load_course", e)

        if payload is None:
            raise CourseNotFoundError(course_id)
        try:
            return Course.model_validate_json(payload)
        except ValidationError as e:
            raise StoreFailureError("load_course", e)

    def save(self, course: Course) -> None:
        """Upsert by course name."""
        try:
            with self.db_manager.session_scope() as db:
                row = db.get(CourseRecord, course.name)
                if row is None:
                    row = CourseRecord(name=course.name)
                    db.add(row)
                row.course_json = _dump_course(course)
        except SQLAlchemyError as e:
            raise StoreFailureError("save_course", e)
        logger.info(f"Course {course.name} saved")

    def list_names(self) -> list[str]:
        try:
            with self.db_manager.session_scope() as db:
                return [name for (name,) in db.query(CourseRecord.name).order_by(CourseRecord.name).all()]
        except SQLAlchemyError as e:
            raise StoreFailureError("list_courses", e)
