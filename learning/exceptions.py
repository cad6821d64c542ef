"""
Custom Exception Hierarchy for the Learning Core

Exception Hierarchy:
    LearningError (base)
    ├── ConceptNotFoundError
    ├── InvalidAttemptError
    ├── SessionError
    │   ├── SessionNotFoundError
    │   └── SessionAlreadyExistsError
    ├── CourseError
    │   ├── CourseNotFoundError
    │   └── CourseContentNotFoundError
    ├── EvaluationFailedError
    └── StoreFailureError
"""

from typing import Any, Optional
from fastapi import HTTPException, status


class LearningError(Exception):
    """Base exception for all learning core errors."""

    kind = "learning_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ConceptNotFoundError(LearningError):
    """Raised when an operation needs progress for a concept that was never engaged."""

    kind = "concept_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, concept_name: str):
        super().__init__(
            f"Concept {concept_name} not found in session",
            {"concept_name": concept_name},
        )
        self.concept_name = concept_name


class InvalidAttemptError(LearningError):
    """Raised when an evaluation result or answer cannot be recorded."""

    kind = "invalid_attempt"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid attempt, '{field}': {reason}",
            {"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


# Session Errors

class SessionError(LearningError):
    """Base exception for session lifecycle errors."""

    def __init__(self, message: str, course_id: str, user_id: str):
        super().__init__(message, {"course_id": course_id, "user_id": user_id})
        self.course_id = course_id
        self.user_id = user_id


class SessionNotFoundError(SessionError):
    """Raised when no session exists for a (user, course) pair."""

    kind = "session_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, course_id: str, user_id: str):
        super().__init__(f"Session not found for course {course_id} and user {user_id}", course_id, user_id)


class SessionAlreadyExistsError(SessionError):
    """Raised when creating a session for a pair that already has one."""

    kind = "session_already_exists"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, course_id: str, user_id: str):
        super().__init__(f"Session already exists for course {course_id} and user {user_id}", course_id, user_id)


# Course Errors

class CourseError(LearningError):
    """Base exception for course lookup errors."""


class CourseNotFoundError(CourseError):
    """Raised when the course store has no course with this id."""

    kind = "course_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, course_id: str):
        super().__init__(f"Course {course_id} not found", {"course_id": course_id})
        self.course_id = course_id


class CourseContentNotFoundError(CourseError):
    """Raised when a request names a concept or item the course does not contain."""

    kind = "course_content_not_found"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, course_id: str, content_kind: str, name: str):
        super().__init__(
            f"{content_kind.capitalize()} \"{name}\" not found in course {course_id}",
            {"course_id": course_id, "content_kind": content_kind, "name": name},
        )
        self.course_id = course_id
        self.content_kind = content_kind
        self.name = name


# Collaborator Errors

class EvaluationFailedError(LearningError):
    """Raised when the answer evaluator fails, times out or returns garbage."""

    kind = "evaluation_failed"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        details = {"error_type": type(original_error).__name__} if original_error else {}
        super().__init__(f"Answer evaluation failed: {message}", details)
        self.original_error = original_error


class StoreFailureError(LearningError):
    """Raised when a session or course store operation fails."""

    kind = "store_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, original_error: BaseException):
        super().__init__(
            f"Store {operation} failed: {original_error}",
            {"operation": operation, "error_type": type(original_error).__name__},
        )
        self.operation = operation
        self.original_error = original_error
