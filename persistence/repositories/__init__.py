"""Session and course stores."""
from persistence.repositories.session_repository import (
    SessionStore,
    InMemorySessionStore,
    JsonFileSessionStore,
    SqlSessionStore,
)
from persistence.repositories.course_repository import (
    CourseStore,
    InMemoryCourseStore,
    JsonFileCourseStore,
    SqlCourseStore,
)
