"""Session management API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from learning.context import LearningContext
from learning.exceptions import LearningError
from learning.models.progress import SpecialQuestion
from learning.models.schemas import (
    AnswerOutcome,
    AnswerRequest,
    ConnectionResponse,
    CourseListResponse,
    SessionView,
    SpecialQuestionRequest,
    StartSessionRequest,
    UpdateSessionRequest,
)
from learning.services.session_service import SessionService
from learning.utils.report_utils import ProgressReport

router = APIRouter(prefix="/sessions", tags=["sessions"])
courses_router = APIRouter(prefix="/courses", tags=["courses"])


def get_context(request: Request) -> LearningContext:
    return request.app.state.learning


def get_session_service(context: LearningContext = Depends(get_context)) -> SessionService:
    return context.session_service


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    FastAPI dependency: the caller's user id from the X-User-Id header.
    Authentication happens upstream; raises 401 when the header is missing.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


@router.post("", response_model=SessionView)
async def start_session(
    request: StartSessionRequest,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Resume the session for a course, creating it on first visit."""
    try:
        session, created = await service.start_session(
            request.course_id,
            user_id,
            existing_understanding=request.existing_understanding,
            time_available=request.time_available,
        )
        return SessionView.from_session(session, created=created)
    except LearningError as e:
        raise e.to_http_exception()


@router.get("/{course_id}", response_model=SessionView)
def get_session(
    course_id: str,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Session state with its progress summary."""
    try:
        session = service.load_session(course_id, user_id)
        progress = service.get_progress(course_id, user_id)
        return SessionView.from_session(session, progress=progress)
    except LearningError as e:
        raise e.to_http_exception()


@router.put("/{course_id}", response_model=SessionView)
async def update_session(
    course_id: str,
    request: UpdateSessionRequest,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Confirmed phase change and/or preference update."""
    try:
        session = None
        if request.existing_understanding or request.time_available:
            session = await service.update_preferences(
                course_id,
                user_id,
                existing_understanding=request.existing_understanding,
                time_available=request.time_available,
            )
        if request.phase:
            session = await service.change_phase(course_id, user_id, request.phase, request.concept)
        if session is None:
            session = service.load_session(course_id, user_id)
        return SessionView.from_session(session)
    except LearningError as e:
        raise e.to_http_exception()


@router.post("/{course_id}/answers", response_model=AnswerOutcome)
async def submit_answer(
    course_id: str,
    request: AnswerRequest,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Score an answer and record it in the session's current phase."""
    try:
        return await service.submit_answer(
            course_id,
            user_id,
            question=request.question,
            answer=request.answer,
            concept_name=request.concept,
            item_name=request.item,
        )
    except LearningError as e:
        raise e.to_http_exception()


@router.post("/{course_id}/special-questions", response_model=SpecialQuestion)
async def record_special_question(
    course_id: str,
    request: SpecialQuestionRequest,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    try:
        return await service.record_special_question(
            course_id,
            user_id,
            request.concept,
            request.type,
            request.question,
            answer=request.answer,
            target_item=request.target_item,
            connected_item=request.connected_item,
        )
    except LearningError as e:
        raise e.to_http_exception()


@router.get("/{course_id}/progress", response_model=ProgressReport)
def get_progress(
    course_id: str,
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Topic and item scores per concept."""
    try:
        return service.get_progress(course_id, user_id)
    except LearningError as e:
        raise e.to_http_exception()


@router.get("/{course_id}/connection", response_model=ConnectionResponse)
def get_connection(
    course_id: str,
    concept: str = Query(..., min_length=1),
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Best-performing and worst-struggling items of a concept, if both exist."""
    try:
        return ConnectionResponse(concept=concept, pair=service.suggest_connection(course_id, user_id, concept))
    except LearningError as e:
        raise e.to_http_exception()


@router.get("/{course_id}/next-item")
def get_next_item(
    course_id: str,
    concept: str = Query(..., min_length=1),
    user_id: str = Depends(get_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Next flashcard due for a concept; null once every item is mastered."""
    try:
        return {"concept": concept, "item": service.next_item(course_id, user_id, concept)}
    except LearningError as e:
        raise e.to_http_exception()


@courses_router.get("", response_model=CourseListResponse)
def list_courses(context: LearningContext = Depends(get_context)):
    try:
        return CourseListResponse(courses=context.course_store.list_names())
    except LearningError as e:
        raise e.to_http_exception()
