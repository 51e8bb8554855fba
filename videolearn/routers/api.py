"""API routes: playback sessions, milestones, answers, progress and authoring."""
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from videolearn.core.errors import AccessDenied, NotFound
from videolearn.core.security import decode_access_token
from videolearn.models.enums import SessionStatus
from videolearn.schemas.progress import ProgressOut
from videolearn.schemas.session import (
    AnswerResultOut,
    CompleteSessionIn,
    MilestoneReachedIn,
    SessionListOut,
    SessionOut,
    SessionStateOut,
    SubmitAnswerIn,
    UpdateProgressIn,
)
from videolearn.schemas.video import MilestoneCreate, MilestoneOut, QuestionOut, VideoCreate, VideoOut, VideoStateOut
from videolearn.services.engine import LearningEngine
from videolearn.services.state_cache import SessionState, VideoState

router = APIRouter(prefix="/api", tags=["api"])
bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str


def get_engine(request: Request) -> LearningEngine:
    return request.app.state.engine


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid token", headers={"WWW-Authenticate": "Bearer"})
    return CurrentUser(id=claims["sub"], role=claims.get("role", "STUDENT"))


Engine = Annotated[LearningEngine, Depends(get_engine)]
User = Annotated[CurrentUser, Depends(get_current_user)]


def session_state_out(state: SessionState) -> SessionStateOut:
    return SessionStateOut(
        session=state.session,
        answers=state.answers,
        correct_answers=state.correct_answers,
        total_answers=state.total_answers,
        completion_percentage=state.completion_percentage,
        current_milestone_id=state.current_milestone_id,
    )


def video_state_out(state: VideoState) -> VideoStateOut:
    return VideoStateOut(
        video=state.video,
        milestones=state.milestones,
        questions=state.questions,
        total_milestones=state.total_milestones,
        total_questions=state.total_questions,
        questions_per_milestone=state.questions_per_milestone,
    )


# --- playback ---


@router.post("/videos/{video_id}/sessions", response_model=SessionOut)
async def start_session(video_id: str, engine: Engine, user: User):
    """Start or resume the caller's session on a video."""
    return await engine.start_session(video_id, user.id, user.role)


@router.patch("/sessions/{session_id}/progress", response_model=SessionOut)
async def update_progress(session_id: str, data: UpdateProgressIn, engine: Engine, user: User):
    return await engine.update_session_progress(session_id, user.id, data.position, data.watch_time_delta)


@router.post("/sessions/{session_id}/milestones", response_model=SessionOut)
async def milestone_reached(session_id: str, data: MilestoneReachedIn, engine: Engine, user: User):
    return await engine.mark_milestone_reached(session_id, user.id, data.milestone_id, data.timestamp)


@router.post("/sessions/{session_id}/answers", response_model=AnswerResultOut)
async def submit_answer(session_id: str, data: SubmitAnswerIn, engine: Engine, user: User):
    """Grade one answer. 429 once the milestone's retry limit is used up."""
    return await engine.submit_answer(session_id, user.id, data.question_id, data.milestone_id, data.answer)


@router.post("/sessions/{session_id}/complete", response_model=SessionOut)
async def complete_session(session_id: str, data: CompleteSessionIn, engine: Engine, user: User):
    return await engine.complete_session(session_id, user.id, data.final_position, data.total_watch_time)


@router.get("/sessions", response_model=SessionListOut)
async def list_sessions(
    engine: Engine,
    user: User,
    status: SessionStatus | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """The caller's sessions, most recently seen first."""
    sessions, total = await engine.list_sessions(user.id, status.value if status else None, page, limit)
    return SessionListOut(sessions=sessions, total=total, page=page, limit=limit)


@router.get("/sessions/{session_id}/state", response_model=SessionStateOut)
async def get_session_state(session_id: str, engine: Engine, user: User, refresh: bool = False):
    state = await engine.get_session_state(session_id, user.id, user.role, force_refresh=refresh)
    return session_state_out(state)


@router.get("/videos/{video_id}/state", response_model=VideoStateOut)
async def get_video_state(video_id: str, engine: Engine, user: User, refresh: bool = False):
    """Video, milestones and questions; answer keys are hidden from non-authors."""
    state = await engine.get_video_state(video_id, user.id, user.role, force_refresh=refresh)
    return video_state_out(state)


@router.get("/lessons/{lesson_id}/progress", response_model=ProgressOut)
async def get_progress(lesson_id: str, engine: Engine, user: User, student_id: str | None = None):
    """Progress of the caller, or of `student_id` for teachers and admins."""
    target = student_id or user.id
    if target != user.id and user.role == "STUDENT":
        raise AccessDenied("Students can only read their own progress")
    progress = await engine.get_progress(target, lesson_id)
    if progress is None:
        raise NotFound("No progress recorded for this lesson", lesson_id=lesson_id)
    return ProgressOut.model_validate(progress)


# --- authoring ---


@router.post("/videos", response_model=VideoOut, status_code=201)
async def register_video(data: VideoCreate, engine: Engine, user: User):
    return await engine.register_video(data, user.id, user.role)


@router.post("/videos/{video_id}/milestones", response_model=MilestoneOut, status_code=201)
async def create_milestone(video_id: str, data: MilestoneCreate, engine: Engine, user: User):
    return await engine.create_milestone(video_id, data, user.id, user.role)


@router.post("/milestones/{milestone_id}/questions", response_model=QuestionOut, status_code=201)
async def add_question(
    milestone_id: str,
    payload: Annotated[dict[str, Any], Body()],
    engine: Engine,
    user: User,
):
    """Add a question; the body is validated against the schema for its `type`."""
    return await engine.add_question(milestone_id, payload, user.id, user.role)


@router.delete("/questions/{question_id}", status_code=204)
async def remove_question(question_id: str, engine: Engine, user: User):
    await engine.remove_question(question_id, user.id, user.role)


@router.post("/videos/{video_id}/generated-questions")
async def ingest_generated_questions(
    video_id: str,
    batches: Annotated[dict[str, list[dict[str, Any]]], Body()],
    engine: Engine,
    user: User,
):
    """Store question batches from the generator, keyed by milestone id."""
    if user.role == "STUDENT":
        raise AccessDenied("Only teachers and admins can ingest generated questions")
    report = await engine.ingest_generated_questions(video_id, batches)
    return {"ingested": report.ingested, "failed": report.failed, "rejected": report.rejected}
