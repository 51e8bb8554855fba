"""Pydantic schemas for sessions, milestone reaches and answer submissions."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SessionOut(BaseModel):
    id: str
    student_id: str
    video_id: str
    status: str
    current_position: float
    completed_milestones: list[str]
    last_milestone_id: str | None = None
    watch_time: float
    started_at: datetime
    last_seen_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_session(cls, session) -> "SessionOut":
        return cls(
            id=session.id,
            student_id=session.student_id,
            video_id=session.video_id,
            status=session.status,
            current_position=session.current_position,
            completed_milestones=[mp.milestone_id for mp in session.milestone_progress],
            last_milestone_id=session.last_milestone_id,
            watch_time=session.watch_time,
            started_at=session.started_at,
            last_seen_at=session.last_seen_at,
            completed_at=session.completed_at,
        )


class AttemptOut(BaseModel):
    id: str
    question_id: str
    attempt_number: int
    answer_payload: Any = None
    is_correct: bool
    score: float
    status: str
    submitted_at: datetime

    class Config:
        from_attributes = True


class UpdateProgressIn(BaseModel):
    position: float = Field(ge=0)
    watch_time_delta: float | None = Field(None, ge=0)


class MilestoneReachedIn(BaseModel):
    milestone_id: str
    timestamp: float = Field(ge=0)


class SubmitAnswerIn(BaseModel):
    question_id: str
    milestone_id: str
    answer: Any


class CompleteSessionIn(BaseModel):
    final_position: float = Field(ge=0)
    total_watch_time: float = Field(ge=0)


class AnswerResultOut(BaseModel):
    is_correct: bool
    score: float
    explanation: str | None = None
    attempt_number: int
    attempts_remaining: int


class SessionStateOut(BaseModel):
    session: SessionOut
    answers: dict[str, AttemptOut]
    correct_answers: int
    total_answers: int
    completion_percentage: float
    current_milestone_id: str | None = None


class SessionListOut(BaseModel):
    sessions: list[SessionOut]
    total: int
    page: int
    limit: int
