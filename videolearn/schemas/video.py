"""Pydantic schemas for videos, milestones and questions."""
from typing import Any

from pydantic import BaseModel, Field


class QuestionOut(BaseModel):
    id: str
    milestone_id: str
    type: str
    text: str
    explanation: str | None = None
    question_data: dict[str, Any]
    points: int
    pass_threshold: float

    class Config:
        from_attributes = True


class MilestoneOut(BaseModel):
    id: str
    video_id: str
    timestamp: float
    order: int
    title: str
    description: str | None = None
    is_required: bool
    retry_limit: int

    class Config:
        from_attributes = True


class VideoOut(BaseModel):
    id: str
    lesson_id: str
    title: str
    order: int
    status: str
    duration: float | None = None
    size: int | None = None
    thumbnail_ref: str | None = None

    class Config:
        from_attributes = True


class MilestoneCreate(BaseModel):
    timestamp: float = Field(ge=0)
    title: str = Field(min_length=1)
    description: str | None = None
    order: int | None = None
    is_required: bool = True
    retry_limit: int | None = Field(None, ge=1)


class VideoCreate(BaseModel):
    lesson_id: str
    title: str = Field(min_length=1)
    file_ref: str | None = None
    order: int = 0


class VideoMetadata(BaseModel):
    """What the media pipeline reports about an uploaded file."""

    duration: float | None = None
    size: int | None = None
    thumbnail_ref: str | None = None


class VideoStateOut(BaseModel):
    video: VideoOut
    milestones: list[MilestoneOut]
    questions: dict[str, list[QuestionOut]]
    total_milestones: int
    total_questions: int
    questions_per_milestone: dict[str, int]
