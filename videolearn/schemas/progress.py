"""Pydantic schemas for lesson progress and grades."""
from typing import Any

from pydantic import BaseModel


class GradeOut(BaseModel):
    total_points: float
    earned_points: float
    percentage_score: float
    letter_grade: str | None = None
    status: str
    total_attempts: int
    remaining_attempts: int
    breakdown: dict[str, Any] | None = None

    class Config:
        from_attributes = True


class ProgressOut(BaseModel):
    student_id: str
    lesson_id: str
    total_milestones: int
    completed_milestones: int
    completion_percent: float
    average_score: float
    total_time_spent: float
    total_attempts: int
    successful_attempts: int
    is_completed: bool
    grade: GradeOut | None = None

    class Config:
        from_attributes = True
