"""Progress and Grade: derived lesson-level rollups, recomputed, never hand-edited."""
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from videolearn.db.session import Base
from videolearn.models._ids import new_id
from videolearn.models.enums import GradeStatus


class Progress(Base):
    __tablename__ = "progress"

    id = Column(String(36), primary_key=True, default=new_id)
    student_id = Column(String(64), nullable=False, index=True)
    lesson_id = Column(String(36), ForeignKey("lessons.id"), nullable=False, index=True)

    total_milestones = Column(Integer, nullable=False, default=0)
    completed_milestones = Column(Integer, nullable=False, default=0)
    completion_percent = Column(Float, nullable=False, default=0.0)
    average_score = Column(Float, nullable=False, default=0.0)  # 0-100
    total_time_spent = Column(Float, nullable=False, default=0.0)  # seconds
    total_attempts = Column(Integer, nullable=False, default=0)
    successful_attempts = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    grade = relationship("Grade", back_populates="progress", uselist=False)

    __table_args__ = (UniqueConstraint("student_id", "lesson_id", name="uq_progress_student_lesson"),)


class Grade(Base):
    __tablename__ = "grades"

    id = Column(String(36), primary_key=True, default=new_id)
    student_id = Column(String(64), nullable=False, index=True)
    progress_id = Column(String(36), ForeignKey("progress.id"), nullable=False, unique=True)

    total_points = Column(Float, nullable=False, default=0.0)
    earned_points = Column(Float, nullable=False, default=0.0)
    percentage_score = Column(Float, nullable=False, default=0.0)
    letter_grade = Column(String(2), nullable=True)
    status = Column(String(16), nullable=False, default=GradeStatus.IN_PROGRESS.value)
    total_attempts = Column(Integer, nullable=False, default=0)
    remaining_attempts = Column(Integer, nullable=False, default=0)
    breakdown = Column(JSON, nullable=True)  # {"milestones": {...}, "questionTypes": {...}}
    updated_at = Column(DateTime(timezone=True), nullable=True)

    progress = relationship("Progress", back_populates="grade")
