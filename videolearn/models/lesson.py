"""Lesson and enrollment models. A lesson groups ordered videos."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from videolearn.db.session import Base
from videolearn.models._ids import new_id


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    created_by_id = Column(String(64), nullable=False, index=True)
    is_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    videos = relationship("Video", back_populates="lesson", order_by="Video.order")


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(64), nullable=False, index=True)
    lesson_id = Column(String(36), ForeignKey("lessons.id"), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("student_id", "lesson_id", name="uq_enrollment_student_lesson"),)
