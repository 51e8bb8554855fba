"""Attempt model: latest graded submission per (student, question) with a retry counter."""
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from videolearn.db.session import Base
from videolearn.models._ids import new_id


class Attempt(Base):
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("student_sessions.id"), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    question_id = Column(String(36), ForeignKey("questions.id"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    answer_payload = Column(JSON, nullable=True)
    is_correct = Column(Boolean, nullable=False)
    score = Column(Float, nullable=False)  # 0..1
    status = Column(String(16), nullable=False)  # CORRECT | INCORRECT
    submitted_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("student_id", "question_id", name="uq_attempt_student_question"),)
