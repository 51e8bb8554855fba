"""Question model. question_data is a per-type JSON document validated on write."""
from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from videolearn.db.session import Base
from videolearn.models._ids import new_id


class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=new_id)
    milestone_id = Column(String(36), ForeignKey("milestones.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)  # QuestionType value
    text = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)
    question_data = Column(JSON, nullable=False)
    points = Column(Integer, nullable=False, default=1)
    pass_threshold = Column(Float, nullable=False, default=0.7)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)

    milestone = relationship("Milestone", back_populates="questions")
