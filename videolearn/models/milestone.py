"""Milestone model: a timestamp in a video that pauses playback for questions."""
from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from videolearn.db.session import Base
from videolearn.models._ids import new_id


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(String(36), primary_key=True, default=new_id)
    video_id = Column(String(36), ForeignKey("videos.id"), nullable=False, index=True)
    timestamp = Column(Float, nullable=False)  # seconds from start
    order = Column(Integer, nullable=False, default=0)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    retry_limit = Column(Integer, nullable=False, default=3)

    video = relationship("Video", back_populates="milestones")
    questions = relationship("Question", back_populates="milestone", order_by="Question.created_at")

    __table_args__ = (UniqueConstraint("video_id", "timestamp", name="uq_milestone_video_timestamp"),)
