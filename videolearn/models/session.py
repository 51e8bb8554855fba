"""Student playback session for one video, plus its milestone reach records."""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from videolearn.db.session import Base
from videolearn.models._ids import new_id
from videolearn.models.enums import SessionStatus


class VideoSession(Base):
    __tablename__ = "student_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    student_id = Column(String(64), nullable=False, index=True)
    video_id = Column(String(36), ForeignKey("videos.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=SessionStatus.ACTIVE.value)
    current_position = Column(Float, nullable=False, default=0.0)
    last_milestone_id = Column(String(36), nullable=True)
    watch_time = Column(Float, nullable=False, default=0.0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    video = relationship("Video")
    milestone_progress = relationship(
        "MilestoneProgress",
        back_populates="session",
        order_by="MilestoneProgress.id",
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("student_id", "video_id", name="uq_session_student_video"),)

    @property
    def completed_milestones(self) -> set[str]:
        return {mp.milestone_id for mp in self.milestone_progress}

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


class MilestoneProgress(Base):
    __tablename__ = "milestone_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("student_sessions.id"), nullable=False, index=True)
    milestone_id = Column(String(36), ForeignKey("milestones.id"), nullable=False)
    timestamp = Column(Float, nullable=True)  # playback position reported by the client
    reached_at = Column(DateTime(timezone=True), nullable=False)

    session = relationship("VideoSession", back_populates="milestone_progress")

    __table_args__ = (UniqueConstraint("session_id", "milestone_id", name="uq_milestone_progress"),)
