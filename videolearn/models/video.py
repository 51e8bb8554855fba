"""Video model. Duration may be unknown when metadata extraction failed."""
from sqlalchemy import BigInteger, Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from videolearn.db.session import Base
from videolearn.models._ids import new_id
from videolearn.models.enums import VideoStatus


class Video(Base):
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=new_id)
    lesson_id = Column(String(36), ForeignKey("lessons.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    order = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=VideoStatus.READY.value)
    file_ref = Column(String(512), nullable=True)
    duration = Column(Float, nullable=True)  # seconds
    size = Column(BigInteger, nullable=True)  # bytes
    thumbnail_ref = Column(String(512), nullable=True)

    lesson = relationship("Lesson", back_populates="videos")
    milestones = relationship("Milestone", back_populates="video", order_by="Milestone.timestamp")
