"""SQLAlchemy declarative base and model imports for Alembic."""
from videolearn.db.session import Base

# Import all models so Alembic and create_all can see them
from videolearn.models.attempt import Attempt  # noqa: F401
from videolearn.models.lesson import Enrollment, Lesson  # noqa: F401
from videolearn.models.milestone import Milestone  # noqa: F401
from videolearn.models.progress import Grade, Progress  # noqa: F401
from videolearn.models.question import Question  # noqa: F401
from videolearn.models.session import MilestoneProgress, VideoSession  # noqa: F401
from videolearn.models.video import Video  # noqa: F401

__all__ = [
    "Base",
    "Attempt",
    "Enrollment",
    "Grade",
    "Lesson",
    "Milestone",
    "MilestoneProgress",
    "Progress",
    "Question",
    "Video",
    "VideoSession",
]
