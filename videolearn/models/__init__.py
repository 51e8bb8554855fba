from videolearn.models.attempt import Attempt
from videolearn.models.enums import AttemptStatus, GradeStatus, QuestionType, SessionStatus, VideoStatus
from videolearn.models.lesson import Enrollment, Lesson
from videolearn.models.milestone import Milestone
from videolearn.models.progress import Grade, Progress
from videolearn.models.question import Question
from videolearn.models.session import MilestoneProgress, VideoSession
from videolearn.models.video import Video

__all__ = [
    "Attempt",
    "AttemptStatus",
    "Enrollment",
    "Grade",
    "GradeStatus",
    "Lesson",
    "Milestone",
    "MilestoneProgress",
    "Progress",
    "Question",
    "QuestionType",
    "SessionStatus",
    "Video",
    "VideoSession",
    "VideoStatus",
]
