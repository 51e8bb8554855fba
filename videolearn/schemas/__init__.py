from videolearn.schemas.progress import GradeOut, ProgressOut
from videolearn.schemas.question_data import QuestionCreate, parse_question_create, parse_question_data
from videolearn.schemas.session import (
    AnswerResultOut,
    AttemptOut,
    CompleteSessionIn,
    MilestoneReachedIn,
    SessionOut,
    SessionStateOut,
    SubmitAnswerIn,
    UpdateProgressIn,
)
from videolearn.schemas.video import (
    MilestoneCreate,
    MilestoneOut,
    QuestionOut,
    VideoCreate,
    VideoMetadata,
    VideoOut,
    VideoStateOut,
)

__all__ = [
    "AnswerResultOut",
    "AttemptOut",
    "CompleteSessionIn",
    "GradeOut",
    "MilestoneCreate",
    "MilestoneOut",
    "MilestoneReachedIn",
    "ProgressOut",
    "QuestionCreate",
    "QuestionOut",
    "SessionOut",
    "SessionStateOut",
    "SubmitAnswerIn",
    "UpdateProgressIn",
    "VideoCreate",
    "VideoMetadata",
    "VideoOut",
    "VideoStateOut",
    "parse_question_create",
    "parse_question_data",
]
