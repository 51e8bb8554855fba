"""String enums stored as plain VARCHAR columns."""
from enum import Enum


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    MATCHING = "MATCHING"
    ORDERING = "ORDERING"


class AttemptStatus(str, Enum):
    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"


class GradeStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    RETRY_ALLOWED = "RETRY_ALLOWED"


class VideoStatus(str, Enum):
    READY = "READY"
    PROCESSING = "PROCESSING"
    ERROR = "ERROR"
