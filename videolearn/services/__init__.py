from videolearn.services.access import AccessPolicy, AllowAllPolicy, EnrollmentAccessPolicy
from videolearn.services.authoring import AuthoringService, IngestReport, MetadataProvider
from videolearn.services.engine import LearningEngine
from videolearn.services.evaluator import EvaluationResult, evaluate_answer, evaluate_with_matcher
from videolearn.services.progress import ProgressAggregator, compute_letter_grade
from videolearn.services.sessions import SessionManager
from videolearn.services.state_cache import SessionState, StateSyncCache, Subscription, VideoState

__all__ = [
    "AccessPolicy",
    "AllowAllPolicy",
    "AuthoringService",
    "EnrollmentAccessPolicy",
    "EvaluationResult",
    "IngestReport",
    "LearningEngine",
    "MetadataProvider",
    "ProgressAggregator",
    "SessionManager",
    "SessionState",
    "StateSyncCache",
    "Subscription",
    "VideoState",
    "compute_letter_grade",
    "evaluate_answer",
    "evaluate_with_matcher",
]
