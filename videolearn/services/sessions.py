"""SessionManager: playback session lifecycle plus answer submission.

State machine: ACTIVE <-> PAUSED -> COMPLETED (terminal). PAUSED is set by an
external collaborator; `start` resumes it. Every method works inside the
caller's transaction and only flushes; the engine commits.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from videolearn.core.config import Settings, get_settings
from videolearn.core.errors import AccessDenied, Conflict, NotFound, ValidationError
from videolearn.models.attempt import Attempt
from videolearn.models.enums import SessionStatus
from videolearn.models.milestone import Milestone
from videolearn.models.question import Question
from videolearn.models.session import VideoSession
from videolearn.models.video import Video
from videolearn.services.access import AccessPolicy, EnrollmentAccessPolicy
from videolearn.services.attempts import AttemptLedger
from videolearn.services.evaluator import EvaluationResult, SemanticMatcher, evaluate_with_matcher
from videolearn.services.milestones import MilestoneGate, get_video_milestone
from videolearn.services.progress import ProgressAggregator

logger = logging.getLogger(__name__)


@dataclass
class AnswerOutcome:
    session: VideoSession
    attempt: Attempt
    result: EvaluationResult
    explanation: str | None
    attempts_remaining: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    def __init__(
        self,
        access_policy: AccessPolicy | None = None,
        gate: MilestoneGate | None = None,
        ledger: AttemptLedger | None = None,
        aggregator: ProgressAggregator | None = None,
        matcher: SemanticMatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.access_policy = access_policy or EnrollmentAccessPolicy()
        self.gate = gate or MilestoneGate()
        self.ledger = ledger or AttemptLedger()
        self.aggregator = aggregator or ProgressAggregator()
        self.matcher = matcher
        self.settings = settings or get_settings()

    async def get_video(self, db: AsyncSession, video_id: str) -> Video:
        video = await db.get(Video, video_id)
        if video is None:
            raise NotFound("Video not found", video_id=video_id)
        return video

    async def load_owned(self, db: AsyncSession, session_id: str, student_id: str) -> VideoSession:
        """Fetch a session and check it belongs to `student_id`."""
        session = (
            await db.execute(select(VideoSession).where(VideoSession.id == session_id))
        ).scalar_one_or_none()
        if session is None:
            raise NotFound("Session not found", session_id=session_id)
        if session.student_id != student_id:
            raise AccessDenied("Session belongs to another student")
        return session

    async def recompute_for(self, db: AsyncSession, session: VideoSession) -> None:
        video = await self.get_video(db, session.video_id)
        await self.aggregator.recompute(db, session.student_id, video.lesson_id)

    async def start(self, db: AsyncSession, video_id: str, student_id: str, role: str = "STUDENT") -> VideoSession:
        """Resume the student's session for `video_id`, or create it."""
        video = await db.get(Video, video_id)
        if video is None or not await self.access_policy.can_view_video(db, video, student_id, role):
            # Same error either way so access checks do not leak existence
            raise NotFound("Video not found", video_id=video_id)

        session = (
            await db.execute(
                select(VideoSession).where(VideoSession.student_id == student_id, VideoSession.video_id == video_id)
            )
        ).scalar_one_or_none()
        now = _now()
        if session is not None:
            if session.status != SessionStatus.COMPLETED:
                session.status = SessionStatus.ACTIVE.value
            session.last_seen_at = now
            await db.flush()
            logger.info("Resumed session %s for student %s on video %s", session.id, student_id, video_id)
            return session

        session = VideoSession(
            student_id=student_id,
            video_id=video_id,
            status=SessionStatus.ACTIVE.value,
            current_position=0.0,
            watch_time=0.0,
            started_at=now,
            last_seen_at=now,
            milestone_progress=[],
        )
        db.add(session)
        await db.flush()
        logger.info("Started session %s for student %s on video %s", session.id, student_id, video_id)
        return session

    async def update_progress(
        self,
        db: AsyncSession,
        session_id: str,
        student_id: str,
        position: float,
        watch_time_delta: float | None = None,
    ) -> VideoSession:
        session = await self.load_owned(db, session_id, student_id)
        if session.is_completed:
            raise Conflict("Session is already completed")
        # Rewinds are allowed; position is not monotonic
        session.current_position = position
        if watch_time_delta:
            session.watch_time = (session.watch_time or 0.0) + watch_time_delta
        session.last_seen_at = _now()
        await db.flush()
        return session

    async def mark_milestone_reached(
        self,
        db: AsyncSession,
        session_id: str,
        student_id: str,
        milestone_id: str,
        timestamp: float,
    ) -> VideoSession:
        session = await self.load_owned(db, session_id, student_id)
        if await self.gate.mark_reached(db, session, milestone_id, timestamp):
            await self.recompute_for(db, session)
        return session

    async def submit_answer(
        self,
        db: AsyncSession,
        session_id: str,
        student_id: str,
        question_id: str,
        milestone_id: str,
        answer: Any,
    ) -> AnswerOutcome:
        session = await self.load_owned(db, session_id, student_id)
        if session.is_completed:
            raise Conflict("Session is already completed")
        milestone = await get_video_milestone(db, session.video_id, milestone_id)
        question = (
            await db.execute(select(Question).where(Question.id == question_id, Question.milestone_id == milestone.id))
        ).scalar_one_or_none()
        if question is None:
            raise NotFound("Question not found", question_id=question_id)

        async def grade() -> EvaluationResult:
            return await evaluate_with_matcher(
                question.type,
                question.question_data,
                answer,
                pass_threshold=question.pass_threshold,
                matcher=self.matcher,
                timeout=self.settings.semantic_match_timeout_seconds,
            )

        attempt = await self.ledger.record(db, session, question, milestone, answer, grade)
        session.last_seen_at = _now()
        await db.flush()
        await self.recompute_for(db, session)
        return AnswerOutcome(
            session=session,
            attempt=attempt,
            result=EvaluationResult(is_correct=attempt.is_correct, score=attempt.score),
            explanation=question.explanation,
            attempts_remaining=max(0, milestone.retry_limit - attempt.attempt_number),
        )

    async def complete(
        self,
        db: AsyncSession,
        session_id: str,
        student_id: str,
        final_position: float,
        total_watch_time: float,
    ) -> VideoSession:
        """Mark the session completed. Completing twice returns the stored state."""
        session = await self.load_owned(db, session_id, student_id)
        if session.is_completed:
            return session
        now = _now()
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = now
        session.last_seen_at = now
        session.current_position = final_position
        session.watch_time = max(session.watch_time or 0.0, total_watch_time)
        await db.flush()
        await self.recompute_for(db, session)
        logger.info("Completed session %s for student %s", session.id, student_id)
        return session

    async def answers_for(self, db: AsyncSession, session: VideoSession) -> list[Attempt]:
        """Latest attempts by the session's student on questions of the session's video."""
        result = await db.execute(
            select(Attempt)
            .join(Question, Question.id == Attempt.question_id)
            .join(Milestone, Milestone.id == Question.milestone_id)
            .where(Attempt.student_id == session.student_id, Milestone.video_id == session.video_id)
        )
        return list(result.scalars().all())

    async def list_sessions(
        self,
        db: AsyncSession,
        student_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[VideoSession], int]:
        """One page of a student's sessions, most recently seen first, plus the total count."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive", page=page, limit=limit)
        conditions = [VideoSession.student_id == student_id]
        if status is not None:
            try:
                conditions.append(VideoSession.status == SessionStatus(status).value)
            except ValueError:
                raise ValidationError("Unknown session status", status=status) from None

        total = (await db.execute(select(func.count()).select_from(VideoSession).where(*conditions))).scalar_one()
        result = await db.execute(
            select(VideoSession)
            .where(*conditions)
            .order_by(VideoSession.last_seen_at.desc(), VideoSession.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
