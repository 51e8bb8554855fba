"""AttemptLedger: retry-limit enforcement and attempt upserts.

One Attempt row per (student, question) holds the latest graded submission
and a monotonically increasing attempt_number. The increment is a
compare-and-set in SQL, so a submission that lost a race cannot push the
counter past the milestone's retry limit.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from videolearn.core.errors import RetryLimitExceeded
from videolearn.models.attempt import Attempt
from videolearn.models.enums import AttemptStatus
from videolearn.models.milestone import Milestone
from videolearn.models.question import Question
from videolearn.models.session import VideoSession
from videolearn.services.evaluator import EvaluationResult

logger = logging.getLogger(__name__)


class KeyedLocks:
    """Process-local asyncio locks keyed by an arbitrary hashable."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class AttemptLedger:
    async def latest(self, db: AsyncSession, student_id: str, question_id: str) -> Attempt | None:
        result = await db.execute(
            select(Attempt).where(Attempt.student_id == student_id, Attempt.question_id == question_id)
        )
        return result.scalar_one_or_none()

    async def record(
        self,
        db: AsyncSession,
        session: VideoSession,
        question: Question,
        milestone: Milestone,
        answer: Any,
        grade: Callable[[], Awaitable[EvaluationResult]],
    ) -> Attempt:
        """Check the retry limit, grade via `grade()`, then upsert the attempt.

        Raises RetryLimitExceeded before grading when the limit is used up.
        """
        limit = milestone.retry_limit
        existing = await self.latest(db, session.student_id, question.id)
        if existing is not None and existing.attempt_number >= limit:
            logger.info(
                "Rejected submission for question %s by %s: %d/%d attempts used",
                question.id, session.student_id, existing.attempt_number, limit,
            )
            raise RetryLimitExceeded(existing.attempt_number, limit)

        result = await grade()
        now = datetime.now(timezone.utc)
        status = AttemptStatus.CORRECT.value if result.is_correct else AttemptStatus.INCORRECT.value

        if existing is None:
            attempt = Attempt(
                session_id=session.id,
                student_id=session.student_id,
                question_id=question.id,
                attempt_number=1,
                answer_payload=answer,
                is_correct=result.is_correct,
                score=result.score,
                status=status,
                submitted_at=now,
            )
            db.add(attempt)
            await db.flush()
            return attempt

        bumped = await db.execute(
            update(Attempt)
            .where(Attempt.id == existing.id, Attempt.attempt_number < limit)
            .values(
                attempt_number=Attempt.attempt_number + 1,
                session_id=session.id,
                answer_payload=answer,
                is_correct=result.is_correct,
                score=result.score,
                status=status,
                submitted_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            raise RetryLimitExceeded(limit, limit)
        await db.refresh(existing)
        return existing
