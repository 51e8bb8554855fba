"""MilestoneGate: records milestone reach events for a session, idempotently.

Reaches may arrive in any order (client retries, out-of-order delivery); the
gate only records them. Pausing playback at a milestone is the player's job.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from videolearn.core.errors import Conflict, NotFound
from videolearn.models.milestone import Milestone
from videolearn.models.session import MilestoneProgress, VideoSession

logger = logging.getLogger(__name__)


async def milestones_for_video(db: AsyncSession, video_id: str) -> list[Milestone]:
    """Milestones in presentation order (timestamp ascending)."""
    result = await db.execute(
        select(Milestone).where(Milestone.video_id == video_id).order_by(Milestone.timestamp.asc())
    )
    return list(result.scalars().all())


async def get_video_milestone(db: AsyncSession, video_id: str, milestone_id: str) -> Milestone:
    result = await db.execute(
        select(Milestone).where(Milestone.id == milestone_id, Milestone.video_id == video_id)
    )
    milestone = result.scalar_one_or_none()
    if milestone is None:
        raise NotFound("Milestone not found", milestone_id=milestone_id)
    return milestone


class MilestoneGate:
    async def mark_reached(
        self,
        db: AsyncSession,
        session: VideoSession,
        milestone_id: str,
        timestamp: float,
    ) -> bool:
        """Record that `session` reached `milestone_id`.

        Returns True when a new reach was recorded and False for a duplicate.
        The milestone must belong to the session's video.
        """
        await get_video_milestone(db, session.video_id, milestone_id)

        if milestone_id in session.completed_milestones:
            return False
        if session.is_completed:
            raise Conflict("Session is already completed")

        now = datetime.now(timezone.utc)
        # The unique (session_id, milestone_id) constraint backs the membership
        # check; a lost race surfaces as IntegrityError and the engine retries.
        session.milestone_progress.append(
            MilestoneProgress(milestone_id=milestone_id, timestamp=timestamp, reached_at=now)
        )
        session.last_milestone_id = milestone_id
        session.current_position = timestamp
        session.last_seen_at = now
        await db.flush()
        logger.info("Session %s reached milestone %s at %.1fs", session.id, milestone_id, timestamp)
        return True
