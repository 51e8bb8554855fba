"""Authorization seam: decides whether a caller may open a video.

The HTTP layer has already verified identity and role; this only answers the
ownership/enrollment question the session flow needs.
"""
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from videolearn.models.lesson import Enrollment, Lesson
from videolearn.models.video import Video


class AccessPolicy(Protocol):
    async def can_view_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool: ...

    async def can_author_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool: ...


class EnrollmentAccessPolicy:
    """Admins see everything; lesson authors see their lessons; students need an enrollment."""

    async def _lesson(self, db: AsyncSession, video: Video) -> Lesson | None:
        return await db.get(Lesson, video.lesson_id)

    async def can_view_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool:
        if role == "ADMIN":
            return True
        lesson = await self._lesson(db, video)
        if lesson is None:
            return False
        if lesson.created_by_id == user_id:
            return True
        result = await db.execute(
            select(Enrollment.id).where(Enrollment.student_id == user_id, Enrollment.lesson_id == lesson.id)
        )
        return result.scalar_one_or_none() is not None

    async def can_author_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool:
        if role == "ADMIN":
            return True
        if role != "TEACHER":
            return False
        lesson = await self._lesson(db, video)
        return lesson is not None and lesson.created_by_id == user_id


class AllowAllPolicy:
    """Used by tooling and tests that bypass authorization."""

    async def can_view_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool:
        return True

    async def can_author_video(self, db: AsyncSession, video: Video, user_id: str, role: str) -> bool:
        return True
