"""LearningEngine: the one object the HTTP layer talks to.

Owns transactions, per-key locks, repository error wrapping and publication of
session projections to the state cache. Built once in the app lifespan and
closed on shutdown.
"""
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from videolearn.core.config import Settings, get_settings
from videolearn.core.errors import AccessDenied, InternalError, NotFound
from videolearn.models.progress import Progress
from videolearn.models.session import VideoSession
from videolearn.models.video import Video
from videolearn.schemas.session import AnswerResultOut, SessionOut
from videolearn.schemas.video import MilestoneCreate, MilestoneOut, QuestionOut, VideoCreate, VideoOut
from videolearn.services.access import AccessPolicy, EnrollmentAccessPolicy
from videolearn.services.attempts import KeyedLocks
from videolearn.services.authoring import AuthoringService, IngestReport, MetadataProvider
from videolearn.services.evaluator import SemanticMatcher
from videolearn.services.sessions import SessionManager
from videolearn.services.state_cache import SessionState, StateSyncCache, VideoState, build_session_state

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRIVILEGED_ROLES = ("TEACHER", "ADMIN")


class LearningEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Settings | None = None,
        access_policy: AccessPolicy | None = None,
        matcher: SemanticMatcher | None = None,
        metadata_provider: MetadataProvider | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.access_policy = access_policy or EnrollmentAccessPolicy()
        self.cache = StateSyncCache(session_factory, ttl_seconds=self.settings.cache_ttl_seconds)
        self.sessions = SessionManager(access_policy=self.access_policy, matcher=matcher, settings=self.settings)
        self.authoring = AuthoringService(
            session_factory, self.cache, self.access_policy, self.settings, aggregator=self.sessions.aggregator
        )
        self.metadata_provider = metadata_provider
        self._locks = KeyedLocks()

    async def close(self) -> None:
        self.cache.close()
        logger.info("Learning engine closed")

    # --- plumbing ---

    async def _guard(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run `call`, turning repository failures into InternalError."""
        try:
            return await call()
        except SQLAlchemyError as exc:
            logger.exception("%s failed", op)
            raise InternalError(f"{op} failed") from exc

    async def _retry_once(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await self._guard(op, call)
        except InternalError:
            logger.warning("Retrying %s once", op)
            return await self._guard(op, call)

    async def _session_state(self, db: AsyncSession, session: VideoSession) -> SessionState:
        attempts = await self.sessions.answers_for(db, session)
        video = await db.get(Video, session.video_id)
        return build_session_state(session, attempts, video.duration if video else None)

    async def _write_session(self, op: str, fn: Callable[[AsyncSession], Awaitable[VideoSession]]) -> SessionState:
        """Run a session write in one transaction, then publish the new projection."""

        async def call() -> SessionState:
            async with self._session_factory() as db:
                session = await fn(db)
                state = await self._session_state(db, session)
                await db.commit()
                return state

        state = await self._guard(op, call)
        return self.cache.publish_session(state)

    # --- sessions ---

    async def start_session(self, video_id: str, student_id: str, role: str = "STUDENT") -> SessionOut:
        async with self._locks.hold(("start", student_id, video_id)):
            state = await self._write_session(
                "start_session", lambda db: self.sessions.start(db, video_id, student_id, role)
            )
        return state.session

    async def update_session_progress(
        self,
        session_id: str,
        student_id: str,
        position: float,
        watch_time_delta: float | None = None,
    ) -> SessionOut:
        async with self._locks.hold(("session", session_id)):
            state = await self._write_session(
                "update_session_progress",
                lambda db: self.sessions.update_progress(db, session_id, student_id, position, watch_time_delta),
            )
        return state.session

    async def mark_milestone_reached(
        self,
        session_id: str,
        student_id: str,
        milestone_id: str,
        timestamp: float,
    ) -> SessionOut:
        async def call() -> SessionState:
            return await self._write_session(
                "mark_milestone_reached",
                lambda db: self.sessions.mark_milestone_reached(db, session_id, student_id, milestone_id, timestamp),
            )

        async with self._locks.hold(("session", session_id)):
            try:
                state = await call()
            except InternalError:
                # A concurrent duplicate reach loses on the unique constraint; the retry sees it recorded
                logger.warning("Retrying mark_milestone_reached for session %s", session_id)
                state = await call()
        return state.session

    async def submit_answer(
        self,
        session_id: str,
        student_id: str,
        question_id: str,
        milestone_id: str,
        answer: Any,
    ) -> AnswerResultOut:
        outcome = None

        async def write(db: AsyncSession) -> VideoSession:
            nonlocal outcome
            outcome = await self.sessions.submit_answer(db, session_id, student_id, question_id, milestone_id, answer)
            return outcome.session

        async with self._locks.hold(("attempt", student_id, question_id)):
            await self._write_session("submit_answer", write)
        return AnswerResultOut(
            is_correct=outcome.result.is_correct,
            score=outcome.result.score,
            explanation=outcome.explanation,
            attempt_number=outcome.attempt.attempt_number,
            attempts_remaining=outcome.attempts_remaining,
        )

    async def complete_session(
        self,
        session_id: str,
        student_id: str,
        final_position: float,
        total_watch_time: float,
    ) -> SessionOut:
        async with self._locks.hold(("session", session_id)):
            state = await self._write_session(
                "complete_session",
                lambda db: self.sessions.complete(db, session_id, student_id, final_position, total_watch_time),
            )
        return state.session

    # --- reads ---

    async def get_session_state(
        self,
        session_id: str,
        user_id: str | None = None,
        role: str = "STUDENT",
        force_refresh: bool = False,
    ) -> SessionState:
        """Cached session projection; students may only read their own sessions."""
        state = await self._retry_once(
            "get_session_state", lambda: self.cache.get_session(session_id, force_refresh=force_refresh)
        )
        if user_id is not None and role not in PRIVILEGED_ROLES and state.session.student_id != user_id:
            raise AccessDenied("Session belongs to another student")
        return state

    async def _video_rights(self, video_id: str, user_id: str, role: str) -> bool:
        """Whether the caller may author the video; NotFound when they may not even view it."""
        async with self._session_factory() as db:
            video = await db.get(Video, video_id)
            if video is None or not await self.access_policy.can_view_video(db, video, user_id, role):
                raise NotFound("Video not found", video_id=video_id)
            return await self.access_policy.can_author_video(db, video, user_id, role)

    async def get_video_state(
        self,
        video_id: str,
        user_id: str | None = None,
        role: str = "STUDENT",
        force_refresh: bool = False,
    ) -> VideoState:
        """Cached video projection.

        Without a caller the full state is returned. With one, videos the caller
        cannot view look missing and non-authors get the student view.
        """
        can_author = True
        if user_id is not None:
            can_author = await self._retry_once(
                "get_video_state", lambda: self._video_rights(video_id, user_id, role)
            )
        state = await self._retry_once(
            "get_video_state", lambda: self.cache.get_video(video_id, force_refresh=force_refresh)
        )
        return state if can_author else state.student_view()

    async def list_sessions(
        self,
        student_id: str,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SessionOut], int]:
        async def call() -> tuple[list[SessionOut], int]:
            async with self._session_factory() as db:
                sessions, total = await self.sessions.list_sessions(db, student_id, status, page, limit)
                return [SessionOut.from_session(s) for s in sessions], total

        return await self._retry_once("list_sessions", call)

    async def get_progress(self, student_id: str, lesson_id: str) -> Progress | None:
        async def call() -> Progress | None:
            async with self._session_factory() as db:
                return await self.sessions.aggregator.get(db, student_id, lesson_id)

        return await self._retry_once("get_progress", call)

    # --- authoring ---

    async def create_milestone(self, video_id: str, data: MilestoneCreate, user_id: str, role: str) -> MilestoneOut:
        return await self._guard(
            "create_milestone", lambda: self.authoring.create_milestone(video_id, data, user_id, role)
        )

    async def add_question(self, milestone_id: str, payload: Any, user_id: str, role: str) -> QuestionOut:
        return await self._guard(
            "add_question", lambda: self.authoring.add_question(milestone_id, payload, user_id, role)
        )

    async def remove_question(self, question_id: str, user_id: str, role: str) -> None:
        await self._guard("remove_question", lambda: self.authoring.remove_question(question_id, user_id, role))

    async def ingest_generated_questions(self, video_id: str, batches: Mapping[str, Sequence[Any]]) -> IngestReport:
        return await self._guard(
            "ingest_generated_questions", lambda: self.authoring.ingest_generated_questions(video_id, batches)
        )

    async def register_video(self, data: VideoCreate, user_id: str, role: str) -> VideoOut:
        return await self._guard(
            "register_video",
            lambda: self.authoring.register_video(data, user_id, role, metadata_provider=self.metadata_provider),
        )
