"""Authoring writes that flow through the state cache.

Milestones and questions are validated once here, given their ids up front,
staged in the cache and persisted in one step; AI-generated batches take the
same path as hand-authored questions.
"""
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from videolearn.core.config import Settings, get_settings
from videolearn.core.errors import AccessDenied, Conflict, EngineError, NotFound
from videolearn.models._ids import new_id
from videolearn.models.attempt import Attempt
from videolearn.models.enums import VideoStatus
from videolearn.models.lesson import Lesson
from videolearn.models.milestone import Milestone
from videolearn.models.question import Question
from videolearn.models.video import Video
from videolearn.schemas.question_data import parse_question_create
from videolearn.schemas.video import MilestoneCreate, MilestoneOut, QuestionOut, VideoCreate, VideoMetadata, VideoOut
from videolearn.services.access import AccessPolicy, EnrollmentAccessPolicy
from videolearn.services.progress import ProgressAggregator
from videolearn.services.state_cache import StateSyncCache

logger = logging.getLogger(__name__)


class MetadataProvider(Protocol):
    """Media pipeline lookup: duration, size and thumbnail for an uploaded file."""

    async def read_metadata(self, file_ref: str) -> VideoMetadata: ...


@dataclass
class IngestReport:
    ingested: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    rejected: int = 0


class AuthoringService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: StateSyncCache,
        access_policy: AccessPolicy | None = None,
        settings: Settings | None = None,
        aggregator: ProgressAggregator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.cache = cache
        self.access_policy = access_policy or EnrollmentAccessPolicy()
        self.settings = settings or get_settings()
        self.aggregator = aggregator or ProgressAggregator()

    async def _authorize(self, db: AsyncSession, video: Video, user_id: str, role: str) -> None:
        if not await self.access_policy.can_author_video(db, video, user_id, role):
            raise AccessDenied("Only the lesson author or an admin can edit this video")

    async def create_milestone(self, video_id: str, data: MilestoneCreate, user_id: str, role: str) -> MilestoneOut:
        async with self._session_factory() as db:
            video = await db.get(Video, video_id)
            if video is None:
                raise NotFound("Video not found", video_id=video_id)
            await self._authorize(db, video, user_id, role)
            order = data.order
            if order is None:
                order = (await db.execute(select(func.count(Milestone.id)).where(Milestone.video_id == video_id))).scalar_one()

        milestone = MilestoneOut(
            id=new_id(),
            video_id=video_id,
            timestamp=data.timestamp,
            order=order,
            title=data.title,
            description=data.description,
            is_required=data.is_required,
            retry_limit=data.retry_limit or self.settings.default_retry_limit,
        )

        async def persist(db: AsyncSession) -> None:
            clash = (
                await db.execute(
                    select(Milestone.id).where(Milestone.video_id == video_id, Milestone.timestamp == data.timestamp)
                )
            ).scalar_one_or_none()
            if clash is not None:
                raise Conflict(f"Milestone already exists at timestamp {data.timestamp}", timestamp=data.timestamp)
            db.add(Milestone(**milestone.model_dump()))
            try:
                await db.flush()
            except IntegrityError:
                raise Conflict(
                    f"Milestone already exists at timestamp {data.timestamp}", timestamp=data.timestamp
                ) from None

        await self.cache.add_milestone(video_id, milestone, persist)
        logger.info("Created milestone %s at %.1fs on video %s", milestone.id, milestone.timestamp, video_id)
        return milestone

    def _question_out(self, milestone_id: str, payload: Any) -> QuestionOut:
        if isinstance(payload, Mapping):
            payload = parse_question_create(payload)
        threshold = payload.pass_threshold
        return QuestionOut(
            id=new_id(),
            milestone_id=milestone_id,
            type=payload.type,
            text=payload.text,
            explanation=payload.explanation,
            question_data=payload.question_data.model_dump(by_alias=True, exclude_none=True),
            points=payload.points,
            pass_threshold=self.settings.default_pass_threshold if threshold is None else threshold,
        )

    @staticmethod
    def _persist_questions(questions: list[QuestionOut]):
        async def persist(db: AsyncSession) -> None:
            db.add_all([Question(**q.model_dump()) for q in questions])
            await db.flush()

        return persist

    async def add_question(self, milestone_id: str, payload: Any, user_id: str, role: str) -> QuestionOut:
        """Add one question; `payload` is a QuestionCreate variant or a raw mapping."""
        async with self._session_factory() as db:
            milestone = await db.get(Milestone, milestone_id)
            if milestone is None:
                raise NotFound("Milestone not found", milestone_id=milestone_id)
            video = await db.get(Video, milestone.video_id)
            await self._authorize(db, video, user_id, role)
            video_id = video.id

        question = self._question_out(milestone_id, payload)
        await self.cache.add_question(video_id, milestone_id, question, self._persist_questions([question]))
        return question

    async def remove_question(self, question_id: str, user_id: str, role: str) -> None:
        async with self._session_factory() as db:
            question = await db.get(Question, question_id)
            if question is None:
                raise NotFound("Question not found", question_id=question_id)
            milestone = await db.get(Milestone, question.milestone_id)
            video = await db.get(Video, milestone.video_id)
            await self._authorize(db, video, user_id, role)
            video_id, milestone_id, lesson_id = video.id, milestone.id, video.lesson_id

        async def persist(db: AsyncSession) -> None:
            # Progress of everyone who answered is re-derived without the question
            student_ids = (
                await db.execute(select(Attempt.student_id).where(Attempt.question_id == question_id).distinct())
            ).scalars().all()
            await db.execute(delete(Attempt).where(Attempt.question_id == question_id))
            await db.execute(delete(Question).where(Question.id == question_id))
            await db.flush()
            for student_id in student_ids:
                await self.aggregator.recompute(db, student_id, lesson_id)
            if student_ids:
                logger.info(
                    "Recomputed progress for %d students after removing question %s", len(student_ids), question_id
                )

        await self.cache.remove_question(video_id, milestone_id, question_id, persist)

    async def ingest_generated_questions(self, video_id: str, batches: Mapping[str, Sequence[Any]]) -> IngestReport:
        """Store AI-generated questions keyed by milestone id.

        Invalid questions are dropped and counted; a failing milestone batch is
        reported and does not stop the other batches.
        """
        report = IngestReport()
        for milestone_id, raw_questions in batches.items():
            questions = []
            for raw in raw_questions:
                try:
                    questions.append(self._question_out(milestone_id, raw))
                except EngineError as exc:
                    report.rejected += 1
                    logger.warning("Dropped generated question for milestone %s: %s", milestone_id, exc.message)
            if not questions:
                continue
            try:
                await self.cache.add_questions(video_id, milestone_id, questions, self._persist_questions(questions))
            except (EngineError, SQLAlchemyError) as exc:
                report.failed[milestone_id] = str(exc)
                logger.warning("Generated batch for milestone %s not stored: %s", milestone_id, exc)
                continue
            report.ingested[milestone_id] = len(questions)
        return report

    async def register_video(
        self,
        data: VideoCreate,
        user_id: str,
        role: str,
        metadata_provider: MetadataProvider | None = None,
    ) -> VideoOut:
        """Create a video; a failing metadata lookup leaves duration unknown instead of failing."""
        metadata = VideoMetadata()
        has_metadata = False
        if metadata_provider is not None and data.file_ref:
            try:
                metadata = await metadata_provider.read_metadata(data.file_ref)
                has_metadata = True
            except Exception:
                logger.warning("Metadata lookup failed for %s; storing video without duration", data.file_ref, exc_info=True)

        async with self._session_factory() as db:
            lesson = await db.get(Lesson, data.lesson_id)
            if lesson is None:
                raise NotFound("Lesson not found", lesson_id=data.lesson_id)
            if role != "ADMIN" and lesson.created_by_id != user_id:
                raise AccessDenied("Only the lesson author or an admin can add videos")
            video = Video(
                lesson_id=data.lesson_id,
                title=data.title,
                order=data.order,
                file_ref=data.file_ref,
                status=(VideoStatus.READY if has_metadata else VideoStatus.PROCESSING).value,
                duration=metadata.duration,
                size=metadata.size,
                thumbnail_ref=metadata.thumbnail_ref,
            )
            db.add(video)
            await db.commit()
            return VideoOut.model_validate(video)
