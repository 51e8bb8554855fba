from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from videolearn.core.config import Settings
from videolearn.db.base import Base
from videolearn.models import Enrollment, Lesson, Milestone, Question, Video
from videolearn.services.engine import LearningEngine

TEACHER = "teacher-1"
STUDENT = "student-1"
OTHER_STUDENT = "student-2"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(cache_ttl_seconds=30.0, default_retry_limit=3, semantic_match_timeout_seconds=0.05)


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seeded(session_factory):
    """One lesson with one 100s video: m1 at 10s (MC, retry 2) and m2 at 50s (TF, retry 3)."""
    async with session_factory() as db:
        db.add(Lesson(id="lesson-1", title="Intro to Cells", created_by_id=TEACHER, is_published=True))
        await db.flush()
        db.add(Enrollment(student_id=STUDENT, lesson_id="lesson-1"))
        db.add(Enrollment(student_id=OTHER_STUDENT, lesson_id="lesson-1"))
        db.add(Video(id="video-1", lesson_id="lesson-1", title="Cells", order=0, status="READY", duration=100.0))
        db.add(Video(id="video-2", lesson_id="lesson-1", title="Organelles", order=1, status="READY", duration=80.0))
        await db.flush()
        db.add(Milestone(id="m1", video_id="video-1", timestamp=10.0, order=0, title="Membranes", retry_limit=2))
        db.add(Milestone(id="m2", video_id="video-1", timestamp=50.0, order=1, title="Nucleus", retry_limit=3))
        db.add(Milestone(id="m3", video_id="video-2", timestamp=20.0, order=0, title="Mitochondria", retry_limit=3))
        await db.flush()
        db.add(
            Question(
                id="q1",
                milestone_id="m1",
                type="MULTIPLE_CHOICE",
                text="What surrounds the cell?",
                explanation="The membrane encloses the cytoplasm.",
                question_data={"options": ["Wall", "Membrane", "Nucleus"], "correctAnswerIndex": 1},
                points=1,
                pass_threshold=0.7,
            )
        )
        db.add(
            Question(
                id="q2",
                milestone_id="m2",
                type="TRUE_FALSE",
                text="The nucleus holds DNA.",
                question_data={"correctAnswer": True},
                points=1,
                pass_threshold=0.7,
            )
        )
        await db.commit()
    return SimpleNamespace(lesson_id="lesson-1", video_id="video-1", other_video_id="video-2")


@pytest.fixture
async def learning_engine(session_factory, settings):
    engine = LearningEngine(session_factory, settings=settings)
    yield engine
    await engine.close()
