import pytest

from videolearn.core.errors import AccessDenied, Conflict, NotFound, ValidationError
from videolearn.schemas.video import MilestoneCreate, VideoCreate, VideoMetadata
from videolearn.services.engine import LearningEngine
from tests.conftest import STUDENT, TEACHER

pytestmark = pytest.mark.anyio

TF_QUESTION = {
    "type": "TRUE_FALSE",
    "text": "Ribosomes make proteins.",
    "question_data": {"correctAnswer": True},
}


class FailingMetadata:
    async def read_metadata(self, file_ref):
        raise ConnectionError("media service unreachable")


class FixedMetadata:
    async def read_metadata(self, file_ref):
        return VideoMetadata(duration=312.5, size=1024, thumbnail_ref="thumbs/v.jpg")


async def test_create_milestone_updates_cached_state(learning_engine, seeded):
    await learning_engine.get_video_state(seeded.video_id)
    milestone = await learning_engine.create_milestone(
        seeded.video_id, MilestoneCreate(timestamp=30.0, title="Cytoplasm"), TEACHER, "TEACHER"
    )
    assert milestone.retry_limit == 3
    assert milestone.order == 2

    state = await learning_engine.get_video_state(seeded.video_id)
    assert [m.id for m in state.milestones] == ["m1", milestone.id, "m2"]
    assert state.questions_per_milestone[milestone.id] == 0


async def test_duplicate_timestamp_conflict_carries_timestamp(learning_engine, seeded):
    with pytest.raises(Conflict) as exc_info:
        await learning_engine.create_milestone(
            seeded.video_id, MilestoneCreate(timestamp=10.0, title="Again"), TEACHER, "TEACHER"
        )
    assert exc_info.value.timestamp == 10.0
    assert exc_info.value.to_dict()["timestamp"] == 10.0

    state = await learning_engine.get_video_state(seeded.video_id)
    assert state.total_milestones == 2


async def test_students_cannot_author(learning_engine, seeded):
    with pytest.raises(AccessDenied):
        await learning_engine.create_milestone(
            seeded.video_id, MilestoneCreate(timestamp=70.0, title="Nope"), STUDENT, "STUDENT"
        )
    with pytest.raises(AccessDenied):
        await learning_engine.add_question("m1", TF_QUESTION, STUDENT, "STUDENT")


async def test_add_and_remove_question(learning_engine, seeded):
    question = await learning_engine.add_question("m1", TF_QUESTION, TEACHER, "TEACHER")
    assert question.pass_threshold == 0.7
    assert question.question_data == {"correctAnswer": True}

    state = await learning_engine.get_video_state(seeded.video_id)
    assert state.total_questions == 3

    await learning_engine.remove_question(question.id, TEACHER, "TEACHER")
    state = await learning_engine.get_video_state(seeded.video_id)
    assert state.total_questions == 2
    assert question.id not in [q.id for q in state.questions["m1"]]


async def test_removing_an_answered_question_regrades_the_student(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, STUDENT)
    await learning_engine.submit_answer(session.id, STUDENT, "q1", "m1", 1)
    before = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert before.total_attempts == 1
    assert before.grade.earned_points == 1.0

    await learning_engine.remove_question("q1", TEACHER, "TEACHER")

    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.total_attempts == 0
    assert progress.successful_attempts == 0
    assert progress.average_score == 0.0
    assert progress.grade.total_points == 1.0
    assert progress.grade.earned_points == 0.0
    assert progress.grade.breakdown["milestones"]["m1"] == {
        "title": "Membranes",
        "totalPoints": 0.0,
        "earnedPoints": 0.0,
        "attempts": 0,
    }


async def test_invalid_question_payload_is_rejected(learning_engine, seeded):
    with pytest.raises(ValidationError):
        await learning_engine.add_question("m1", {"type": "ESSAY", "text": "Discuss."}, TEACHER, "TEACHER")
    with pytest.raises(ValidationError):
        await learning_engine.add_question(
            "m1",
            {"type": "ORDERING", "text": "Sort", "question_data": {"items": ["a", "b"], "correctOrder": [0, 0]}},
            TEACHER,
            "TEACHER",
        )
    with pytest.raises(NotFound):
        await learning_engine.add_question("missing", TF_QUESTION, TEACHER, "TEACHER")


async def test_generated_batches_fail_independently(learning_engine, seeded):
    bad = {"type": "MULTIPLE_CHOICE", "text": "Pick", "question_data": {"options": ["one"]}}
    report = await learning_engine.ingest_generated_questions(
        seeded.video_id,
        {"m1": [TF_QUESTION, bad], "not-a-milestone": [TF_QUESTION], "m2": [TF_QUESTION]},
    )
    assert report.ingested == {"m1": 1, "m2": 1}
    assert list(report.failed) == ["not-a-milestone"]
    assert report.rejected == 1

    state = await learning_engine.get_video_state(seeded.video_id, force_refresh=True)
    assert state.total_questions == 4


async def test_register_video_degrades_when_metadata_lookup_fails(session_factory, settings, seeded):
    engine = LearningEngine(session_factory, settings=settings, metadata_provider=FailingMetadata())
    video = await engine.register_video(
        VideoCreate(lesson_id=seeded.lesson_id, title="Mitosis", file_ref="uploads/mitosis.mp4"), TEACHER, "TEACHER"
    )
    assert video.duration is None
    assert video.status == "PROCESSING"

    state = await engine.get_video_state(video.id)
    assert state.total_milestones == 0
    await engine.close()


async def test_register_video_uses_reported_metadata(session_factory, settings, seeded):
    engine = LearningEngine(session_factory, settings=settings, metadata_provider=FixedMetadata())
    video = await engine.register_video(
        VideoCreate(lesson_id=seeded.lesson_id, title="Meiosis", file_ref="uploads/meiosis.mp4"), TEACHER, "TEACHER"
    )
    assert video.duration == 312.5
    assert video.status == "READY"
    with pytest.raises(AccessDenied):
        await engine.register_video(VideoCreate(lesson_id=seeded.lesson_id, title="x"), STUDENT, "STUDENT")
    await engine.close()
