import pytest

from tests.conftest import STUDENT

pytestmark = pytest.mark.anyio


async def test_half_right_lesson_scores_fifty_percent(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, STUDENT)
    await learning_engine.submit_answer(session.id, STUDENT, "q1", "m1", 1)
    await learning_engine.submit_answer(session.id, STUDENT, "q2", "m2", False)

    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.average_score == 50.0
    assert progress.total_attempts == 2
    assert progress.successful_attempts == 1
    assert progress.is_completed is False

    grade = progress.grade
    assert grade.total_points == 2
    assert grade.earned_points == 1
    assert grade.percentage_score == 50.0
    assert grade.letter_grade == "F"
    assert grade.status == "RETRY_ALLOWED"
    assert grade.remaining_attempts == 1 + 2
    assert grade.breakdown["questionTypes"]["TRUE_FALSE"] == {"attempted": 1, "correct": 0, "accuracy": 0.0}
    assert grade.breakdown["milestones"]["m1"]["earnedPoints"] == 1.0


async def test_completed_milestones_never_exceed_total(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, STUDENT)
    for milestone_id, ts in (("m2", 50.0), ("m1", 10.0), ("m2", 51.0), ("m1", 11.0)):
        await learning_engine.mark_milestone_reached(session.id, STUDENT, milestone_id, ts)

    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.total_milestones == 2
    assert progress.completed_milestones == 2
    assert progress.completion_percent == 100.0


async def test_lesson_completes_when_everything_required_is_done(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, STUDENT)
    await learning_engine.mark_milestone_reached(session.id, STUDENT, "m1", 10.0)
    await learning_engine.submit_answer(session.id, STUDENT, "q1", "m1", 1)
    await learning_engine.mark_milestone_reached(session.id, STUDENT, "m2", 50.0)
    await learning_engine.submit_answer(session.id, STUDENT, "q2", "m2", True)

    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.is_completed is False

    await learning_engine.complete_session(session.id, STUDENT, 100.0, 95.0)
    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.is_completed is True
    assert progress.completed_at is not None
    assert progress.total_time_spent == pytest.approx(95.0)
    assert progress.grade.status == "COMPLETED"
    assert progress.grade.letter_grade == "A"


async def test_exhausted_wrong_answer_marks_grade_failed(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, STUDENT)
    await learning_engine.submit_answer(session.id, STUDENT, "q1", "m1", 0)
    await learning_engine.submit_answer(session.id, STUDENT, "q1", "m1", 0)

    progress = await learning_engine.get_progress(STUDENT, seeded.lesson_id)
    assert progress.grade.status == "FAILED"
    assert progress.grade.remaining_attempts == 0


async def test_no_progress_before_any_event(learning_engine, seeded):
    await learning_engine.start_session(seeded.video_id, STUDENT)
    assert await learning_engine.get_progress(STUDENT, seeded.lesson_id) is None
