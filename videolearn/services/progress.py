"""ProgressAggregator: lesson-level Progress and Grade, recomputed from scratch.

Recompute reads sessions, milestone reaches and latest attempts, then upserts
Progress and Grade in the caller's transaction. It is idempotent, so callers
may run it after every milestone, answer or completion event.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from videolearn.models.attempt import Attempt
from videolearn.models.enums import GradeStatus
from videolearn.models.milestone import Milestone
from videolearn.models.progress import Grade, Progress
from videolearn.models.session import VideoSession
from videolearn.models.video import Video

logger = logging.getLogger(__name__)

# Letter grade bands on percentage_score, highest first
GRADE_BANDS = [
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
    (0.0, "F"),
]


def compute_letter_grade(percentage: float) -> str:
    """Return the letter for a 0-100 percentage."""
    for floor, letter in GRADE_BANDS:
        if percentage >= floor:
            return letter
    return "F"


def latest_by_question(attempts: list[Attempt]) -> dict[str, Attempt]:
    """Most recent attempt per question (works for latest-only and history storage)."""
    latest: dict[str, Attempt] = {}
    for a in attempts:
        current = latest.get(a.question_id)
        if current is None or a.attempt_number > current.attempt_number:
            latest[a.question_id] = a
    return latest


def _grade_status(is_completed: bool, latest: dict[str, Attempt], retry_limits: dict[str, int]) -> GradeStatus:
    if is_completed:
        return GradeStatus.COMPLETED
    wrong = [a for a in latest.values() if not a.is_correct]
    if any(a.attempt_number < retry_limits[a.question_id] for a in wrong):
        return GradeStatus.RETRY_ALLOWED
    if wrong:
        return GradeStatus.FAILED
    return GradeStatus.IN_PROGRESS


class ProgressAggregator:
    async def recompute(self, db: AsyncSession, student_id: str, lesson_id: str) -> tuple[Progress, Grade]:
        lesson_videos = select(Video.id).where(Video.lesson_id == lesson_id)
        sessions = list(
            (
                await db.execute(
                    select(VideoSession).where(
                        VideoSession.student_id == student_id,
                        VideoSession.video_id.in_(lesson_videos),
                    )
                )
            ).scalars().all()
        )
        video_ids = {s.video_id for s in sessions}

        milestones: list[Milestone] = []
        if video_ids:
            milestones = list(
                (
                    await db.execute(
                        select(Milestone)
                        .where(Milestone.video_id.in_(video_ids))
                        .options(selectinload(Milestone.questions))
                        .order_by(Milestone.timestamp.asc())
                    )
                ).scalars().all()
            )
        milestones_by_video: dict[str, set[str]] = {}
        for m in milestones:
            milestones_by_video.setdefault(m.video_id, set()).add(m.id)

        total_milestones = len(milestones)
        reached: set[str] = set()
        for s in sessions:
            # Only count reaches of milestones that still belong to the session's video
            reached |= s.completed_milestones & milestones_by_video.get(s.video_id, set())
        completed_milestones = min(len(reached), total_milestones)

        questions = [q for m in milestones for q in m.questions]
        retry_limits = {q.id: m.retry_limit for m in milestones for q in m.questions}
        attempts: list[Attempt] = []
        if questions:
            attempts = list(
                (
                    await db.execute(
                        select(Attempt).where(
                            Attempt.student_id == student_id,
                            Attempt.question_id.in_([q.id for q in questions]),
                        )
                    )
                ).scalars().all()
            )
        latest = latest_by_question(attempts)

        scores = [a.score for a in latest.values()]
        average_score = round(sum(scores) / len(scores) * 100.0, 2) if scores else 0.0

        required = [m for m in milestones if m.is_required]
        is_completed = (
            bool(sessions)
            and all(s.is_completed for s in sessions)
            and all(m.id in reached for m in required)
            and all(q.id in latest and latest[q.id].is_correct for m in required for q in m.questions)
        )

        milestone_breakdown: dict[str, dict] = {}
        type_breakdown: dict[str, dict] = {}
        total_points = 0.0
        earned_points = 0.0
        for m in milestones:
            m_total = 0.0
            m_earned = 0.0
            m_attempts = 0
            for q in m.questions:
                attempt = latest.get(q.id)
                m_total += q.points
                stats = type_breakdown.setdefault(q.type, {"attempted": 0, "correct": 0, "accuracy": 0.0})
                if attempt is None:
                    continue
                m_earned += q.points * attempt.score
                m_attempts += attempt.attempt_number
                stats["attempted"] += 1
                stats["correct"] += 1 if attempt.is_correct else 0
            milestone_breakdown[m.id] = {
                "title": m.title,
                "totalPoints": m_total,
                "earnedPoints": round(m_earned, 4),
                "attempts": m_attempts,
            }
            total_points += m_total
            earned_points += m_earned
        for stats in type_breakdown.values():
            if stats["attempted"]:
                stats["accuracy"] = round(stats["correct"] / stats["attempted"] * 100.0, 2)

        earned_points = round(earned_points, 4)
        percentage = round(earned_points / total_points * 100.0, 2) if total_points > 0 else 0.0
        total_attempts = sum(a.attempt_number for a in latest.values())
        remaining = sum(max(0, retry_limits[a.question_id] - a.attempt_number) for a in latest.values())
        now = datetime.now(timezone.utc)

        progress = (
            await db.execute(
                select(Progress)
                .where(Progress.student_id == student_id, Progress.lesson_id == lesson_id)
                .options(selectinload(Progress.grade))
            )
        ).scalar_one_or_none()
        if progress is None:
            progress = Progress(student_id=student_id, lesson_id=lesson_id)
            db.add(progress)

        progress.total_milestones = total_milestones
        progress.completed_milestones = completed_milestones
        progress.completion_percent = (
            round(completed_milestones / total_milestones * 100.0, 2) if total_milestones else 0.0
        )
        progress.average_score = average_score
        progress.total_time_spent = sum(s.watch_time or 0.0 for s in sessions)
        progress.total_attempts = total_attempts
        progress.successful_attempts = sum(1 for a in latest.values() if a.is_correct)
        if is_completed and not progress.is_completed:
            progress.completed_at = now
        elif not is_completed:
            progress.completed_at = None
        progress.is_completed = is_completed
        progress.updated_at = now

        grade = progress.grade
        if grade is None:
            grade = Grade(student_id=student_id)
            progress.grade = grade
        grade.total_points = total_points
        grade.earned_points = earned_points
        grade.percentage_score = percentage
        grade.letter_grade = compute_letter_grade(percentage)
        grade.status = _grade_status(is_completed, latest, retry_limits).value
        grade.total_attempts = total_attempts
        grade.remaining_attempts = remaining
        grade.breakdown = {"milestones": milestone_breakdown, "questionTypes": type_breakdown}
        grade.updated_at = now

        await db.flush()
        logger.debug(
            "Recomputed progress for %s/%s: %d/%d milestones, avg %.2f, grade %.2f%%",
            student_id, lesson_id, completed_milestones, total_milestones, average_score, percentage,
        )
        return progress, grade

    async def get(self, db: AsyncSession, student_id: str, lesson_id: str) -> Progress | None:
        result = await db.execute(
            select(Progress)
            .where(Progress.student_id == student_id, Progress.lesson_id == lesson_id)
            .options(selectinload(Progress.grade))
        )
        return result.scalar_one_or_none()
