"""Initial tables: lessons, videos, milestones, questions, sessions, attempts, progress, grades.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "lessons",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("created_by_id", sa.String(64), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_lessons_created_by_id"), "lessons", ["created_by_id"], unique=False)

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("lesson_id", sa.String(36), nullable=False),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "lesson_id", name="uq_enrollment_student_lesson"),
    )
    op.create_index(op.f("ix_enrollments_student_id"), "enrollments", ["student_id"], unique=False)
    op.create_index(op.f("ix_enrollments_lesson_id"), "enrollments", ["lesson_id"], unique=False)

    op.create_table(
        "videos",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("lesson_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="READY"),
        sa.Column("file_ref", sa.String(512), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("size", sa.BigInteger(), nullable=True),
        sa.Column("thumbnail_ref", sa.String(512), nullable=True),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_videos_lesson_id"), "videos", ["lesson_id"], unique=False)

    op.create_table(
        "milestones",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("video_id", sa.String(36), nullable=False),
        sa.Column("timestamp", sa.Float(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("retry_limit", sa.Integer(), nullable=False, server_default="3"),
        sa.ForeignKeyConstraint(["video_id"], ["videos.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("video_id", "timestamp", name="uq_milestone_video_timestamp"),
    )
    op.create_index(op.f("ix_milestones_video_id"), "milestones", ["video_id"], unique=False)

    op.create_table(
        "questions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("milestone_id", sa.String(36), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("question_data", sa.JSON(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("pass_threshold", sa.Float(), nullable=False, server_default="0.7"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["milestone_id"], ["milestones.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_questions_milestone_id"), "questions", ["milestone_id"], unique=False)

    op.create_table(
        "student_sessions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("video_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("current_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_milestone_id", sa.String(36), nullable=True),
        sa.Column("watch_time", sa.Float(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["video_id"], ["videos.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "video_id", name="uq_session_student_video"),
    )
    op.create_index(op.f("ix_student_sessions_student_id"), "student_sessions", ["student_id"], unique=False)
    op.create_index(op.f("ix_student_sessions_video_id"), "student_sessions", ["video_id"], unique=False)

    op.create_table(
        "milestone_progress",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("milestone_id", sa.String(36), nullable=False),
        sa.Column("timestamp", sa.Float(), nullable=True),
        sa.Column("reached_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["student_sessions.id"]),
        sa.ForeignKeyConstraint(["milestone_id"], ["milestones.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "milestone_id", name="uq_milestone_progress"),
    )
    op.create_index(op.f("ix_milestone_progress_session_id"), "milestone_progress", ["session_id"], unique=False)

    op.create_table(
        "attempts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("question_id", sa.String(36), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("answer_payload", sa.JSON(), nullable=True),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["student_sessions.id"]),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "question_id", name="uq_attempt_student_question"),
    )
    op.create_index(op.f("ix_attempts_session_id"), "attempts", ["session_id"], unique=False)
    op.create_index(op.f("ix_attempts_student_id"), "attempts", ["student_id"], unique=False)
    op.create_index(op.f("ix_attempts_question_id"), "attempts", ["question_id"], unique=False)

    op.create_table(
        "progress",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("lesson_id", sa.String(36), nullable=False),
        sa.Column("total_milestones", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_milestones", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completion_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("average_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_time_spent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "lesson_id", name="uq_progress_student_lesson"),
    )
    op.create_index(op.f("ix_progress_student_id"), "progress", ["student_id"], unique=False)
    op.create_index(op.f("ix_progress_lesson_id"), "progress", ["lesson_id"], unique=False)

    op.create_table(
        "grades",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("student_id", sa.String(64), nullable=False),
        sa.Column("progress_id", sa.String(36), nullable=False),
        sa.Column("total_points", sa.Float(), nullable=False, server_default="0"),
        sa.Column("earned_points", sa.Float(), nullable=False, server_default="0"),
        sa.Column("percentage_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("letter_grade", sa.String(2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("total_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("breakdown", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["progress_id"], ["progress.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("progress_id"),
    )
    op.create_index(op.f("ix_grades_student_id"), "grades", ["student_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_grades_student_id"), table_name="grades")
    op.drop_table("grades")
    op.drop_index(op.f("ix_progress_lesson_id"), table_name="progress")
    op.drop_index(op.f("ix_progress_student_id"), table_name="progress")
    op.drop_table("progress")
    op.drop_index(op.f("ix_attempts_question_id"), table_name="attempts")
    op.drop_index(op.f("ix_attempts_student_id"), table_name="attempts")
    op.drop_index(op.f("ix_attempts_session_id"), table_name="attempts")
    op.drop_table("attempts")
    op.drop_index(op.f("ix_milestone_progress_session_id"), table_name="milestone_progress")
    op.drop_table("milestone_progress")
    op.drop_index(op.f("ix_student_sessions_video_id"), table_name="student_sessions")
    op.drop_index(op.f("ix_student_sessions_student_id"), table_name="student_sessions")
    op.drop_table("student_sessions")
    op.drop_index(op.f("ix_questions_milestone_id"), table_name="questions")
    op.drop_table("questions")
    op.drop_index(op.f("ix_milestones_video_id"), table_name="milestones")
    op.drop_table("milestones")
    op.drop_index(op.f("ix_videos_lesson_id"), table_name="videos")
    op.drop_table("videos")
    op.drop_index(op.f("ix_enrollments_lesson_id"), table_name="enrollments")
    op.drop_index(op.f("ix_enrollments_student_id"), table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index(op.f("ix_lessons_created_by_id"), table_name="lessons")
    op.drop_table("lessons")
