"""StateSyncCache: observable, TTL-based projections of videos and sessions.

Several UI consumers read the same video or session. They read through this
cache and subscribe to it, so after any mutation made through the cache every
subscriber sees the same counts without re-fetching.

Mutations are staged on a copy, persisted, and only then committed to the
cache and broadcast; a failed write leaves the cached entry untouched.

The cache is process-local. Several app instances do not see each other's
writes until the TTL runs out; a multi-instance deployment would publish
invalidations over a message bus instead of the in-memory listener registry.
"""
import copy
import itertools
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from videolearn.core.errors import NotFound
from videolearn.models.attempt import Attempt
from videolearn.models.milestone import Milestone
from videolearn.models.question import Question
from videolearn.models.session import VideoSession
from videolearn.models.video import Video
from videolearn.schemas.question_data import public_question_data
from videolearn.schemas.session import AttemptOut, SessionOut
from videolearn.schemas.video import MilestoneOut, QuestionOut, VideoOut
from videolearn.services.attempts import KeyedLocks

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0

VideoListener = Callable[[str, "VideoState"], None]
SessionListener = Callable[[str, "SessionState"], None]
GlobalListener = Callable[[str, str, Any], None]  # (kind, key, state)
Persist = Callable[[AsyncSession], Awaitable[None]]


@dataclass
class VideoState:
    video: VideoOut
    milestones: list[MilestoneOut]
    questions: dict[str, list[QuestionOut]]
    total_milestones: int = 0
    total_questions: int = 0
    questions_per_milestone: dict[str, int] = field(default_factory=dict)
    loaded_at: float = 0.0

    def recount(self) -> "VideoState":
        """Re-derive ordering and counts from milestones/questions."""
        self.milestones.sort(key=lambda m: m.timestamp)
        self.questions_per_milestone = {m.id: len(self.questions.get(m.id, [])) for m in self.milestones}
        self.total_milestones = len(self.milestones)
        self.total_questions = sum(self.questions_per_milestone.values())
        return self

    def milestone(self, milestone_id: str) -> MilestoneOut | None:
        return next((m for m in self.milestones if m.id == milestone_id), None)

    def student_view(self) -> "VideoState":
        """Copy for callers who may watch but not author: answer keys and explanations hidden."""
        questions = {
            milestone_id: [
                q.model_copy(update={"question_data": public_question_data(q.question_data), "explanation": None})
                for q in items
            ]
            for milestone_id, items in self.questions.items()
        }
        return replace(self, milestones=list(self.milestones), questions=questions)


@dataclass
class SessionState:
    session: SessionOut
    answers: dict[str, AttemptOut]
    correct_answers: int = 0
    total_answers: int = 0
    completion_percentage: float = 0.0
    current_milestone_id: str | None = None
    loaded_at: float = 0.0


def build_video_state(video: Video, milestones: list[Milestone]) -> VideoState:
    return VideoState(
        video=VideoOut.model_validate(video),
        milestones=[MilestoneOut.model_validate(m) for m in milestones],
        questions={m.id: [QuestionOut.model_validate(q) for q in m.questions] for m in milestones},
    ).recount()


def completion_percentage(session: SessionOut, duration: float | None) -> float:
    if session.status == "COMPLETED":
        return 100.0
    if not duration or duration <= 0:
        return 0.0
    return round(min(100.0, max(0.0, session.current_position / duration * 100.0)), 2)


def build_session_state(session: VideoSession, attempts: list[Attempt], duration: float | None) -> SessionState:
    out = SessionOut.from_session(session)
    answers = {a.question_id: AttemptOut.model_validate(a) for a in attempts}
    return SessionState(
        session=out,
        answers=answers,
        correct_answers=sum(1 for a in answers.values() if a.is_correct),
        total_answers=len(answers),
        completion_percentage=completion_percentage(out, duration),
        current_milestone_id=session.last_milestone_id,
    )


async def load_session_state(db: AsyncSession, session_id: str) -> SessionState:
    session = (await db.execute(select(VideoSession).where(VideoSession.id == session_id))).scalar_one_or_none()
    if session is None:
        raise NotFound("Session not found", session_id=session_id)
    video = await db.get(Video, session.video_id)
    attempts = (
        await db.execute(
            select(Attempt)
            .join(Question, Question.id == Attempt.question_id)
            .join(Milestone, Milestone.id == Question.milestone_id)
            .where(Attempt.student_id == session.student_id, Milestone.video_id == session.video_id)
        )
    ).scalars().all()
    return build_session_state(session, list(attempts), video.duration if video else None)


class Subscription:
    """Disposer returned by the subscribe methods. Calling it twice is harmless."""

    def __init__(self, registry: dict, key: Any, handle: int, lock: threading.RLock) -> None:
        self._registry = registry
        self._key = key
        self.handle = handle
        self._lock = lock

    def unsubscribe(self) -> None:
        with self._lock:
            listeners = self._registry.get(self._key)
            if listeners is None:
                return
            listeners.pop(self.handle, None)
            if not listeners:
                self._registry.pop(self._key, None)

    __call__ = unsubscribe


_GLOBAL = "*"


class StateSyncCache:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._videos: dict[str, VideoState] = {}
        self._sessions: dict[str, SessionState] = {}
        self._video_listeners: dict[str, dict[int, VideoListener]] = {}
        self._session_listeners: dict[str, dict[int, SessionListener]] = {}
        self._global_listeners: dict[str, dict[int, GlobalListener]] = {}
        self._handles = itertools.count(1)
        self._mutations = KeyedLocks()

    # --- subscriptions ---

    def _register(self, registry: dict, key: Any, listener: Callable) -> Subscription:
        with self._lock:
            handle = next(self._handles)
            registry.setdefault(key, {})[handle] = listener
        return Subscription(registry, key, handle, self._lock)

    def subscribe_video(self, video_id: str, listener: VideoListener) -> Subscription:
        """Listen to one video. Replays the current state at once if it is cached."""
        sub = self._register(self._video_listeners, video_id, listener)
        with self._lock:
            state = self._videos.get(video_id)
        if state is not None:
            listener(video_id, state)
        return sub

    def subscribe_session(self, session_id: str, listener: SessionListener) -> Subscription:
        """Listen to one session. Replays the current state at once if it is cached."""
        sub = self._register(self._session_listeners, session_id, listener)
        with self._lock:
            state = self._sessions.get(session_id)
        if state is not None:
            listener(session_id, state)
        return sub

    def subscribe(self, listener: GlobalListener) -> Subscription:
        """Listen to every video and session change: listener(kind, key, state)."""
        return self._register(self._global_listeners, _GLOBAL, listener)

    def _notify(self, kind: str, key: str, state: Any) -> None:
        registry = self._video_listeners if kind == "video" else self._session_listeners
        with self._lock:
            targeted = list(registry.get(key, {}).values())
            everywhere = list(self._global_listeners.get(_GLOBAL, {}).values())
        for listener in targeted:
            self._call(listener, key, state)
        for listener in everywhere:
            self._call(listener, kind, key, state)

    @staticmethod
    def _call(listener: Callable, *args: Any) -> None:
        try:
            listener(*args)
        except Exception:
            # One broken consumer must not block the others or the write path
            logger.exception("State listener %r failed", listener)

    # --- videos ---

    def _is_fresh(self, state: Any) -> bool:
        return self._clock() - state.loaded_at < self.ttl_seconds

    def peek_video(self, video_id: str) -> VideoState | None:
        with self._lock:
            return self._videos.get(video_id)

    async def _load_video(self, video_id: str) -> VideoState:
        async with self._session_factory() as db:
            video = await db.get(Video, video_id)
            if video is None:
                raise NotFound("Video not found", video_id=video_id)
            milestones = (
                await db.execute(
                    select(Milestone)
                    .where(Milestone.video_id == video_id)
                    .options(selectinload(Milestone.questions))
                    .order_by(Milestone.timestamp.asc())
                )
            ).scalars().all()
            return build_video_state(video, list(milestones))

    async def get_video(self, video_id: str, force_refresh: bool = False) -> VideoState:
        with self._lock:
            cached = self._videos.get(video_id)
        if cached is not None and not force_refresh and self._is_fresh(cached):
            return cached

        state = await self._load_video(video_id)
        state.loaded_at = self._clock()
        with self._lock:
            self._videos[video_id] = state
        logger.debug("Loaded video state %s (%d milestones)", video_id, state.total_milestones)
        self._notify("video", video_id, state)
        return state

    async def mutate(
        self,
        video_id: str,
        fn: Callable[[VideoState], VideoState | None],
        persist: Persist,
    ) -> VideoState:
        """Apply `fn` to a copy of the video state, persist, then publish.

        `persist` receives a fresh AsyncSession and must write the change that
        `fn` describes; it is committed here. If `fn` or `persist` raises,
        the cached entry stays as it was and nobody is notified.
        """
        async with self._mutations.hold(video_id):
            current = await self.get_video(video_id)
            staged = copy.deepcopy(current)
            staged = (fn(staged) or staged).recount()
            try:
                async with self._session_factory() as db:
                    await persist(db)
                    await db.commit()
            except Exception:
                logger.warning("Persisting change to video %s failed; cache left unchanged", video_id)
                raise
            staged.loaded_at = self._clock()
            with self._lock:
                self._videos[video_id] = staged
        self._notify("video", video_id, staged)
        return staged

    async def add_milestone(self, video_id: str, milestone: MilestoneOut, persist: Persist) -> VideoState:
        def apply(state: VideoState) -> None:
            state.milestones.append(milestone)
            state.questions.setdefault(milestone.id, [])

        return await self.mutate(video_id, apply, persist)

    async def add_questions(
        self,
        video_id: str,
        milestone_id: str,
        questions: list[QuestionOut],
        persist: Persist,
    ) -> VideoState:
        def apply(state: VideoState) -> None:
            if state.milestone(milestone_id) is None:
                raise NotFound("Milestone not found", milestone_id=milestone_id)
            state.questions.setdefault(milestone_id, []).extend(questions)

        return await self.mutate(video_id, apply, persist)

    async def add_question(self, video_id: str, milestone_id: str, question: QuestionOut, persist: Persist) -> VideoState:
        return await self.add_questions(video_id, milestone_id, [question], persist)

    async def remove_question(self, video_id: str, milestone_id: str, question_id: str, persist: Persist) -> VideoState:
        def apply(state: VideoState) -> None:
            remaining = [q for q in state.questions.get(milestone_id, []) if q.id != question_id]
            if len(remaining) == len(state.questions.get(milestone_id, [])):
                raise NotFound("Question not found", question_id=question_id)
            state.questions[milestone_id] = remaining

        return await self.mutate(video_id, apply, persist)

    # --- sessions ---

    async def get_session(self, session_id: str, force_refresh: bool = False) -> SessionState:
        with self._lock:
            cached = self._sessions.get(session_id)
        if cached is not None and not force_refresh and self._is_fresh(cached):
            return cached
        async with self._session_factory() as db:
            state = await load_session_state(db, session_id)
        return self.publish_session(state)

    def publish_session(self, state: SessionState) -> SessionState:
        """Store a freshly built session projection and notify its listeners."""
        state.loaded_at = self._clock()
        with self._lock:
            self._sessions[state.session.id] = state
        self._notify("session", state.session.id, state)
        return state

    # --- lifecycle ---

    def invalidate(self, video_id: str | None = None) -> None:
        """Drop one video entry, or every cached entry when no id is given."""
        with self._lock:
            if video_id is None:
                self._videos.clear()
                self._sessions.clear()
            else:
                self._videos.pop(video_id, None)

    def close(self) -> None:
        with self._lock:
            self._videos.clear()
            self._sessions.clear()
            self._video_listeners.clear()
            self._session_listeners.clear()
            self._global_listeners.clear()
