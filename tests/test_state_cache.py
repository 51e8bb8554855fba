import pytest

from videolearn.models import Question
from videolearn.models._ids import new_id
from videolearn.schemas.video import QuestionOut
from videolearn.services.state_cache import StateSyncCache

pytestmark = pytest.mark.anyio


class CountingFactory:
    """Wraps a session factory and counts how often a session is opened."""

    def __init__(self, factory):
        self.factory = factory
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.factory()


def make_question(milestone_id="m1"):
    return QuestionOut(
        id=new_id(),
        milestone_id=milestone_id,
        type="TRUE_FALSE",
        text="Cells divide by mitosis.",
        question_data={"correctAnswer": True},
        points=1,
        pass_threshold=0.7,
    )


def persist_question(question):
    async def persist(db):
        db.add(Question(**question.model_dump()))

    return persist


async def test_subscribe_replays_cached_state(session_factory, seeded):
    cache = StateSyncCache(session_factory)
    early = []
    cache.subscribe_video(seeded.video_id, lambda key, state: early.append(state))
    assert early == []

    state = await cache.get_video(seeded.video_id)
    assert early == [state]
    assert state.total_milestones == 2
    assert state.total_questions == 2
    assert [m.id for m in state.milestones] == ["m1", "m2"]

    late = []
    cache.subscribe_video(seeded.video_id, lambda key, state: late.append((key, state)))
    assert late == [(seeded.video_id, state)]


async def test_added_question_is_visible_without_reloading(session_factory, seeded):
    factory = CountingFactory(session_factory)
    cache = StateSyncCache(factory)
    seen = []
    cache.subscribe_video(seeded.video_id, lambda key, state: seen.append(state.total_questions))

    await cache.get_video(seeded.video_id)
    question = make_question()
    await cache.add_question(seeded.video_id, "m1", question, persist_question(question))
    opened = factory.calls

    state = await cache.get_video(seeded.video_id)
    assert factory.calls == opened
    assert state.total_questions == 3
    assert state.questions_per_milestone["m1"] == 2
    assert question.id in [q.id for q in state.questions["m1"]]
    assert seen == [2, 3]

    reloaded = await cache.get_video(seeded.video_id, force_refresh=True)
    assert reloaded.total_questions == 3


async def test_failed_persist_leaves_cache_untouched(session_factory, seeded):
    cache = StateSyncCache(session_factory)
    before = await cache.get_video(seeded.video_id)
    notified = []
    cache.subscribe(lambda kind, key, state: notified.append(kind))

    async def broken(db):
        raise RuntimeError("disk full")

    with pytest.raises(RuntimeError):
        await cache.add_question(seeded.video_id, "m1", make_question(), broken)

    assert cache.peek_video(seeded.video_id) is before
    assert before.total_questions == 2
    assert notified == []


async def test_unsubscribe_stops_notifications(session_factory, seeded):
    cache = StateSyncCache(session_factory)
    seen = []
    subscription = cache.subscribe_video(seeded.video_id, lambda key, state: seen.append(state))
    await cache.get_video(seeded.video_id)

    subscription.unsubscribe()
    subscription()
    question = make_question()
    await cache.add_question(seeded.video_id, "m1", question, persist_question(question))
    assert len(seen) == 1


async def test_broken_listener_does_not_block_others(session_factory, seeded):
    cache = StateSyncCache(session_factory)
    seen = []

    def explode(key, state):
        raise ValueError("bad consumer")

    cache.subscribe_video(seeded.video_id, explode)
    cache.subscribe_video(seeded.video_id, lambda key, state: seen.append(key))
    await cache.get_video(seeded.video_id)
    assert seen == [seeded.video_id]


async def test_entries_expire_after_ttl(session_factory, seeded):
    now = [1000.0]
    factory = CountingFactory(session_factory)
    cache = StateSyncCache(factory, ttl_seconds=30.0, clock=lambda: now[0])

    await cache.get_video(seeded.video_id)
    await cache.get_video(seeded.video_id)
    assert factory.calls == 1

    now[0] += 31.0
    await cache.get_video(seeded.video_id)
    assert factory.calls == 2


async def test_session_listeners_get_published_state(learning_engine, seeded):
    session = await learning_engine.start_session(seeded.video_id, "student-1")
    updates = []
    learning_engine.cache.subscribe_session(session.id, lambda key, state: updates.append(state.session.current_position))
    assert updates == [0.0]

    await learning_engine.update_session_progress(session.id, "student-1", 42.0)
    assert updates == [0.0, 42.0]
