import asyncio
import random
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from adjudicator.database.models import (
    Debate,
    DebateStatus,
    Judge,
    Notification,
    NotificationType,
    User,
    Verdict,
    utcnow,
)
from adjudicator.engine.background import BackgroundTasks
from adjudicator.engine.errors import (
    AlreadyResolved,
    DebateNotFound,
    InvalidState,
    MissingOpponent,
    NoJudgesAvailable,
    ProviderNotConfigured,
)
from adjudicator.engine.resolver import OutcomeResolver

from conftest import ScriptedProvider, create_world, fetch, scored, user_snapshot


def make_resolver(session_factory, provider, **kwargs):
    kwargs.setdefault("rng", random.Random(11))
    return OutcomeResolver(session_factory, provider, **kwargs)


async def verdict_count(session_factory, debate_id):
    async with session_factory() as session:
        result = await session.execute(select(Verdict).where(Verdict.debate_id == debate_id))
        return len(result.scalars().all())


async def test_resolves_clear_win(session_factory, provider):
    world = await create_world(session_factory)

    resolution = await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert resolution.winner_id == world.challenger_id
    assert (resolution.tally.challenger_total, resolution.tally.opponent_total) == (210, 90)
    assert (resolution.challenger_elo_change, resolution.opponent_elo_change) == (16, -16)

    debate = await fetch(session_factory, Debate, world.debate_id)
    assert debate.status == DebateStatus.VERDICT_READY.value
    assert debate.verdict_reached is True
    assert debate.verdict_date is not None
    assert debate.winner_id == world.challenger_id
    assert (debate.challenger_elo_change, debate.opponent_elo_change) == (16, -16)

    challenger = await user_snapshot(session_factory, world.challenger_id)
    assert challenger == {
        "elo_rating": 1216,
        "debates_won": 1,
        "debates_lost": 0,
        "debates_tied": 0,
        "total_debates": 1,
        "total_score": 210,
        "total_max_score": 300,
        "average_rounds": 3,
    }
    opponent = await user_snapshot(session_factory, world.opponent_id)
    assert opponent["elo_rating"] == 1184
    assert opponent["debates_lost"] == 1
    assert opponent["total_score"] == 90
    assert opponent["total_max_score"] == 300

    assert await verdict_count(session_factory, world.debate_id) == 3


async def test_judges_and_notifications_recorded(session_factory, provider):
    world = await create_world(session_factory)

    await make_resolver(session_factory, provider).resolve(world.debate_id)

    async with session_factory() as session:
        judges = (await session.execute(select(Judge))).scalars().all()
        notifications = (await session.execute(select(Notification))).scalars().all()
    assert [judge.debates_judged for judge in judges] == [1, 1, 1]
    by_user = {n.user_id: n for n in notifications}
    assert by_user[world.challenger_id].type == NotificationType.DEBATE_WON.value
    assert by_user[world.opponent_id].type == NotificationType.DEBATE_LOST.value
    assert all(n.debate_id == world.debate_id for n in notifications)


async def test_one_failing_judge_still_yields_full_panel(session_factory):
    world = await create_world(session_factory)
    provider = ScriptedProvider(
        answers={"judge-3": TimeoutError("model timed out")}, default=scored(70, 30)
    )

    resolution = await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert len(resolution.verdicts) == 3
    assert (resolution.tally.challenger_total, resolution.tally.opponent_total) == (190, 110)
    assert resolution.winner_id == world.challenger_id
    assert await verdict_count(session_factory, world.debate_id) == 3


async def test_close_panel_is_a_tie(session_factory):
    world = await create_world(session_factory)
    provider = ScriptedProvider(
        answers={
            "judge-1": scored(50, 48),
            "judge-2": scored(50, 49),
            "judge-3": scored(50, 49),
        }
    )

    resolution = await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert resolution.winner_id is None
    assert (resolution.challenger_elo_change, resolution.opponent_elo_change) == (0, 0)
    for user_id in (world.challenger_id, world.opponent_id):
        stats = await user_snapshot(session_factory, user_id)
        assert stats["debates_tied"] == 1
        assert stats["debates_won"] == stats["debates_lost"] == 0
        assert stats["elo_rating"] == 1200


async def test_second_resolution_rejected_without_side_effects(session_factory, provider):
    world = await create_world(session_factory)
    resolver = make_resolver(session_factory, provider)
    await resolver.resolve(world.debate_id)
    before = await user_snapshot(session_factory, world.challenger_id)

    with pytest.raises(AlreadyResolved):
        await resolver.resolve(world.debate_id)

    assert await user_snapshot(session_factory, world.challenger_id) == before
    assert await verdict_count(session_factory, world.debate_id) == 3


async def test_active_debate_rejected(session_factory, provider):
    world = await create_world(session_factory, status=DebateStatus.ACTIVE)

    with pytest.raises(InvalidState):
        await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert provider.calls == []


async def test_missing_opponent_rejected(session_factory, provider):
    world = await create_world(session_factory, with_opponent=False)

    with pytest.raises(MissingOpponent):
        await make_resolver(session_factory, provider).resolve(world.debate_id)


async def test_unknown_debate(session_factory, provider):
    with pytest.raises(DebateNotFound) as excinfo:
        await make_resolver(session_factory, provider).resolve(4242)
    assert excinfo.value.status_code == 404


async def test_provider_not_configured(session_factory):
    world = await create_world(session_factory)

    with pytest.raises(ProviderNotConfigured):
        await make_resolver(session_factory, None).resolve(world.debate_id)

    assert await verdict_count(session_factory, world.debate_id) == 0
    debate = await fetch(session_factory, Debate, world.debate_id)
    assert debate.status == DebateStatus.COMPLETED.value


async def test_empty_judge_pool(session_factory, provider):
    world = await create_world(session_factory, judge_count=0)

    with pytest.raises(NoJudgesAvailable):
        await make_resolver(session_factory, provider).resolve(world.debate_id)


async def test_average_rounds_is_running_mean(session_factory, provider):
    world = await create_world(session_factory, total_rounds=1)
    async with session_factory() as session:
        user = await session.get(User, world.challenger_id)
        user.total_debates = 2
        user.average_rounds = 4.0
        await session.commit()

    await make_resolver(session_factory, provider).resolve(world.debate_id)

    stats = await user_snapshot(session_factory, world.challenger_id)
    assert stats["total_debates"] == 3
    assert stats["average_rounds"] == pytest.approx(3.0)


async def test_tournament_hook_runs_in_background(session_factory, provider):
    world = await create_world(session_factory, tournament_match_id="match-7")
    hook = AsyncMock()
    tasks = BackgroundTasks()

    resolution = await make_resolver(
        session_factory, provider, tasks=tasks, tournament_hook=hook
    ).resolve(world.debate_id)
    await tasks.drain()

    hook.assert_awaited_once_with(world.debate_id, "match-7", resolution.winner_id)


async def test_tournament_hook_failure_does_not_undo_resolution(session_factory, provider):
    world = await create_world(session_factory, tournament_match_id="match-8")
    hook = AsyncMock(side_effect=ConnectionError("tournament service down"))
    tasks = BackgroundTasks()

    await make_resolver(
        session_factory, provider, tasks=tasks, tournament_hook=hook
    ).resolve(world.debate_id)
    await tasks.drain()

    assert [name for name, _ in tasks.failures] == [f"tournament-debate-{world.debate_id}"]
    debate = await fetch(session_factory, Debate, world.debate_id)
    assert debate.status == DebateStatus.VERDICT_READY.value


async def test_concurrent_resolutions_count_debate_once(session_factory, provider):
    world = await create_world(session_factory)
    first = make_resolver(session_factory, provider)
    second = make_resolver(session_factory, provider, rng=random.Random(12))

    results = await asyncio.gather(
        first.resolve(world.debate_id),
        second.resolve(world.debate_id),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1 and isinstance(errors[0], AlreadyResolved)
    stats = await user_snapshot(session_factory, world.challenger_id)
    assert (stats["total_debates"], stats["debates_won"]) == (1, 1)
    assert (stats["elo_rating"], stats["total_max_score"]) == (1216, 300)
    assert await verdict_count(session_factory, world.debate_id) == 3


async def test_claimed_debate_is_not_judged_again(session_factory, provider):
    world = await create_world(session_factory)
    async with session_factory() as session:
        debate = await session.get(Debate, world.debate_id)
        debate.resolution_started_at = utcnow()
        await session.commit()

    with pytest.raises(AlreadyResolved, match="already being resolved"):
        await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert provider.calls == []
    assert await verdict_count(session_factory, world.debate_id) == 0


async def test_failed_run_releases_debate(session_factory, provider, monkeypatch):
    world = await create_world(session_factory)
    before = await user_snapshot(session_factory, world.challenger_id)
    monkeypatch.setattr(
        "adjudicator.engine.resolver.record_outcome",
        AsyncMock(side_effect=RuntimeError("stats table locked")),
    )

    with pytest.raises(RuntimeError):
        await make_resolver(session_factory, provider).resolve(world.debate_id)

    debate = await fetch(session_factory, Debate, world.debate_id)
    assert debate.status == DebateStatus.COMPLETED.value
    assert debate.resolution_started_at is None
    assert debate.verdict_reached is False
    assert await verdict_count(session_factory, world.debate_id) == 0
    assert await user_snapshot(session_factory, world.challenger_id) == before

    monkeypatch.undo()
    resolution = await make_resolver(session_factory, provider).resolve(world.debate_id)

    assert resolution.winner_id == world.challenger_id
    stats = await user_snapshot(session_factory, world.challenger_id)
    assert stats["total_debates"] == 1
