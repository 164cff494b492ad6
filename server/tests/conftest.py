from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from adjudicator.database.models import (
    Base,
    Debate,
    DebateStatus,
    Decision,
    Judge,
    Statement,
    User,
)
from adjudicator.engine.background import BackgroundTasks
from adjudicator.engine.provider import ProviderVerdict

STAT_COLUMNS = (
    "elo_rating",
    "debates_won",
    "debates_lost",
    "debates_tied",
    "total_debates",
    "total_score",
    "total_max_score",
    "average_rounds",
)


# --- Helpers ---


def scored(challenger: float, opponent: float, decision: Decision | None = None,
           reasoning: str = "Both sides argued clearly.") -> ProviderVerdict:
    """Provider reply; the stated decision defaults to one consistent with the scores."""
    if decision is None:
        if challenger > opponent:
            decision = Decision.CHALLENGER_WINS
        elif opponent > challenger:
            decision = Decision.OPPONENT_WINS
        else:
            decision = Decision.TIE
    return ProviderVerdict(
        decision=decision,
        challenger_score=challenger,
        opponent_score=opponent,
        reasoning=reasoning,
    )


class ScriptedProvider:
    """Stands in for Gemini: answers per judge system prompt.

    An Exception stored as an answer is raised instead of returned. With
    `hold_explanation` the appeal explanation waits until
    `explanation_gate` is set.
    """

    def __init__(self, answers: dict | None = None, default=None,
                 explanation="The new panel weighed the rebuttals differently.",
                 hold_explanation: bool = False):
        self.answers = answers or {}
        self.default = default
        self.explanation = explanation
        self.calls: list[str] = []
        self.explain_calls: list[bool] = []
        self.explanation_gate = asyncio.Event()
        if not hold_explanation:
            self.explanation_gate.set()

    async def generate_verdict(self, system_prompt, context):
        self.calls.append(system_prompt)
        answer = self.answers.get(system_prompt, self.default)
        if answer is None:
            raise RuntimeError(f"no scripted answer for {system_prompt}")
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def explain_appeal(self, context, original_winner, new_winner,
                             appeal_reason, reasonings, flipped):
        self.explain_calls.append(flipped)
        await self.explanation_gate.wait()
        if isinstance(self.explanation, Exception):
            raise self.explanation
        return self.explanation


async def create_world(
    session_factory,
    judge_count: int = 3,
    status: DebateStatus = DebateStatus.COMPLETED,
    with_opponent: bool = True,
    total_rounds: int = 3,
    tournament_match_id: str | None = None,
    challenger_rating: int = 1200,
    opponent_rating: int = 1200,
) -> SimpleNamespace:
    async with session_factory() as session:
        challenger = User(username="alice", elo_rating=challenger_rating)
        opponent = User(username="bob", elo_rating=opponent_rating)
        session.add_all([challenger, opponent])
        await session.flush()

        judges = [
            Judge(name=f"Judge {i}", personality="Test", system_prompt=f"judge-{i}")
            for i in range(1, judge_count + 1)
        ]
        debate = Debate(
            topic="Cities should ban cars from their centres",
            challenger_position="FOR",
            opponent_position="AGAINST",
            challenger_id=challenger.id,
            opponent_id=opponent.id if with_opponent else None,
            status=status.value,
            current_round=total_rounds,
            total_rounds=total_rounds,
            tournament_match_id=tournament_match_id,
        )
        session.add_all(judges + [debate])
        await session.flush()

        for round_number in range(1, total_rounds + 1):
            session.add(Statement(debate_id=debate.id, author_id=challenger.id,
                                  round=round_number, content=f"Challenger point {round_number}"))
            if with_opponent:
                session.add(Statement(debate_id=debate.id, author_id=opponent.id,
                                      round=round_number, content=f"Opponent point {round_number}"))
        await session.commit()

        return SimpleNamespace(
            debate_id=debate.id,
            challenger_id=challenger.id,
            opponent_id=opponent.id,
            judge_ids=[judge.id for judge in judges],
            judge_prompts=[judge.system_prompt for judge in judges],
        )


async def fetch(session_factory, model, item_id):
    async with session_factory() as session:
        return await session.get(model, item_id)


async def user_snapshot(session_factory, user_id) -> dict:
    user = await fetch(session_factory, User, user_id)
    return {column: getattr(user, column) for column in STAT_COLUMNS}


# --- Fixtures ---


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'adjudicator.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def provider():
    return ScriptedProvider(default=scored(70, 30))


@pytest_asyncio.fixture
async def tasks(session_factory):
    background = BackgroundTasks()
    yield background
    await background.drain()
