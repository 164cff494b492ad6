"""
First resolution pass for a finished debate.

Preconditions are checked before anything is written, then the debate is
claimed with a conditional UPDATE so only one run can judge it. Verdicts are
persisted one by one as judges answer, and every user-facing mutation (debate
outcome, both participants' statistics, notifications) lands in a single
commit. A run that fails after its claim discards its verdict rows and
releases the claim.
"""

import logging
from dataclasses import dataclass, field

from adjudicator.database.database import (
    claim_item,
    count_items,
    delete_items_by_filters,
    get_all_items,
    get_item_by_id,
    increment_columns,
)
from adjudicator.database.models import (
    DEFAULT_ELO_RATING,
    Debate,
    DebateStatus,
    Judge,
    Verdict,
    VerdictPhase,
    utcnow,
)
from adjudicator.engine.aggregator import ScoreTally, VerdictAggregator, tally_scores
from adjudicator.engine.background import BackgroundTasks
from adjudicator.engine.errors import (
    AlreadyResolved,
    DebateNotFound,
    InvalidState,
    MissingOpponent,
    ProviderNotConfigured,
    VerdictsUnavailable,
)
from adjudicator.engine.ledger import record_outcome
from adjudicator.engine.notifications import NotificationDispatcher
from adjudicator.engine.provider import DebateContext
from adjudicator.engine.rating import elo_deltas, match_result
from adjudicator.engine.sampler import DEFAULT_PANEL_SIZE, sample_judges

logger = logging.getLogger(__name__)

RESOLVABLE_STATUSES = (DebateStatus.COMPLETED.value, DebateStatus.VERDICT_READY.value)
DEBATE_RELATIONSHIPS = ["challenger", "opponent", "statements"]
JUDGE_POOL_LIMIT = 1000


@dataclass
class Resolution:
    debate_id: int
    winner_id: int | None
    challenger_elo_change: int
    opponent_elo_change: int
    tally: ScoreTally
    verdicts: list = field(default_factory=list)


async def load_judge_pool(session) -> list:
    return list(await get_all_items(session, Judge, limit=JUDGE_POOL_LIMIT))


async def mark_judges_assigned(session, judges) -> None:
    for judge in judges:
        await increment_columns(session, judge.id, {"debates_judged": 1}, Judge)
    await session.commit()


def current_rating(user) -> int:
    if user is None or user.elo_rating is None:
        return DEFAULT_ELO_RATING
    return user.elo_rating


class OutcomeResolver:
    def __init__(
        self,
        session_factory,
        provider,
        notifier: NotificationDispatcher = None,
        tasks: BackgroundTasks = None,
        tournament_hook=None,
        panel_size: int = DEFAULT_PANEL_SIZE,
        rng=None,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.aggregator = VerdictAggregator(provider, session_factory)
        self.notifier = notifier or NotificationDispatcher()
        self.tasks = tasks or BackgroundTasks()
        self.tournament_hook = tournament_hook
        self.panel_size = panel_size
        self.rng = rng

    async def _check_preconditions(self, session, debate_id: int, debate) -> None:
        if debate is None:
            raise DebateNotFound(f"Debate {debate_id} not found")
        if debate.status not in RESOLVABLE_STATUSES:
            raise InvalidState(
                f"Debate is not completed (current status: {debate.status})"
            )
        existing = await count_items(session, Verdict, debate_id=debate.id)
        if existing > 0:
            raise AlreadyResolved("Verdicts already generated for this debate")
        if debate.opponent_id is None:
            raise MissingOpponent("Debate must have an opponent")
        if self.provider is None:
            raise ProviderNotConfigured(
                "AI service not configured. Set GEMINI_API_KEY to enable verdicts."
            )

    async def resolve(self, debate_id: int) -> Resolution:
        async with self.session_factory() as session:
            debate: Debate = await get_item_by_id(
                session, debate_id, Debate, load_relationships=DEBATE_RELATIONSHIPS
            )
            await self._check_preconditions(session, debate_id, debate)

            claimed = await claim_item(
                session,
                debate.id,
                Debate,
                {"status": list(RESOLVABLE_STATUSES), "resolution_started_at": None},
                {"resolution_started_at": utcnow()},
            )
            await session.commit()
            if not claimed:
                raise AlreadyResolved("Debate is already being resolved")

            try:
                resolution = await self._adjudicate(session, debate)
            except Exception:
                await session.rollback()
                await self._release(debate_id)
                raise

        if self.tournament_hook is not None and debate.tournament_match_id:
            self.tasks.submit(
                self.tournament_hook(debate.id, debate.tournament_match_id, resolution.winner_id),
                name=f"tournament-debate-{debate.id}",
            )
        return resolution

    async def _adjudicate(self, session, debate) -> Resolution:
        pool = await load_judge_pool(session)
        judges = sample_judges(pool, self.panel_size, rng=self.rng)
        logger.info(
            f"Found {len(pool)} judges, selected {len(judges)} for debate {debate.id}"
        )

        context = DebateContext.from_debate(debate)
        verdicts = await self.aggregator.collect(
            debate, context, judges, VerdictPhase.ORIGINAL, fallback_on_error=True
        )
        await mark_judges_assigned(session, judges)
        if not verdicts:
            raise VerdictsUnavailable(
                f"No verdicts could be recorded for debate {debate.id}"
            )

        tally = tally_scores(verdicts)
        winner_id = tally.winner_id(debate.challenger_id, debate.opponent_id)
        challenger_change, opponent_change = elo_deltas(
            current_rating(debate.challenger),
            current_rating(debate.opponent),
            match_result(debate.challenger_id, winner_id),
        )

        debate.status = DebateStatus.VERDICT_READY.value
        debate.winner_id = winner_id
        debate.verdict_reached = True
        debate.verdict_date = utcnow()
        debate.challenger_elo_change = challenger_change
        debate.opponent_elo_change = opponent_change

        await record_outcome(
            session,
            debate.challenger_id,
            winner_id,
            challenger_change,
            tally.challenger_total,
            tally.max_possible,
            debate.total_rounds,
        )
        await record_outcome(
            session,
            debate.opponent_id,
            winner_id,
            opponent_change,
            tally.opponent_total,
            tally.max_possible,
            debate.total_rounds,
        )
        self.notifier.notify_verdict(session, debate, winner_id)
        await session.commit()

        logger.info(
            f"Debate {debate.id} resolved: winner={winner_id}, totals "
            f"{tally.challenger_total}/{tally.opponent_total}, elo {challenger_change:+d}/{opponent_change:+d}"
        )
        return Resolution(
            debate_id=debate.id,
            winner_id=winner_id,
            challenger_elo_change=challenger_change,
            opponent_elo_change=opponent_change,
            tally=tally,
            verdicts=verdicts,
        )

    async def _release(self, debate_id: int) -> None:
        """Drops a failed run's claim and verdict rows so the debate can be resolved again."""
        async with self.session_factory() as session:
            removed = await delete_items_by_filters(
                session, Verdict, debate_id=debate_id, phase=VerdictPhase.ORIGINAL.value
            )
            await claim_item(
                session,
                debate_id,
                Debate,
                {"verdict_reached": False},
                {"resolution_started_at": None},
            )
            await session.commit()
        logger.error(
            f"Resolution of debate {debate_id} failed; released it and discarded {removed} verdicts"
        )
