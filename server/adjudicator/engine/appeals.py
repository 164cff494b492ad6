"""
Appeal filing and re-adjudication.

A reconciliation samples a fresh panel that avoids the original judges,
re-scores the debate and compares the new winner with the one snapshotted
when the appeal was filed. Only a flipped outcome touches user statistics:
the original counters and score totals are reversed and the new ones
applied, while ratings only receive a fresh delta on top of their current
value.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta, timezone

from adjudicator.database.database import (
    claim_item,
    delete_items_by_filters,
    get_item_by_id,
    update_item,
)
from adjudicator.database.models import (
    AppealStatus,
    Debate,
    DebateStatus,
    Verdict,
    VerdictPhase,
    utcnow,
)
from adjudicator.engine.aggregator import VerdictAggregator, tally_scores
from adjudicator.engine.background import BackgroundTasks
from adjudicator.engine.errors import (
    AppealNotAllowed,
    AppealVerdictsUnavailable,
    DebateNotFound,
    InvalidState,
    ProviderNotConfigured,
)
from adjudicator.engine.ledger import reapply_outcome, reverse_outcome
from adjudicator.engine.notifications import NotificationDispatcher
from adjudicator.engine.provider import DebateContext
from adjudicator.engine.rating import elo_deltas, match_result
from adjudicator.engine.resolver import (
    current_rating,
    load_judge_pool,
    mark_judges_assigned,
)
from adjudicator.engine.sampler import DEFAULT_PANEL_SIZE, sample_judges

logger = logging.getLogger(__name__)

APPEAL_WINDOW = timedelta(hours=48)
MIN_REASON_LENGTH = 50
MAX_REASON_LENGTH = 1000
CLAIMABLE_APPEAL_STATUSES = (AppealStatus.PENDING.value, AppealStatus.DENIED.value)

REJECTION_FALLBACK = (
    "After review by different judges, the original verdict was upheld. "
    "The new judges reached the same conclusion based on the arguments presented."
)
APPROVAL_FALLBACK = (
    "After review by different judges, the original verdict has been overturned. "
    "The new judges determined that your appeal arguments were valid, and the "
    "outcome has been changed accordingly."
)


@dataclass
class AppealOutcome:
    debate_id: int
    flipped: bool
    winner_id: int | None
    original_winner_id: int | None
    challenger_elo_change: int
    opponent_elo_change: int
    verdicts: list = field(default_factory=list)


def participant_name(debate, user_id: int | None, default: str = "Tie") -> str:
    if user_id is None:
        return default
    if user_id == debate.challenger_id:
        return debate.challenger.username
    if debate.opponent is not None and user_id == debate.opponent_id:
        return debate.opponent.username
    return default


def _aware(moment):
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class AppealReconciler:
    def __init__(
        self,
        session_factory,
        provider,
        notifier: NotificationDispatcher = None,
        tasks: BackgroundTasks = None,
        panel_size: int = DEFAULT_PANEL_SIZE,
        rng=None,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.aggregator = VerdictAggregator(provider, session_factory)
        self.notifier = notifier or NotificationDispatcher()
        self.tasks = tasks or BackgroundTasks()
        self.panel_size = panel_size
        self.rng = rng

    async def file_appeal(
        self, debate_id: int, user_id: int, reason: str, verdict_ids: list, now=None
    ) -> Debate:
        """Moves a decided debate into APPEALED for the losing participant."""
        reason = (reason or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise AppealNotAllowed(
                f"Appeal reason is required and must be at least {MIN_REASON_LENGTH} characters"
            )
        if len(reason) > MAX_REASON_LENGTH:
            raise AppealNotAllowed(
                f"Appeal reason must be less than {MAX_REASON_LENGTH} characters"
            )
        if not verdict_ids:
            raise AppealNotAllowed("At least one judge verdict must be selected for appeal")

        now = now or utcnow()
        async with self.session_factory() as session:
            debate: Debate = await get_item_by_id(
                session,
                debate_id,
                Debate,
                load_relationships=["challenger", "opponent", "verdicts"],
            )
            if debate is None:
                raise DebateNotFound(f"Debate {debate_id} not found")

            known_ids = {verdict.id for verdict in debate.verdicts}
            if not set(verdict_ids) <= known_ids:
                raise AppealNotAllowed(
                    "One or more selected verdicts do not belong to this debate"
                )
            if debate.status != DebateStatus.VERDICT_READY.value:
                raise AppealNotAllowed("Debate must have a verdict ready to appeal")
            if debate.winner_id is None:
                raise AppealNotAllowed("No winner determined yet")
            if user_id not in (debate.challenger_id, debate.opponent_id):
                raise AppealNotAllowed("Only participants can appeal", status_code=403)
            if debate.winner_id == user_id:
                raise AppealNotAllowed("Winners cannot appeal verdicts")
            if debate.appeal_count > 0:
                raise AppealNotAllowed("This debate has already been appealed")
            verdict_date = _aware(debate.verdict_date)
            if verdict_date is not None and now - verdict_date > APPEAL_WINDOW:
                raise AppealNotAllowed("Appeal window has expired (48 hours)")

            debate.appealed_at = now
            debate.appeal_status = AppealStatus.PENDING.value
            debate.appeal_count = 1
            debate.appealed_by = user_id
            debate.original_winner_id = debate.winner_id
            debate.appeal_reason = reason
            debate.appealed_verdict_ids = list(verdict_ids)
            debate.status = DebateStatus.APPEALED.value
            debate.winner_id = None
            self.notifier.notify_appeal_filed(
                session, debate, user_id, participant_name(debate, user_id, "Your opponent")
            )
            await session.commit()

        logger.info(f"Appeal filed for debate {debate_id} by user {user_id}")
        return debate

    async def reconcile(self, debate_id: int) -> AppealOutcome:
        async with self.session_factory() as session:
            debate: Debate = await get_item_by_id(
                session,
                debate_id,
                Debate,
                load_relationships=["challenger", "opponent", "statements", "verdicts"],
            )
            if debate is None:
                raise DebateNotFound(f"Debate {debate_id} not found")
            if debate.status != DebateStatus.APPEALED.value:
                raise InvalidState(
                    f"Debate is not in appealed status: {debate.status}"
                )
            if self.provider is None:
                raise ProviderNotConfigured(
                    "AI service not configured. Set GEMINI_API_KEY to enable verdicts."
                )

            claimed = await claim_item(
                session,
                debate.id,
                Debate,
                {
                    "status": DebateStatus.APPEALED.value,
                    "appeal_status": list(CLAIMABLE_APPEAL_STATUSES),
                },
                {"appeal_status": AppealStatus.PROCESSING.value},
            )
            await session.commit()
            if not claimed:
                raise InvalidState(
                    f"Appeal for debate {debate_id} is already being processed"
                )

            try:
                outcome, context = await self._adjudicate(session, debate)
            except Exception:
                await session.rollback()
                await self._deny(debate_id)
                raise

        if debate.appeal_reason:
            self.tasks.submit(
                self._explain(
                    debate.id,
                    context,
                    participant_name(debate, outcome.original_winner_id),
                    participant_name(debate, outcome.winner_id),
                    debate.appeal_reason,
                    [v.reasoning for v in outcome.verdicts],
                    outcome.flipped,
                ),
                name=f"appeal-explanation-{debate.id}",
            )
        return outcome

    async def _adjudicate(self, session, debate):
        original_verdicts = [
            v for v in debate.verdicts if v.phase == VerdictPhase.ORIGINAL.value
        ]
        pool = await load_judge_pool(session)
        judges = sample_judges(
            pool,
            self.panel_size,
            exclude={v.judge_id for v in original_verdicts},
            rng=self.rng,
        )

        context = DebateContext.from_debate(debate)
        verdicts = await self.aggregator.collect(
            debate, context, judges, VerdictPhase.APPEAL, fallback_on_error=False
        )
        if not verdicts:
            raise AppealVerdictsUnavailable("Failed to generate new verdicts")
        await mark_judges_assigned(session, judges)

        new_tally = tally_scores(verdicts)
        original_tally = tally_scores(original_verdicts)
        winner_id = new_tally.winner_id(debate.challenger_id, debate.opponent_id)
        original_winner_id = debate.original_winner_id
        flipped = winner_id != original_winner_id

        challenger_change = debate.challenger_elo_change
        opponent_change = debate.opponent_elo_change
        if flipped:
            logger.info(
                f"Appeal flips debate {debate.id}: {original_winner_id} -> {winner_id}; "
                f"score change {new_tally.challenger_total - original_tally.challenger_total:+}"
                f"/{new_tally.opponent_total - original_tally.opponent_total:+}, "
                f"max {new_tally.max_possible - original_tally.max_possible:+}"
            )
            challenger_change, opponent_change = elo_deltas(
                current_rating(debate.challenger),
                current_rating(debate.opponent),
                match_result(debate.challenger_id, winner_id),
            )
            for user_id, original_score, new_score, change in (
                (
                    debate.challenger_id,
                    original_tally.challenger_total,
                    new_tally.challenger_total,
                    challenger_change,
                ),
                (
                    debate.opponent_id,
                    original_tally.opponent_total,
                    new_tally.opponent_total,
                    opponent_change,
                ),
            ):
                if user_id is None:
                    continue
                await reverse_outcome(
                    session,
                    user_id,
                    original_winner_id,
                    original_score,
                    original_tally.max_possible,
                )
                await reapply_outcome(
                    session,
                    user_id,
                    winner_id,
                    change,
                    new_score,
                    new_tally.max_possible,
                )
            debate.appeal_rejection_reason = APPROVAL_FALLBACK
        else:
            debate.appeal_rejection_reason = REJECTION_FALLBACK

        debate.winner_id = winner_id
        debate.verdict_reached = True
        debate.verdict_date = utcnow()
        debate.appeal_status = AppealStatus.RESOLVED.value
        debate.status = DebateStatus.VERDICT_READY.value
        debate.challenger_elo_change = challenger_change
        debate.opponent_elo_change = opponent_change
        self.notifier.notify_appeal_verdict(session, debate, winner_id)
        await session.commit()

        logger.info(
            f"Appeal for debate {debate.id} resolved: flipped={flipped}, winner={winner_id}"
        )
        outcome = AppealOutcome(
            debate_id=debate.id,
            flipped=flipped,
            winner_id=winner_id,
            original_winner_id=original_winner_id,
            challenger_elo_change=challenger_change,
            opponent_elo_change=opponent_change,
            verdicts=verdicts,
        )
        return outcome, context

    async def _deny(self, debate_id: int) -> None:
        """Marks a failed reconciliation DENIED and drops its appeal verdicts.

        A DENIED appeal can be claimed again, so the reconciliation may be
        retried with a fresh panel.
        """
        async with self.session_factory() as session:
            removed = await delete_items_by_filters(
                session, Verdict, debate_id=debate_id, phase=VerdictPhase.APPEAL.value
            )
            await claim_item(
                session,
                debate_id,
                Debate,
                {"appeal_status": AppealStatus.PROCESSING.value},
                {"appeal_status": AppealStatus.DENIED.value},
            )
            await session.commit()
        logger.error(
            f"Appeal for debate {debate_id} denied; discarded {removed} appeal verdicts"
        )

    async def _explain(
        self, debate_id, context, original_winner, new_winner, appeal_reason, reasonings, flipped
    ) -> None:
        try:
            explanation = await self.provider.explain_appeal(
                context, original_winner, new_winner, appeal_reason, reasonings, flipped
            )
        except Exception as e:
            logger.warning(
                f"Keeping canned appeal explanation for debate {debate_id}: {type(e).__name__} - {e}"
            )
            return
        if not explanation:
            return
        async with self.session_factory() as session:
            await update_item(
                session, debate_id, {"appeal_rejection_reason": explanation}, Debate
            )
        logger.info(f"Appeal explanation updated for debate {debate_id}")
