"""
Judge fan-out and score aggregation.

Every judge on a panel is called concurrently. Whatever decision the model
states is discarded: the decision and winner stored on a Verdict are always
derived from the two numeric scores, so a reply like "CHALLENGER wins, 40 to
75" can never produce an internally inconsistent row.
"""

import asyncio
import logging
from dataclasses import dataclass

from adjudicator.database.database import create_item
from adjudicator.database.models import Decision, Verdict, VerdictPhase
from adjudicator.engine.provider import NEUTRAL_SCORE, ProviderVerdict

logger = logging.getLogger(__name__)

JUDGE_TIE_THRESHOLD = 1
AGGREGATE_TIE_THRESHOLD = 5
MAX_JUDGE_SCORE = 100


def derive_decision(challenger_score: float, opponent_score: float) -> Decision:
    if abs(challenger_score - opponent_score) < JUDGE_TIE_THRESHOLD:
        return Decision.TIE
    if challenger_score > opponent_score:
        return Decision.CHALLENGER_WINS
    return Decision.OPPONENT_WINS


def decision_winner_id(decision: Decision, challenger_id: int, opponent_id: int | None):
    if decision == Decision.CHALLENGER_WINS:
        return challenger_id
    if decision == Decision.OPPONENT_WINS:
        return opponent_id
    return None


def neutral_verdict(error: Exception) -> ProviderVerdict:
    return ProviderVerdict(
        decision=Decision.TIE,
        challenger_score=NEUTRAL_SCORE,
        opponent_score=NEUTRAL_SCORE,
        reasoning=f"Unable to generate verdict due to technical error: {error}",
    )


@dataclass
class ScoreTally:
    challenger_total: float
    opponent_total: float
    verdict_count: int

    @property
    def max_possible(self) -> int:
        return self.verdict_count * MAX_JUDGE_SCORE

    def winner_id(self, challenger_id: int, opponent_id: int | None):
        # wider than the per-judge threshold so close panels stay ties
        if abs(self.challenger_total - self.opponent_total) < AGGREGATE_TIE_THRESHOLD:
            return None
        if self.challenger_total > self.opponent_total:
            return challenger_id
        return opponent_id


def tally_scores(verdicts) -> ScoreTally:
    return ScoreTally(
        challenger_total=sum(v.challenger_score or 0 for v in verdicts),
        opponent_total=sum(v.opponent_score or 0 for v in verdicts),
        verdict_count=len(verdicts),
    )


class VerdictAggregator:
    def __init__(self, provider, session_factory):
        self.provider = provider
        self.session_factory = session_factory

    async def collect(
        self,
        debate,
        context,
        judges: list,
        phase: VerdictPhase = VerdictPhase.ORIGINAL,
        fallback_on_error: bool = True,
    ) -> list[Verdict]:
        """Runs every judge concurrently and returns the persisted verdicts.

        With `fallback_on_error` a failing judge contributes a neutral 50/50
        tie; without it the judge is left out. A verdict whose row cannot be
        written is left out as well, so the returned list always matches what
        is stored for this phase.
        """
        logger.info(
            f"Generating {len(judges)} {phase.value.lower()} verdicts in parallel for debate {debate.id}"
        )
        results = await asyncio.gather(
            *(
                self._judge(debate, context, judge, phase, fallback_on_error)
                for judge in judges
            )
        )
        verdicts = [verdict for verdict in results if verdict is not None]
        logger.info(
            f"Collected {len(verdicts)}/{len(judges)} verdicts for debate {debate.id}"
        )
        return verdicts

    async def _judge(self, debate, context, judge, phase, fallback_on_error):
        try:
            result = await self.provider.generate_verdict(judge.system_prompt, context)
        except Exception as e:
            logger.error(
                f"Failed to generate verdict from judge {judge.name} ({judge.id}) for debate {debate.id}: {type(e).__name__} - {e}"
            )
            if not fallback_on_error:
                return None
            result = neutral_verdict(e)
        else:
            logger.info(
                f"Judge {judge.name} scored debate {debate.id}: {result.challenger_score} - {result.opponent_score}"
            )

        decision = derive_decision(result.challenger_score, result.opponent_score)
        if result.decision != decision:
            logger.warning(
                f"Judge {judge.name} stated {result.decision.value} but scores "
                f"{result.challenger_score}/{result.opponent_score} give {decision.value} (debate {debate.id})"
            )

        async with self.session_factory() as session:
            verdict = await create_item(
                session,
                {
                    "debate_id": debate.id,
                    "judge_id": judge.id,
                    "phase": phase.value,
                    "decision": decision.value,
                    "reasoning": result.reasoning,
                    "challenger_score": result.challenger_score,
                    "opponent_score": result.opponent_score,
                    "winner_id": decision_winner_id(
                        decision, debate.challenger_id, debate.opponent_id
                    ),
                },
                Verdict,
            )
        if verdict is None:
            logger.error(
                f"Verdict from judge {judge.name} could not be saved; dropping it from debate {debate.id}"
            )
        return verdict
