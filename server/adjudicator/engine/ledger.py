"""Additive bookkeeping for cumulative user statistics.

Nothing here commits; each resolution event applies its increments inside
one transaction owned by the caller.
"""

import logging

from adjudicator.database.database import increment_columns
from adjudicator.database.models import User

logger = logging.getLogger(__name__)


def outcome_column(user_id: int, winner_id: int | None) -> str:
    if winner_id is None:
        return "debates_tied"
    return "debates_won" if winner_id == user_id else "debates_lost"


async def record_outcome(
    session,
    user_id: int,
    winner_id: int | None,
    elo_change: int,
    score: float,
    max_score: float,
    rounds: int,
) -> None:
    # running average over the pre-update totals, evaluated inside the UPDATE
    average_rounds = (User.average_rounds * User.total_debates + rounds) / (
        User.total_debates + 1
    )
    await increment_columns(
        session,
        user_id,
        {
            outcome_column(user_id, winner_id): 1,
            "total_debates": 1,
            "elo_rating": elo_change,
            "total_score": score,
            "total_max_score": max_score,
        },
        User,
        expressions={"average_rounds": average_rounds},
    )


async def reverse_outcome(
    session, user_id: int, winner_id: int | None, score: float, max_score: float
) -> None:
    """Undoes the counters and score totals of a previous outcome.

    Rating, debate count and average rounds are left as they are.
    """
    await increment_columns(
        session,
        user_id,
        {
            outcome_column(user_id, winner_id): -1,
            "total_score": -score,
            "total_max_score": -max_score,
        },
        User,
    )


async def reapply_outcome(
    session,
    user_id: int,
    winner_id: int | None,
    elo_change: int,
    score: float,
    max_score: float,
) -> None:
    await increment_columns(
        session,
        user_id,
        {
            outcome_column(user_id, winner_id): 1,
            "elo_rating": elo_change,
            "total_score": score,
            "total_max_score": max_score,
        },
        User,
    )
