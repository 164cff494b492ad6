K_FACTOR = 32

WIN = 1
LOSS = 0
DRAW = 0.5


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1 / (1 + 10 ** ((opponent_rating - rating) / 400))


def elo_delta(rating: float, opponent_rating: float, result: float) -> int:
    """Rating change for one side of a two-party match.

    `result` is 1 for a win, 0 for a loss and 0.5 for a tie. The other side's
    change is always the negation of this value.
    """
    return round(K_FACTOR * (result - expected_score(rating, opponent_rating)))


def match_result(user_id: int, winner_id: int | None) -> float:
    if winner_id is None:
        return DRAW
    return WIN if winner_id == user_id else LOSS


def elo_deltas(
    challenger_rating: float,
    opponent_rating: float,
    challenger_result: float,
) -> tuple[int, int]:
    challenger_change = elo_delta(challenger_rating, opponent_rating, challenger_result)
    return challenger_change, -challenger_change
