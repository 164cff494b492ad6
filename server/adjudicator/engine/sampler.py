import logging
import random

from adjudicator.engine.errors import NoJudgesAvailable

logger = logging.getLogger(__name__)

DEFAULT_PANEL_SIZE = 3


def sample_judges(pool: list, count: int = DEFAULT_PANEL_SIZE, exclude=None, rng=None) -> list:
    """Picks `count` judges uniformly without replacement.

    Judges whose id is in `exclude` are skipped while enough others remain;
    otherwise the whole pool is sampled and judges may be reused. Returns the
    whole pool, shuffled, when it is smaller than `count`.
    """
    if not pool:
        raise NoJudgesAvailable("No judges available. Seed the judge roster first.")
    rng = rng or random
    excluded = set(exclude or ())

    candidates = [judge for judge in pool if judge.id not in excluded]
    if len(candidates) < count:
        if excluded:
            logger.info(
                f"Only {len(candidates)} unused judges for a panel of {count}, sampling from all {len(pool)}"
            )
        candidates = list(pool)

    return rng.sample(candidates, min(count, len(candidates)))
