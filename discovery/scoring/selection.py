"""Explore/exploit selection among the best-scored candidates."""

import random
from collections.abc import Sequence

from discovery.scoring.models import ScoredCandidate


def top_k_size(wildness: float, k_min: int, k_max: int, pool_size: int) -> int:
    """Size of the pool the pick is drawn from.

    ``K = k_min + round(wildness / 100 * (k_max - k_min))``, capped at the
    number of candidates. Non-decreasing in wildness.

    Args:
        wildness: Explore/exploit dial in [0, 100].
        k_min: Pool size at wildness 0.
        k_max: Pool size at wildness 100.
        pool_size: Number of scored candidates.

    Returns:
        K in [1, pool_size] (0 for an empty pool).
    """
    if pool_size <= 0:
        return 0
    wildness = max(0.0, min(100.0, wildness))
    k = k_min + round(wildness / 100 * (k_max - k_min))
    return max(1, min(k, pool_size))


def weighted_choice(
    candidates: Sequence[ScoredCandidate], rng: random.Random
) -> ScoredCandidate:
    """Draw one candidate with probability proportional to its score.

    Falls back to a uniform draw when every score is zero.

    Args:
        candidates: Non-empty top-K candidates.
        rng: Random source.

    Returns:
        The drawn candidate.
    """
    total = sum(c.score for c in candidates)
    if total <= 0:
        return candidates[rng.randrange(len(candidates))]

    target = rng.random() * total
    cumulative = 0.0
    for candidate in candidates:
        cumulative += candidate.score
        if target < cumulative:
            return candidate
    return candidates[-1]


def select_top_k(
    scored: Sequence[ScoredCandidate],
    wildness: float,
    k_min: int,
    k_max: int,
    rng: random.Random,
) -> tuple[ScoredCandidate, int]:
    """Rank candidates and draw one from the top K.

    Args:
        scored: Scored candidates (any order).
        wildness: Explore/exploit dial in [0, 100].
        k_min: Pool size at wildness 0.
        k_max: Pool size at wildness 100.
        rng: Random source.

    Returns:
        Tuple of (chosen candidate, K).
    """
    ranked = sorted(scored, key=lambda c: (-c.score, c.content.id))
    k = top_k_size(wildness, k_min, k_max, len(ranked))
    return weighted_choice(ranked[:k], rng), k
