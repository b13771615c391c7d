"""Pure statistics for experiment analysis.

Normal-approximation tests for proportions and Welch's t-test, computed from
running sums so the event log never has to be loaded into memory.
"""

import math
from dataclasses import dataclass


Z_95 = 1.96


@dataclass(frozen=True)
class ProportionTest:
    """Two-proportion z-test of variant ``a`` against variant ``b``."""

    rate_a: float
    rate_b: float
    difference: float
    z_statistic: float
    p_value: float
    ci_lower: float
    ci_upper: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "rate_a": self.rate_a,
            "rate_b": self.rate_b,
            "difference": self.difference,
            "z_statistic": self.z_statistic,
            "p_value": self.p_value,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
        }


@dataclass(frozen=True)
class WelchTest:
    """Welch's t-test of two sample means."""

    mean_a: float
    mean_b: float
    difference: float
    t_statistic: float
    degrees_of_freedom: float
    p_value: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "mean_a": self.mean_a,
            "mean_b": self.mean_b,
            "difference": self.difference,
            "t_statistic": self.t_statistic,
            "degrees_of_freedom": self.degrees_of_freedom,
            "p_value": self.p_value,
        }


def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution."""
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def two_sided_p_value(statistic: float) -> float:
    """Two-sided p-value of a standard normal statistic."""
    return 2.0 * (1.0 - normal_cdf(abs(statistic)))


def rate(successes: int, trials: int) -> float:
    """Success rate, 0 when there are no trials."""
    return successes / trials if trials > 0 else 0.0


def proportion_standard_error(successes: int, trials: int) -> float:
    """Standard error of a proportion."""
    if trials <= 0:
        return 0.0
    p = successes / trials
    return math.sqrt(p * (1 - p) / trials)


def proportion_confidence_interval(
    successes: int, trials: int, z: float = Z_95
) -> tuple[float, float]:
    """Wald confidence interval of a proportion, clamped to [0, 1].

    Args:
        successes: Number of successes.
        trials: Number of trials.
        z: Critical value (1.96 for 95%).

    Returns:
        Tuple of (lower, upper).
    """
    p = rate(successes, trials)
    margin = z * proportion_standard_error(successes, trials)
    return max(0.0, p - margin), min(1.0, p + margin)


def two_proportion_z_test(
    successes_a: int, trials_a: int, successes_b: int, trials_b: int
) -> ProportionTest:
    """Compare two proportions.

    The z statistic uses the pooled standard error; the confidence interval of
    the difference uses the unpooled one.

    Args:
        successes_a: Successes of variant a.
        trials_a: Trials of variant a.
        successes_b: Successes of variant b.
        trials_b: Trials of variant b.

    Returns:
        ProportionTest with ``difference = rate_a - rate_b``.
    """
    rate_a = rate(successes_a, trials_a)
    rate_b = rate(successes_b, trials_b)
    difference = rate_a - rate_b

    if trials_a <= 0 or trials_b <= 0:
        return ProportionTest(rate_a, rate_b, difference, 0.0, 1.0, difference, difference)

    pooled = (successes_a + successes_b) / (trials_a + trials_b)
    pooled_se = math.sqrt(pooled * (1 - pooled) * (1 / trials_a + 1 / trials_b))
    if pooled_se == 0:
        # No variance in either group: identical rates are indistinguishable
        z = 0.0
        p_value = 1.0 if difference == 0 else 0.0
    else:
        z = difference / pooled_se
        p_value = two_sided_p_value(z)

    unpooled_se = math.sqrt(
        rate_a * (1 - rate_a) / trials_a + rate_b * (1 - rate_b) / trials_b
    )
    margin = Z_95 * unpooled_se
    return ProportionTest(
        rate_a=rate_a,
        rate_b=rate_b,
        difference=difference,
        z_statistic=z,
        p_value=p_value,
        ci_lower=difference - margin,
        ci_upper=difference + margin,
    )


def mean_and_variance(count: int, total: float, total_sq: float) -> tuple[float, float]:
    """Sample mean and unbiased variance from running sums.

    Args:
        count: Number of observations.
        total: Sum of observations.
        total_sq: Sum of squared observations.

    Returns:
        Tuple of (mean, variance); variance is 0 below two observations.
    """
    if count <= 0:
        return 0.0, 0.0
    mean = total / count
    if count < 2:
        return mean, 0.0
    variance = max(0.0, (total_sq - count * mean * mean) / (count - 1))
    return mean, variance


def welch_t_test(
    n_a: int, mean_a: float, var_a: float, n_b: int, mean_b: float, var_b: float
) -> WelchTest | None:
    """Welch's t-test p-value using the normal approximation.

    Args:
        n_a: Sample size of a.
        mean_a: Mean of a.
        var_a: Sample variance of a.
        n_b: Sample size of b.
        mean_b: Mean of b.
        var_b: Sample variance of b.

    Returns:
        WelchTest, or None when either sample has fewer than two observations.
    """
    if n_a < 2 or n_b < 2:
        return None

    difference = mean_a - mean_b
    denom = var_a / n_a + var_b / n_b
    if denom == 0:
        return WelchTest(
            mean_a=mean_a,
            mean_b=mean_b,
            difference=difference,
            t_statistic=0.0,
            degrees_of_freedom=float(n_a + n_b - 2),
            p_value=1.0 if difference == 0 else 0.0,
        )

    t = difference / math.sqrt(denom)
    df_denom = (var_a * var_a) / (n_a * n_a * (n_a - 1)) + (var_b * var_b) / (
        n_b * n_b * (n_b - 1)
    )
    df = (denom * denom) / df_denom if df_denom > 0 else float(n_a + n_b - 2)
    return WelchTest(
        mean_a=mean_a,
        mean_b=mean_b,
        difference=difference,
        t_statistic=t,
        degrees_of_freedom=df,
        p_value=two_sided_p_value(t),
    )
