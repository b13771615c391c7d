"""Unit tests for experiment statistics."""

import pytest

from discovery.experiments.stats import (
    mean_and_variance,
    normal_cdf,
    proportion_confidence_interval,
    rate,
    two_proportion_z_test,
    two_sided_p_value,
    welch_t_test,
)


class TestNormal:
    """Tests for normal distribution helpers."""

    def test_cdf_symmetry(self) -> None:
        """The CDF is 0.5 at zero and symmetric."""
        assert normal_cdf(0.0) == pytest.approx(0.5)
        assert normal_cdf(1.0) + normal_cdf(-1.0) == pytest.approx(1.0)

    def test_two_sided_p_value(self) -> None:
        """z = 1.96 gives p close to 0.05."""
        assert two_sided_p_value(1.96) == pytest.approx(0.05, abs=1e-3)
        assert two_sided_p_value(-1.96) == pytest.approx(two_sided_p_value(1.96))


class TestProportions:
    """Tests for proportion statistics."""

    def test_rate_without_trials(self) -> None:
        """No trials means a zero rate."""
        assert rate(3, 0) == 0.0

    def test_confidence_interval_clamped(self) -> None:
        """Intervals never leave [0, 1]."""
        lower, upper = proportion_confidence_interval(1, 2)
        assert 0.0 <= lower < 0.5 < upper <= 1.0
        assert proportion_confidence_interval(0, 0) == (0.0, 0.0)

    def test_significant_difference(self) -> None:
        """50% versus 30% over 100 trials each is significant."""
        result = two_proportion_z_test(50, 100, 30, 100)

        assert result.difference == pytest.approx(0.2)
        assert result.z_statistic == pytest.approx(2.887, abs=1e-3)
        assert result.p_value < 0.01
        assert result.ci_lower > 0

    def test_identical_rates(self) -> None:
        """Identical rates are not significant."""
        result = two_proportion_z_test(20, 100, 20, 100)
        assert result.z_statistic == 0.0
        assert result.p_value == pytest.approx(1.0)

    def test_empty_group(self) -> None:
        """A variant without trials yields p = 1."""
        result = two_proportion_z_test(5, 10, 0, 0)
        assert result.p_value == 1.0

    def test_no_variance(self) -> None:
        """All-success versus all-success has no variance and p = 1."""
        assert two_proportion_z_test(10, 10, 10, 10).p_value == 1.0


class TestMeans:
    """Tests for mean and Welch statistics."""

    def test_mean_and_variance(self) -> None:
        """Running sums of [1, 2, 3] give mean 2 and variance 1."""
        assert mean_and_variance(3, 6.0, 14.0) == (pytest.approx(2.0), pytest.approx(1.0))

    def test_mean_single_observation(self) -> None:
        """A single observation has zero variance."""
        assert mean_and_variance(1, 5.0, 25.0) == (5.0, 0.0)
        assert mean_and_variance(0, 0.0, 0.0) == (0.0, 0.0)

    def test_welch_requires_two_samples(self) -> None:
        """Fewer than two observations per group returns None."""
        assert welch_t_test(1, 10.0, 0.0, 5, 12.0, 1.0) is None

    def test_welch_difference(self) -> None:
        """Clearly separated means are significant."""
        result = welch_t_test(50, 1000.0, 100.0, 50, 1200.0, 100.0)

        assert result is not None
        assert result.difference == pytest.approx(-200.0)
        assert result.p_value < 0.001
        assert result.degrees_of_freedom == pytest.approx(98.0)

    def test_welch_no_variance(self) -> None:
        """Equal constant samples are indistinguishable."""
        result = welch_t_test(5, 10.0, 0.0, 5, 10.0, 0.0)
        assert result is not None
        assert result.p_value == 1.0
