"""Tests for confidence arithmetic: clamping, averaging and agreement boosting."""

import math

import pytest

from designfusion.confidence import AGREEMENT_BOOST, MAX_AGREEMENT, average, boost, clamp01


class TestClamp01:
    """clamp01 keeps every score inside [0, 1]."""

    @pytest.mark.parametrize("value", [-5, -0.01, 0, 0.3, 0.999, 1, 1.5, 1e9, -math.inf, math.inf])
    def test_result_in_unit_interval(self, value):
        assert 0.0 <= clamp01(value) <= 1.0

    def test_nan_is_zero(self):
        assert clamp01(float("nan")) == 0.0

    def test_infinity_is_one(self):
        assert clamp01(math.inf) == 1.0
        assert clamp01(-math.inf) == 0.0

    def test_in_range_values_unchanged(self):
        assert clamp01(0.42) == pytest.approx(0.42)

    @pytest.mark.parametrize("value", [None, "high", object(), [0.5], True])
    def test_non_numeric_is_zero(self, value):
        assert clamp01(value) == 0.0

    def test_numeric_string_is_parsed(self):
        assert clamp01("0.75") == pytest.approx(0.75)

    @pytest.mark.parametrize("value, expected", [(10**400, 1.0), (-(10**400), 0.0)])
    def test_integers_too_large_for_float(self, value, expected):
        assert clamp01(value) == expected


class TestAverage:
    def test_empty_is_zero(self):
        assert average([]) == 0.0

    def test_mean(self):
        assert average([0.2, 0.4, 0.9]) == pytest.approx(0.5)

    def test_values_clamped_before_averaging(self):
        assert average([2.0, 0.0]) == pytest.approx(0.5)

    def test_accepts_generators(self):
        assert average(x / 10 for x in range(1, 4)) == pytest.approx(0.2)


class TestBoost:
    """Agreement boosting raises confidence but never past 1."""

    def test_single_agreement(self):
        assert boost(0.5, 1) == pytest.approx(0.5 + AGREEMENT_BOOST)

    def test_agreement_capped(self):
        assert boost(0.1, 10) == pytest.approx(boost(0.1, MAX_AGREEMENT))

    def test_negative_count_is_zero(self):
        assert boost(0.4, -3) == pytest.approx(0.4)

    def test_never_exceeds_one(self):
        assert boost(0.95, 2) == 1.0

    def test_strictly_increases_below_one(self):
        for base in (0.0, 0.3, 0.8):
            assert boost(base, 1) > base
