"""Unit tests for optimizer.py: optimal sell month scoring and fallbacks."""
from decimal import Decimal

import pytest

from resale_timing.config import ScoringPolicy
from resale_timing.optimizer import (
    PEAK,
    SCORED,
    THRESHOLD,
    centred_average,
    equity_deltas,
    equity_peak,
    growth_milestones,
    score_curve,
    sweet_spot,
    trailing_average,
)
from resale_timing.projection import CurvePoint, ValueSource

D = Decimal


def _curve(equities, settlement=D("0")):
    """Curve whose trade-in equity follows *equities*, 1 000 miles a month."""
    return tuple(
        CurvePoint(
            month=m,
            mileage=D(1000) * m,
            trade_in_value=D(str(e)) + settlement,
            private_value=D(str(e)) + settlement,
            settlement=settlement,
            source=ValueSource.FORMULA,
        )
        for m, e in enumerate(equities)
    )


class TestHelpers:
    def test_equity_deltas_start_at_zero(self):
        assert equity_deltas([D(5), D(8), D(6)]) == [D(0), D(3), D(-2)]

    def test_trailing_average_keeps_raw_until_window_full(self):
        assert trailing_average([D(3), D(6), D(9), D(12)], 3) == [D(3), D(6), D(6), D(9)]

    def test_sweet_spot_floors(self):
        assert sweet_spot(60) == (36, 51)
        assert sweet_spot(37) == (22, 31)

    def test_milestones_on_short_curve(self):
        assert growth_milestones([D(1)] * 5, 60) == (12, 12)

    def test_diminishing_returns_after_peak_growth(self):
        growth = [D(0)] * 12 + [D(100)] * 3 + [D(40)] * 30
        peak, diminishing = growth_milestones(growth, 48)
        assert peak == 12
        assert diminishing == 15


class TestScoreCurve:
    def test_empty_curve_raises(self):
        with pytest.raises(ValueError):
            score_curve((), 60)

    def test_scored_month_within_candidate_range(self):
        equities = [-3000 + 150 * m for m in range(67)]
        result = score_curve(_curve(equities), 60)
        assert result.method == SCORED
        assert 12 <= result.month <= 54

    def test_underwater_months_not_scored(self):
        equities = [-100] * 30 + [1000] * 37
        result = score_curve(_curve(equities), 60)
        assert result.scores
        assert all(month >= 30 for month, _ in result.scores)

    def test_threshold_fallback(self):
        # Underwater throughout the candidate range, above 2 000 only in the tail
        equities = [-5000] * 55 + [2500] * 12
        result = score_curve(_curve(equities), 60, ScoringPolicy(fallback_last_month=60))
        assert result.method == THRESHOLD
        assert result.month == 55

    def test_peak_fallback_picks_earliest_peak(self):
        equities = [-5000 + 10 * m for m in range(40)] + [-4000] * 27
        result = score_curve(_curve(equities), 60)
        assert result.method == PEAK
        assert result.month == 40

    def test_short_term_uses_fallback(self):
        # A 12-month term leaves no scorable month
        result = score_curve(_curve([500] * 19), 12)
        assert result.method in (THRESHOLD, PEAK)
        assert 0 <= result.month <= 18



class TestEquityPeak:
    def test_centred_average_keeps_edges(self):
        assert centred_average([D(3), D(6), D(9), D(0)], 3) == [D("4.5"), D(6), D(5), D("4.5")]

    def test_rising_equity_peaks_at_search_end(self):
        peak = equity_peak([D(m * 100) for m in range(67)], 60)
        assert peak.month == 57
        assert peak.equity == D(5700)

    def test_interior_peak_found_after_smoothing(self):
        equities = [D(-abs(m - 30) * 50) for m in range(55)]
        assert equity_peak(equities, 48).month == 30

    def test_ties_go_to_earliest_month(self):
        assert equity_peak([D(0)] * 40, 36).month == 12

    def test_short_curve_searches_everything(self):
        assert equity_peak([D(0), D(3), D(6), D(3), D(0)], 6).month == 2

    def test_peak_differs_from_scored_month(self):
        curve = _curve([m * 100 for m in range(67)])
        assert score_curve(curve, 60).month < equity_peak([p.trade_in_equity for p in curve], 60).month
