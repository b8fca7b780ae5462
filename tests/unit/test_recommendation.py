"""Unit tests for recommendation.py: sell status, window, ranges and warnings."""
from decimal import Decimal

import pytest

from resale_timing.projection import generate_projections, optimal_projection
from resale_timing.recommendation import (
    SellStatus,
    Volatility,
    WarningCategory,
    WarningSeverity,
    classify_volatility,
    collect_warnings,
    recommend,
    timing_explanation,
)
from resale_timing.resolver import VehicleInputs, resolve_profile

ZERO = Decimal("0")


def _profile(**kwargs):
    defaults = dict(
        purchase_price=Decimal("30000"),
        category="economy",
        principal=Decimal("27000"),
        annual_rate_pct=Decimal("6"),
        term_months=60,
        months_elapsed=12,
    )
    defaults.update(kwargs)
    return resolve_profile(VehicleInputs(**defaults))


@pytest.fixture(scope="module")
def profile():
    return _profile()


@pytest.fixture(scope="module")
def projections(profile):
    return generate_projections(profile)


class TestRecommend:
    def test_empty_projection_raises(self, profile):
        with pytest.raises(ValueError):
            recommend(profile, ())

    def test_too_early_in_first_months(self, profile, projections):
        assert recommend(profile.at_month(3), projections).status is SellStatus.TOO_EARLY

    def test_optimal_now_at_optimal_month(self, profile, projections):
        optimal = optimal_projection(projections)
        rec = recommend(profile.at_month(optimal.month), projections)
        assert rec.status is SellStatus.OPTIMAL_NOW
        assert rec.months_to_optimal == 0
        assert rec.window.contains(optimal.month)

    def test_passed_after_window(self, profile, projections):
        rec = recommend(profile.at_month(66), projections)
        assert rec.status is SellStatus.OPTIMAL_PASSED

    def test_current_month_clamped_to_projection(self, profile, projections):
        assert recommend(profile.at_month(500), projections).current_month == 66

    def test_window_centred_on_optimal(self, profile, projections):
        rec = recommend(profile, projections)
        assert rec.window.peak_month == rec.optimal_month
        assert rec.window.start_month <= rec.optimal_month <= rec.window.end_month

    def test_equity_range_brackets_expected(self, profile, projections):
        rec = recommend(profile, projections)
        assert rec.equity_range.low <= rec.equity_range.expected <= rec.equity_range.high
        assert rec.equity_range.expected == optimal_projection(projections).trade_in_equity

    def test_deposit_turns_equity_into_true_profit(self, projections):
        with_deposit = _profile(deposit=Decimal("3000"))
        rec = recommend(with_deposit, projections)
        assert rec.true_profit == rec.current_equity - Decimal("3000")
        assert rec.true_profit_range.expected == rec.equity_range.expected - Decimal("3000")

    def test_deposit_can_hold_back_optimal_now(self, projections):
        optimal = optimal_projection(projections)
        deposit = optimal.trade_in_equity + Decimal("500")
        rec = recommend(_profile(deposit=deposit, months_elapsed=optimal.month), projections)
        # Positive equity, but 500 short of the deposit paid
        assert rec.current_equity >= ZERO
        assert rec.status is SellStatus.GOOD_TO_SELL

    def test_no_deposit_true_profit_equals_equity(self, profile, projections):
        rec = recommend(profile, projections)
        assert rec.deposit == ZERO
        assert rec.true_profit == rec.current_equity

    def test_peak_month_is_max_equity(self, profile, projections):
        rec = recommend(profile, projections)
        peak = max(p.trade_in_equity for p in projections)
        assert projections[rec.peak_month].trade_in_equity == peak


class TestTimingExplanation:
    @pytest.mark.parametrize("optimal,peak", [(30, 30), (30, 32), (30, 28)])
    def test_close_months_need_no_explanation(self, optimal, peak):
        assert timing_explanation(optimal, peak) is None

    def test_later_peak_explained(self):
        text = timing_explanation(30, 40)
        assert "another 10 months" in text

    def test_earlier_peak_explained(self):
        assert "peaks at month 20" in timing_explanation(30, 20)


class TestVolatility:
    def test_short_series_is_low(self, projections):
        assert classify_volatility(projections[:5]) is Volatility.LOW

    def test_smooth_curve_not_high(self, projections):
        assert classify_volatility(projections) is not Volatility.HIGH


class TestWarnings:
    def _categories(self, warnings):
        return {w.category for w in warnings}

    def test_optimal_vs_peak(self, profile):
        warnings = collect_warnings(profile, 12, Decimal("1000"), 20, 40)
        assert WarningCategory.OPTIMAL_VS_PEAK in self._categories(warnings)

    @pytest.mark.parametrize("annual,severity", [
        (16000, WarningSeverity.INFO),
        (30000, WarningSeverity.WARNING),
    ])
    def test_high_mileage(self, annual, severity):
        profile = _profile(expected_annual_mileage=annual)
        warnings = collect_warnings(profile, 12, Decimal("1000"), 30, 30)
        found = [w for w in warnings if w.category is WarningCategory.HIGH_MILEAGE]
        assert [w.severity for w in found] == [severity]

    def test_mileage_cliff_before_optimal(self):
        profile = _profile(months_elapsed=20, current_mileage=Decimal("25000"), expected_annual_mileage=12000)
        warnings = collect_warnings(profile, 20, Decimal("1000"), 30, 30)
        assert WarningCategory.MILEAGE_CLIFF in self._categories(warnings)

    @pytest.mark.parametrize("month,severity", [
        (57, WarningSeverity.CRITICAL),
        (50, WarningSeverity.WARNING),
    ])
    def test_balloon_due(self, month, severity):
        profile = _profile(finance_kind="balloon", balloon_amount=Decimal("10800"), months_elapsed=month)
        warnings = collect_warnings(profile, month, Decimal("1000"), 40, 40)
        found = [w for w in warnings if w.category is WarningCategory.BALLOON_DUE]
        assert [w.severity for w in found] == [severity]

    def test_no_balloon_warning_far_from_term(self):
        profile = _profile(finance_kind="balloon", balloon_amount=Decimal("10800"), months_elapsed=24)
        warnings = collect_warnings(profile, 24, Decimal("1000"), 40, 40)
        assert WarningCategory.BALLOON_DUE not in self._categories(warnings)

    def test_warranty_expiring(self, profile):
        warnings = collect_warnings(profile, 34, Decimal("1000"), 34, 34)
        assert WarningCategory.WARRANTY_EXPIRING in self._categories(warnings)

    def test_deep_underwater(self, profile):
        warnings = collect_warnings(profile, 12, Decimal("-6000"), 30, 30)
        assert WarningCategory.DEEP_UNDERWATER in self._categories(warnings)

    def test_end_of_term(self, profile):
        warnings = collect_warnings(profile, 58, Decimal("1000"), 40, 40)
        assert WarningCategory.END_OF_TERM in self._categories(warnings)

    def test_quiet_profile_has_no_warnings(self, profile):
        assert collect_warnings(profile, 12, Decimal("1000"), 30, 30) == ()
