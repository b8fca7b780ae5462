"""Unit tests for resolver.py: profile resolution and precondition checks."""
from dataclasses import replace
from decimal import Decimal

import pytest

from resale_timing.profiles import VehicleCategory
from resale_timing.resolver import (
    InvalidProfileError,
    VehicleInputs,
    check_preconditions,
    resolve_profile,
)
from resale_timing.settlement import FinanceKind

ZERO = Decimal("0")


def _base_inputs(**kwargs) -> VehicleInputs:
    defaults = dict(
        purchase_price=Decimal("30000"),
        principal=Decimal("27000"),
        annual_rate_pct=Decimal("6"),
        term_months=60,
    )
    defaults.update(kwargs)
    return VehicleInputs(**defaults)


class TestResolveDefaults:
    def test_default_category_is_economy(self):
        profile = resolve_profile(_base_inputs())
        assert profile.category is VehicleCategory.ECONOMY
        assert profile.sources["category"] == "default"

    def test_principal_implies_installment(self):
        profile = resolve_profile(_base_inputs())
        assert profile.finance_kind is FinanceKind.INSTALLMENT

    def test_no_principal_means_cash(self):
        profile = resolve_profile(VehicleInputs(purchase_price=Decimal("30000")))
        assert profile.finance_kind is FinanceKind.CASH
        assert profile.principal == ZERO
        assert profile.monthly_payment == ZERO
        assert profile.term_months == 60
        assert not profile.is_financed

    def test_payment_derived(self):
        profile = resolve_profile(_base_inputs())
        assert profile.monthly_payment == Decimal("521.99")
        assert profile.sources["monthly_payment"] == "derived"

    def test_payment_user_override(self):
        profile = resolve_profile(_base_inputs(monthly_payment=Decimal("600")))
        assert profile.monthly_payment == Decimal("600")
        assert profile.sources["monthly_payment"] == "user"

    def test_principal_derived_from_deposit(self):
        profile = resolve_profile(_base_inputs(
            principal=None, finance_kind="installment", deposit=Decimal("3000"),
        ))
        assert profile.principal == Decimal("27000")
        assert profile.sources["principal"] == "derived"

    def test_mileage_derived_on_track(self):
        profile = resolve_profile(_base_inputs(months_elapsed=24, expected_annual_mileage=12000))
        assert profile.current_mileage == Decimal("24000")
        assert profile.sources["current_mileage"] == "derived"

    def test_last_month_is_term_plus_six(self):
        assert resolve_profile(_base_inputs()).last_month == 66


class TestResolveClamping:
    def test_balloon_clamped_to_principal(self):
        profile = resolve_profile(_base_inputs(finance_kind="balloon", balloon_amount=Decimal("40000")))
        assert profile.balloon_amount == Decimal("27000")
        assert profile.sources["balloon_amount"] == "clamped"

    def test_balloon_ignored_on_installment(self):
        profile = resolve_profile(_base_inputs(balloon_amount=Decimal("5000")))
        assert profile.balloon_amount == ZERO

    def test_negative_rate_clamped(self):
        profile = resolve_profile(_base_inputs(annual_rate_pct=Decimal("-2")))
        assert profile.annual_rate_pct == ZERO
        assert profile.sources["annual_rate_pct"] == "clamped"

    def test_negative_mileage_clamped(self):
        profile = resolve_profile(_base_inputs(current_mileage=Decimal("-10")))
        assert profile.current_mileage == ZERO
        assert profile.sources["current_mileage"] == "clamped"

    def test_negative_elapsed_clamped(self):
        assert resolve_profile(_base_inputs(months_elapsed=-4)).months_elapsed == 0


class TestResolveErrors:
    @pytest.mark.parametrize("missing", ["annual_rate_pct", "term_months"])
    def test_financed_needs_rate_and_term(self, missing):
        with pytest.raises(InvalidProfileError):
            resolve_profile(_base_inputs(**{missing: None}))

    def test_unknown_category(self):
        with pytest.raises(ValueError, match="Supported"):
            resolve_profile(_base_inputs(category="hovercraft"))

    def test_unknown_finance_kind(self):
        with pytest.raises(ValueError):
            resolve_profile(_base_inputs(finance_kind="lease"))


class TestAtMonth:
    def test_mileage_stays_on_track(self):
        profile = resolve_profile(_base_inputs(
            months_elapsed=12, current_mileage=Decimal("15000"), expected_annual_mileage=12000,
        ))
        later = profile.at_month(36)
        # 3 000 at purchase plus 1 000 a month
        assert later.current_mileage == Decimal("39000")
        assert later.months_elapsed == 36
        assert later.principal == profile.principal


class TestCheckPreconditions:
    def test_valid_profile_passes(self):
        check_preconditions(resolve_profile(_base_inputs()))

    def test_zero_price_rejected(self):
        with pytest.raises(InvalidProfileError, match="Purchase price"):
            check_preconditions(resolve_profile(_base_inputs(purchase_price=ZERO)))

    def test_non_positive_term_rejected(self):
        with pytest.raises(InvalidProfileError, match="term"):
            check_preconditions(resolve_profile(_base_inputs(term_months=0)))

    def test_balloon_on_installment_rejected(self):
        profile = replace(resolve_profile(_base_inputs()), balloon_amount=Decimal("1000"))
        with pytest.raises(InvalidProfileError, match="balloon"):
            check_preconditions(profile)

    def test_balloon_above_principal_rejected(self):
        profile = replace(
            resolve_profile(_base_inputs(finance_kind="balloon", balloon_amount=Decimal("5000"))),
            balloon_amount=Decimal("30000"),
        )
        with pytest.raises(InvalidProfileError, match="exceeds principal"):
            check_preconditions(profile)

    def test_cash_needs_no_term(self):
        profile = resolve_profile(VehicleInputs(purchase_price=Decimal("20000"), term_months=0))
        check_preconditions(profile)
