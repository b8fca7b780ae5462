"""Unit tests for settlement.py: payments and early-settlement figures."""
from decimal import Decimal

import pytest

from resale_timing.config import SettlementPolicy
from resale_timing.settlement import (
    FinanceKind,
    compute_monthly_payment,
    compute_settlement,
    monthly_rate,
    parse_finance_kind,
)

ZERO = Decimal("0")


class TestMonthlyPayment:
    def test_standard_installment(self):
        # 27 000 at 6 % over 60 months
        assert compute_monthly_payment(Decimal("27000"), Decimal("6"), 60) == Decimal("521.99")

    def test_zero_rate_is_straight_line(self):
        assert compute_monthly_payment(Decimal("12000"), ZERO, 48) == Decimal("250.00")

    def test_zero_rate_balloon_excluded(self):
        assert compute_monthly_payment(Decimal("12000"), ZERO, 40, Decimal("4000")) == Decimal("200.00")

    def test_balloon_lowers_payment(self):
        plain = compute_monthly_payment(Decimal("27000"), Decimal("6"), 60)
        balloon = compute_monthly_payment(Decimal("27000"), Decimal("6"), 60, Decimal("10800"))
        assert balloon < plain

    @pytest.mark.parametrize("term", [0, -12])
    def test_non_positive_term_raises(self, term):
        with pytest.raises(ValueError):
            compute_monthly_payment(Decimal("10000"), Decimal("5"), term)


class TestMonthlyRate:
    def test_percent_to_monthly(self):
        assert monthly_rate(Decimal("6")) == Decimal("0.005")

    def test_negative_rate_clamped(self):
        assert monthly_rate(Decimal("-3")) == ZERO


class TestInstallmentSettlement:
    PRINCIPAL = Decimal("27000")
    RATE = Decimal("6")
    TERM = 60

    def _settle(self, month: int, policy: SettlementPolicy = SettlementPolicy()):
        payment = compute_monthly_payment(self.PRINCIPAL, self.RATE, self.TERM)
        return compute_settlement(
            self.PRINCIPAL, payment, self.RATE, self.TERM, month, FinanceKind.INSTALLMENT, policy=policy,
        )

    def test_settles_to_zero_at_term(self):
        assert self._settle(self.TERM).total_settlement == ZERO

    def test_settlement_never_increases(self):
        totals = [self._settle(m).total_settlement for m in range(self.TERM + 1)]
        assert all(later <= earlier for earlier, later in zip(totals, totals[1:]))

    def test_rebate_lowers_settlement_below_remaining(self):
        s = self._settle(12)
        assert s.interest_rebate > ZERO
        assert s.total_settlement < s.principal_remaining

    def test_fee_is_months_of_interest(self):
        s = self._settle(12)
        expected = (s.principal_remaining * Decimal("0.005") * Decimal("1.5")).quantize(Decimal("0.01"))
        assert abs(s.early_settlement_fee - expected) <= Decimal("0.01")

    def test_higher_fee_policy_raises_settlement(self):
        base = self._settle(12)
        penalised = self._settle(12, SettlementPolicy(fee_months_interest=Decimal("4.5")))
        assert penalised.total_settlement > base.total_settlement

    @pytest.mark.parametrize("month,remaining", [(-3, 60), (100, 0)])
    def test_elapsed_months_clamped(self, month, remaining):
        assert self._settle(month).months_remaining == remaining


class TestBalloonSettlement:
    def test_balloon_owed_at_term(self):
        principal, balloon = Decimal("27000"), Decimal("10800")
        payment = compute_monthly_payment(principal, Decimal("6"), 60, balloon)
        s = compute_settlement(principal, payment, Decimal("6"), 60, 60, "balloon", balloon)
        assert s.principal_remaining == balloon
        # One and a half months of interest on the balloon
        assert s.total_settlement == Decimal("10881.00")

    def test_balloon_clamped_to_principal(self):
        s = compute_settlement(Decimal("10000"), ZERO, ZERO, 36, 36, FinanceKind.BALLOON, Decimal("50000"))
        assert s.principal_remaining == Decimal("10000.00")

    def test_non_positive_term_owes_balloon_only(self):
        s = compute_settlement(Decimal("10000"), ZERO, Decimal("5"), 0, 0, FinanceKind.BALLOON, Decimal("4000"))
        assert s.total_settlement == Decimal("4000.00")
        assert s.early_settlement_fee == ZERO


class TestCash:
    def test_cash_owes_nothing(self):
        s = compute_settlement(Decimal("30000"), Decimal("500"), Decimal("6"), 60, 12, "cash")
        assert s.total_settlement == ZERO
        assert s.months_remaining == 0


class TestParseFinanceKind:
    @pytest.mark.parametrize("raw,expected", [
        ("cash", FinanceKind.CASH),
        (" Installment ", FinanceKind.INSTALLMENT),
        ("BALLOON", FinanceKind.BALLOON),
        (FinanceKind.BALLOON, FinanceKind.BALLOON),
    ])
    def test_parses(self, raw, expected):
        assert parse_finance_kind(raw) is expected

    def test_unknown_kind_lists_supported(self):
        with pytest.raises(ValueError, match="Supported"):
            parse_finance_kind("lease")
