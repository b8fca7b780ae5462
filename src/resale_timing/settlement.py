"""Finance settlement model.

All monetary values use decimal.Decimal. Rounding: ROUND_HALF_UP to 2
decimal places for final outputs, full precision for all intermediate
steps.

Settlement figure = remaining principal - interest rebate + settlement fee

- installment loans amortise geometrically (reducing balance)
- balloon loans amortise (principal - balloon) linearly; the balloon is
  owed in full until the contract ends
- the rebate returns a fixed share of the interest not yet accrued
- the fee is a fixed number of months of interest on the remaining principal
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from .config import (
    DEFAULT_SETTLEMENT_POLICY, HUNDRED, ONE, TWELVE, ZERO, Number, SettlementPolicy,
    as_decimal, round_money,
)

logger = logging.getLogger(__name__)


class FinanceKind(str, Enum):
    CASH = "cash"
    INSTALLMENT = "installment"
    BALLOON = "balloon"


SUPPORTED_FINANCE_KINDS = frozenset(k.value for k in FinanceKind)


def parse_finance_kind(value: Union[str, FinanceKind]) -> FinanceKind:
    """Raises ValueError for unknown finance kinds."""
    if isinstance(value, FinanceKind):
        return value
    code = str(value).strip().lower()
    if code not in SUPPORTED_FINANCE_KINDS:
        raise ValueError(
            f"Unknown finance kind '{value}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_FINANCE_KINDS))}"
        )
    return FinanceKind(code)


@dataclass(frozen=True)
class Settlement:
    principal_remaining: Decimal
    interest_rebate: Decimal
    early_settlement_fee: Decimal
    rebate_penalty: Decimal      # fee net of rebate, never negative
    total_settlement: Decimal
    months_remaining: int


def monthly_rate(annual_rate_pct: Number) -> Decimal:
    """Monthly rate from an annual percentage (6 -> 0.005). Negative rates clamp to 0."""
    return max(as_decimal(annual_rate_pct), ZERO) / HUNDRED / TWELVE


def compute_monthly_payment(
    principal: Number,
    annual_rate_pct: Number,
    term_months: int,
    balloon_amount: Number = ZERO,
) -> Decimal:
    """Return the level monthly payment for an amortising loan.

    With a balloon, the balloon's present value is excluded:
        PMT = (P - B / (1 + r)^n) * r * (1 + r)^n / ((1 + r)^n - 1)

    Special case: if the rate is 0, PMT = (P - B) / n.
    """
    if term_months <= 0:
        raise ValueError("term_months must be > 0")
    principal = max(as_decimal(principal), ZERO)
    balloon = min(max(as_decimal(balloon_amount), ZERO), principal)
    r = monthly_rate(annual_rate_pct)
    n = int(term_months)

    if r == ZERO:
        return round_money((principal - balloon) / Decimal(n))

    factor = (ONE + r) ** n
    payment = (principal - balloon / factor) * r * factor / (factor - ONE)
    return round_money(payment)


def _installment_position(
    principal: Decimal, payment: Decimal, r: Decimal, term: int, elapsed: int,
) -> tuple[Decimal, Decimal]:
    """Remaining principal and unearned interest for a reducing-balance loan."""
    total_interest = payment * term - principal
    if r == ZERO:
        remaining = principal * (ONE - Decimal(elapsed) / Decimal(term))
        return remaining, total_interest

    f_n = (ONE + r) ** term
    f_k = (ONE + r) ** elapsed
    remaining = principal * (f_n - f_k) / (f_n - ONE)
    # Interest accrued so far, following the balance the actual payment produces
    balance = principal * f_k - payment * (f_k - ONE) / r
    accrued = payment * elapsed - (principal - balance)
    return remaining, total_interest - accrued


def _balloon_position(
    principal: Decimal, payment: Decimal, balloon: Decimal, term: int, elapsed: int,
) -> tuple[Decimal, Decimal]:
    """Remaining principal (balloon included) and unearned interest for a balloon loan."""
    amortizing = principal - balloon
    remaining = amortizing - amortizing * elapsed / term + balloon
    total_interest = payment * term - amortizing
    return remaining, total_interest / term * (term - elapsed)


def compute_settlement(
    principal: Number,
    monthly_payment: Number,
    annual_rate_pct: Number,
    term_months: int,
    months_elapsed: int,
    kind: Union[str, FinanceKind],
    balloon_amount: Number = ZERO,
    policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> Settlement:
    """Return the early-settlement figure after *months_elapsed* payments.

    Cash purchases owe nothing. A financed vehicle with a non-positive term
    is treated as already settled apart from its balloon.
    """
    kind = parse_finance_kind(kind)
    if kind is FinanceKind.CASH:
        return Settlement(ZERO, ZERO, ZERO, ZERO, ZERO, 0)

    principal = max(as_decimal(principal), ZERO)
    payment = max(as_decimal(monthly_payment), ZERO)
    r = monthly_rate(annual_rate_pct)
    balloon = ZERO
    if kind is FinanceKind.BALLOON:
        balloon = min(max(as_decimal(balloon_amount), ZERO), principal)

    if term_months <= 0:
        logger.debug("Non-positive term %s, treating loan as settled", term_months)
        owed = round_money(balloon)
        return Settlement(owed, ZERO, ZERO, ZERO, owed, 0)

    elapsed = min(max(int(months_elapsed), 0), term_months)

    if kind is FinanceKind.BALLOON:
        remaining, unearned = _balloon_position(principal, payment, balloon, term_months, elapsed)
    else:
        remaining, unearned = _installment_position(principal, payment, r, term_months, elapsed)

    rebate = max(unearned, ZERO) * policy.rebate_rate
    fee = remaining * r * policy.fee_months_interest
    total = max(remaining - rebate + fee, ZERO)

    return Settlement(
        principal_remaining=round_money(remaining),
        interest_rebate=round_money(rebate),
        early_settlement_fee=round_money(fee),
        rebate_penalty=round_money(max(fee - rebate, ZERO)),
        total_settlement=round_money(total),
        months_remaining=term_months - elapsed,
    )
