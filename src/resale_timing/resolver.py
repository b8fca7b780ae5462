"""Vehicle/finance profile resolution and precondition checking.

Resolution order:
1. category defaults to economy; finance kind to cash when no principal is given.
2. principal defaults to purchase price minus deposit on financed vehicles.
3. monthly payment is derived from principal, rate, term and balloon if missing.
4. odometer defaults to the expected reading for the months elapsed.
5. out-of-range numbers are clamped (negative mileage, rate, balloon above principal).

The valuation core never rejects a profile; check_preconditions() lets a
caller refuse input the core is not responsible for.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from .config import (
    DEFAULT_CASH_HORIZON_MONTHS, DEFAULT_EXPECTED_ANNUAL_MILEAGE, PROJECTION_TAIL_MONTHS,
    TWELVE, ZERO, Number, as_decimal,
)
from .profiles import DEFAULT_CATEGORY, VehicleCategory, parse_category
from .settlement import FinanceKind, compute_monthly_payment, parse_finance_kind

logger = logging.getLogger(__name__)


@dataclass
class VehicleInputs:
    """Raw user-supplied values.  None means not provided, use the default."""
    # Mandatory
    purchase_price: Number
    # Optional vehicle
    category: Optional[str] = None
    current_mileage: Optional[Number] = None
    expected_annual_mileage: Optional[Number] = None
    months_elapsed: Optional[int] = None
    # Optional finance
    finance_kind: Optional[str] = None
    principal: Optional[Number] = None
    annual_rate_pct: Optional[Number] = None
    term_months: Optional[int] = None
    monthly_payment: Optional[Number] = None
    balloon_amount: Optional[Number] = None
    deposit: Optional[Number] = None


@dataclass(frozen=True)
class VehicleFinanceProfile:
    """A fully resolved vehicle and its finance obligation."""
    purchase_price: Decimal
    category: VehicleCategory
    finance_kind: FinanceKind
    principal: Decimal
    monthly_payment: Decimal
    annual_rate_pct: Decimal
    term_months: int
    balloon_amount: Decimal
    months_elapsed: int
    current_mileage: Decimal
    expected_annual_mileage: Decimal
    deposit: Decimal = ZERO
    # Provenance: 'user', 'default', 'derived' or 'clamped' per optional field
    sources: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def monthly_mileage(self) -> Decimal:
        return self.expected_annual_mileage / TWELVE

    @property
    def last_month(self) -> int:
        """Last month index covered by a projection."""
        return max(self.term_months, 0) + PROJECTION_TAIL_MONTHS

    @property
    def is_financed(self) -> bool:
        return self.finance_kind is not FinanceKind.CASH

    def at_month(self, month: int) -> "VehicleFinanceProfile":
        """The same vehicle observed *month* months after purchase, mileage on track."""
        start = max(self.current_mileage - self.monthly_mileage * self.months_elapsed, ZERO)
        return replace(
            self,
            months_elapsed=month,
            current_mileage=start + self.monthly_mileage * month,
        )


class InvalidProfileError(ValueError):
    """Raised when a profile lies outside what the valuation core can meaningfully model."""


def resolve_profile(inputs: VehicleInputs) -> VehicleFinanceProfile:
    """Resolve all fields and return a fully-specified VehicleFinanceProfile.

    Raises ValueError for unknown category or finance kind strings, and
    InvalidProfileError when a financed vehicle lacks a rate or a term.
    """
    sources: dict[str, str] = {}

    def _resolve(user_val, default_val, name: str, default_source: str = "default"):
        if user_val is not None:
            sources[name] = "user"
            return user_val
        sources[name] = default_source
        return default_val

    price = max(as_decimal(inputs.purchase_price), ZERO)

    # --- Step 1: category & finance kind ---
    category = parse_category(_resolve(inputs.category, DEFAULT_CATEGORY, "category"))
    default_kind = FinanceKind.CASH if inputs.principal is None else FinanceKind.INSTALLMENT
    kind = parse_finance_kind(_resolve(inputs.finance_kind, default_kind, "finance_kind"))

    deposit = max(as_decimal(_resolve(inputs.deposit, ZERO, "deposit")), ZERO)
    months_elapsed = max(int(_resolve(inputs.months_elapsed, 0, "months_elapsed")), 0)
    annual_mileage = as_decimal(_resolve(
        inputs.expected_annual_mileage, DEFAULT_EXPECTED_ANNUAL_MILEAGE, "expected_annual_mileage",
    ))
    if annual_mileage < ZERO:
        annual_mileage = ZERO
        sources["expected_annual_mileage"] = "clamped"

    # --- Step 2: odometer ---
    mileage = as_decimal(_resolve(
        inputs.current_mileage,
        annual_mileage / TWELVE * months_elapsed,
        "current_mileage",
        default_source="derived",
    ))
    if mileage < ZERO:
        mileage = ZERO
        sources["current_mileage"] = "clamped"

    # --- Step 3: finance terms ---
    if kind is FinanceKind.CASH:
        term = int(_resolve(inputs.term_months, DEFAULT_CASH_HORIZON_MONTHS, "term_months"))
        return VehicleFinanceProfile(
            purchase_price=price,
            category=category,
            finance_kind=kind,
            principal=ZERO,
            monthly_payment=ZERO,
            annual_rate_pct=ZERO,
            term_months=max(term, 0),
            balloon_amount=ZERO,
            months_elapsed=months_elapsed,
            current_mileage=mileage,
            expected_annual_mileage=annual_mileage,
            deposit=deposit,
            sources=sources,
        )

    if inputs.annual_rate_pct is None or inputs.term_months is None:
        raise InvalidProfileError(
            f"A {kind.value} profile needs both an annual rate and a term in months."
        )
    sources["annual_rate_pct"] = "user"
    sources["term_months"] = "user"
    rate = as_decimal(inputs.annual_rate_pct)
    if rate < ZERO:
        rate = ZERO
        sources["annual_rate_pct"] = "clamped"
    term = int(inputs.term_months)

    principal = max(as_decimal(_resolve(
        inputs.principal, max(price - deposit, ZERO), "principal", default_source="derived",
    )), ZERO)

    balloon = ZERO
    if kind is FinanceKind.BALLOON:
        balloon = max(as_decimal(_resolve(inputs.balloon_amount, ZERO, "balloon_amount")), ZERO)
        if balloon > principal:
            logger.debug("Balloon %s exceeds principal %s, clamping", balloon, principal)
            balloon = principal
            sources["balloon_amount"] = "clamped"

    if inputs.monthly_payment is not None:
        payment = max(as_decimal(inputs.monthly_payment), ZERO)
        sources["monthly_payment"] = "user"
    elif term > 0:
        payment = compute_monthly_payment(principal, rate, term, balloon)
        sources["monthly_payment"] = "derived"
    else:
        payment = ZERO
        sources["monthly_payment"] = "default"

    return VehicleFinanceProfile(
        purchase_price=price,
        category=category,
        finance_kind=kind,
        principal=principal,
        monthly_payment=payment,
        annual_rate_pct=rate,
        term_months=term,
        balloon_amount=balloon,
        months_elapsed=months_elapsed,
        current_mileage=mileage,
        expected_annual_mileage=annual_mileage,
        deposit=deposit,
        sources=sources,
    )


def check_preconditions(profile: VehicleFinanceProfile) -> None:
    """Raise InvalidProfileError if the profile breaks a data-model invariant.

    Checks:
    1. purchase price is positive
    2. a financed vehicle has a positive term
    3. only balloon finance carries a balloon, and never above the principal
    """
    if profile.purchase_price <= ZERO:
        raise InvalidProfileError(
            f"Purchase price must be positive (got {profile.purchase_price:,.2f})."
        )
    if profile.is_financed and profile.term_months <= 0:
        raise InvalidProfileError(
            f"A {profile.finance_kind.value} loan needs a positive term "
            f"(got {profile.term_months} months)."
        )
    if profile.balloon_amount > ZERO and profile.finance_kind is not FinanceKind.BALLOON:
        raise InvalidProfileError(
            f"Only balloon finance can carry a balloon payment "
            f"(got {profile.balloon_amount:,.2f} on {profile.finance_kind.value})."
        )
    if profile.balloon_amount > profile.principal:
        raise InvalidProfileError(
            f"Balloon {profile.balloon_amount:,.2f} exceeds principal {profile.principal:,.2f}."
        )
