"""Monthly equity projection.

Three pure passes over immutable tuples:

1. value pass    -> CurvePoint per month (odometer, values, settlement)
2. scoring pass  -> OptimalMonth (see optimizer.py)
3. assembly pass -> MonthlyProjection per month with every flag set

The projection spans month 0 to term + 6 and flags exactly one optimal
month. Calendar labels are derived from an explicit reference date, the
calendar month in which the vehicle is *months_elapsed* months old.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from dateutil.relativedelta import relativedelta

from .config import (
    DEFAULT_SCORING_POLICY, DEFAULT_SETTLEMENT_POLICY, STATUS_BAND, ZERO, ScoringPolicy,
    SettlementPolicy,
)
from .optimizer import OptimalMonth, score_curve
from .resolver import VehicleFinanceProfile
from .settlement import FinanceKind, compute_settlement
from .valuation import vehicle_value

MILE = Decimal("1")


class ValueSource(str, Enum):
    MARKET = "market"
    PROJECTED = "projected"
    FORMULA = "formula"


class FinancialStatus(str, Enum):
    WINNING = "winning"
    LOSING = "losing"
    BREAKEVEN = "breakeven"


@dataclass(frozen=True)
class CurvePoint:
    month: int
    mileage: Decimal
    trade_in_value: Decimal
    private_value: Decimal
    settlement: Decimal
    source: ValueSource

    @property
    def trade_in_equity(self) -> Decimal:
        return self.trade_in_value - self.settlement

    @property
    def private_equity(self) -> Decimal:
        return self.private_value - self.settlement


@dataclass(frozen=True)
class MonthlyProjection:
    month: int
    label: Optional[date]
    mileage: Decimal
    trade_in_value: Decimal
    private_value: Decimal
    settlement: Decimal
    trade_in_equity: Decimal
    private_equity: Decimal
    status: FinancialStatus
    is_optimal_month: bool
    is_break_even_month: bool
    is_balloon_month: bool
    is_contract_end: bool
    value_source: ValueSource


def financial_status(equity: Decimal) -> FinancialStatus:
    if equity > STATUS_BAND:
        return FinancialStatus.WINNING
    if equity < -STATUS_BAND:
        return FinancialStatus.LOSING
    return FinancialStatus.BREAKEVEN


def start_mileage(profile: VehicleFinanceProfile) -> Decimal:
    """Odometer at purchase, back-derived from the current reading."""
    return max(profile.current_mileage - profile.monthly_mileage * profile.months_elapsed, ZERO)


def settlement_at(
    profile: VehicleFinanceProfile,
    month: int,
    policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> Decimal:
    return compute_settlement(
        profile.principal,
        profile.monthly_payment,
        profile.annual_rate_pct,
        profile.term_months,
        month,
        profile.finance_kind,
        profile.balloon_amount,
        policy,
    ).total_settlement


def build_value_curve(
    profile: VehicleFinanceProfile,
    settlement_policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> tuple[CurvePoint, ...]:
    """Value pass: formula valuation and settlement for every projected month."""
    start = start_mileage(profile)
    points = []
    for month in range(profile.last_month + 1):
        mileage = start + profile.monthly_mileage * month
        value = vehicle_value(
            profile.purchase_price,
            profile.category,
            month,
            mileage,
            profile.expected_annual_mileage,
        )
        points.append(CurvePoint(
            month=month,
            mileage=mileage,
            trade_in_value=value.trade_in,
            private_value=value.private,
            settlement=settlement_at(profile, month, settlement_policy),
            source=ValueSource.FORMULA,
        ))
    return tuple(points)


def month_label(reference_date: Optional[date], month: int, months_elapsed: int) -> Optional[date]:
    """First day of the calendar month in which the vehicle is *month* months old."""
    if reference_date is None:
        return None
    return reference_date.replace(day=1) + relativedelta(months=month - months_elapsed)


def assemble_projections(
    curve: Sequence[CurvePoint],
    profile: VehicleFinanceProfile,
    optimal: OptimalMonth,
    reference_date: Optional[date] = None,
) -> tuple[MonthlyProjection, ...]:
    """Assembly pass: attach flags, status and calendar labels."""
    break_even_month = next((p.month for p in curve if p.trade_in_equity >= ZERO), None)
    is_balloon = profile.finance_kind is FinanceKind.BALLOON

    return tuple(
        MonthlyProjection(
            month=p.month,
            label=month_label(reference_date, p.month, profile.months_elapsed),
            mileage=p.mileage.quantize(MILE),
            trade_in_value=p.trade_in_value,
            private_value=p.private_value,
            settlement=p.settlement,
            trade_in_equity=p.trade_in_equity,
            private_equity=p.private_equity,
            status=financial_status(p.trade_in_equity),
            is_optimal_month=p.month == optimal.month,
            is_break_even_month=p.month == break_even_month,
            is_balloon_month=is_balloon and p.month == profile.term_months,
            is_contract_end=p.month == profile.term_months,
            value_source=p.source,
        )
        for p in curve
    )


def project_curve(
    curve: Sequence[CurvePoint],
    profile: VehicleFinanceProfile,
    *,
    reference_date: Optional[date] = None,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> tuple[MonthlyProjection, ...]:
    """Scoring and assembly passes over an already valued curve."""
    optimal = score_curve(curve, profile.term_months, scoring_policy)
    return assemble_projections(curve, profile, optimal, reference_date)


def generate_projections(
    profile: VehicleFinanceProfile,
    *,
    reference_date: Optional[date] = None,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
    settlement_policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> tuple[MonthlyProjection, ...]:
    """Formula-only projection from month 0 to term + 6."""
    curve = build_value_curve(profile, settlement_policy)
    return project_curve(curve, profile, reference_date=reference_date, scoring_policy=scoring_policy)


def optimal_projection(projections: Sequence[MonthlyProjection]) -> Optional[MonthlyProjection]:
    return next((p for p in projections if p.is_optimal_month), None)
