"""Sell recommendation, confidence and warnings.

Turns a projection into an actionable status for the owner's current
month, an optimal window whose width follows how volatile the equity curve
is, an equity range around the optimal month, and independent warnings.

A recorded deposit turns raw equity into true profit (equity minus the
deposit paid); true profit then drives the status decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from .config import (
    DEFAULT_RECOMMENDATION_POLICY, MILEAGE_CLIFFS, VOLATILITY_WINDOWS, WARRANTY_EXPIRY_MONTH,
    ZERO, RecommendationPolicy, round_money,
)
from .projection import MonthlyProjection, optimal_projection
from .resolver import VehicleFinanceProfile
from .settlement import FinanceKind


class SellStatus(str, Enum):
    TOO_EARLY = "too_early"
    WAIT = "wait"
    APPROACHING_OPTIMAL = "approaching_optimal"
    GOOD_TO_SELL = "good_to_sell"
    OPTIMAL_NOW = "optimal_now"
    OPTIMAL_PASSED = "optimal_passed"


class Volatility(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WarningSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class WarningCategory(str, Enum):
    OPTIMAL_VS_PEAK = "optimal_vs_peak"
    HIGH_MILEAGE = "high_mileage"
    MILEAGE_CLIFF = "mileage_cliff"
    BALLOON_DUE = "balloon_due"
    WARRANTY_EXPIRING = "warranty_expiring"
    DEEP_UNDERWATER = "deep_underwater"
    END_OF_TERM = "end_of_term"


@dataclass(frozen=True)
class EdgeWarning:
    category: WarningCategory
    severity: WarningSeverity
    title: str
    summary: str


@dataclass(frozen=True)
class OptimalWindow:
    start_month: int
    peak_month: int
    end_month: int

    def contains(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month


@dataclass(frozen=True)
class EquityRange:
    low: Decimal
    expected: Decimal
    high: Decimal


@dataclass(frozen=True)
class SellRecommendation:
    status: SellStatus
    headline: str
    detail: str
    confidence: ConfidenceLevel
    volatility: Volatility
    window: OptimalWindow
    equity_range: EquityRange
    true_profit_range: EquityRange
    current_month: int
    current_equity: Decimal
    true_profit: Decimal
    deposit: Decimal
    optimal_month: int
    peak_month: int
    timing_explanation: Optional[str]
    warnings: tuple  # tuple[EdgeWarning, ...]

    @property
    def months_to_optimal(self) -> int:
        return self.optimal_month - self.current_month


_CONFIDENCE_BY_VOLATILITY = {
    Volatility.HIGH: ConfidenceLevel.LOW,
    Volatility.MEDIUM: ConfidenceLevel.MEDIUM,
    Volatility.LOW: ConfidenceLevel.HIGH,
}


def _fmt(value: Decimal) -> str:
    return f"{value:,.0f}"


def _plural(n: int, unit: str = "month") -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def classify_volatility(
    projections: Sequence[MonthlyProjection],
    policy: RecommendationPolicy = DEFAULT_RECOMMENDATION_POLICY,
) -> Volatility:
    """Volatility of the equity curve from its mean absolute monthly change."""
    if len(projections) < policy.volatility_min_months:
        return Volatility.LOW
    horizon = min(len(projections), policy.volatility_horizon_months)
    deltas = [
        abs(projections[i].trade_in_equity - projections[i - 1].trade_in_equity)
        for i in range(1, horizon)
    ]
    average = sum(deltas, ZERO) / len(deltas)
    if average > policy.high_volatility_delta:
        return Volatility.HIGH
    if average > policy.medium_volatility_delta:
        return Volatility.MEDIUM
    return Volatility.LOW


def peak_equity_projection(projections: Sequence[MonthlyProjection]) -> MonthlyProjection:
    """Earliest month of maximum trade-in equity."""
    return max(projections, key=lambda p: p.trade_in_equity)


def timing_explanation(
    optimal_month: int,
    peak_month: int,
    policy: RecommendationPolicy = DEFAULT_RECOMMENDATION_POLICY,
) -> Optional[str]:
    """Why the recommended month is not the month of highest equity, if they differ."""
    gap = peak_month - optimal_month
    if abs(gap) <= policy.peak_divergence_months:
        return None
    if gap > 0:
        return (
            f"Equity keeps rising for another {_plural(gap)} after month {optimal_month}, "
            f"but the gain per month of ownership has flattened by then while mileage, "
            f"warranty and market risk keep growing. Month {optimal_month} balances equity "
            f"against that risk."
        )
    return (
        f"Equity peaks at month {peak_month}, but that is early in the contract and leaves "
        f"little time-efficiency. Month {optimal_month} is the better risk-adjusted exit."
    )


def _decide_status(
    current_month: int,
    position: Decimal,
    window: OptimalWindow,
    policy: RecommendationPolicy,
) -> tuple[SellStatus, str, str]:
    months_to_optimal = window.peak_month - current_month

    if current_month < policy.min_months_before_sell:
        return (
            SellStatus.TOO_EARLY,
            "Too early to sell",
            f"Selling within the first {_plural(policy.min_months_before_sell)} locks in the "
            f"steepest part of the depreciation curve.",
        )
    if current_month > window.end_month:
        if position >= ZERO:
            return (
                SellStatus.OPTIMAL_PASSED,
                "Your optimal window has passed",
                f"The best time to sell was around month {window.peak_month}. You are still "
                f"{_fmt(position)} ahead, so selling soon keeps that gain.",
            )
        return (
            SellStatus.OPTIMAL_PASSED,
            "Optimal window passed while underwater",
            f"The best time to sell was around month {window.peak_month}. You are "
            f"{_fmt(-position)} behind; compare the cost of keeping the car with selling now.",
        )
    if position < policy.deep_underwater_equity:
        return (
            SellStatus.WAIT,
            "Hold for now: deeply underwater",
            f"You owe {_fmt(-position)} more than the car is worth. Each payment narrows the gap.",
        )
    if window.contains(current_month) and position >= ZERO:
        return (
            SellStatus.OPTIMAL_NOW,
            "Now is the optimal time to sell",
            f"You are inside the optimal window (months {window.start_month}-{window.end_month}) "
            f"with {_fmt(position)} of positive equity.",
        )
    if window.contains(current_month) and position >= policy.near_break_even_equity:
        return (
            SellStatus.GOOD_TO_SELL,
            "Good time to sell, near break-even",
            f"You are inside the optimal window and within {_fmt(-position)} of break-even.",
        )
    if position >= ZERO and 0 <= months_to_optimal <= policy.good_to_sell_lead_months:
        return (
            SellStatus.GOOD_TO_SELL,
            "Good time to sell",
            f"The optimal month is {_plural(months_to_optimal)} away and you already hold "
            f"{_fmt(position)} of equity.",
        )
    if 0 < months_to_optimal <= policy.approaching_lead_months:
        return (
            SellStatus.APPROACHING_OPTIMAL,
            "Approaching the optimal window",
            f"The optimal month is {_plural(months_to_optimal)} away. Start preparing to sell.",
        )
    return (
        SellStatus.WAIT,
        "Keep the car for now",
        f"The optimal month is month {window.peak_month}, {_plural(max(months_to_optimal, 0))} away.",
    )


def collect_warnings(
    profile: VehicleFinanceProfile,
    current_month: int,
    current_equity: Decimal,
    optimal_month: int,
    peak_month: int,
    policy: RecommendationPolicy = DEFAULT_RECOMMENDATION_POLICY,
) -> tuple[EdgeWarning, ...]:
    """Independent warnings; each check runs regardless of the others."""
    warnings: list[EdgeWarning] = []

    if abs(optimal_month - peak_month) > policy.peak_divergence_months:
        warnings.append(EdgeWarning(
            WarningCategory.OPTIMAL_VS_PEAK,
            WarningSeverity.INFO,
            "Optimal month differs from peak equity",
            f"Equity peaks at month {peak_month}, but month {optimal_month} is the better "
            f"risk-adjusted exit.",
        ))

    annual = profile.expected_annual_mileage
    if annual >= policy.extreme_annual_mileage:
        warnings.append(EdgeWarning(
            WarningCategory.HIGH_MILEAGE,
            WarningSeverity.WARNING,
            "Extreme mileage",
            f"Driving {_fmt(annual)} miles a year depresses value much faster than average.",
        ))
    elif annual >= policy.high_annual_mileage:
        warnings.append(EdgeWarning(
            WarningCategory.HIGH_MILEAGE,
            WarningSeverity.INFO,
            "High mileage",
            f"Driving {_fmt(annual)} miles a year is above average; value falls faster.",
        ))

    if optimal_month > current_month:
        projected = profile.current_mileage + profile.monthly_mileage * (optimal_month - current_month)
        for cliff in MILEAGE_CLIFFS:
            if profile.current_mileage < cliff.threshold <= projected:
                warnings.append(EdgeWarning(
                    WarningCategory.MILEAGE_CLIFF,
                    WarningSeverity.WARNING,
                    f"Mileage cliff at {cliff.threshold:,}",
                    f"You will pass {cliff.threshold:,} miles before month {optimal_month}, "
                    f"which knocks about {cliff.penalty:.0%} off the value. Consider selling before.",
                ))
                break

    if profile.finance_kind is FinanceKind.BALLOON and profile.balloon_amount > ZERO:
        months_until = profile.term_months - current_month
        if 0 <= months_until <= policy.balloon_critical_months:
            severity = WarningSeverity.CRITICAL
        elif 0 <= months_until <= policy.balloon_warning_months:
            severity = WarningSeverity.WARNING
        else:
            severity = None
        if severity is not None:
            warnings.append(EdgeWarning(
                WarningCategory.BALLOON_DUE,
                severity,
                "Balloon payment due soon",
                f"A balloon of {_fmt(profile.balloon_amount)} is due in {_plural(months_until)}. "
                f"Decide whether to pay it, refinance or sell before then.",
            ))

    if WARRANTY_EXPIRY_MONTH - policy.warranty_notice_months <= current_month < WARRANTY_EXPIRY_MONTH:
        warnings.append(EdgeWarning(
            WarningCategory.WARRANTY_EXPIRING,
            WarningSeverity.INFO,
            "Warranty expiring",
            f"The factory warranty ends in {_plural(WARRANTY_EXPIRY_MONTH - current_month)}; "
            f"buyers pay less for cars without it.",
        ))

    if current_equity < policy.deep_underwater_equity:
        warnings.append(EdgeWarning(
            WarningCategory.DEEP_UNDERWATER,
            WarningSeverity.WARNING,
            "Deeply underwater",
            f"You owe {_fmt(-current_equity)} more than the trade-in value.",
        ))

    if profile.is_financed and current_month >= profile.term_months - policy.end_of_term_notice_months:
        warnings.append(EdgeWarning(
            WarningCategory.END_OF_TERM,
            WarningSeverity.INFO,
            "Contract ending",
            "Your finance agreement ends within three months; review your end-of-contract options.",
        ))

    return tuple(warnings)


def recommend(
    profile: VehicleFinanceProfile,
    projections: Sequence[MonthlyProjection],
    policy: RecommendationPolicy = DEFAULT_RECOMMENDATION_POLICY,
) -> SellRecommendation:
    """Build the recommendation for the profile's current month.

    Raises ValueError if *projections* is empty.
    """
    if not projections:
        raise ValueError("projections must not be empty")

    last_month = projections[-1].month
    current_month = min(max(profile.months_elapsed, 0), last_month)
    current = next((p for p in projections if p.month == current_month), projections[-1])
    peak = peak_equity_projection(projections)
    optimal = optimal_projection(projections) or peak

    volatility = classify_volatility(projections, policy)
    radius, variance_ratio = VOLATILITY_WINDOWS[volatility.value]
    window = OptimalWindow(
        start_month=max(0, optimal.month - radius),
        peak_month=optimal.month,
        end_month=min(last_month, optimal.month + radius),
    )

    expected = optimal.trade_in_equity
    variance = abs(expected) * variance_ratio
    equity_range = EquityRange(
        low=round_money(expected - variance),
        expected=expected,
        high=round_money(expected + variance),
    )
    deposit = profile.deposit
    true_profit_range = EquityRange(
        low=equity_range.low - deposit,
        expected=equity_range.expected - deposit,
        high=equity_range.high - deposit,
    )

    current_equity = current.trade_in_equity
    true_profit = current_equity - deposit
    position = true_profit if deposit > ZERO else current_equity

    status, headline, detail = _decide_status(current_month, position, window, policy)

    return SellRecommendation(
        status=status,
        headline=headline,
        detail=detail,
        confidence=_CONFIDENCE_BY_VOLATILITY[volatility],
        volatility=volatility,
        window=window,
        equity_range=equity_range,
        true_profit_range=true_profit_range,
        current_month=current_month,
        current_equity=current_equity,
        true_profit=true_profit,
        deposit=deposit,
        optimal_month=optimal.month,
        peak_month=peak.month,
        timing_explanation=timing_explanation(optimal.month, peak.month, policy),
        warnings=collect_warnings(profile, current_month, current_equity, optimal.month, peak.month, policy),
    )
