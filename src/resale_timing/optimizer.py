"""Optimal-sell-month scorer (scoring pass).

Scans an equity curve and picks the month that best balances:

- absolute equity (what the owner walks away with)
- time efficiency (equity per month owned)
- the sweet spot at 60–85 % of the term
- the months just after equity growth starts to flatten
- selling before the warranty lapses or a mileage cliff is crossed

and penalises the very end of the term and the early months. The optimal
month is deliberately not the month of peak equity.

Search space: months 12 to term - 6, non-negative equity only.

equity_peak() is the unadjusted counterpart: the month of highest smoothed
equity, used to check timing against simulated market histories.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Sequence

from .config import DEFAULT_SCORING_POLICY, MILEAGE_CLIFFS, ONE, ZERO, ScoringPolicy

if TYPE_CHECKING:
    from .projection import CurvePoint

logger = logging.getLogger(__name__)

SCORED = "scored"
THRESHOLD = "threshold"
PEAK = "peak"


@dataclass(frozen=True)
class OptimalMonth:
    month: int
    method: str                      # scored | threshold | peak
    peak_growth_month: int
    diminishing_returns_month: int
    sweet_spot: tuple[int, int]
    scores: tuple                    # tuple[tuple[int, Decimal], ...] per scored candidate


def equity_deltas(equities: Sequence[Decimal]) -> list[Decimal]:
    """Month-over-month change; the first month has no predecessor and reports 0."""
    return [ZERO] + [equities[i] - equities[i - 1] for i in range(1, len(equities))]


def trailing_average(values: Sequence[Decimal], window: int) -> list[Decimal]:
    """Trailing moving average; months before a full window keep their raw value."""
    smoothed: list[Decimal] = []
    for i, value in enumerate(values):
        if i + 1 < window:
            smoothed.append(value)
        else:
            smoothed.append(sum(values[i - window + 1:i + 1], ZERO) / window)
    return smoothed


def growth_milestones(
    smoothed: Sequence[Decimal], term_months: int, policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> tuple[int, int]:
    """Return (peak growth month, diminishing-returns month).

    The diminishing-returns month is the first month from the peak onwards
    whose smoothed growth falls under a fixed share of the peak growth.
    """
    lo = policy.min_candidate_month
    hi = min(term_months - policy.peak_search_tail_months, len(smoothed))
    peak_month = lo
    peak: Optional[Decimal] = None
    for i in range(lo, hi):
        if peak is None or smoothed[i] > peak:
            peak, peak_month = smoothed[i], i
    if peak is None:
        return lo, lo

    for i in range(peak_month, hi):
        if smoothed[i] < peak * policy.diminishing_returns_ratio:
            return peak_month, i
    return peak_month, peak_month


def sweet_spot(term_months: int, policy: ScoringPolicy = DEFAULT_SCORING_POLICY) -> tuple[int, int]:
    return (
        int(term_months * policy.sweet_spot_start),
        int(term_months * policy.sweet_spot_end),
    )


def score_month(
    point: CurvePoint,
    mileage_ahead: Decimal,
    term_months: int,
    diminishing_returns_month: int,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> Decimal:
    """Risk-adjusted desirability of selling at *point*."""
    equity = point.trade_in_equity
    month = point.month
    spot_start, spot_end = sweet_spot(term_months, policy)

    score = equity + policy.efficiency_weight * equity / month

    if spot_start <= month <= spot_end:
        score *= policy.sweet_spot_multiplier
    if diminishing_returns_month <= month <= diminishing_returns_month + policy.diminishing_returns_window:
        score *= policy.diminishing_returns_multiplier
    if policy.pre_warranty_first_month <= month <= policy.pre_warranty_last_month:
        score += equity * policy.pre_warranty_bonus
    for cliff in MILEAGE_CLIFFS:
        if point.mileage < cliff.threshold <= mileage_ahead:
            score += equity * cliff.penalty * policy.cliff_bonus_factor

    # End-of-term fade reaches its full penalty at the final month
    if month > spot_end and term_months > spot_end:
        fade = Decimal(month - spot_end) / Decimal(term_months - spot_end)
        score *= ONE - fade * policy.end_of_term_max_penalty
    if month < term_months * policy.early_term_cutoff:
        score *= policy.early_term_multiplier
    return score


def score_curve(
    curve: Sequence[CurvePoint],
    term_months: int,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> OptimalMonth:
    """Pick the optimal sell month from a curve indexed contiguously from month 0.

    Falls back to the first month in [18, 48] clearing the equity threshold,
    then to the earliest month of peak equity, so a month is always chosen.
    """
    if not curve:
        raise ValueError("curve must contain at least one month")

    equities = [p.trade_in_equity for p in curve]
    smoothed = trailing_average(equity_deltas(equities), policy.smoothing_window)
    peak_growth, diminishing = growth_milestones(smoothed, term_months, policy)
    spot = sweet_spot(term_months, policy)
    last = len(curve) - 1

    scores: list[tuple[int, Decimal]] = []
    best_month: Optional[int] = None
    best_score: Optional[Decimal] = None
    first = max(policy.min_candidate_month, 1)
    for month in range(first, min(term_months - policy.tail_exclusion_months, last) + 1):
        point = curve[month]
        if point.trade_in_equity < ZERO:
            continue
        ahead = curve[min(month + policy.cliff_lookahead_months, last)].mileage
        score = score_month(point, ahead, term_months, diminishing, policy)
        scores.append((month, score))
        # Strict comparison: ties go to the earlier month
        if best_score is None or score > best_score:
            best_score, best_month = score, month

    if best_month is not None:
        return OptimalMonth(best_month, SCORED, peak_growth, diminishing, spot, tuple(scores))

    for point in curve:
        if (
            policy.fallback_first_month <= point.month <= policy.fallback_last_month
            and point.trade_in_equity > policy.fallback_min_equity
        ):
            logger.debug("No scorable month, using equity threshold fallback at %s", point.month)
            return OptimalMonth(point.month, THRESHOLD, peak_growth, diminishing, spot, ())

    peak_point = max(curve, key=lambda p: p.trade_in_equity)
    logger.debug("No month clears the equity threshold, using peak equity month %s", peak_point.month)
    return OptimalMonth(peak_point.month, PEAK, peak_growth, diminishing, spot, ())


@dataclass(frozen=True)
class EquityPeak:
    month: int
    equity: Decimal                  # smoothed equity at that month


def centred_average(values: Sequence[Decimal], window: int) -> list[Decimal]:
    """Centred moving average; the ends average over the neighbours they have."""
    half = window // 2
    smoothed: list[Decimal] = []
    for i in range(len(values)):
        span = values[max(i - half, 0):i + half + 1]
        smoothed.append(sum(span, ZERO) / len(span))
    return smoothed


def equity_peak(
    equities: Sequence[Decimal],
    term_months: int,
    policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> EquityPeak:
    """Month of highest smoothed equity in [12, term - 3], earliest on ties.

    Unlike the scorer this carries no risk adjustment: it is the month an
    owner would have netted the most, which is what calibration measures.
    """
    if not equities:
        raise ValueError("equities must contain at least one month")
    smoothed = centred_average(equities, policy.smoothing_window)
    lo = policy.min_candidate_month
    hi = min(term_months - policy.peak_search_tail_months, len(smoothed) - 1)
    if hi < lo:
        lo, hi = 0, len(smoothed) - 1
    best = lo
    for month in range(lo + 1, hi + 1):
        if smoothed[month] > smoothed[best]:
            best = month
    return EquityPeak(best, smoothed[best])
