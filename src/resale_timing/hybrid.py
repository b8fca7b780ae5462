"""Market-anchored projection.

A usable valuation snapshot pins the current month to the market's
trade-in and private-party values. Other months are extrapolated from that
anchor at the category's flat monthly market rate: backwards by compounding
growth, forwards by compounding decay with a mileage factor and a floor.
Scoring and assembly are the same as for the formula projection.

Without a usable snapshot the formula projection is returned unchanged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from .config import (
    DEFAULT_SCORING_POLICY, DEFAULT_SETTLEMENT_POLICY, FORWARD_MILEAGE_FACTOR,
    HYBRID_FLOOR_RATIO, ONE, PRIVATE_FROM_MARKET_RATIO, SNAPSHOT_FRESH_DAYS, SNAPSHOT_STALE_DAYS,
    TRADE_IN_FROM_MARKET_RATIO, ZERO, ScoringPolicy, SettlementPolicy, round_money,
)
from .profiles import VehicleCategory, get_category_profile
from .projection import (
    CurvePoint, MonthlyProjection, ValueSource, generate_projections, project_curve,
    settlement_at, start_mileage,
)
from .resolver import VehicleFinanceProfile

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = Decimal("30")


class ValuationConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    ESTIMATE = "estimate"


@dataclass(frozen=True)
class MarketValuationSnapshot:
    """A point-in-time market valuation supplied by the caller."""
    value: Decimal
    confidence: ValuationConfidence = ValuationConfidence.HIGH
    captured_at: Optional[Union[date, datetime]] = None
    trade_in_value: Optional[Decimal] = None
    private_value: Optional[Decimal] = None

    @property
    def is_usable(self) -> bool:
        return self.value > ZERO

    @property
    def anchor_trade_in(self) -> Decimal:
        if self.trade_in_value is not None:
            return self.trade_in_value
        return round_money(self.value * TRADE_IN_FROM_MARKET_RATIO)

    @property
    def anchor_private(self) -> Decimal:
        if self.private_value is not None:
            return self.private_value
        return round_money(self.value * PRIVATE_FROM_MARKET_RATIO)


def _as_day(moment: Union[date, datetime]) -> date:
    return moment.date() if isinstance(moment, datetime) else moment


def age_snapshot(
    snapshot: MarketValuationSnapshot,
    category: Union[str, VehicleCategory],
    reference_time: Union[date, datetime],
) -> Optional[MarketValuationSnapshot]:
    """Apply the freshness policy to *snapshot* as seen at *reference_time*.

    - under 7 days old: unchanged
    - 7 to 30 days: depreciated for the elapsed part of a month, confidence
      lowered from high to medium
    - older: None, the caller should fall back to the formula projection

    A snapshot without a capture time is taken as fresh. Ages are counted in
    calendar days, so dates and datetimes can be mixed.
    """
    if snapshot.captured_at is None:
        return snapshot
    age_days = (_as_day(reference_time) - _as_day(snapshot.captured_at)).days
    if age_days < SNAPSHOT_FRESH_DAYS:
        return snapshot
    if age_days > SNAPSHOT_STALE_DAYS:
        logger.debug("Snapshot is %s days old, discarding", age_days)
        return None

    rate = get_category_profile(category).market_monthly_rate
    decay = (ONE - rate) ** (Decimal(age_days) / DAYS_PER_MONTH)

    def _aged(amount: Optional[Decimal]) -> Optional[Decimal]:
        return None if amount is None else round_money(amount * decay)

    confidence = snapshot.confidence
    if confidence is ValuationConfidence.HIGH:
        confidence = ValuationConfidence.MEDIUM
    return replace(
        snapshot,
        value=round_money(snapshot.value * decay),
        trade_in_value=_aged(snapshot.trade_in_value),
        private_value=_aged(snapshot.private_value),
        confidence=confidence,
    )


def blend_curve(
    profile: VehicleFinanceProfile,
    snapshot: MarketValuationSnapshot,
    settlement_policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> tuple[CurvePoint, ...]:
    """Value pass anchored on *snapshot* at the profile's current month."""
    rate = get_category_profile(profile.category).market_monthly_rate
    anchor_month = profile.months_elapsed
    anchor_trade = snapshot.anchor_trade_in
    anchor_private = snapshot.anchor_private
    trade_floor = anchor_trade * HYBRID_FLOOR_RATIO
    private_floor = anchor_private * HYBRID_FLOOR_RATIO

    start = start_mileage(profile)
    anchor_mileage = start + profile.monthly_mileage * anchor_month

    points = []
    for month in range(profile.last_month + 1):
        mileage = start + profile.monthly_mileage * month
        if month == anchor_month:
            trade, private, source = anchor_trade, anchor_private, ValueSource.MARKET
        elif month < anchor_month:
            growth = (ONE + rate) ** (anchor_month - month)
            trade = round_money(anchor_trade * growth)
            private = round_money(anchor_private * growth)
            source = ValueSource.PROJECTED
        else:
            decay = (ONE - rate) ** (month - anchor_month)
            wear = max(ONE - (mileage - anchor_mileage) * FORWARD_MILEAGE_FACTOR, ZERO)
            trade = round_money(max(anchor_trade * decay * wear, trade_floor))
            private = round_money(max(anchor_private * decay * wear, private_floor))
            source = ValueSource.PROJECTED
        points.append(CurvePoint(
            month=month,
            mileage=mileage,
            trade_in_value=trade,
            private_value=private,
            settlement=settlement_at(profile, month, settlement_policy),
            source=source,
        ))
    return tuple(points)


def generate_hybrid_projections(
    profile: VehicleFinanceProfile,
    snapshot: Optional[MarketValuationSnapshot] = None,
    *,
    reference_date: Optional[date] = None,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
    settlement_policy: SettlementPolicy = DEFAULT_SETTLEMENT_POLICY,
) -> tuple[MonthlyProjection, ...]:
    """Projection anchored on *snapshot*, or the formula projection without one."""
    if snapshot is None or not snapshot.is_usable:
        logger.debug("No usable market snapshot, using formula projection")
        return generate_projections(
            profile,
            reference_date=reference_date,
            scoring_policy=scoring_policy,
            settlement_policy=settlement_policy,
        )
    curve = blend_curve(profile, snapshot, settlement_policy)
    return project_curve(curve, profile, reference_date=reference_date, scoring_policy=scoring_policy)
