"""Formula valuation model.

Trade-in value after a given ownership period:

1. drive-off loss (category specific, applied once at purchase)
2. monthly compounding of the decelerating yearly depreciation curve
3. one-time warranty-expiry penalty from month 36
4. one-time penalty for each mileage cliff crossed
5. linear correction for mileage above or below expectation
6. floor at a fixed share of the purchase price

Private-party value is the trade-in value times a fixed premium.
Inputs are clamped, never rejected.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from .config import (
    DEFAULT_EXPECTED_ANNUAL_MILEAGE, MAX_DEPRECIATION_YEAR, MILEAGE_ADJUSTMENT_MAX,
    MILEAGE_ADJUSTMENT_MIN, MILEAGE_CLIFFS, MILEAGE_DEVIATION_RATE, MILEAGE_DEVIATION_STEP,
    ONE, PRIVATE_SALE_PREMIUM, TWELVE, VALUE_FLOOR_RATIO, WARRANTY_EXPIRY_MONTH,
    WARRANTY_EXPIRY_PENALTY, ZERO, Number, as_decimal, round_money,
)
from .profiles import CategoryProfile, VehicleCategory, get_category_profile


@dataclass(frozen=True)
class VehicleValue:
    trade_in: Decimal
    private: Decimal


def expected_mileage(expected_annual_mileage: Number, months_owned: int) -> Decimal:
    """Odometer reading expected after *months_owned* at the annual rate."""
    return as_decimal(expected_annual_mileage) / TWELVE * months_owned


def depreciation_factor(profile: CategoryProfile, months_owned: int) -> Decimal:
    """Compounded monthly depreciation multiplier over *months_owned*.

    Each month in ownership year y loses yearly_rate(y) / 12. Months within
    the same year share a rate, so each year is one power.
    """
    factor = ONE
    remaining = max(months_owned, 0)
    year = 1
    while remaining > 0:
        span = remaining if year >= MAX_DEPRECIATION_YEAR else min(12, remaining)
        factor *= (ONE - profile.yearly_rate(year) / TWELVE) ** span
        remaining -= span
        year += 1
    return factor


def mileage_adjustment(mileage: Decimal, expected: Decimal) -> Decimal:
    deviation = (mileage - expected) / MILEAGE_DEVIATION_STEP
    adjustment = ONE - deviation * MILEAGE_DEVIATION_RATE
    return min(max(adjustment, MILEAGE_ADJUSTMENT_MIN), MILEAGE_ADJUSTMENT_MAX)


def trade_in_value(
    price: Number,
    category: Union[str, VehicleCategory],
    months_owned: int,
    mileage: Number,
    expected_annual_mileage: Number = DEFAULT_EXPECTED_ANNUAL_MILEAGE,
) -> Decimal:
    """Return the projected trade-in value, rounded to cents."""
    price = max(as_decimal(price), ZERO)
    months_owned = max(int(months_owned), 0)
    mileage = max(as_decimal(mileage), ZERO)
    annual = max(as_decimal(expected_annual_mileage), ZERO)
    profile = get_category_profile(category)

    value = price * (ONE - profile.drive_off_rate)
    value *= depreciation_factor(profile, months_owned)

    if months_owned >= WARRANTY_EXPIRY_MONTH:
        value *= ONE - WARRANTY_EXPIRY_PENALTY

    for cliff in MILEAGE_CLIFFS:
        if mileage >= cliff.threshold:
            value *= ONE - cliff.penalty

    value *= mileage_adjustment(mileage, expected_mileage(annual, months_owned))

    return round_money(max(value, price * VALUE_FLOOR_RATIO))


def private_value(trade_in: Number) -> Decimal:
    """Private-party value for a given trade-in value."""
    return round_money(max(as_decimal(trade_in), ZERO) * PRIVATE_SALE_PREMIUM)


def vehicle_value(
    price: Number,
    category: Union[str, VehicleCategory],
    months_owned: int,
    mileage: Number,
    expected_annual_mileage: Number = DEFAULT_EXPECTED_ANNUAL_MILEAGE,
) -> VehicleValue:
    trade_in = trade_in_value(price, category, months_owned, mileage, expected_annual_mileage)
    return VehicleValue(trade_in=trade_in, private=private_value(trade_in))
