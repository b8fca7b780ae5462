"""Static per-category depreciation profiles.

All rate fields are stored as Decimal strings to avoid float imprecision.
A profile drives both the formula valuation (drive-off loss and the
decelerating yearly curve) and the market-anchored blending (a flat
monthly depreciation rate).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from .config import MAX_DEPRECIATION_YEAR

logger = logging.getLogger(__name__)


class VehicleCategory(str, Enum):
    ECONOMY = "economy"
    PREMIUM = "premium"
    EV = "ev"
    EXOTIC = "exotic"


@dataclass(frozen=True)
class CategoryProfile:
    category: VehicleCategory
    drive_off_rate: Decimal
    # Yearly depreciation for ownership years 1..6; year 6 applies thereafter
    yearly_rates: tuple[Decimal, ...]
    market_monthly_rate: Decimal

    def yearly_rate(self, year: int) -> Decimal:
        """Depreciation rate for ownership *year* (1-based, capped at year 6)."""
        index = min(max(year, 1), MAX_DEPRECIATION_YEAR) - 1
        return self.yearly_rates[index]


def _rates(*values: str) -> tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


_PROFILES: dict[VehicleCategory, CategoryProfile] = {
    VehicleCategory.ECONOMY: CategoryProfile(
        category=VehicleCategory.ECONOMY,
        drive_off_rate=Decimal("0.09"),
        yearly_rates=_rates("0.05", "0.06", "0.05", "0.04", "0.04", "0.03"),
        market_monthly_rate=Decimal("0.004"),
    ),
    VehicleCategory.PREMIUM: CategoryProfile(
        category=VehicleCategory.PREMIUM,
        drive_off_rate=Decimal("0.12"),
        yearly_rates=_rates("0.08", "0.08", "0.07", "0.06", "0.05", "0.04"),
        market_monthly_rate=Decimal("0.006"),
    ),
    VehicleCategory.EV: CategoryProfile(
        category=VehicleCategory.EV,
        drive_off_rate=Decimal("0.10"),
        yearly_rates=_rates("0.06", "0.06", "0.05", "0.04", "0.03", "0.03"),
        market_monthly_rate=Decimal("0.005"),
    ),
    VehicleCategory.EXOTIC: CategoryProfile(
        category=VehicleCategory.EXOTIC,
        drive_off_rate=Decimal("0.05"),
        yearly_rates=_rates("0.04", "0.04", "0.03", "0.03", "0.02", "0.02"),
        market_monthly_rate=Decimal("0.003"),
    ),
}

DEFAULT_CATEGORY = VehicleCategory.ECONOMY
SUPPORTED_CATEGORIES = frozenset(c.value for c in _PROFILES)


def parse_category(value: Union[str, VehicleCategory]) -> VehicleCategory:
    """Return the VehicleCategory for *value* (case-insensitive).

    Raises ValueError for unknown categories.
    """
    if isinstance(value, VehicleCategory):
        return value
    code = str(value).strip().lower()
    if code not in SUPPORTED_CATEGORIES:
        raise ValueError(
            f"Unknown vehicle category '{value}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_CATEGORIES))}"
        )
    return VehicleCategory(code)


def get_category_profile(category: Union[str, VehicleCategory]) -> CategoryProfile:
    """Return the profile for *category*, falling back to economy when unknown.

    The valuation core never rejects input, so an unrecognised category is
    logged and valued with the economy curve.
    """
    try:
        return _PROFILES[parse_category(category)]
    except ValueError:
        logger.warning("Unknown category %r, using %s profile", category, DEFAULT_CATEGORY.value)
        return _PROFILES[DEFAULT_CATEGORY]
