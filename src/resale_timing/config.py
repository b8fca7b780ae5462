"""Application-wide constants, calibratable policies and numeric helpers.

All tuneable defaults live here so there is a single place to adjust them.
Scoring, settlement, recommendation and gate constants are grouped into
frozen policy dataclasses so the calibration harness can sweep them.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Union

# ── Type aliases ──────────────────────────────────────────────────────────────

Number = Union[Decimal, int, float, str]
SuiteMode = Literal["pr", "nightly", "full"]

# ── Numeric convenience ───────────────────────────────────────────────────────

ZERO = Decimal("0")
ONE = Decimal("1")
CENT = Decimal("0.01")
TWELVE = Decimal("12")
HUNDRED = Decimal("100")


def as_decimal(value: Number) -> Decimal:
    """Convert *value* to Decimal, going through str for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Valuation model ───────────────────────────────────────────────────────────

DEFAULT_EXPECTED_ANNUAL_MILEAGE: int = 10_000
MAX_DEPRECIATION_YEAR: int = 6

WARRANTY_EXPIRY_MONTH: int = 36
WARRANTY_EXPIRY_PENALTY = Decimal("0.05")

MILEAGE_DEVIATION_STEP = Decimal("5000")    # miles per adjustment step
MILEAGE_DEVIATION_RATE = Decimal("0.02")    # value change per step
MILEAGE_ADJUSTMENT_MIN = Decimal("0.7")
MILEAGE_ADJUSTMENT_MAX = Decimal("1.3")

VALUE_FLOOR_RATIO = Decimal("0.15")         # of purchase price
PRIVATE_SALE_PREMIUM = Decimal("1.12")      # private-party over trade-in


@dataclass(frozen=True)
class MileageCliff:
    threshold: int
    penalty: Decimal


MILEAGE_CLIFFS: tuple[MileageCliff, ...] = (
    MileageCliff(30_000, Decimal("0.03")),
    MileageCliff(60_000, Decimal("0.06")),
    MileageCliff(100_000, Decimal("0.10")),
)

# ── Hybrid blending ───────────────────────────────────────────────────────────

TRADE_IN_FROM_MARKET_RATIO = Decimal("0.88")
PRIVATE_FROM_MARKET_RATIO = Decimal("1.05")
FORWARD_MILEAGE_FACTOR = Decimal("0.00003")  # value lost per mile driven
HYBRID_FLOOR_RATIO = Decimal("0.15")         # of the anchor value

SNAPSHOT_FRESH_DAYS: int = 7
SNAPSHOT_STALE_DAYS: int = 30

# ── Projection ────────────────────────────────────────────────────────────────

PROJECTION_TAIL_MONTHS: int = 6              # months shown past the contract end
DEFAULT_CASH_HORIZON_MONTHS: int = 60        # projection horizon for cash purchases
STATUS_BAND = Decimal("200")                 # ± equity band reported as break-even


@dataclass(frozen=True)
class SettlementPolicy:
    """Early-settlement economics: interest rebate and settlement fee."""
    rebate_rate: Decimal = Decimal("0.90")           # share of unearned interest rebated
    fee_months_interest: Decimal = Decimal("1.5")    # months of interest charged as fee


@dataclass(frozen=True)
class ScoringPolicy:
    """Optimal-month scorer weights and windows."""
    min_candidate_month: int = 12
    tail_exclusion_months: int = 6
    peak_search_tail_months: int = 3
    smoothing_window: int = 3
    efficiency_weight: Decimal = Decimal("50")
    sweet_spot_start: Decimal = Decimal("0.60")
    sweet_spot_end: Decimal = Decimal("0.85")
    sweet_spot_multiplier: Decimal = Decimal("1.3")
    diminishing_returns_ratio: Decimal = Decimal("0.5")
    diminishing_returns_window: int = 6
    diminishing_returns_multiplier: Decimal = Decimal("1.2")
    pre_warranty_first_month: int = 33
    pre_warranty_last_month: int = 35
    pre_warranty_bonus: Decimal = Decimal("0.15")
    cliff_lookahead_months: int = 6
    cliff_bonus_factor: Decimal = Decimal("2")
    end_of_term_max_penalty: Decimal = Decimal("0.5")
    early_term_cutoff: Decimal = Decimal("0.30")
    early_term_multiplier: Decimal = Decimal("0.7")
    fallback_first_month: int = 18
    fallback_last_month: int = 48
    fallback_min_equity: Decimal = Decimal("2000")


DEFAULT_SETTLEMENT_POLICY = SettlementPolicy()
DEFAULT_SCORING_POLICY = ScoringPolicy()

# ── Recommendation ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RecommendationPolicy:
    min_months_before_sell: int = 6
    deep_underwater_equity: Decimal = Decimal("-5000")
    near_break_even_equity: Decimal = Decimal("-2000")
    good_to_sell_lead_months: int = 3
    approaching_lead_months: int = 6
    peak_divergence_months: int = 2
    volatility_horizon_months: int = 24
    volatility_min_months: int = 12
    high_volatility_delta: Decimal = Decimal("500")
    medium_volatility_delta: Decimal = Decimal("250")
    high_annual_mileage: int = 15_000
    extreme_annual_mileage: int = 25_000
    balloon_critical_months: int = 6
    balloon_warning_months: int = 12
    warranty_notice_months: int = 3
    end_of_term_notice_months: int = 3


DEFAULT_RECOMMENDATION_POLICY = RecommendationPolicy()

# volatility class -> (window radius in months, equity variance ratio)
VOLATILITY_WINDOWS: dict[str, tuple[int, Decimal]] = {
    "high": (4, Decimal("0.15")),
    "medium": (3, Decimal("0.10")),
    "low": (2, Decimal("0.05")),
}

# ── Calibration harness ───────────────────────────────────────────────────────

ARTIFACT_VERSION = "1.0.0"

GOLDEN_SEED: int = 42
BALLOON_SEED: int = 123
EV_SEED: int = 456
EDGE_SEED: int = 789
MONTE_CARLO_SEED: int = 10_000

MONTE_CARLO_RUNS: dict[str, int] = {"pr": 0, "nightly": 1_000, "full": 10_000}
VALID_MODES: frozenset[str] = frozenset(MONTE_CARLO_RUNS)

GROUND_TRUTH_NOISE = 0.04                    # ± relative noise on simulated values
GROUND_TRUTH_TAIL_MONTHS: int = 3            # best month searched up to term - 3
BALLOON_STRATEGY_MARGIN = 1.10               # pre-balloon equity must beat this multiple


@dataclass(frozen=True)
class GatePolicy:
    golden_within_1: float = 0.88
    golden_within_2: float = 0.95
    golden_false_positives: int = 0
    balloon_accuracy: float = 0.90
    monte_carlo_within_3: float = 0.88
    monte_carlo_false_positive_rate: float = 0.01
    monte_carlo_loss_ratio: float = 0.05
    edge_max_failures: int = 2
    regression_mae: float = 0.6
    regression_max_delta: int = 6
    regression_median_equity_delta: float = 0.04
    max_seconds_per_vehicle: float = 0.5
    max_memory_growth_mb: float = 50.0
    determinism_reruns: int = 10


DEFAULT_GATE_POLICY = GatePolicy()
