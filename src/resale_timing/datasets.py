"""Synthetic calibration populations and independent ground truth.

Every synthetic vehicle carries a directly simulated market-value history
(month 0 to term + 12, with ±4 % noise) and a ground truth derived from it
without touching the projection engine: a centred 3-month smoothing of
value minus the lender payoff (computed here with numpy, not by the
settlement module), searched for its best month in [12, term - 3].

All randomness comes from numpy Generators with fixed seeds, so each
population is reproducible.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .config import (
    BALLOON_SEED, BALLOON_STRATEGY_MARGIN, DEFAULT_EXPECTED_ANNUAL_MILEAGE, DEFAULT_SETTLEMENT_POLICY,
    EDGE_SEED, EV_SEED, GOLDEN_SEED, GROUND_TRUTH_NOISE, GROUND_TRUTH_TAIL_MONTHS,
    MILEAGE_ADJUSTMENT_MAX, MILEAGE_ADJUSTMENT_MIN, MILEAGE_DEVIATION_RATE, MILEAGE_DEVIATION_STEP,
    VALUE_FLOOR_RATIO, TRADE_IN_FROM_MARKET_RATIO,
)
from .hybrid import MarketValuationSnapshot, ValuationConfidence
from .profiles import get_category_profile
from .resolver import VehicleFinanceProfile, VehicleInputs, resolve_profile

# ── Catalogues ────────────────────────────────────────────────────────────────

# category -> (make, model, msrp low, msrp high)
VEHICLE_CATALOG: dict[str, tuple[tuple[str, str, int, int], ...]] = {
    "economy": (
        ("Toyota", "Camry", 25_000, 35_000),
        ("Toyota", "Corolla", 20_000, 28_000),
        ("Honda", "Civic", 22_000, 30_000),
        ("Honda", "Accord", 26_000, 38_000),
        ("Hyundai", "Elantra", 20_000, 26_000),
        ("Hyundai", "Sonata", 24_000, 34_000),
        ("Kia", "Forte", 19_000, 25_000),
        ("Mazda", "Mazda3", 22_000, 30_000),
        ("Nissan", "Altima", 25_000, 34_000),
        ("Subaru", "Impreza", 20_000, 28_000),
    ),
    "premium": (
        ("BMW", "3 Series", 42_000, 58_000),
        ("BMW", "5 Series", 55_000, 75_000),
        ("Mercedes-Benz", "C-Class", 44_000, 58_000),
        ("Mercedes-Benz", "E-Class", 56_000, 75_000),
        ("Audi", "A4", 40_000, 52_000),
        ("Audi", "A6", 56_000, 72_000),
        ("Lexus", "IS", 40_000, 48_000),
        ("Lexus", "ES", 42_000, 52_000),
    ),
    "ev": (
        ("Tesla", "Model 3", 40_000, 55_000),
        ("Tesla", "Model Y", 45_000, 65_000),
        ("Tesla", "Model S", 80_000, 110_000),
        ("Chevrolet", "Bolt EV", 28_000, 35_000),
        ("Ford", "Mustang Mach-E", 45_000, 65_000),
        ("Hyundai", "Ioniq 5", 42_000, 58_000),
        ("Kia", "EV6", 45_000, 62_000),
        ("Nissan", "Leaf", 28_000, 38_000),
    ),
    "exotic": (
        ("Porsche", "911", 100_000, 180_000),
        ("Porsche", "Cayman", 65_000, 95_000),
        ("BMW", "M3", 72_000, 95_000),
        ("Mercedes-AMG", "C63", 75_000, 95_000),
        ("Chevrolet", "Corvette", 60_000, 85_000),
        ("Jeep", "Wrangler Rubicon", 45_000, 60_000),
    ),
}


@dataclass(frozen=True)
class FinanceTemplate:
    kind: str
    term_months: int
    apr_range: tuple[float, float]
    deposit_range: tuple[float, float]
    balloon_range: Optional[tuple[float, float]] = None


FINANCE_TEMPLATES: tuple[FinanceTemplate, ...] = (
    FinanceTemplate("installment", 36, (3, 6), (0.10, 0.15)),
    FinanceTemplate("installment", 48, (4, 7), (0.10, 0.15)),
    FinanceTemplate("installment", 60, (5, 8), (0.05, 0.15)),
    FinanceTemplate("installment", 72, (6, 9), (0.05, 0.10)),
    FinanceTemplate("balloon", 48, (3, 6), (0.10, 0.20), (0.35, 0.45)),
    FinanceTemplate("balloon", 60, (4, 7), (0.10, 0.15), (0.40, 0.55)),
)

GOLDEN_DISTRIBUTION: dict[str, int] = {"economy": 30, "premium": 25, "ev": 25, "exotic": 20}
ANNUAL_MILEAGES: tuple[int, ...] = (6_000, 8_000, 10_000, 12_000, 15_000, 20_000)
TERM_CHOICES: tuple[int, ...] = (24, 36, 48, 60, 72, 84)

# scenario -> (case count, expected behaviour)
EDGE_SCENARIOS: dict[str, tuple[int, str]] = {
    "covid_spike": (20, "value_collapse_after_peak"),
    "recall": (15, "temporary_dip_then_recovery"),
    "buyback": (10, "buyback_value_floor"),
    "negative_equity_rollover": (20, "extended_underwater_period"),
    "high_down_payment": (15, "immediate_positive_equity"),
    "zero_apr": (15, "faster_equity_build"),
    "lease_buyout": (15, "penalty_affects_optimal_timing"),
    "salvage_title": (10, "reduced_resale_value"),
    "low_mileage": (15, "value_premium"),
    "high_mileage": (15, "accelerated_depreciation"),
    "appreciation": (10, "value_appreciation"),
    "market_crash": (15, "sell_before_crash"),
    "supply_spike": (15, "sell_during_spike"),
    "extreme_finance": (10, "extended_underwater_period"),
}


# ── Synthetic vehicles ────────────────────────────────────────────────────────

def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


@dataclass(frozen=True)
class GroundTruth:
    best_month: int
    best_equity: float


@dataclass(frozen=True)
class SyntheticVehicle:
    """One calibration case: a financed vehicle and its simulated market history."""
    case_id: str
    suite: str
    make: str
    model: str
    category: str
    msrp: float                  # market reference price driving the history
    price: float                 # price actually paid
    finance_kind: str
    term_months: int
    apr: float
    deposit_pct: float
    balloon_pct: float
    annual_mileage: int
    observation_month: int
    values: tuple                # tuple[float, ...], trade-in value per month
    truth: GroundTruth
    scenario: str = "baseline"
    expected_behavior: str = ""
    anchored: bool = False       # engine sees a market snapshot at the observation month
    rolled_negative_equity: float = 0.0
    fee_penalty_months: int = 0
    shock: float = 0.0
    shock_month: int = 0
    shock_duration: int = 0      # 0 means permanent
    value_floor: float = 0.0

    @property
    def deposit(self) -> float:
        return round(self.price * self.deposit_pct, 2)

    @property
    def principal(self) -> float:
        if self.finance_kind == "cash":
            return 0.0
        return round(self.price - self.deposit + self.rolled_negative_equity, 2)

    @property
    def balloon_amount(self) -> float:
        if self.finance_kind != "balloon":
            return 0.0
        return round(self.principal * self.balloon_pct, 2)

    def to_profile(self) -> VehicleFinanceProfile:
        monthly = self.annual_mileage / 12
        inputs = VehicleInputs(
            purchase_price=_money(self.price),
            category=self.category,
            current_mileage=_money(monthly * self.observation_month),
            expected_annual_mileage=self.annual_mileage,
            months_elapsed=self.observation_month,
            finance_kind=self.finance_kind,
            principal=_money(self.principal),
            annual_rate_pct=_money(self.apr),
            term_months=self.term_months,
            balloon_amount=_money(self.balloon_amount),
            deposit=_money(self.deposit),
        )
        return resolve_profile(inputs)

    def snapshot(self) -> Optional[MarketValuationSnapshot]:
        if not self.anchored:
            return None
        trade_in = self.values[min(self.observation_month, len(self.values) - 1)]
        return MarketValuationSnapshot(
            value=_money(trade_in / float(TRADE_IN_FROM_MARKET_RATIO)),
            confidence=ValuationConfidence.HIGH,
            trade_in_value=_money(trade_in),
        )

    def settlement_curve(self) -> np.ndarray:
        return reference_settlement(
            self.principal, self.apr, self.term_months, self.balloon_amount, len(self.values),
            fee_months=float(DEFAULT_SETTLEMENT_POLICY.fee_months_interest) + self.fee_penalty_months,
        )

    def equity_curve(self) -> pd.Series:
        """Ground-truth equity with centred 3-month smoothing, indexed by month."""
        equity = pd.Series(np.asarray(self.values) - self.settlement_curve())
        return equity.rolling(3, center=True, min_periods=1).mean()

    def to_record(self) -> dict:
        return asdict(self)


def simulate_history(
    msrp: float,
    category: str,
    term_months: int,
    annual_mileage: float,
    rng: np.random.Generator,
    *,
    shock: float = 0.0,
    shock_month: int = 0,
    shock_duration: int = 0,
    value_floor: float = 0.0,
) -> np.ndarray:
    """Noisy monthly trade-in values from month 0 to term + 12."""
    profile = get_category_profile(category)
    months = np.arange(term_months + 13)
    yearly = np.array([float(r) for r in profile.yearly_rates])
    monthly_rates = yearly[np.minimum(months // 12, len(yearly) - 1)] / 12
    decay = np.cumprod(np.where(months > 0, 1 - monthly_rates, 1.0))
    values = msrp * (1 - float(profile.drive_off_rate)) * decay

    noise = 1 + (rng.random(len(months)) - 0.5) * 2 * GROUND_TRUTH_NOISE
    mileage = annual_mileage / 12 * months
    expected = DEFAULT_EXPECTED_ANNUAL_MILEAGE / 12 * months
    adjustment = np.clip(
        1 - (mileage - expected) / float(MILEAGE_DEVIATION_STEP) * float(MILEAGE_DEVIATION_RATE),
        float(MILEAGE_ADJUSTMENT_MIN),
        float(MILEAGE_ADJUSTMENT_MAX),
    )
    values = values * noise * adjustment

    if shock:
        shocked = months >= shock_month
        if shock_duration > 0:
            shocked &= months < shock_month + shock_duration
        values = values * np.where(shocked, 1 + shock, 1.0)

    values = np.maximum(values, msrp * float(VALUE_FLOOR_RATIO))
    if value_floor:
        values = np.maximum(values, value_floor)
    return np.round(values, 2)


def reference_settlement(
    principal: float,
    apr: float,
    term_months: int,
    balloon_amount: float,
    length: int,
    rebate_rate: float = float(DEFAULT_SETTLEMENT_POLICY.rebate_rate),
    fee_months: float = float(DEFAULT_SETTLEMENT_POLICY.fee_months_interest),
) -> np.ndarray:
    """Lender payoff for months 0..length-1.

    Remaining principal (reducing balance, or straight-line on the amortising
    part of a balloon loan) less the rebated share of unearned interest, plus
    *fee_months* of interest on the remaining principal.
    """
    if principal <= 0 or term_months <= 0:
        return np.zeros(length)
    k = np.minimum(np.arange(length), term_months)
    r = max(apr, 0.0) / 100 / 12
    amortizing = principal - balloon_amount
    factor = (1 + r) ** term_months
    if r == 0:
        payment = round(amortizing / term_months, 2)
    else:
        payment = round((principal - balloon_amount / factor) * r * factor / (factor - 1), 2)

    if balloon_amount > 0:
        remaining = amortizing * (1 - k / term_months) + balloon_amount
        unearned = (payment * term_months - amortizing) / term_months * (term_months - k)
    elif r == 0:
        remaining = principal * (1 - k / term_months)
        unearned = np.full(length, payment * term_months - principal)
    else:
        grown = (1 + r) ** k
        remaining = principal * (factor - grown) / (factor - 1)
        balance = principal * grown - payment * (grown - 1) / r
        unearned = payment * term_months - principal - (payment * k - (principal - balance))

    payoff = remaining - np.maximum(unearned, 0.0) * rebate_rate + remaining * r * fee_months
    return np.maximum(payoff, 0.0)


def find_best_month(smoothed_equity: pd.Series, term_months: int) -> GroundTruth:
    """Brute-force best month of smoothed equity in [12, term - 3]."""
    last = min(term_months - GROUND_TRUTH_TAIL_MONTHS, len(smoothed_equity) - 1)
    window = smoothed_equity.iloc[12:last + 1]
    if window.empty:
        window = smoothed_equity
    best = int(window.idxmax())
    return GroundTruth(best_month=best, best_equity=round(float(smoothed_equity[best]), 2))


def balloon_strategy(equity: Sequence[float], term_months: int, balloon_first_month: int = 12) -> str:
    """'sell_before_balloon' when some pre-balloon month clearly beats the balloon month."""
    pre = [equity[m] for m in range(balloon_first_month, term_months - GROUND_TRUTH_TAIL_MONTHS)]
    at_balloon = equity[term_months]
    if pre and max(pre) > at_balloon * BALLOON_STRATEGY_MARGIN:
        return "sell_before_balloon"
    return "pay_balloon_or_refinance"


def _pick(rng: np.random.Generator, options: Sequence):
    return options[int(rng.integers(len(options)))]


def make_vehicle(rng: np.random.Generator, **fields) -> SyntheticVehicle:
    """Simulate the history for *fields* and attach its ground truth."""
    values = simulate_history(
        fields["msrp"],
        fields["category"],
        fields["term_months"],
        fields["annual_mileage"],
        rng,
        shock=fields.get("shock", 0.0),
        shock_month=fields.get("shock_month", 0),
        shock_duration=fields.get("shock_duration", 0),
        value_floor=fields.get("value_floor", 0.0),
    )
    draft = SyntheticVehicle(values=tuple(float(v) for v in values), truth=GroundTruth(0, 0.0), **fields)
    return replace(draft, truth=find_best_month(draft.equity_curve(), draft.term_months))


# ── Populations ───────────────────────────────────────────────────────────────

def golden_100(seed: int = GOLDEN_SEED) -> list[SyntheticVehicle]:
    """100 cars: 30 economy, 25 premium, 25 ev, 20 exotic, mixed finance."""
    rng = np.random.default_rng(seed)
    vehicles = []
    for category, count in GOLDEN_DISTRIBUTION.items():
        for _ in range(count):
            make, model, low, high = _pick(rng, VEHICLE_CATALOG[category])
            finance = _pick(rng, FINANCE_TEMPLATES)
            msrp = float(rng.integers(low, high + 1))
            balloon_pct = 0.0
            apr = round(float(rng.uniform(*finance.apr_range)), 2)
            deposit_pct = round(float(rng.uniform(*finance.deposit_range)), 2)
            if finance.balloon_range:
                balloon_pct = round(float(rng.uniform(*finance.balloon_range)), 2)
            vehicles.append(make_vehicle(
                rng,
                case_id=f"golden-{len(vehicles) + 1:03d}",
                suite="golden",
                make=make,
                model=model,
                category=category,
                msrp=msrp,
                price=msrp,
                finance_kind=finance.kind,
                term_months=finance.term_months,
                apr=apr,
                deposit_pct=deposit_pct,
                balloon_pct=balloon_pct,
                annual_mileage=int(_pick(rng, ANNUAL_MILEAGES)),
                observation_month=int(rng.integers(6, 25)),
            ))
    return vehicles


def balloon_50(seed: int = BALLOON_SEED) -> list[SyntheticVehicle]:
    """50 balloon contracts with a wide residual range."""
    rng = np.random.default_rng(seed)
    catalog = [
        (category, entry)
        for category in ("economy", "premium", "ev")
        for entry in VEHICLE_CATALOG[category]
    ]
    vehicles = []
    for i in range(50):
        category, (make, model, low, high) = _pick(rng, catalog)
        msrp = float(rng.integers(low, high + 1))
        vehicles.append(make_vehicle(
            rng,
            case_id=f"balloon-{i + 1:03d}",
            suite="balloon",
            make=make,
            model=model,
            category=category,
            msrp=msrp,
            price=msrp,
            finance_kind="balloon",
            term_months=int(_pick(rng, (36, 48, 60))),
            apr=round(float(rng.uniform(3, 7)), 2),
            deposit_pct=round(float(rng.uniform(0.10, 0.25)), 2),
            balloon_pct=round(float(rng.uniform(0.30, 0.70)), 2),
            annual_mileage=int(_pick(rng, (8_000, 10_000, 12_000, 15_000))),
            observation_month=int(rng.integers(6, 19)),
        ))
    return vehicles


def ev_30(seed: int = EV_SEED) -> list[SyntheticVehicle]:
    """30 electric vehicles on installment loans, valued against a market snapshot."""
    rng = np.random.default_rng(seed)
    vehicles = []
    for i in range(30):
        make, model, low, high = _pick(rng, VEHICLE_CATALOG["ev"])
        msrp = float(rng.integers(low, high + 1))
        vehicles.append(make_vehicle(
            rng,
            case_id=f"ev-{i + 1:03d}",
            suite="ev",
            make=make,
            model=model,
            category="ev",
            msrp=msrp,
            price=msrp,
            finance_kind="installment",
            term_months=int(_pick(rng, (36, 48, 60, 72))),
            apr=round(float(rng.uniform(2, 6)), 2),
            deposit_pct=round(float(rng.uniform(0.10, 0.20)), 2),
            balloon_pct=0.0,
            annual_mileage=int(_pick(rng, (8_000, 10_000, 12_000, 15_000))),
            observation_month=int(rng.integers(6, 25)),
            anchored=True,
        ))
    return vehicles


def _edge_overrides(scenario: str, i: int, rng: np.random.Generator, term: int) -> dict:
    """Scenario-specific fields for the i-th case of *scenario*."""
    if scenario == "covid_spike":
        return {"category": "economy", "price_premium": 0.15 + 0.01 * i}
    if scenario == "recall":
        month = int(rng.integers(12, 37))
        return {"category": "ev", "shock": -(0.10 + 0.01 * i), "shock_month": month,
                "shock_duration": 6, "observation_month": month}
    if scenario == "buyback":
        return {"category": "economy", "value_floor": 18_000.0 + 500 * i}
    if scenario == "negative_equity_rollover":
        return {"rolled_negative_equity": 3_000.0 + 500 * i}
    if scenario == "high_down_payment":
        return {"deposit_pct": round(0.30 + 0.02 * i, 2)}
    if scenario == "zero_apr":
        return {"apr": 0.0, "term_months": int(_pick(rng, (36, 48, 60)))}
    if scenario == "lease_buyout":
        return {"finance_kind": "balloon", "balloon_pct": round(float(rng.uniform(0.50, 0.60)), 2),
                "fee_penalty_months": 2 + i}
    if scenario == "salvage_title":
        return {"shock": -(0.30 + 0.02 * i), "shock_month": 0}
    if scenario == "low_mileage":
        return {"annual_mileage": 3_000 + 500 * i}
    if scenario == "high_mileage":
        return {"annual_mileage": 25_000 + 5_000 * i}
    if scenario == "appreciation":
        return {"category": "exotic", "shock": round(float(rng.uniform(0.20, 0.30)), 2),
                "shock_month": 12, "observation_month": int(rng.integers(18, 37))}
    if scenario == "market_crash":
        month = int(rng.integers(18, 37))
        return {"shock": -(0.20 + 0.01 * i), "shock_month": month, "observation_month": month + 1}
    if scenario == "supply_spike":
        month = int(rng.integers(24, min(term, 48) + 1))
        return {"shock": 0.15 + 0.01 * i, "shock_month": month, "shock_duration": 6,
                "observation_month": month}
    if scenario == "extreme_finance":
        return {"term_months": 84, "apr": float(10 + i), "deposit_pct": 0.0}
    raise ValueError(f"Unknown edge scenario '{scenario}'")


def edge_cases_200(seed: int = EDGE_SEED) -> list[SyntheticVehicle]:
    """200 market and finance edge cases across 14 scenarios."""
    rng = np.random.default_rng(seed)
    vehicles = []
    for scenario, (count, behavior) in EDGE_SCENARIOS.items():
        for i in range(count):
            category = str(_pick(rng, ("economy", "premium", "ev")))
            term = int(_pick(rng, (48, 60, 72)))
            fields = {
                "category": category,
                "finance_kind": "installment",
                "term_months": term,
                "apr": round(float(rng.uniform(3, 8)), 2),
                "deposit_pct": round(float(rng.uniform(0.05, 0.15)), 2),
                "balloon_pct": 0.0,
                "annual_mileage": int(_pick(rng, (10_000, 12_000))),
                "observation_month": int(rng.integers(12, 25)),
            }
            fields.update(_edge_overrides(scenario, i, rng, term))
            premium = fields.pop("price_premium", 0.0)
            make, model, low, high = _pick(rng, VEHICLE_CATALOG[fields["category"]])
            msrp = float(rng.integers(low, high + 1))
            fields["observation_month"] = min(fields["observation_month"], fields["term_months"])
            vehicles.append(make_vehicle(
                rng,
                case_id=f"edge-{len(vehicles) + 1:03d}",
                suite="edge",
                make=make,
                model=model,
                msrp=msrp,
                price=round(msrp * (1 + premium), 2),
                scenario=scenario,
                expected_behavior=behavior,
                anchored=True,
                **fields,
            ))
    return vehicles


@dataclass(frozen=True)
class Perturbation:
    mileage_multiplier: float
    market_shock: float
    apr: float
    deposit_pct: float
    term_months: int
    balloon_pct: float
    price_variance: float


def monte_carlo_case(seed: int, run: int) -> SyntheticVehicle:
    """The *run*-th perturbed vehicle; depends only on (seed, run)."""
    rng = np.random.default_rng([seed, run])
    category = str(_pick(rng, tuple(GOLDEN_DISTRIBUTION)))
    make, model, low, high = _pick(rng, VEHICLE_CATALOG[category])
    msrp = float(rng.integers(low, high + 1))
    perturbation = Perturbation(
        mileage_multiplier=float(rng.uniform(0.5, 3.5)),
        market_shock=float(rng.uniform(-0.30, 0.30)),
        apr=round(float(rng.uniform(0, 20)), 2),
        deposit_pct=round(float(rng.uniform(0, 0.5)), 2),
        term_months=int(_pick(rng, TERM_CHOICES)),
        balloon_pct=round(float(rng.uniform(0.3, 0.7)), 2) if rng.random() < 0.5 else 0.0,
        price_variance=float(rng.uniform(-0.10, 0.10)),
    )
    term = perturbation.term_months
    observation = int(rng.integers(6, max(term // 2, 6) + 1))
    return make_vehicle(
        rng,
        case_id=f"mc-{run + 1:05d}",
        suite="monte_carlo",
        make=make,
        model=model,
        category=category,
        msrp=msrp,
        price=round(msrp * (1 + perturbation.price_variance), 2),
        finance_kind="balloon" if perturbation.balloon_pct else "installment",
        term_months=term,
        apr=perturbation.apr,
        deposit_pct=perturbation.deposit_pct,
        balloon_pct=perturbation.balloon_pct,
        annual_mileage=int(round(12_000 * perturbation.mileage_multiplier)),
        observation_month=observation,
        anchored=True,
        shock=round(perturbation.market_shock, 4),
        shock_month=observation,
    )


SUITE_GENERATORS = {
    "golden": golden_100,
    "balloon": balloon_50,
    "ev": ev_30,
    "edge": edge_cases_200,
}
