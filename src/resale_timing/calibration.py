"""Calibration harness: accuracy suites, gates and the regression baseline.

Suites:
- golden    best month vs ground truth on 100 mixed vehicles
- ev        the same metrics on 30 electric vehicles
- balloon   sell-before-balloon strategy agreement on 50 balloon contracts
- edge      behavioural checks on 200 market-anchored edge cases
- monte_carlo  perturbed vehicles, each seeded independently
- performance  latency, determinism and traced memory
- regression   drift against a stored baseline of golden predictions

The timing suites run the engine over each vehicle's observed value
history: engine settlement figures, smoothed equity, peak month in
[12, term - 3]. The ground truth measures the same objective with its own
numpy payoff, so a disagreement points at the settlement model or the
peak search.

Every suite returns metrics and gate results. A failed gate is reported,
never raised; the caller decides what a failure means.

Modes: pr (golden, balloon, performance, regression), nightly (adds ev,
edge and 1 000 Monte Carlo runs), full (10 000 Monte Carlo runs).
"""
from __future__ import annotations

import json
import logging
import time
import tracemalloc
from dataclasses import asdict, dataclass, field, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .artifacts import load_artifact, write_artifact
from .config import (
    DEFAULT_GATE_POLICY, DEFAULT_EXPECTED_ANNUAL_MILEAGE, DEFAULT_SCORING_POLICY,
    DEFAULT_SETTLEMENT_POLICY, MONTE_CARLO_RUNS, MONTE_CARLO_SEED, PROJECTION_TAIL_MONTHS,
    VALID_MODES, ZERO, GatePolicy, ScoringPolicy, SettlementPolicy, round_money,
)
from .datasets import (
    SyntheticVehicle, balloon_50, balloon_strategy, edge_cases_200, ev_30, golden_100,
    monte_carlo_case,
)
from .hybrid import generate_hybrid_projections
from .optimizer import equity_peak
from .projection import (
    CurvePoint, MonthlyProjection, ValueSource, generate_projections, optimal_projection,
    project_curve, settlement_at, start_mileage,
)
from .recommendation import recommend
from .resolver import VehicleFinanceProfile
from .valuation import private_value, trade_in_value

logger = logging.getLogger(__name__)

MIN = "min"
MAX = "max"
REFERENCE_ANNUAL_MILEAGE = 12_000
MILEAGE_CHECK_MONTH = 36


@dataclass(frozen=True)
class GateResult:
    name: str
    metric: float
    threshold: float
    comparison: str      # min: metric >= threshold, max: metric <= threshold
    passed: bool
    blocking: bool = True


def gate(name: str, metric: float, threshold: float, comparison: str, blocking: bool = True) -> GateResult:
    passed = metric >= threshold if comparison == MIN else metric <= threshold
    return GateResult(name, float(metric), float(threshold), comparison, bool(passed), blocking)


@dataclass(frozen=True)
class CaseResult:
    case_id: str
    suite: str
    scenario: str
    predicted_month: int
    truth_month: int
    error: int
    predicted_equity: float
    truth_equity: float
    false_positive: bool
    passed: bool
    detail: str = ""


@dataclass
class SuiteResult:
    name: str
    metrics: dict
    gates: list
    cases: list = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return all(g.passed for g in self.gates if g.blocking)

    def to_dict(self) -> dict:
        return {
            "metrics": self.metrics,
            "gates": [asdict(g) for g in self.gates],
            "passed": self.passed,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "case_count": len(self.cases),
        }


@dataclass
class CalibrationReport:
    mode: str
    seed: int
    suites: dict = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(s.passed for s in self.suites.values())

    @property
    def blockers(self) -> list[str]:
        return [
            f"{suite.name}: {g.name}"
            for suite in self.suites.values()
            for g in suite.gates
            if g.blocking and not g.passed
        ]

    @property
    def warnings(self) -> list[str]:
        return [
            f"{suite.name}: {g.name}"
            for suite in self.suites.values()
            for g in suite.gates
            if not g.blocking and not g.passed
        ]

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "seed": self.seed,
            "passed": self.passed,
            "blockers": self.blockers,
            "warnings": self.warnings,
            "suites": {name: suite.to_dict() for name, suite in self.suites.items()},
        }

    def cases_frame(self) -> pd.DataFrame:
        rows = [asdict(case) for suite in self.suites.values() for case in suite.cases]
        return pd.DataFrame(rows, columns=[f.name for f in fields(CaseResult)])

    def failing_cases(self) -> pd.DataFrame:
        frame = self.cases_frame()
        return frame[~frame["passed"].astype(bool)].reset_index(drop=True)

    def scenario_summary(self) -> pd.DataFrame:
        """Case count and pass count per suite and scenario."""
        frame = self.cases_frame()
        if frame.empty:
            return pd.DataFrame(columns=["suite", "scenario", "cases", "passed"])
        return (
            frame.groupby(["suite", "scenario"])["passed"]
            .agg(cases="count", passed="sum")
            .reset_index()
        )


# ── Engine invocation ─────────────────────────────────────────────────────────

def settlement_policy_for(vehicle: SyntheticVehicle) -> SettlementPolicy:
    """Early-buyout penalties are modelled as extra months of settlement fee."""
    if not vehicle.fee_penalty_months:
        return DEFAULT_SETTLEMENT_POLICY
    return replace(
        DEFAULT_SETTLEMENT_POLICY,
        fee_months_interest=DEFAULT_SETTLEMENT_POLICY.fee_months_interest + vehicle.fee_penalty_months,
    )


def engine_projection(
    vehicle: SyntheticVehicle,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
    settlement_policy: Optional[SettlementPolicy] = None,
) -> tuple[MonthlyProjection, ...]:
    return generate_hybrid_projections(
        vehicle.to_profile(),
        vehicle.snapshot(),
        scoring_policy=scoring_policy,
        settlement_policy=settlement_policy or settlement_policy_for(vehicle),
    )


def market_curve(
    vehicle: SyntheticVehicle,
    profile: VehicleFinanceProfile,
    settlement_policy: Optional[SettlementPolicy] = None,
) -> tuple[CurvePoint, ...]:
    """The vehicle's observed trade-in history, valued against engine settlement figures."""
    policy = settlement_policy or settlement_policy_for(vehicle)
    start = start_mileage(profile)
    points = []
    for month in range(min(profile.last_month + 1, len(vehicle.values))):
        trade_in = Decimal(str(vehicle.values[month]))
        points.append(CurvePoint(
            month=month,
            mileage=start + profile.monthly_mileage * month,
            trade_in_value=trade_in,
            private_value=private_value(trade_in),
            settlement=settlement_at(profile, month, policy),
            source=ValueSource.MARKET,
        ))
    return tuple(points)


def market_projection(
    vehicle: SyntheticVehicle,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
    settlement_policy: Optional[SettlementPolicy] = None,
) -> tuple[MonthlyProjection, ...]:
    profile = vehicle.to_profile()
    curve = market_curve(vehicle, profile, settlement_policy)
    return project_curve(curve, profile, scoring_policy=scoring_policy)


def is_false_positive(predicted_equity: float, truth_equity: float, loss_line: float = 0.0) -> bool:
    """Engine expects a sale above *loss_line* while the best truly achievable equity is below -loss_line."""
    return predicted_equity > loss_line and truth_equity < -loss_line


def evaluate_timing_case(
    vehicle: SyntheticVehicle,
    tolerance: int = 2,
    loss_line: float = 0.0,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> CaseResult:
    """Engine equity-peak month against the ground-truth best month.

    The scorer's risk-adjusted month is recorded in the detail column; it
    sits earlier than the peak on purpose and is not what the truth measures.
    """
    projections = market_projection(vehicle, scoring_policy)
    peak = equity_peak([p.trade_in_equity for p in projections], vehicle.term_months, scoring_policy)
    predicted_equity = float(round_money(peak.equity))
    false_positive = is_false_positive(predicted_equity, vehicle.truth.best_equity, loss_line)
    error = abs(peak.month - vehicle.truth.best_month)
    return CaseResult(
        case_id=vehicle.case_id,
        suite=vehicle.suite,
        scenario=vehicle.scenario,
        predicted_month=peak.month,
        truth_month=vehicle.truth.best_month,
        error=error,
        predicted_equity=predicted_equity,
        truth_equity=vehicle.truth.best_equity,
        false_positive=false_positive,
        passed=error <= tolerance and not false_positive,
        detail=f"scored={optimal_projection(projections).month}",
    )


# ── Accuracy suites ───────────────────────────────────────────────────────────

def run_timing_suite(
    name: str,
    vehicles: Sequence[SyntheticVehicle],
    gates: GatePolicy = DEFAULT_GATE_POLICY,
    blocking: bool = True,
    scoring_policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
) -> SuiteResult:
    """Best-month accuracy against ground truth (golden-100, ev-30)."""
    start = time.perf_counter()
    cases = [evaluate_timing_case(v, scoring_policy=scoring_policy) for v in vehicles]
    count = max(len(cases), 1)
    metrics = {
        "cases": len(cases),
        "within_1": sum(c.error <= 1 for c in cases) / count,
        "within_2": sum(c.error <= 2 for c in cases) / count,
        "mae": sum(c.error for c in cases) / count,
        "false_positives": sum(c.false_positive for c in cases),
    }
    result = SuiteResult(
        name=name,
        metrics=metrics,
        gates=[
            gate("within_1", metrics["within_1"], gates.golden_within_1, MIN, blocking),
            gate("within_2", metrics["within_2"], gates.golden_within_2, MIN, blocking),
            gate("false_positives", metrics["false_positives"], gates.golden_false_positives, MAX, blocking),
        ],
        cases=cases,
        elapsed_seconds=time.perf_counter() - start,
    )
    logger.info(
        "%s: %.1f%% within 1 month, %.1f%% within 2, %d false positives",
        name, metrics["within_1"] * 100, metrics["within_2"] * 100, metrics["false_positives"],
    )
    return result


def run_balloon_suite(
    vehicles: Sequence[SyntheticVehicle],
    gates: GatePolicy = DEFAULT_GATE_POLICY,
) -> SuiteResult:
    """Agreement between engine and ground truth on whether to sell before the balloon."""
    start = time.perf_counter()
    cases = []
    for vehicle in vehicles:
        truth_equity = list(np.asarray(vehicle.values) - vehicle.settlement_curve())
        truth = balloon_strategy(truth_equity, vehicle.term_months)
        projections = market_projection(vehicle)
        equities = [p.trade_in_equity for p in projections]
        predicted = balloon_strategy([float(e) for e in equities], vehicle.term_months)
        peak = equity_peak(equities, vehicle.term_months)
        cases.append(CaseResult(
            case_id=vehicle.case_id,
            suite=vehicle.suite,
            scenario=vehicle.scenario,
            predicted_month=peak.month,
            truth_month=vehicle.truth.best_month,
            error=abs(peak.month - vehicle.truth.best_month),
            predicted_equity=float(round_money(peak.equity)),
            truth_equity=vehicle.truth.best_equity,
            false_positive=False,
            passed=predicted == truth,
            detail=f"engine={predicted} truth={truth}",
        ))
    accuracy = sum(c.passed for c in cases) / max(len(cases), 1)
    logger.info("balloon: %.1f%% strategy agreement", accuracy * 100)
    return SuiteResult(
        name="balloon",
        metrics={"cases": len(cases), "strategy_accuracy": accuracy},
        gates=[gate("strategy_accuracy", accuracy, gates.balloon_accuracy, MIN)],
        cases=cases,
        elapsed_seconds=time.perf_counter() - start,
    )


# ── Edge-case battery ─────────────────────────────────────────────────────────

EdgeCheck = Callable[[SyntheticVehicle, VehicleFinanceProfile, Sequence[MonthlyProjection]], Optional[str]]


def _break_even_month(projections: Sequence[MonthlyProjection]) -> float:
    return next((p.month for p in projections if p.is_break_even_month), float("inf"))


def _anchored_below_formula(vehicle, profile, projections) -> Optional[str]:
    formula = generate_projections(profile)
    month = profile.months_elapsed
    if projections[month].trade_in_value >= formula[month].trade_in_value:
        return f"market value {projections[month].trade_in_value} not below formula {formula[month].trade_in_value}"
    return None


def _anchored_above_formula(vehicle, profile, projections) -> Optional[str]:
    formula = generate_projections(profile)
    month = profile.months_elapsed
    if projections[month].trade_in_value <= formula[month].trade_in_value:
        return f"market value {projections[month].trade_in_value} not above formula {formula[month].trade_in_value}"
    return None


def _buyback_floor(vehicle, profile, projections) -> Optional[str]:
    anchored = projections[profile.months_elapsed].trade_in_value
    if float(anchored) < vehicle.value_floor:
        return f"anchored value {anchored} below buyback floor {vehicle.value_floor}"
    return None


def _rollover_delays_break_even(vehicle, profile, projections) -> Optional[str]:
    baseline = engine_projection(replace(vehicle, rolled_negative_equity=0.0))
    if _break_even_month(projections) < _break_even_month(baseline):
        return "rolled-over debt reached break-even earlier than without it"
    return None


def _positive_equity_at_one_year(vehicle, profile, projections) -> Optional[str]:
    equity = projections[12].trade_in_equity
    if equity <= ZERO:
        return f"equity at month 12 is {equity}"
    return None


def _zero_apr_settlement(vehicle, profile, projections) -> Optional[str]:
    settlements = [p.settlement for p in projections[:vehicle.term_months + 1]]
    if any(later > earlier for earlier, later in zip(settlements, settlements[1:])):
        return "settlement rose during a zero-rate loan"
    if settlements[-1] != ZERO:
        return f"settlement at term end is {settlements[-1]}"
    return None


def _buyout_penalty_raises_settlement(vehicle, profile, projections) -> Optional[str]:
    baseline = engine_projection(vehicle, settlement_policy=DEFAULT_SETTLEMENT_POLICY)
    if any(p.settlement < b.settlement for p, b in zip(projections, baseline)):
        return "buyout penalty lowered a settlement figure"
    if projections[0].settlement <= baseline[0].settlement:
        return "buyout penalty had no effect at month 0"
    return None


def _mileage_effect(lower: bool):
    def check(vehicle, profile, projections) -> Optional[str]:
        own = trade_in_value(
            profile.purchase_price, profile.category, MILEAGE_CHECK_MONTH,
            vehicle.annual_mileage * MILEAGE_CHECK_MONTH // 12, DEFAULT_EXPECTED_ANNUAL_MILEAGE,
        )
        reference = trade_in_value(
            profile.purchase_price, profile.category, MILEAGE_CHECK_MONTH,
            REFERENCE_ANNUAL_MILEAGE * MILEAGE_CHECK_MONTH // 12, DEFAULT_EXPECTED_ANNUAL_MILEAGE,
        )
        if lower and own >= reference:
            return f"high-mileage value {own} not below reference {reference}"
        if not lower and own <= reference:
            return f"low-mileage value {own} not above reference {reference}"
        return None
    return check


def _optimal_within_contract(vehicle, profile, projections) -> Optional[str]:
    optimal = optimal_projection(projections)
    if optimal.month > vehicle.term_months:
        return f"optimal month {optimal.month} after contract end"
    return None


EDGE_CHECKS: dict[str, EdgeCheck] = {
    "covid_spike": _anchored_below_formula,
    "recall": _anchored_below_formula,
    "buyback": _buyback_floor,
    "negative_equity_rollover": _rollover_delays_break_even,
    "high_down_payment": _positive_equity_at_one_year,
    "zero_apr": _zero_apr_settlement,
    "lease_buyout": _buyout_penalty_raises_settlement,
    "salvage_title": _anchored_below_formula,
    "low_mileage": _mileage_effect(lower=False),
    "high_mileage": _mileage_effect(lower=True),
    "appreciation": _anchored_above_formula,
    "market_crash": _anchored_below_formula,
    "supply_spike": _anchored_above_formula,
    "extreme_finance": _optimal_within_contract,
}


def structural_failures(projections: Sequence[MonthlyProjection], term_months: int) -> list[str]:
    """Invariants every projection must satisfy."""
    failures = []
    if len(projections) != term_months + PROJECTION_TAIL_MONTHS + 1:
        failures.append(f"{len(projections)} months projected for a {term_months}-month term")
    optimal_count = sum(p.is_optimal_month for p in projections)
    if optimal_count != 1:
        failures.append(f"{optimal_count} optimal months flagged")
    for p in projections:
        if p.trade_in_equity != p.trade_in_value - p.settlement or p.private_equity != p.private_value - p.settlement:
            failures.append(f"equity identity broken at month {p.month}")
            break
    return failures


def check_edge_case(vehicle: SyntheticVehicle) -> list[str]:
    """Failure reasons for one edge case; empty when it behaves as expected."""
    profile = vehicle.to_profile()
    projections = engine_projection(vehicle)
    failures = structural_failures(projections, vehicle.term_months)
    try:
        recommend(profile, projections)
    except ValueError as exc:
        failures.append(f"recommendation failed: {exc}")
    check = EDGE_CHECKS.get(vehicle.scenario)
    if check is not None and not failures:
        reason = check(vehicle, profile, projections)
        if reason:
            failures.append(reason)
    return failures


def run_edge_suite(
    vehicles: Sequence[SyntheticVehicle],
    gates: GatePolicy = DEFAULT_GATE_POLICY,
) -> SuiteResult:
    start = time.perf_counter()
    cases = []
    for vehicle in vehicles:
        failures = check_edge_case(vehicle)
        cases.append(CaseResult(
            case_id=vehicle.case_id,
            suite=vehicle.suite,
            scenario=vehicle.scenario,
            predicted_month=-1,
            truth_month=vehicle.truth.best_month,
            error=0,
            predicted_equity=0.0,
            truth_equity=vehicle.truth.best_equity,
            false_positive=False,
            passed=not failures,
            detail="; ".join(failures) or vehicle.expected_behavior,
        ))
    failed = sum(not c.passed for c in cases)
    logger.info("edge: %d of %d cases failed", failed, len(cases))
    return SuiteResult(
        name="edge",
        metrics={"cases": len(cases), "failures": failed},
        gates=[gate("failures", failed, gates.edge_max_failures, MAX)],
        cases=cases,
        elapsed_seconds=time.perf_counter() - start,
    )


# ── Monte Carlo ───────────────────────────────────────────────────────────────

def run_monte_carlo(
    runs: int,
    seed: int = MONTE_CARLO_SEED,
    gates: GatePolicy = DEFAULT_GATE_POLICY,
) -> SuiteResult:
    """Perturbed vehicles; run i depends only on (seed, i)."""
    start = time.perf_counter()
    cases = []
    for run in range(runs):
        vehicle = monte_carlo_case(seed, run)
        loss_line = gates.monte_carlo_loss_ratio * vehicle.price
        cases.append(evaluate_timing_case(vehicle, tolerance=3, loss_line=loss_line))
    count = max(len(cases), 1)
    within_3 = sum(c.error <= 3 for c in cases) / count
    fp_rate = sum(c.false_positive for c in cases) / count
    logger.info("monte_carlo: %d runs, %.1f%% within 3 months, %.2f%% false positives",
                runs, within_3 * 100, fp_rate * 100)
    return SuiteResult(
        name="monte_carlo",
        metrics={"runs": runs, "seed": seed, "within_3": within_3, "false_positive_rate": fp_rate},
        gates=[
            gate("within_3", within_3, gates.monte_carlo_within_3, MIN),
            gate("false_positive_rate", fp_rate, gates.monte_carlo_false_positive_rate, MAX),
        ],
        cases=cases,
        elapsed_seconds=time.perf_counter() - start,
    )


# ── Performance ───────────────────────────────────────────────────────────────

def _fingerprint(vehicle: SyntheticVehicle) -> tuple:
    projections = engine_projection(vehicle)
    recommendation = recommend(vehicle.to_profile(), projections)
    return (
        optimal_projection(projections).month,
        tuple(p.trade_in_equity for p in projections),
        recommendation.status,
    )


def run_performance_suite(
    vehicles: Sequence[SyntheticVehicle],
    gates: GatePolicy = DEFAULT_GATE_POLICY,
    sample_size: int = 20,
) -> SuiteResult:
    """Mean latency per vehicle, determinism across reruns and traced memory growth."""
    sample = list(vehicles[:sample_size])
    start = time.perf_counter()
    first = [_fingerprint(v) for v in sample]
    elapsed = time.perf_counter() - start
    per_vehicle = elapsed / max(len(sample), 1)

    rerun_sample = sample[:3]
    deterministic = all(
        [_fingerprint(v) for v in rerun_sample] == first[:len(rerun_sample)]
        for _ in range(gates.determinism_reruns)
    )

    tracemalloc.start()
    try:
        for vehicle in sample:
            _fingerprint(vehicle)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    memory_mb = peak / (1024 * 1024)

    logger.info("performance: %.4fs per vehicle, deterministic=%s, %.1f MB peak",
                per_vehicle, deterministic, memory_mb)
    return SuiteResult(
        name="performance",
        metrics={
            "vehicles": len(sample),
            "seconds_per_vehicle": per_vehicle,
            "deterministic": deterministic,
            "memory_mb": memory_mb,
        },
        gates=[
            gate("seconds_per_vehicle", per_vehicle, gates.max_seconds_per_vehicle, MAX),
            gate("deterministic", 1.0 if deterministic else 0.0, 1.0, MIN),
            gate("memory_mb", memory_mb, gates.max_memory_growth_mb, MAX),
        ],
        elapsed_seconds=time.perf_counter() - start,
    )


# ── Regression baseline ───────────────────────────────────────────────────────

def prediction_records(cases: Sequence[CaseResult]) -> list[dict]:
    return [
        {"case_id": c.case_id, "optimal_month": c.predicted_month, "equity": round(c.predicted_equity, 2)}
        for c in cases
    ]


def compare_to_baseline(current: list[dict], baseline: list[dict]) -> dict:
    """Month and equity drift between two prediction sets, joined on case id."""
    merged = pd.DataFrame(current).merge(
        pd.DataFrame(baseline), on="case_id", suffixes=("", "_baseline"),
    )
    if merged.empty:
        return {"compared": 0, "mae": 0.0, "max_delta": 0, "median_equity_delta": 0.0}
    month_delta = (merged["optimal_month"] - merged["optimal_month_baseline"]).abs()
    equity_scale = merged["equity_baseline"].abs().clip(lower=1.0)
    equity_delta = (merged["equity"] - merged["equity_baseline"]).abs() / equity_scale
    return {
        "compared": int(len(merged)),
        "mae": float(month_delta.mean()),
        "max_delta": int(month_delta.max()),
        "median_equity_delta": float(equity_delta.median()),
    }


def run_regression_suite(
    cases: Sequence[CaseResult],
    baseline_path: Optional[Union[str, Path]] = None,
    gates: GatePolicy = DEFAULT_GATE_POLICY,
    update: bool = False,
) -> SuiteResult:
    """Compare golden predictions to the stored baseline, writing it when missing."""
    current = prediction_records(cases)
    path = Path(baseline_path) if baseline_path is not None else None

    if path is None or update or not path.exists():
        if path is not None:
            write_artifact(path, "baseline-predictions", "Golden-100 optimal-month predictions", current)
            logger.info("regression: wrote new baseline to %s", path)
        metrics = {"new_baseline": True, "compared": 0, "mae": 0.0, "max_delta": 0, "median_equity_delta": 0.0}
    else:
        baseline = load_artifact(path)["records"]
        metrics = {"new_baseline": False, **compare_to_baseline(current, baseline)}
        logger.info("regression: MAE %.2f months, max delta %d", metrics["mae"], metrics["max_delta"])

    return SuiteResult(
        name="regression",
        metrics=metrics,
        gates=[
            gate("mae", metrics["mae"], gates.regression_mae, MAX),
            gate("max_delta", metrics["max_delta"], gates.regression_max_delta, MAX),
            gate("median_equity_delta", metrics["median_equity_delta"], gates.regression_median_equity_delta, MAX),
        ],
    )


# ── Orchestration ─────────────────────────────────────────────────────────────

def write_datasets(output_dir: Union[str, Path], datasets: dict) -> list[Path]:
    """Write each generated population as a checksummed artifact."""
    output_dir = Path(output_dir)
    return [
        write_artifact(
            output_dir / "datasets" / f"{name}.json",
            name,
            f"{len(vehicles)} synthetic vehicles with ground truth",
            [v.to_record() for v in vehicles],
        )
        for name, vehicles in datasets.items()
    ]


def run_calibration(
    mode: str = "pr",
    *,
    seed: int = MONTE_CARLO_SEED,
    runs: Optional[int] = None,
    output_dir: Optional[Union[str, Path]] = None,
    baseline_path: Optional[Union[str, Path]] = None,
    update_baseline: bool = False,
    gates: GatePolicy = DEFAULT_GATE_POLICY,
) -> CalibrationReport:
    """Run the suites for *mode* and return the report.

    *seed* drives the Monte Carlo runs; the fixed datasets keep their own
    seeds. With *output_dir*, datasets, results.json and failing-cases.csv
    are written there, and the baseline defaults to
    ``<output_dir>/baseline-predictions.json``.

    Raises ValueError for an unknown mode.
    """
    if mode not in VALID_MODES:
        raise ValueError(f"Unknown mode '{mode}'. Valid modes: {', '.join(sorted(VALID_MODES))}")
    if baseline_path is None and output_dir is not None:
        baseline_path = Path(output_dir) / "baseline-predictions.json"

    report = CalibrationReport(mode=mode, seed=seed)
    datasets = {"golden-100": golden_100(), "balloon-50": balloon_50()}
    if mode != "pr":
        datasets["ev-30"] = ev_30()
        datasets["edge-cases-200"] = edge_cases_200()

    golden = run_timing_suite("golden", datasets["golden-100"], gates)
    report.suites["golden"] = golden
    report.suites["balloon"] = run_balloon_suite(datasets["balloon-50"], gates)
    if mode != "pr":
        report.suites["ev"] = run_timing_suite("ev", datasets["ev-30"], gates, blocking=False)
        report.suites["edge"] = run_edge_suite(datasets["edge-cases-200"], gates)
        mc_runs = MONTE_CARLO_RUNS[mode] if runs is None else runs
        report.suites["monte_carlo"] = run_monte_carlo(mc_runs, seed, gates)
    report.suites["performance"] = run_performance_suite(datasets["golden-100"], gates)
    report.suites["regression"] = run_regression_suite(golden.cases, baseline_path, gates, update_baseline)

    if output_dir is not None:
        write_report(report, output_dir, datasets)
    logger.info("calibration %s: %s", mode, "passed" if report.passed else "FAILED")
    return report


def write_report(report: CalibrationReport, output_dir: Union[str, Path], datasets: Optional[dict] = None) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    if datasets:
        write_datasets(output_dir, datasets)
    results = output_dir / "results.json"
    results.write_text(json.dumps(report.to_dict(), indent=2, default=str) + "\n", encoding="utf-8")
    report.failing_cases().to_csv(output_dir / "failing-cases.csv", index=False)
    return results
