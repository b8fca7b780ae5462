"""Command line entry point: click group with `project` and `calibrate`.

project    resolve a vehicle from options, project it to term + 6 and print
           the month table and the sell recommendation.
calibrate  run the calibration harness in pr / nightly / full mode, print
           the gate report and exit 1 when a blocking gate fails.
"""
from __future__ import annotations

import logging
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Sequence

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .artifacts import ArtifactChecksumError
from .calibration import CalibrationReport, run_calibration
from .config import MONTE_CARLO_SEED, VALID_MODES
from .hybrid import MarketValuationSnapshot, ValuationConfidence, age_snapshot, generate_hybrid_projections
from .profiles import SUPPORTED_CATEGORIES
from .projection import FinancialStatus, MonthlyProjection
from .recommendation import SellRecommendation, SellStatus, WarningSeverity, recommend
from .resolver import InvalidProfileError, VehicleFinanceProfile, VehicleInputs, check_preconditions, resolve_profile
from .settlement import SUPPORTED_FINANCE_KINDS

console = Console()
err_console = Console(stderr=True, style="bold red")

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Formatting helpers
# ──────────────────────────────────────────────────────────────────────────────

def _fmt_money(value: Decimal) -> str:
    return f"{value:,.2f}"


def _fmt_k(value: Decimal) -> str:
    return f"{value:,.0f}"


def _fmt_months(n: int) -> str:
    years, months = divmod(n, 12)
    if months == 0:
        return f"{n} months ({years} years)"
    return f"{n} months ({years}y {months}m)"


_STATUS_STYLE = {
    FinancialStatus.WINNING: "green",
    FinancialStatus.LOSING: "red",
    FinancialStatus.BREAKEVEN: "yellow",
}

_SELL_STYLE = {
    SellStatus.TOO_EARLY: "dim",
    SellStatus.WAIT: "yellow",
    SellStatus.APPROACHING_OPTIMAL: "cyan",
    SellStatus.GOOD_TO_SELL: "green",
    SellStatus.OPTIMAL_NOW: "bold green",
    SellStatus.OPTIMAL_PASSED: "magenta",
}

_SEVERITY_STYLE = {
    WarningSeverity.INFO: "cyan",
    WarningSeverity.WARNING: "yellow",
    WarningSeverity.CRITICAL: "bold red",
}


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# ──────────────────────────────────────────────────────────────────────────────
# Projection display
# ──────────────────────────────────────────────────────────────────────────────

def display_profile(profile: VehicleFinanceProfile) -> None:
    t = Table(title="Vehicle & Finance", box=box.SIMPLE, show_header=True, padding=(0, 2))
    t.add_column("Parameter", style="cyan")
    t.add_column("Value", justify="right")
    t.add_column("Source", style="dim")

    src = profile.sources
    t.add_row("purchase_price", _fmt_money(profile.purchase_price), "user")
    t.add_row("category", profile.category.value, src.get("category", ""))
    t.add_row("finance_kind", profile.finance_kind.value, src.get("finance_kind", ""))
    t.add_row("deposit", _fmt_money(profile.deposit), src.get("deposit", ""))
    if profile.is_financed:
        t.add_row("principal", _fmt_money(profile.principal), src.get("principal", ""))
        t.add_row("annual_rate_pct", f"{profile.annual_rate_pct}%", src.get("annual_rate_pct", ""))
        t.add_row("monthly_payment", _fmt_money(profile.monthly_payment), src.get("monthly_payment", ""))
        if profile.balloon_amount:
            t.add_row("balloon_amount", _fmt_money(profile.balloon_amount), src.get("balloon_amount", ""))
    t.add_row("term", _fmt_months(profile.term_months), src.get("term_months", ""))
    t.add_row("months_elapsed", str(profile.months_elapsed), src.get("months_elapsed", ""))
    t.add_row("current_mileage", _fmt_k(profile.current_mileage), src.get("current_mileage", ""))
    t.add_row("expected_annual_mileage", _fmt_k(profile.expected_annual_mileage),
              src.get("expected_annual_mileage", ""))
    console.print(t)


def display_projections(projections: Sequence[MonthlyProjection], current_month: int) -> None:
    t = Table(title="Monthly Projection", box=box.MINIMAL_HEAVY_HEAD)
    for col in ("Month", "Date", "Mileage", "Trade-in", "Private", "Settlement", "Equity", "Source", "Flags"):
        t.add_column(col, justify="right")

    for p in projections:
        flags = []
        if p.is_optimal_month:
            flags.append("[bold green]optimal[/bold green]")
        if p.is_break_even_month:
            flags.append("break-even")
        if p.is_balloon_month:
            flags.append("balloon")
        elif p.is_contract_end:
            flags.append("contract end")
        month = f"[bold]{p.month}[/bold]" if p.month == current_month else str(p.month)
        style = _STATUS_STYLE[p.status]
        t.add_row(
            month,
            p.label.strftime("%b %Y") if p.label else "",
            _fmt_k(p.mileage),
            _fmt_k(p.trade_in_value),
            _fmt_k(p.private_value),
            _fmt_k(p.settlement),
            f"[{style}]{_fmt_k(p.trade_in_equity)}[/{style}]",
            p.value_source.value,
            " ".join(flags),
        )
    console.print(t)


def display_recommendation(rec: SellRecommendation) -> None:
    style = _SELL_STYLE[rec.status]
    console.print()
    console.print(Panel(
        f"[{style}]{rec.headline}[/{style}]\n{rec.detail}",
        title=f"Recommendation: {rec.status.value}",
        expand=False,
    ))

    t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    t.add_column("Field", style="cyan")
    t.add_column("Value", justify="right")
    t.add_row("Current month", str(rec.current_month))
    t.add_row("Current equity", _fmt_money(rec.current_equity))
    if rec.deposit:
        t.add_row("True profit (after deposit)", _fmt_money(rec.true_profit))
    t.add_row("Optimal month", str(rec.optimal_month))
    t.add_row("Peak equity month", str(rec.peak_month))
    t.add_row("Sell window", f"{rec.window.start_month} to {rec.window.end_month}")
    t.add_row(
        "Equity at optimal",
        f"{_fmt_k(rec.equity_range.low)} / {_fmt_k(rec.equity_range.expected)} / {_fmt_k(rec.equity_range.high)}",
    )
    t.add_row("Volatility", rec.volatility.value)
    t.add_row("Confidence", rec.confidence.value)
    console.print(t)

    if rec.timing_explanation:
        console.print(f"[bold]Timing:[/bold] {rec.timing_explanation}")
    for w in rec.warnings:
        ws = _SEVERITY_STYLE[w.severity]
        console.print(f"[{ws}]{w.severity.value.upper()}[/{ws}] [bold]{w.title}[/bold]: {w.summary}")
    console.print()


# ──────────────────────────────────────────────────────────────────────────────
# Calibration display
# ──────────────────────────────────────────────────────────────────────────────

def display_report(report: CalibrationReport) -> None:
    verdict = "[bold green]PASSED[/bold green]" if report.passed else "[bold red]FAILED[/bold red]"
    console.print(Panel(f"Calibration ({report.mode}, seed {report.seed}): {verdict}", expand=False))

    t = Table(box=box.SIMPLE_HEAVY, show_header=True, padding=(0, 1))
    t.add_column("Suite", style="cyan")
    t.add_column("Gate")
    t.add_column("Metric", justify="right")
    t.add_column("Threshold", justify="right")
    t.add_column("Result")

    for suite in report.suites.values():
        for g in suite.gates:
            if g.passed:
                result = "[green]pass[/green]"
            elif g.blocking:
                result = "[red]FAIL[/red]"
            else:
                result = "[yellow]warn[/yellow]"
            op = ">=" if g.comparison == "min" else "<="
            t.add_row(suite.name, g.name, f"{g.metric:.4g}", f"{op} {g.threshold:.4g}", result)
    console.print(t)

    for blocker in report.blockers:
        err_console.print(f"Blocking gate failed: {blocker}")


# ──────────────────────────────────────────────────────────────────────────────
# Input helpers
# ──────────────────────────────────────────────────────────────────────────────

def _parse_opt(s: Optional[str], name: str) -> Optional[Decimal]:
    if s is None:
        return None
    try:
        return Decimal(s.replace(",", "").replace(" ", ""))
    except InvalidOperation:
        err_console.print(f"Invalid value for --{name}: '{s}'")
        sys.exit(1)


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


# ──────────────────────────────────────────────────────────────────────────────
# Click entry point
# ──────────────────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging")
def main(verbose: bool) -> None:
    """Vehicle resale timing: equity projection and sell recommendation."""
    configure_logging(verbose)


@main.command()
@click.option("--price", type=str, required=True, help="Purchase price")
@click.option("--category", type=click.Choice(sorted(SUPPORTED_CATEGORIES)), default=None,
              help="Vehicle category (default: economy)")
@click.option("--finance", "finance_kind", type=click.Choice(sorted(SUPPORTED_FINANCE_KINDS)), default=None,
              help="Finance kind (default: cash, or installment when --principal is given)")
@click.option("--principal", type=str, default=None, help="Amount financed (default: price minus deposit)")
@click.option("--rate", type=str, default=None, help="Annual interest rate in percent, e.g. 6 for 6%")
@click.option("--term", type=int, default=None, help="Term in months")
@click.option("--payment", type=str, default=None, help="Monthly payment (derived when omitted)")
@click.option("--balloon", type=str, default=None, help="Final balloon payment")
@click.option("--deposit", type=str, default=None, help="Deposit paid up front")
@click.option("--elapsed", type=int, default=None, help="Months since purchase")
@click.option("--mileage", type=str, default=None, help="Current odometer reading")
@click.option("--annual-mileage", type=str, default=None, help="Expected miles per year (default: 10000)")
@click.option("--market-value", type=str, default=None, help="Market valuation for the current month")
@click.option("--market-trade-in", type=str, default=None, help="Market trade-in value, if quoted separately")
@click.option("--market-private", type=str, default=None, help="Market private-party value, if quoted separately")
@click.option("--market-confidence", type=click.Choice([c.value for c in ValuationConfidence]),
              default=ValuationConfidence.HIGH.value, show_default=True)
@click.option("--valued-on", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Date of the market valuation (YYYY-MM-DD)")
@click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Reference date for month labels (default: today)")
def project(
    price: str,
    category: Optional[str],
    finance_kind: Optional[str],
    principal: Optional[str],
    rate: Optional[str],
    term: Optional[int],
    payment: Optional[str],
    balloon: Optional[str],
    deposit: Optional[str],
    elapsed: Optional[int],
    mileage: Optional[str],
    annual_mileage: Optional[str],
    market_value: Optional[str],
    market_trade_in: Optional[str],
    market_private: Optional[str],
    market_confidence: str,
    valued_on: Optional[datetime],
    as_of: Optional[datetime],
) -> None:
    """Project equity month by month and recommend when to sell."""
    inputs = VehicleInputs(
        purchase_price=_parse_opt(price, "price"),
        category=category,
        current_mileage=_parse_opt(mileage, "mileage"),
        expected_annual_mileage=_parse_opt(annual_mileage, "annual-mileage"),
        months_elapsed=elapsed,
        finance_kind=finance_kind,
        principal=_parse_opt(principal, "principal"),
        annual_rate_pct=_parse_opt(rate, "rate"),
        term_months=term,
        monthly_payment=_parse_opt(payment, "payment"),
        balloon_amount=_parse_opt(balloon, "balloon"),
        deposit=_parse_opt(deposit, "deposit"),
    )
    try:
        profile = resolve_profile(inputs)
        check_preconditions(profile)
    except InvalidProfileError as exc:
        console.print(Panel(f"[bold red]Invalid vehicle profile[/bold red]\n{exc}", expand=False))
        sys.exit(1)
    except ValueError as exc:
        err_console.print(f"Parameter error: {exc}")
        sys.exit(1)

    reference = _as_date(as_of) or date.today()
    snapshot = None
    value = _parse_opt(market_value, "market-value")
    if value is not None:
        snapshot = MarketValuationSnapshot(
            value=value,
            confidence=ValuationConfidence(market_confidence),
            captured_at=_as_date(valued_on),
            trade_in_value=_parse_opt(market_trade_in, "market-trade-in"),
            private_value=_parse_opt(market_private, "market-private"),
        )
        snapshot = age_snapshot(snapshot, profile.category, reference)
        if snapshot is None:
            logger.warning("Market valuation is older than 30 days, using formula values")

    projections = generate_hybrid_projections(profile, snapshot, reference_date=reference)
    rec = recommend(profile, projections)

    console.print(Panel("[bold blue]Resale Timing[/bold blue]", expand=False))
    display_profile(profile)
    display_projections(projections, rec.current_month)
    display_recommendation(rec)


@main.command()
@click.option("--mode", type=click.Choice(sorted(VALID_MODES)), default="pr", show_default=True)
@click.option("--seed", type=int, default=MONTE_CARLO_SEED, show_default=True, help="Monte Carlo base seed")
@click.option("--runs", type=click.IntRange(min=0), default=None,
              help="Monte Carlo runs (default: 0 / 1000 / 10000 by mode)")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Write datasets, results.json and failing-cases.csv here")
@click.option("--baseline", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Regression baseline (default: <output-dir>/baseline-predictions.json)")
@click.option("--update-baseline", is_flag=True, default=False, help="Overwrite the regression baseline")
def calibrate(
    mode: str,
    seed: int,
    runs: Optional[int],
    output_dir: Optional[Path],
    baseline: Optional[Path],
    update_baseline: bool,
) -> None:
    """Run the calibration suites and gate the results."""
    try:
        report = run_calibration(
            mode,
            seed=seed,
            runs=runs,
            output_dir=output_dir,
            baseline_path=baseline,
            update_baseline=update_baseline,
        )
    except ArtifactChecksumError as exc:
        err_console.print(f"Corrupt baseline: {exc}")
        sys.exit(1)

    display_report(report)
    if output_dir is not None:
        console.print(f"Results written to [bold]{output_dir}[/bold]")
    if not report.passed:
        sys.exit(1)
