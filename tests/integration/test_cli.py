"""Integration tests for the CLI: options in, projection and gate report out."""
from decimal import Decimal

import pytest
from click.testing import CliRunner

from resale_timing import cli
from resale_timing.calibration import CalibrationReport, SuiteResult, gate
from resale_timing.cli import main
from resale_timing.hybrid import MarketValuationSnapshot, generate_hybrid_projections
from resale_timing.recommendation import SellStatus, recommend
from resale_timing.resolver import VehicleInputs, resolve_profile

ECONOMY_LOAN = ["project", "--price", "30000", "--principal", "27000", "--rate", "6", "--term", "60"]


# ──────────────────────────────────────────────────────────────────────────────
# Full pipeline tests (direct function calls)
# ──────────────────────────────────────────────────────────────────────────────

def _run_pipeline(snapshot=None, **overrides):
    defaults = dict(
        purchase_price=Decimal("45000"),
        category="premium",
        finance_kind="balloon",
        principal=Decimal("40000"),
        annual_rate_pct=Decimal("4.9"),
        term_months=48,
        balloon_amount=Decimal("16000"),
        months_elapsed=20,
        expected_annual_mileage=12000,
    )
    defaults.update(overrides)
    profile = resolve_profile(VehicleInputs(**defaults))
    projections = generate_hybrid_projections(profile, snapshot)
    return profile, projections, recommend(profile, projections)


class TestPremiumBalloonPipeline:
    def test_projection_shape(self):
        _, projections, _ = _run_pipeline()
        assert len(projections) == 55
        assert sum(p.is_optimal_month for p in projections) == 1
        assert projections[48].is_balloon_month

    def test_recommendation_for_current_month(self):
        _, _, rec = _run_pipeline()
        assert rec.current_month == 20
        assert isinstance(rec.status, SellStatus)

    def test_snapshot_pins_current_month(self):
        snapshot = MarketValuationSnapshot(value=Decimal("33000"))
        _, projections, rec = _run_pipeline(snapshot)
        assert projections[20].trade_in_value == snapshot.anchor_trade_in
        assert rec.current_equity == projections[20].trade_in_equity


# ──────────────────────────────────────────────────────────────────────────────
# CLI runner tests
# ──────────────────────────────────────────────────────────────────────────────

class TestProjectCommand:
    def test_example_vehicle(self):
        result = CliRunner().invoke(main, ECONOMY_LOAN + ["--elapsed", "12", "--as-of", "2026-10-16"])
        assert result.exit_code == 0, result.output
        assert "Resale Timing" in result.output
        assert "Recommendation" in result.output

    def test_cash_purchase(self):
        result = CliRunner().invoke(main, ["project", "--price", "25000", "--category", "ev"])
        assert result.exit_code == 0, result.output

    def test_market_valuation(self):
        result = CliRunner().invoke(main, ECONOMY_LOAN + [
            "--elapsed", "24", "--market-value", "21000", "--as-of", "2026-10-16", "--valued-on", "2026-10-10",
        ])
        assert result.exit_code == 0, result.output

    def test_stale_valuation_falls_back(self):
        result = CliRunner().invoke(main, ECONOMY_LOAN + [
            "--elapsed", "24", "--market-value", "21000", "--as-of", "2026-10-16", "--valued-on", "2026-01-01",
        ])
        assert result.exit_code == 0, result.output

    def test_financed_without_rate_exits_1(self):
        result = CliRunner().invoke(main, ["project", "--price", "30000", "--principal", "27000", "--term", "60"])
        assert result.exit_code == 1

    def test_invalid_number_exits_1(self):
        result = CliRunner().invoke(main, ["project", "--price", "thirty"])
        assert result.exit_code == 1

    def test_unknown_category_rejected(self):
        result = CliRunner().invoke(main, ["project", "--price", "30000", "--category", "tank"])
        assert result.exit_code == 2

    def test_balloon_on_installment_accepted_as_zero(self):
        result = CliRunner().invoke(main, ECONOMY_LOAN + ["--balloon", "5000"])
        assert result.exit_code == 0, result.output


def _report(passed: bool) -> CalibrationReport:
    report = CalibrationReport(mode="pr", seed=10000)
    report.suites["golden"] = SuiteResult(
        "golden", {"within_1": 0.9 if passed else 0.5}, [gate("within_1", 0.9 if passed else 0.5, 0.88, "min")],
    )
    return report


class TestCalibrateCommand:
    @pytest.mark.parametrize("passed,exit_code", [(True, 0), (False, 1)])
    def test_exit_code_follows_gates(self, monkeypatch, passed, exit_code):
        monkeypatch.setattr(cli, "run_calibration", lambda mode, **kwargs: _report(passed))
        result = CliRunner().invoke(main, ["calibrate", "--mode", "pr"])
        assert result.exit_code == exit_code
        assert "within_1" in result.output

    def test_options_forwarded(self, monkeypatch, tmp_path):
        seen = {}

        def fake_run(mode, **kwargs):
            seen.update(kwargs, mode=mode)
            return _report(True)

        monkeypatch.setattr(cli, "run_calibration", fake_run)
        result = CliRunner().invoke(main, [
            "calibrate", "--mode", "nightly", "--seed", "7", "--runs", "25", "--output-dir", str(tmp_path),
        ])
        assert result.exit_code == 0, result.output
        assert seen["mode"] == "nightly"
        assert seen["seed"] == 7
        assert seen["runs"] == 25
        assert seen["output_dir"] == tmp_path

    def test_unknown_mode_rejected(self):
        result = CliRunner().invoke(main, ["calibrate", "--mode", "weekly"])
        assert result.exit_code == 2

    def test_corrupt_baseline_exits_1(self, tmp_path):
        baseline = tmp_path / "baseline.json"
        baseline.write_text('{"checksum": "0", "records": []}')
        result = CliRunner().invoke(main, ["calibrate", "--baseline", str(baseline)])
        assert result.exit_code == 1
