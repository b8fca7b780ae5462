"""Unit tests for hybrid.py: market-anchored projection and snapshot ageing."""
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pytest

from resale_timing.hybrid import (
    MarketValuationSnapshot,
    ValuationConfidence,
    age_snapshot,
    generate_hybrid_projections,
)
from resale_timing.projection import ValueSource, generate_projections
from resale_timing.resolver import VehicleInputs, resolve_profile

ZERO = Decimal("0")


def _profile(**kwargs):
    defaults = dict(
        purchase_price=Decimal("30000"),
        category="economy",
        principal=Decimal("27000"),
        annual_rate_pct=Decimal("6"),
        term_months=60,
        months_elapsed=24,
        expected_annual_mileage=12000,
    )
    defaults.update(kwargs)
    return resolve_profile(VehicleInputs(**defaults))


SNAPSHOT = MarketValuationSnapshot(
    value=Decimal("20000"),
    trade_in_value=Decimal("18000"),
    private_value=Decimal("19500"),
)


@pytest.fixture(scope="module")
def projections():
    return generate_hybrid_projections(_profile(), SNAPSHOT)


class TestAnchoredCurve:
    def test_anchor_month_pinned_exactly(self, projections):
        anchor = projections[24]
        assert anchor.trade_in_value == Decimal("18000")
        assert anchor.private_value == Decimal("19500")
        assert anchor.value_source is ValueSource.MARKET

    def test_only_anchor_is_market(self, projections):
        assert [p.month for p in projections if p.value_source is ValueSource.MARKET] == [24]

    def test_back_extrapolation_compounds_growth(self, projections):
        assert projections[23].trade_in_value == Decimal("18072.00")
        assert projections[23].value_source is ValueSource.PROJECTED

    def test_forward_extrapolation_applies_decay_and_wear(self, projections):
        # 18 000 x 0.996 x (1 - 1 000 miles x 0.00003)
        assert projections[25].trade_in_value == Decimal("17390.16")

    def test_forward_values_floored(self, projections):
        assert all(p.trade_in_value >= Decimal("2700") for p in projections[25:])
        assert all(p.private_value >= Decimal("2925") for p in projections[25:])

    def test_same_shape_as_formula(self, projections):
        formula = generate_projections(_profile())
        assert len(projections) == len(formula)
        assert [p.settlement for p in projections] == [p.settlement for p in formula]

    def test_single_optimal_and_equity_identity(self, projections):
        assert sum(p.is_optimal_month for p in projections) == 1
        assert all(p.trade_in_equity == p.trade_in_value - p.settlement for p in projections)


class TestDegradation:
    def test_no_snapshot_is_formula(self):
        assert generate_hybrid_projections(_profile()) == generate_projections(_profile())

    def test_zero_value_snapshot_is_formula(self):
        snapshot = MarketValuationSnapshot(value=ZERO)
        assert generate_hybrid_projections(_profile(), snapshot) == generate_projections(_profile())


class TestSnapshotAnchors:
    def test_derived_from_market_value(self):
        snapshot = MarketValuationSnapshot(value=Decimal("20000"))
        assert snapshot.anchor_trade_in == Decimal("17600.00")
        assert snapshot.anchor_private == Decimal("21000.00")

    def test_explicit_values_win(self):
        assert SNAPSHOT.anchor_trade_in == Decimal("18000")
        assert SNAPSHOT.anchor_private == Decimal("19500")


class TestAgeSnapshot:
    REFERENCE = date(2026, 10, 16)

    def _captured(self, days_before: int) -> MarketValuationSnapshot:
        return MarketValuationSnapshot(
            value=Decimal("20000"),
            captured_at=date.fromordinal(self.REFERENCE.toordinal() - days_before),
        )

    def test_fresh_snapshot_unchanged(self):
        snapshot = self._captured(3)
        assert age_snapshot(snapshot, "economy", self.REFERENCE) is snapshot

    def test_stale_snapshot_discarded(self):
        assert age_snapshot(self._captured(45), "economy", self.REFERENCE) is None

    def test_ageing_snapshot_decays_and_loses_confidence(self):
        aged = age_snapshot(self._captured(15), "economy", self.REFERENCE)
        assert aged is not None
        assert Decimal("19900") < aged.value < Decimal("20000")
        assert aged.confidence is ValuationConfidence.MEDIUM

    def test_low_confidence_kept(self):
        snapshot = MarketValuationSnapshot(
            value=Decimal("20000"),
            confidence=ValuationConfidence.LOW,
            captured_at=date(2026, 10, 1),
        )
        assert age_snapshot(snapshot, "economy", self.REFERENCE).confidence is ValuationConfidence.LOW

    def test_undated_snapshot_is_fresh(self):
        assert age_snapshot(SNAPSHOT, "economy", self.REFERENCE) is SNAPSHOT

    @pytest.mark.parametrize("captured_at,reference", [
        (datetime(2026, 10, 1, 12, 30), date(2026, 10, 16)),
        (date(2026, 10, 1), datetime(2026, 10, 16, 8, 0)),
    ])
    def test_date_and_datetime_mix(self, captured_at, reference):
        snapshot = MarketValuationSnapshot(value=Decimal("20000"), captured_at=captured_at)
        aged = age_snapshot(snapshot, "economy", reference)
        assert aged.confidence is ValuationConfidence.MEDIUM
        by_date = age_snapshot(replace(snapshot, captured_at=date(2026, 10, 1)), "economy", date(2026, 10, 16))
        assert aged.value == by_date.value

    def test_same_day_datetime_is_fresh(self):
        snapshot = MarketValuationSnapshot(value=Decimal("20000"), captured_at=datetime(2026, 10, 16, 23, 59))
        assert age_snapshot(snapshot, "economy", date(2026, 10, 16)) is snapshot
