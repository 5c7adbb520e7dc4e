import logging

import pytest

from cleanquote.domain.pricing.formula_pipeline import FormulaPipeline
from cleanquote.domain.pricing.models import BookingDraft, BookingKind, PricingStrategy
from cleanquote.domain.pricing.quote import compute_quote
from cleanquote.infra.metrics import configure_metrics
from tests.conftest import formula, make_snapshot


def _formula_snapshot(default_snapshot, replace=(), drop=()):
    replaced = {item.name: item for item in replace}
    formulas = [
        replaced.pop(compiled.formula.name, compiled.formula)
        for compiled in default_snapshot.formulas
        if compiled.formula.name not in drop
    ]
    formulas.extend(replaced.values())
    return make_snapshot(
        field_configs=default_snapshot.field_configs,
        category_defaults=default_snapshot.category_defaults,
        formulas=formulas,
        strategies={"airbnb": "formula"},
    )


def _draft(**overrides) -> BookingDraft:
    payload = {"property_type": "House", "bedrooms": "2", "bathrooms": "1"}
    payload.update(overrides)
    return BookingDraft(**payload)


def _pipeline(snapshot) -> FormulaPipeline:
    return FormulaPipeline(snapshot.formulas_by_key, snapshot.resolver, minimum_hours=2.0, override_epsilon=0.001)


def test_pipeline_runs_formulas_in_order(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    calculation = _pipeline(snapshot).run(_draft(), short_notice_charge=0)
    assert calculation.strategy == PricingStrategy.formula
    assert calculation.base_time == 2.5
    assert calculation.additional_time == 0
    assert calculation.total_hours == 2.5
    assert calculation.cleaning_cost == 37.5
    assert calculation.subtotal == 37.5
    assert calculation.hourly_rate == 15
    assert calculation.formula_errors == []


def test_quote_uses_formula_strategy_when_configured(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    result = compute_quote(_draft(short_notice_charge=50), snapshot)
    assert result.strategy == PricingStrategy.formula
    assert result.cleaning_cost == 37.5
    assert result.short_notice_charge == 50
    assert result.total_cost == 87.5

    domestic = compute_quote(_draft(booking_kind=BookingKind.domestic), snapshot)
    assert domestic.strategy == PricingStrategy.calculated


def test_ironing_time_from_bed_sizes(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    result = compute_quote(_draft(needs_ironing=True, bed_sizes={"king": 1}), snapshot)
    assert result.additional_time == pytest.approx(0.42)
    assert result.total_hours == pytest.approx(2.92)
    assert result.total_cost == 43.75


def test_explicit_ironing_hours_replace_additional_time(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    result = compute_quote(_draft(needs_ironing=True, bed_sizes={"king": 1}, ironing_hours=1.0), snapshot)
    assert result.additional_time == 1.0
    assert result.total_hours == 3.5
    assert result.total_cost == 52.5


def test_total_hours_floor_at_minimum(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    calculation = _pipeline(snapshot).run(_draft(property_type="Flat", bedrooms="Studio", bathrooms=""), short_notice_charge=0)
    assert calculation.base_time == 1.0
    assert calculation.total_hours == 2.0
    assert calculation.cleaning_cost == 30


def test_override_feeds_later_formulas(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot)
    calculation = _pipeline(snapshot).run(_draft(estimated_hours=4), short_notice_charge=0)
    assert calculation.is_user_override is True
    assert calculation.calculated_base_time == 2.5
    assert calculation.base_time == 4
    assert calculation.cleaning_cost == 60


def test_failing_formula_falls_back_and_is_reported(default_snapshot, caplog):
    metrics_client = configure_metrics(True)
    snapshot = _formula_snapshot(default_snapshot, replace=[formula("Base time", "ghost", "*", "2")])
    with caplog.at_level(logging.WARNING):
        result = compute_quote(_draft(), snapshot)
    assert [(failure.formula, failure.detail) for failure in result.formula_errors] == [
        ("Base time", "Unknown field 'ghost'")
    ]
    assert result.base_time == 0
    assert result.total_hours == 2.0
    assert result.cleaning_cost == 30
    assert result.total_cost == 30
    assert any(record.getMessage() == "formula_evaluation_failed" for record in caplog.records)
    assert (
        metrics_client.registry.get_sample_value("formula_evaluation_errors_total", {"formula": "Base time"})
        == 1.0
    )


def test_division_by_zero_only_affects_its_formula(default_snapshot):
    snapshot = _formula_snapshot(
        default_snapshot, replace=[formula("Total cost", "cleaningcost", "/", "shortnoticecharge")]
    )
    result = compute_quote(_draft(), snapshot)
    assert [failure.formula for failure in result.formula_errors] == ["Total cost"]
    assert result.cleaning_cost == 37.5
    assert result.total_cost == 37.5


def test_missing_formulas_use_fallbacks(default_snapshot):
    snapshot = _formula_snapshot(default_snapshot, drop={"Total Hours", "Total cost"})
    calculation = _pipeline(snapshot).run(_draft(), short_notice_charge=10)
    assert calculation.total_hours == 2.5
    assert calculation.subtotal == 47.5
    assert calculation.formula_errors == []


def test_invalid_formulas_never_reach_the_pipeline(default_snapshot, caplog):
    with caplog.at_level(logging.ERROR):
        snapshot = _formula_snapshot(default_snapshot, replace=[formula("Total cost", "(", "cleaningcost")])
    assert "totalcost" not in snapshot.formulas_by_key
    assert any(record.getMessage() == "formula_rejected" for record in caplog.records)
    result = compute_quote(_draft(short_notice_charge=5), snapshot)
    assert result.total_cost == 42.5
    assert result.formula_errors == []


def test_inactive_formulas_are_skipped(default_snapshot):
    snapshot = _formula_snapshot(
        default_snapshot, replace=[formula("Cleaning Cost", "totalhours", "*", "100", is_active=False)]
    )
    assert "cleaningcost" not in snapshot.formulas_by_key
    calculation = _pipeline(snapshot).run(_draft(), short_notice_charge=0)
    assert calculation.cleaning_cost == 0
