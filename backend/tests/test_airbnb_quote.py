from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from cleanquote.domain.pricing.calculators import apply_override, calculate_airbnb, classify_equipment
from cleanquote.domain.pricing.models import BookingDraft, PricingStrategy
from cleanquote.domain.pricing.quote import compute_quote
from tests.conftest import SCENARIO_CONFIGS, default, field, make_snapshot, rule

SATURDAY = date(2026, 10, 24)
TUESDAY = date(2026, 10, 20)


def _draft(**overrides) -> BookingDraft:
    payload = {"bedrooms": "3", "bathrooms": "1", "service_type": "checkin-checkout"}
    payload.update(overrides)
    return BookingDraft(**payload)


def test_basic_quote(scenario_snapshot):
    result = compute_quote(_draft(), scenario_snapshot)
    assert result.strategy == PricingStrategy.calculated
    assert result.base_time == 2.0
    assert result.calculated_base_time == 2.0
    assert result.total_hours == 2.0
    assert result.hourly_rate == 15
    assert result.cleaning_cost == 30
    assert result.short_notice_charge == 0
    assert result.total_cost == 30
    assert result.is_user_override is False
    assert result.config_id == "test"
    assert result.breakdown.minutes["bedrooms"] == 90
    assert result.breakdown.hourly_rate_contributions["service_type"] == 15


def test_day_pricing_rule_adds_percentage_of_cleaning_cost():
    snapshot = make_snapshot(
        field_configs=SCENARIO_CONFIGS,
        scheduling_rules=[
            rule("day_pricing", 20, day_of_week=6, modifier_type="percentage", label="Saturday premium")
        ],
    )
    result = compute_quote(_draft(selected_date=SATURDAY), snapshot)
    assert result.additional_charge == 6.0
    assert result.total_cost == 36.0
    assert [(detail.type, detail.label, detail.amount) for detail in result.modifier_details] == [
        ("additional", "Saturday premium", 6.0)
    ]


def test_short_notice_charge_is_added_in_full(scenario_snapshot):
    now = datetime(2026, 10, 19, 23, 0, tzinfo=ZoneInfo("Europe/London"))
    result = compute_quote(_draft(selected_date=TUESDAY, selected_time="9am - 10am"), scenario_snapshot, now=now)
    assert result.short_notice_charge == 50
    assert result.cleaning_cost == 30
    assert result.total_cost == 80


def test_upstream_short_notice_charge_is_not_recomputed(scenario_snapshot):
    now = datetime(2026, 10, 19, 23, 0, tzinfo=ZoneInfo("Europe/London"))
    draft = _draft(selected_date=TUESDAY, selected_time="9am - 10am", short_notice_charge=12.5)
    result = compute_quote(draft, scenario_snapshot, now=now)
    assert result.short_notice_charge == 12.5
    assert result.total_cost == 42.5


def test_user_override_keeps_calculated_hours(scenario_snapshot):
    result = compute_quote(_draft(estimated_hours=3.5), scenario_snapshot)
    assert result.is_user_override is True
    assert result.base_time == 3.5
    assert result.calculated_base_time == 2.0
    assert result.total_hours == 3.5
    assert result.cleaning_cost == 52.5
    assert result.total_cost == 52.5


def test_estimate_matching_calculation_is_not_an_override(scenario_snapshot):
    result = compute_quote(_draft(estimated_hours=2.0005), scenario_snapshot)
    assert result.is_user_override is False
    assert result.base_time == 2.0


def test_discounts_never_push_total_below_zero():
    snapshot = make_snapshot(
        field_configs=SCENARIO_CONFIGS,
        scheduling_rules=[rule("day_pricing", -50, day_of_week=2)],
    )
    result = compute_quote(_draft(selected_date=TUESDAY), snapshot)
    assert result.discount == 50
    assert result.total_cost == 0


def test_not_precleaned_changeover_scales_time_and_rate():
    snapshot = make_snapshot(
        field_configs=SCENARIO_CONFIGS
        + (
            field("Already Cleaned", "Yes", value=0, time=1),
            field("Already Cleaned", "No", value=2, time=1.25),
        )
    )
    result = compute_quote(_draft(already_cleaned=False), snapshot)
    assert result.breakdown.time_multiplier == 1.25
    assert result.base_time == 2.5
    assert result.hourly_rate == 17
    assert result.cleaning_cost == 42.5
    assert compute_quote(_draft(already_cleaned=True), snapshot).base_time == 2.0


def test_not_precleaned_premium_applies_to_default_service_type():
    snapshot = make_snapshot(
        field_configs=SCENARIO_CONFIGS
        + (
            field("Already Cleaned", "Yes", value=0, time=1),
            field("Already Cleaned", "No", value=2, time=1.5),
        ),
        category_defaults=[default("Service Type", "checkin-checkout")],
    )
    explicit = compute_quote(_draft(already_cleaned=False), snapshot)
    defaulted = compute_quote(_draft(service_type="", already_cleaned=False), snapshot)
    assert (defaulted.base_time, defaulted.hourly_rate, defaulted.total_cost) == (3.0, 17.0, 51.0)
    assert defaulted.total_cost == explicit.total_cost
    assert defaulted.breakdown.hourly_rate_contributions["not_precleaned"] == 2


def test_linen_drying_overlaps_cleaning_time():
    snapshot = make_snapshot(field_configs=SCENARIO_CONFIGS + (field("Bed Sizes", "double", value=90, time=20),))
    single = compute_quote(
        _draft(linens_handling="wash-dry", needs_ironing=True, bed_sizes={"double": 1}), snapshot
    )
    assert single.breakdown.dry_time == 1.5
    assert single.breakdown.iron_time == 0.5
    assert single.additional_time == 0.5
    assert single.total_hours == 2.5
    assert single.cleaning_cost == 37.5

    double = compute_quote(
        _draft(linens_handling="wash-dry", needs_ironing=True, bed_sizes={"double": 2}), snapshot
    )
    assert double.breakdown.dry_time == 3.0
    assert double.breakdown.iron_time == 1.0
    assert double.additional_time == 0

    provided = compute_quote(_draft(linens_handling="provided", needs_ironing=True, bed_sizes={"double": 1}), snapshot)
    assert provided.additional_time == 0
    assert provided.breakdown.dry_time == 0


def test_equipment_is_hourly_or_one_time():
    snapshot = make_snapshot(
        field_configs=SCENARIO_CONFIGS
        + (
            field("Equipment Arrangement", "I have equipment", value=0),
            field("Equipment Arrangement", "Cleaner brings equipment", value=1.5),
            field("Equipment Arrangement", "Equipment delivery", value=30),
        )
    )
    hourly = compute_quote(_draft(equipment_arrangement="Cleaner brings equipment"), snapshot)
    assert hourly.hourly_rate == 16.5
    assert hourly.one_time_costs == 0
    assert hourly.total_cost == 33

    delivery = compute_quote(_draft(equipment_arrangement="Equipment delivery"), snapshot)
    assert delivery.hourly_rate == 15
    assert delivery.one_time_costs == 30
    assert delivery.total_cost == 60


def test_same_day_and_products_add_to_hourly_rate(default_snapshot):
    draft = BookingDraft(
        property_type="Flat",
        bedrooms="1",
        bathrooms="1",
        same_day_turnaround=True,
        cleaning_products="Cleaner brings products",
    )
    calculation = calculate_airbnb(draft, default_snapshot.resolver, short_notice_charge=0, override_epsilon=0.001)
    assert calculation.calculated_base_time == 2.0
    assert calculation.hourly_rate == pytest.approx(20.5)
    assert calculation.subtotal == pytest.approx(41.0)


def test_oven_time_only_when_requested(default_snapshot):
    draft = BookingDraft(property_type="Flat", bedrooms="1", bathrooms="1", oven_type="double")
    without = calculate_airbnb(draft, default_snapshot.resolver, short_notice_charge=0, override_epsilon=0.001)
    assert without.breakdown.minutes["oven"] == 0
    with_oven = calculate_airbnb(
        draft.model_copy(update={"needs_oven_cleaning": True}),
        default_snapshot.resolver,
        short_notice_charge=0,
        override_epsilon=0.001,
    )
    assert with_oven.breakdown.minutes["oven"] == 45
    assert with_oven.calculated_base_time == 2.5


@pytest.mark.parametrize(
    "value,configured,expected",
    [
        (0, [0, 1.5, 30], (0, 0)),
        (1.5, [0, 1.5, 30], (1.5, 0)),
        (30, [0, 1.5, 30], (0, 30)),
        (15, [0, 30], (0, 15)),
        (0.5, [1.5, 30], (0.5, 0)),
        (4, [], (4, 0)),
    ],
)
def test_classify_equipment(value, configured, expected):
    assert classify_equipment(value, configured) == expected


def test_apply_override():
    assert apply_override(2.0, None, 0.001) == (2.0, False)
    assert apply_override(2.0, 3.5, 0.001) == (3.5, True)
    assert apply_override(2.0, 1.0, 0.001) == (1.0, True)
    assert apply_override(2.0, 2.0005, 0.001) == (2.0, False)
