"""Hand-coded duration and cost calculations per booking kind.

Both calculators sum per-field minutes, scale them by the service multiplier,
round to half hours and then price the hours with an hourly rate built from
independently resolved contributions.
"""

import logging
from dataclasses import dataclass, field

from cleanquote.domain.pricing.field_lookup import normalize_key
from cleanquote.domain.pricing.field_resolver import ZERO, FieldResolver, FieldValues
from cleanquote.domain.pricing.models import BookingDraft, FormulaFailure, PricingStrategy, QuoteBreakdown
from cleanquote.domain.pricing.rounding import half_hour_blocks, round_minutes_to_hours

logger = logging.getLogger(__name__)

EQUIPMENT_CATEGORY = "equipment arrangement"
ON_SITE_LINEN_HANDLING = {"washhang", "washdry"}
NOT_PRECLEANED_SERVICE = "checkincheckout"
NO_OVEN_OPTIONS = {"", "dontneed"}


@dataclass
class CostCalculation:
    strategy: PricingStrategy
    base_time: float
    calculated_base_time: float
    additional_time: float
    total_hours: float
    hourly_rate: float
    cleaning_cost: float
    one_time_costs: float
    subtotal: float
    is_user_override: bool
    breakdown: QuoteBreakdown = field(default_factory=QuoteBreakdown)
    formula_errors: list[FormulaFailure] = field(default_factory=list)


def apply_override(calculated: float, estimated: float | None, epsilon: float) -> tuple[float, bool]:
    """Use the customer's estimated hours when they differ from the computed value."""
    if estimated is None:
        return calculated, False
    if abs(estimated - calculated) > epsilon:
        return float(estimated), True
    return calculated, False


def classify_equipment(value: float, configured_values: list[float]) -> tuple[float, float]:
    """Split an equipment charge into (hourly addition, one-time cost).

    Values at or near the cheapest configured arrangement are ongoing per-hour
    charges; values at or near the most expensive one are one-time charges.
    """
    if value <= 0:
        return 0.0, 0.0
    if not configured_values:
        return value, 0.0
    smallest = min(configured_values)
    largest = max(configured_values)
    if value <= smallest or (
        value < largest and abs(value - smallest) < abs(value - largest)
    ):
        return value, 0.0
    return 0.0, value


def _multiplier(values: FieldValues) -> float:
    if values.matched and values.time:
        return values.time
    return 1.0


def calculate_airbnb(
    draft: BookingDraft,
    resolver: FieldResolver,
    *,
    short_notice_charge: float,
    override_epsilon: float,
) -> CostCalculation:
    minutes = {
        "property_type": resolver.resolve_time("propertyType", draft),
        "bedrooms": resolver.resolve_time("bedrooms", draft),
        "bathrooms": resolver.resolve_time("bathrooms", draft),
        "additional_rooms": resolver.resolve_time("additionalRooms", draft),
        "property_features": resolver.resolve_time("propertyFeatures", draft),
        "oven": resolver.resolve_time("ovenType", draft) if draft.needs_oven_cleaning else 0.0,
    }
    service = resolver.resolve("serviceType", draft)
    not_precleaned = (
        normalize_key(resolver.selected_option("serviceType", draft)) == NOT_PRECLEANED_SERVICE
        and draft.already_cleaned is False
    )
    precleaning = resolver.resolve("alreadyCleaned", draft) if not_precleaned else ZERO
    multiplier = _multiplier(service) * _multiplier(precleaning)
    calculated_base = round_minutes_to_hours(sum(minutes.values()) * multiplier)

    bed_sizes = resolver.resolve("bedSizes", draft)
    washes_on_site = normalize_key(draft.linens_handling) in ON_SITE_LINEN_HANDLING
    dry_time = half_hour_blocks(bed_sizes.value) if washes_on_site else 0.0
    iron_time = half_hour_blocks(bed_sizes.time) if washes_on_site and draft.needs_ironing else 0.0
    additional_time = 0.0
    if washes_on_site:
        waiting_time = max(0.0, dry_time - calculated_base)
        if iron_time > waiting_time:
            additional_time = iron_time - waiting_time

    base_time, is_override = apply_override(calculated_base, draft.estimated_hours, override_epsilon)
    total_hours = base_time + additional_time

    equipment_value = resolver.resolve_value("equipmentArrangement", draft)
    equipment_hourly, equipment_one_time = classify_equipment(
        equipment_value, resolver.index.values(EQUIPMENT_CATEGORY)
    )
    contributions = {
        "service_type": service.value,
        "same_day_turnaround": resolver.resolve_value("sameDayTurnaround", draft),
        "cleaning_products": resolver.resolve_value("cleaningProducts", draft),
        "equipment": equipment_hourly,
        "not_precleaned": precleaning.value,
    }
    hourly_rate = sum(contributions.values())
    cleaning_cost = total_hours * hourly_rate

    logger.debug(
        "airbnb_quote_calculated",
        extra={"extra": {"minutes": minutes, "multiplier": multiplier, "base_time": calculated_base}},
    )
    return CostCalculation(
        strategy=PricingStrategy.calculated,
        base_time=base_time,
        calculated_base_time=calculated_base,
        additional_time=additional_time,
        total_hours=total_hours,
        hourly_rate=hourly_rate,
        cleaning_cost=cleaning_cost,
        one_time_costs=equipment_one_time,
        subtotal=cleaning_cost + short_notice_charge + equipment_one_time,
        is_user_override=is_override,
        breakdown=QuoteBreakdown(
            minutes=minutes,
            hourly_rate_contributions=contributions,
            time_multiplier=multiplier,
            dry_time=dry_time,
            iron_time=iron_time,
        ),
    )


def _domestic_feature_minutes(draft: BookingDraft, resolver: FieldResolver) -> float:
    features = draft.property_features
    total = 0.0
    if features.get("separateKitchen") or features.get("livingRoom"):
        total += resolver.config_time("property features", "separateKitchenLivingRoom")
    for feature, selected in features.items():
        if not selected or feature in ("separateKitchen", "livingRoom"):
            continue
        total += resolver.config_time("property features", feature)
    if draft.number_of_floors > 0:
        total += resolver.config_time("property features", "numberOfFloors") * draft.number_of_floors
    return total


def _selected_supplies(draft: BookingDraft) -> set[str]:
    products = draft.cleaning_products
    if not products:
        return set()
    if isinstance(products, str):
        return {normalize_key(products)}
    return {normalize_key(item) for item in products}


def calculate_domestic(
    draft: BookingDraft,
    resolver: FieldResolver,
    *,
    short_notice_charge: float,
    override_epsilon: float,
    minimum_hours: float,
    default_hourly_rate: float,
) -> CostCalculation:
    has_oven = bool(draft.needs_oven_cleaning) and normalize_key(draft.oven_type) not in NO_OVEN_OPTIONS
    minutes = {
        "property_type": resolver.resolve_time("propertyType", draft),
        "bedrooms": resolver.resolve_time("bedrooms", draft),
        "bathrooms": resolver.resolve_time("bathrooms", draft),
        "additional_rooms": resolver.resolve_time("additionalRooms", draft),
        "property_features": _domestic_feature_minutes(draft, resolver),
        "oven": resolver.config_time("oven cleaning", draft.oven_type) if has_oven else 0.0,
    }
    oven_cost = resolver.config_value("oven cleaning", draft.oven_type) if has_oven else 0.0

    frequency = resolver.resolve("serviceFrequency", draft)
    multiplier = _multiplier(frequency)
    calculated_base = round_minutes_to_hours(sum(minutes.values()) * multiplier)
    if calculated_base < minimum_hours and draft.property_type and draft.bedrooms:
        calculated_base = minimum_hours

    base_time, is_override = apply_override(calculated_base, draft.estimated_hours, override_epsilon)

    supplies = _selected_supplies(draft)
    products_value = resolver.config_value("cleaning supplies", "products") if "products" in supplies else 0.0
    equipment_value = 0.0
    if "equipment" in supplies and draft.equipment_arrangement:
        equipment_value = resolver.config_value(EQUIPMENT_CATEGORY, draft.equipment_arrangement)
    equipment_hourly, equipment_one_time = classify_equipment(
        equipment_value, resolver.index.values(EQUIPMENT_CATEGORY)
    )
    contributions = {
        "service_frequency": frequency.value if frequency.matched else default_hourly_rate,
        "cleaning_products": products_value,
        "equipment": equipment_hourly,
    }
    hourly_rate = sum(contributions.values())
    cleaning_cost = base_time * hourly_rate
    one_time_costs = equipment_one_time + oven_cost

    return CostCalculation(
        strategy=PricingStrategy.calculated,
        base_time=base_time,
        calculated_base_time=calculated_base,
        additional_time=0.0,
        total_hours=base_time,
        hourly_rate=hourly_rate,
        cleaning_cost=cleaning_cost,
        one_time_costs=one_time_costs,
        subtotal=cleaning_cost + short_notice_charge + one_time_costs,
        is_user_override=is_override,
        breakdown=QuoteBreakdown(
            minutes=minutes,
            hourly_rate_contributions=contributions,
            time_multiplier=multiplier,
        ),
    )
