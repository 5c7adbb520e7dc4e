import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from cleanquote.domain.pricing.calculators import CostCalculation, calculate_airbnb, calculate_domestic
from cleanquote.domain.pricing.config_loader import ConfigSnapshot
from cleanquote.domain.pricing.formula_pipeline import FormulaPipeline
from cleanquote.domain.pricing.models import (
    BookingDraft,
    BookingKind,
    ModifierDetail,
    PricingStrategy,
    QuoteBreakdown,
    QuoteResult,
)
from cleanquote.domain.pricing.rounding import round_money
from cleanquote.domain.pricing.scheduling import ScheduleAdjustment, apply_modifiers
from cleanquote.domain.pricing.short_notice import ShortNoticeTier, short_notice_charge, tiers_from_configs
from cleanquote.infra.metrics import metrics
from cleanquote.settings import Settings, settings

logger = logging.getLogger(__name__)


def _settings_tiers(app_settings: Settings) -> list[ShortNoticeTier]:
    return [
        ShortNoticeTier(max_hours=tier.max_hours, charge=tier.charge) for tier in app_settings.short_notice_tiers
    ]


def resolve_short_notice_charge(
    draft: BookingDraft, snapshot: ConfigSnapshot, now: datetime | None, app_settings: Settings
) -> float:
    """Use the charge already shown upstream, otherwise derive it from the schedule."""
    if draft.short_notice_charge is not None:
        return float(draft.short_notice_charge)
    tz = ZoneInfo(app_settings.quote_timezone)
    return short_notice_charge(
        draft.selected_date,
        draft.selected_time,
        now=now or datetime.now(tz),
        tz=tz,
        configured=tiers_from_configs(snapshot.index),
        fallback=_settings_tiers(app_settings),
    )


def _calculate(
    draft: BookingDraft, snapshot: ConfigSnapshot, charge: float, app_settings: Settings
) -> CostCalculation:
    strategy = snapshot.strategy_for(draft.booking_kind)
    if strategy == PricingStrategy.formula:
        pipeline = FormulaPipeline(
            snapshot.formulas_by_key,
            snapshot.resolver,
            minimum_hours=app_settings.minimum_booking_hours,
            override_epsilon=app_settings.override_epsilon_hours,
        )
        return pipeline.run(draft, short_notice_charge=charge)
    if draft.booking_kind == BookingKind.domestic:
        return calculate_domestic(
            draft,
            snapshot.resolver,
            short_notice_charge=charge,
            override_epsilon=app_settings.override_epsilon_hours,
            minimum_hours=app_settings.minimum_booking_hours,
            default_hourly_rate=app_settings.default_domestic_hourly_rate,
        )
    return calculate_airbnb(
        draft,
        snapshot.resolver,
        short_notice_charge=charge,
        override_epsilon=app_settings.override_epsilon_hours,
    )


def _round_breakdown(breakdown: QuoteBreakdown) -> QuoteBreakdown:
    return QuoteBreakdown(
        minutes={key: round_money(value) for key, value in breakdown.minutes.items()},
        hourly_rate_contributions={
            key: round_money(value) for key, value in breakdown.hourly_rate_contributions.items()
        },
        time_multiplier=round_money(breakdown.time_multiplier),
        dry_time=round_money(breakdown.dry_time),
        iron_time=round_money(breakdown.iron_time),
    )


def project_quote(
    snapshot: ConfigSnapshot,
    calculation: CostCalculation,
    charge: float,
    adjustment: ScheduleAdjustment,
) -> QuoteResult:
    """Assemble the caller-facing numbers; money and hours are rounded only here."""
    total_cost = max(0.0, calculation.subtotal + adjustment.additional_charge - adjustment.discount)
    return QuoteResult(
        config_id=snapshot.config_id,
        config_version=snapshot.config_version,
        config_hash=snapshot.config_hash,
        strategy=calculation.strategy,
        base_time=round_money(calculation.base_time),
        calculated_base_time=round_money(calculation.calculated_base_time),
        additional_time=round_money(calculation.additional_time),
        total_hours=round_money(calculation.total_hours),
        hourly_rate=round_money(calculation.hourly_rate),
        cleaning_cost=round_money(calculation.cleaning_cost),
        short_notice_charge=round_money(charge),
        one_time_costs=round_money(calculation.one_time_costs),
        additional_charge=round_money(adjustment.additional_charge),
        discount=round_money(adjustment.discount),
        total_cost=round_money(total_cost),
        is_user_override=calculation.is_user_override,
        modifier_details=[
            ModifierDetail(type=detail.type, label=detail.label, amount=round_money(detail.amount))
            for detail in adjustment.details
        ],
        formula_errors=list(calculation.formula_errors),
        breakdown=_round_breakdown(calculation.breakdown),
    )


def compute_quote(
    draft: BookingDraft,
    snapshot: ConfigSnapshot,
    *,
    now: datetime | None = None,
    app_settings: Settings | None = None,
) -> QuoteResult:
    """Full quote for a booking draft against one configuration snapshot.

    Pure apart from logging and metrics: the same draft, snapshot, ``now`` and
    settings always give the same result. ``app_settings`` defaults to the
    process-wide settings.
    """
    app_settings = app_settings or settings
    charge = resolve_short_notice_charge(draft, snapshot, now, app_settings)
    calculation = _calculate(draft, snapshot, charge, app_settings)
    adjustment = apply_modifiers(
        calculation.cleaning_cost,
        draft.selected_date,
        draft.selected_time,
        snapshot.active_rules,
    )
    result = project_quote(snapshot, calculation, charge, adjustment)
    metrics.record_quote(draft.booking_kind.value, result.strategy.value)
    logger.debug(
        "quote_computed",
        extra={
            "extra": {
                "booking_kind": draft.booking_kind.value,
                "strategy": result.strategy.value,
                "config_hash": snapshot.config_hash,
                "total_hours": result.total_hours,
                "total_cost": result.total_cost,
                "is_user_override": result.is_user_override,
                "formula_errors": len(result.formula_errors),
            }
        },
    )
    return result
