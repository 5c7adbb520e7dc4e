from __future__ import annotations

import logging
from typing import Iterable, Mapping

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanquote.domain.errors import FormulaSyntaxError
from cleanquote.domain.formulas.validation import validate_formula
from cleanquote.domain.pricing.config_loader import ConfigSnapshot, build_snapshot
from cleanquote.domain.pricing.db_models import (
    CategoryDefaultRow,
    FieldConfigRow,
    PricingFormulaRow,
    SchedulingRuleRow,
)
from cleanquote.domain.pricing.models import (
    CategoryDefault,
    FieldConfig,
    Formula,
    SchedulingRule,
    SchedulingRuleType,
)

logger = logging.getLogger(__name__)

DB_CONFIG_ID = "db"


def _field_config(row: FieldConfigRow) -> FieldConfig:
    return FieldConfig(
        id=row.id,
        category=row.category,
        option=row.option,
        value=row.value,
        time=row.time,
        min_value=row.min_value,
        max_value=row.max_value,
        is_active=row.is_active,
        label=row.label,
        display_order=row.display_order,
    )


def _scheduling_rule(row: SchedulingRuleRow) -> SchedulingRule:
    return SchedulingRule(
        id=row.id,
        rule_type=row.rule_type,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        modifier_type=row.modifier_type,
        price_modifier=row.price_modifier,
        label=row.label,
        is_active=row.is_active,
        display_order=row.display_order,
    )


def _formula(row: PricingFormulaRow) -> Formula:
    return Formula.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "result_type": row.result_type,
            "elements": row.elements or [],
            "is_active": row.is_active,
        }
    )


async def list_field_configs(session: AsyncSession, active_only: bool = True) -> list[FieldConfig]:
    stmt: Select[FieldConfigRow] = select(FieldConfigRow)
    if active_only:
        stmt = stmt.where(FieldConfigRow.is_active.is_(True))
    stmt = stmt.order_by(FieldConfigRow.category, FieldConfigRow.display_order, FieldConfigRow.option)
    result = await session.execute(stmt)
    return [_field_config(row) for row in result.scalars().all()]


async def list_category_defaults(session: AsyncSession) -> list[CategoryDefault]:
    result = await session.execute(select(CategoryDefaultRow).order_by(CategoryDefaultRow.category))
    return [
        CategoryDefault(category=row.category, default_option=row.default_option)
        for row in result.scalars().all()
    ]


async def list_scheduling_rules(
    session: AsyncSession,
    rule_type: SchedulingRuleType | None = None,
    active_only: bool = True,
) -> list[SchedulingRule]:
    stmt: Select[SchedulingRuleRow] = select(SchedulingRuleRow)
    if rule_type is not None:
        stmt = stmt.where(SchedulingRuleRow.rule_type == rule_type.value)
    if active_only:
        stmt = stmt.where(SchedulingRuleRow.is_active.is_(True))
    stmt = stmt.order_by(SchedulingRuleRow.display_order, SchedulingRuleRow.id)
    result = await session.execute(stmt)
    return [_scheduling_rule(row) for row in result.scalars().all()]


async def list_formulas(session: AsyncSession, active_only: bool = False) -> list[Formula]:
    stmt: Select[PricingFormulaRow] = select(PricingFormulaRow)
    if active_only:
        stmt = stmt.where(PricingFormulaRow.is_active.is_(True))
    stmt = stmt.order_by(PricingFormulaRow.name, PricingFormulaRow.created_at)
    result = await session.execute(stmt)
    return [_formula(row) for row in result.scalars().all()]


async def create_formula(
    session: AsyncSession, formula: Formula, known_fields: Iterable[str] | None = None
) -> Formula:
    validation = validate_formula(formula.elements, known_fields)
    if not validation.ok:
        raise FormulaSyntaxError(detail=validation.error or "Invalid formula", position=validation.position)
    row = PricingFormulaRow(
        name=formula.name,
        description=formula.description,
        result_type=formula.result_type.value,
        elements=[element.model_dump(mode="json") for element in formula.elements],
        is_active=formula.is_active,
    )
    session.add(row)
    await session.flush()
    await session.refresh(row)
    logger.info("formula_created", extra={"extra": {"formula_id": row.id, "formula": row.name}})
    return _formula(row)


async def deactivate_formula(session: AsyncSession, formula_id: str) -> Formula:
    row = await session.get(PricingFormulaRow, formula_id)
    if row is None:
        raise ValueError("Formula not found")
    row.is_active = False
    await session.flush()
    await session.refresh(row)
    logger.info("formula_deactivated", extra={"extra": {"formula_id": row.id, "formula": row.name}})
    return _formula(row)


async def load_snapshot_from_db(
    session: AsyncSession, strategies: Mapping | None = None
) -> ConfigSnapshot:
    field_configs = await list_field_configs(session, active_only=False)
    category_defaults = await list_category_defaults(session)
    scheduling_rules = await list_scheduling_rules(session, active_only=False)
    formulas = await list_formulas(session, active_only=True)
    snapshot = build_snapshot(
        config_id=DB_CONFIG_ID,
        config_version="live",
        field_configs=field_configs,
        category_defaults=category_defaults,
        scheduling_rules=scheduling_rules,
        formulas=formulas,
        strategies=strategies,
    )
    logger.info(
        "pricing_snapshot_loaded",
        extra={
            "extra": {
                "source": "db",
                "field_configs": len(field_configs),
                "formulas": len(snapshot.formulas),
                "config_hash": snapshot.config_hash,
            }
        },
    )
    return snapshot
