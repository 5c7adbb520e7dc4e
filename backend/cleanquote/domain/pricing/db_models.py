from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cleanquote.infra.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class FieldConfigRow(Base):
    __tablename__ = "field_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    category: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    option: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("category", "option", name="uq_field_configs_category_option"),)


class CategoryDefaultRow(Base):
    __tablename__ = "category_defaults"

    category: Mapped[str] = mapped_column(String(120), primary_key=True)
    default_option: Mapped[str | None] = mapped_column(String(255), nullable=True)


class SchedulingRuleRow(Base):
    __tablename__ = "scheduling_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    rule_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_time: Mapped[str | None] = mapped_column(String(20), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(20), nullable=True)
    modifier_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    price_modifier: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PricingFormulaRow(Base):
    __tablename__ = "pricing_formulas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(160), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_type: Mapped[str] = mapped_column(String(20), nullable=False, default="cost")
    elements: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
