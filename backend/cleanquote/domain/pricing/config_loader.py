import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping

from cleanquote.domain.formulas.evaluator import compile_elements
from cleanquote.domain.formulas.validation import validate_formula
from cleanquote.domain.pricing.defaults import CategoryDefaultResolver
from cleanquote.domain.pricing.field_lookup import FieldConfigIndex
from cleanquote.domain.pricing.field_resolver import FieldResolver
from cleanquote.domain.pricing.formula_pipeline import CompiledFormula
from cleanquote.domain.pricing.models import (
    BookingKind,
    CategoryDefault,
    FieldConfig,
    Formula,
    PricingStrategy,
    SchedulingRule,
)

logger = logging.getLogger(__name__)

DEFAULT_STRATEGIES = {kind: PricingStrategy.calculated for kind in BookingKind}


@dataclass(frozen=True, eq=False)
class ConfigSnapshot:
    """Immutable pricing configuration a quote is computed against."""

    config_id: str
    config_version: str
    config_hash: str
    field_configs: tuple[FieldConfig, ...] = ()
    category_defaults: tuple[CategoryDefault, ...] = ()
    scheduling_rules: tuple[SchedulingRule, ...] = ()
    formulas: tuple[CompiledFormula, ...] = ()
    strategies: Mapping[BookingKind, PricingStrategy] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_STRATEGIES))
    )

    @cached_property
    def index(self) -> FieldConfigIndex:
        return FieldConfigIndex(self.field_configs)

    @cached_property
    def defaults(self) -> CategoryDefaultResolver:
        return CategoryDefaultResolver(self.category_defaults)

    @cached_property
    def resolver(self) -> FieldResolver:
        return FieldResolver(self.index, self.defaults)

    @cached_property
    def active_rules(self) -> tuple[SchedulingRule, ...]:
        return tuple(rule for rule in self.scheduling_rules if rule.is_active)

    @cached_property
    def formulas_by_key(self) -> Mapping[str, CompiledFormula]:
        by_key: dict[str, CompiledFormula] = {}
        for compiled in self.formulas:
            by_key.setdefault(compiled.key, compiled)
        return MappingProxyType(by_key)

    def strategy_for(self, kind: BookingKind) -> PricingStrategy:
        return self.strategies.get(kind, PricingStrategy.calculated)


def _canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _hash_payload(data: Dict[str, Any]) -> str:
    digest = hashlib.sha256(_canonical_json(data).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def _resolve_pricing_path(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    cwd_candidate = (Path.cwd() / candidate).resolve()
    if cwd_candidate.exists():
        return cwd_candidate
    module_candidate = Path(__file__).resolve().parents[3] / candidate
    if module_candidate.exists():
        return module_candidate
    raise FileNotFoundError(f"Pricing config not found at {path}")


def compile_formulas(formulas: Iterable[Formula]) -> tuple[CompiledFormula, ...]:
    """Validate and compile active formulas; invalid ones never reach a pipeline."""
    compiled = []
    for formula in formulas:
        if not formula.is_active:
            continue
        validation = validate_formula(formula.elements)
        if not validation.ok:
            logger.error(
                "formula_rejected",
                extra={"extra": {"formula": formula.name, "formula_id": formula.id, "error": validation.error}},
            )
            continue
        compiled.append(CompiledFormula(formula=formula, node=compile_elements(formula.elements)))
    return tuple(compiled)


def _parse_strategies(raw: Mapping[str, Any] | None) -> dict[BookingKind, PricingStrategy]:
    strategies = dict(DEFAULT_STRATEGIES)
    for kind, strategy in (raw or {}).items():
        strategies[BookingKind(kind)] = PricingStrategy(strategy)
    return strategies


def build_snapshot(
    *,
    config_id: str,
    config_version: str,
    field_configs: Iterable[FieldConfig] = (),
    category_defaults: Iterable[CategoryDefault] = (),
    scheduling_rules: Iterable[SchedulingRule] = (),
    formulas: Iterable[Formula] = (),
    strategies: Mapping[Any, Any] | None = None,
) -> ConfigSnapshot:
    field_configs = tuple(field_configs)
    category_defaults = tuple(category_defaults)
    scheduling_rules = tuple(scheduling_rules)
    formulas = tuple(formulas)
    strategy_map = _parse_strategies({getattr(k, "value", k): v for k, v in (strategies or {}).items()})
    payload = {
        "pricing_config_id": config_id,
        "pricing_config_version": config_version,
        "strategies": {kind.value: strategy.value for kind, strategy in strategy_map.items()},
        "field_configs": [config.model_dump(mode="json") for config in field_configs],
        "category_defaults": [row.model_dump(mode="json") for row in category_defaults],
        "scheduling_rules": [rule.model_dump(mode="json") for rule in scheduling_rules],
        "formulas": [formula.model_dump(mode="json") for formula in formulas],
    }
    return ConfigSnapshot(
        config_id=config_id,
        config_version=config_version,
        config_hash=_hash_payload(payload),
        field_configs=field_configs,
        category_defaults=category_defaults,
        scheduling_rules=scheduling_rules,
        formulas=compile_formulas(formulas),
        strategies=MappingProxyType(strategy_map),
    )


def snapshot_from_dict(data: Dict[str, Any]) -> ConfigSnapshot:
    return build_snapshot(
        config_id=data["pricing_config_id"],
        config_version=str(data["pricing_config_version"]),
        field_configs=[FieldConfig.model_validate(row) for row in data.get("field_configs", [])],
        category_defaults=[CategoryDefault.model_validate(row) for row in data.get("category_defaults", [])],
        scheduling_rules=[SchedulingRule.model_validate(row) for row in data.get("scheduling_rules", [])],
        formulas=[Formula.model_validate(row) for row in data.get("formulas", [])],
        strategies=data.get("strategies"),
    )


def load_config_snapshot(path: str) -> ConfigSnapshot:
    resolved_path = _resolve_pricing_path(path)
    data = json.loads(resolved_path.read_text(encoding="utf-8"))
    snapshot = snapshot_from_dict(data)
    logger.info(
        "pricing_snapshot_loaded",
        extra={
            "extra": {
                "path": str(resolved_path),
                "config_id": snapshot.config_id,
                "config_version": snapshot.config_version,
                "config_hash": snapshot.config_hash,
            }
        },
    )
    return snapshot


class SnapshotHolder:
    """Shares the live snapshot; updates always swap the whole snapshot."""

    def __init__(self, snapshot: ConfigSnapshot) -> None:
        self._lock = threading.Lock()
        self._snapshot = snapshot

    @property
    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return self._snapshot

    def replace(self, snapshot: ConfigSnapshot) -> ConfigSnapshot:
        with self._lock:
            previous, self._snapshot = self._snapshot, snapshot
        logger.info(
            "pricing_snapshot_replaced",
            extra={
                "extra": {
                    "previous_hash": previous.config_hash,
                    "config_hash": snapshot.config_hash,
                    "config_version": snapshot.config_version,
                }
            },
        )
        return previous


class ConfigDraft:
    """Pending field config edits keyed by config id, applied only on commit."""

    def __init__(self, base: ConfigSnapshot) -> None:
        self.base = base
        self._pending: dict[str, FieldConfig] = {}

    @property
    def pending(self) -> Mapping[str, FieldConfig]:
        return MappingProxyType(self._pending)

    def stage(self, entity_id: str, config: FieldConfig) -> None:
        self._pending[entity_id] = config.model_copy(update={"id": entity_id})

    def stage_removal(self, entity_id: str) -> None:
        current = self._pending.get(entity_id) or self._base_config(entity_id)
        if current is None:
            raise KeyError(entity_id)
        self._pending[entity_id] = current.model_copy(update={"is_active": False})

    def discard(self) -> None:
        self._pending.clear()

    def commit(self, holder: SnapshotHolder | None = None) -> ConfigSnapshot:
        pending = dict(self._pending)
        merged = [pending.pop(config.id, config) if config.id else config for config in self.base.field_configs]
        merged.extend(pending.values())
        snapshot = build_snapshot(
            config_id=self.base.config_id,
            config_version=self.base.config_version,
            field_configs=merged,
            category_defaults=self.base.category_defaults,
            scheduling_rules=self.base.scheduling_rules,
            formulas=[compiled.formula for compiled in self.base.formulas],
            strategies=self.base.strategies,
        )
        logger.info(
            "pricing_draft_committed",
            extra={"extra": {"changes": len(self._pending), "config_hash": snapshot.config_hash}},
        )
        self._pending.clear()
        self.base = snapshot
        if holder is not None:
            holder.replace(snapshot)
        return snapshot

    def _base_config(self, entity_id: str) -> FieldConfig | None:
        for config in self.base.field_configs:
            if config.id == entity_id:
                return config
        return None
