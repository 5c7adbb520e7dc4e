import logging
import math
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from cleanquote.domain.formulas.tokenizer import is_identifier
from cleanquote.domain.pricing.defaults import CategoryDefaultResolver
from cleanquote.domain.pricing.field_lookup import FieldConfigIndex, normalize_key
from cleanquote.domain.pricing.models import BookingDraft, FieldConfig
from cleanquote.infra.metrics import metrics

logger = logging.getLogger(__name__)

FieldKind = Literal["selection", "boolean", "flag", "quantity", "feature_map", "number"]


@dataclass(frozen=True)
class FieldValues:
    value: float = 0.0
    time: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
    matched: bool = False

    @classmethod
    def scalar(cls, number: float) -> "FieldValues":
        return cls(value=number, time=number, min_value=number, max_value=number, matched=True)


ZERO = FieldValues()


@dataclass(frozen=True)
class FieldSpec:
    attribute: str
    category: str | None
    kind: FieldKind = "selection"
    fixed_option: str | None = None
    option_labels: Mapping[str, str] | None = None


ADDITIONAL_ROOM_LABELS = {
    "toilets": "Extra Toilet",
    "studyrooms": "Study Room",
    "utilityrooms": "Utility Room",
    "otherrooms": "Other Room",
}

FIELD_SPECS: dict[str, FieldSpec] = {
    "propertytype": FieldSpec("property_type", "property type"),
    "bedrooms": FieldSpec("bedrooms", "bedrooms"),
    "bathrooms": FieldSpec("bathrooms", "bathrooms"),
    "toilets": FieldSpec("toilets", "toilets"),
    "servicetype": FieldSpec("service_type", "service type"),
    "servicefrequency": FieldSpec("service_frequency", "domestic service frequency"),
    "alreadycleaned": FieldSpec("already_cleaned", "already cleaned", "boolean"),
    "ovencleaning": FieldSpec("needs_oven_cleaning", "oven cleaning", "boolean"),
    "oventype": FieldSpec("oven_type", "oven type"),
    "cleaningproducts": FieldSpec("cleaning_products", "cleaning products"),
    "cleaningsupplies": FieldSpec("cleaning_products", "cleaning products"),
    "equipmentarrangement": FieldSpec("equipment_arrangement", "equipment arrangement"),
    "linenshandling": FieldSpec("linens_handling", "linens handling"),
    "needsironing": FieldSpec("needs_ironing", "ironing", "boolean"),
    "ironinghours": FieldSpec("ironing_hours", None, "number"),
    "numberoffloors": FieldSpec("number_of_floors", None, "number"),
    "sameday": FieldSpec("same_day_turnaround", "time flexibility", "flag", "same-day-turnaround"),
    "samedayturnaround": FieldSpec(
        "same_day_turnaround", "time flexibility", "flag", "same-day-turnaround"
    ),
    "timeflexibility": FieldSpec("flexibility", "time flexibility"),
    "additionalrooms": FieldSpec(
        "additional_rooms", "additional rooms", "quantity", option_labels=ADDITIONAL_ROOM_LABELS
    ),
    "bedsizes": FieldSpec("bed_sizes", "bed sizes", "quantity"),
    "propertyfeatures": FieldSpec("property_features", "property features", "feature_map"),
}

QUANTITY_CATEGORIES = ("additional rooms", "bed sizes", "property features")

def _is_empty(raw: Any) -> bool:
    if raw is None or raw is False:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    if isinstance(raw, (list, tuple, set, dict)):
        return len(raw) == 0
    return False


def _format_option(raw: Any) -> str:
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()


def _as_number(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return float(bool(raw))
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


class FieldResolver:
    """Maps booking draft selections to numeric ``value`` / ``time`` attributes.

    Empty selections fall back to the category default before resolving to zero.
    A config miss is not an error: the field simply contributes nothing.
    """

    def __init__(self, index: FieldConfigIndex, defaults: CategoryDefaultResolver) -> None:
        self.index = index
        self.defaults = defaults

    def lookup(self, category: str, option: Any) -> FieldConfig | None:
        config = self.index.find(category, option)
        if config is None:
            logger.debug(
                "field_config_miss",
                extra={"extra": {"category": category, "option": None if option is None else str(option)}},
            )
            metrics.record_field_config_miss(normalize_key(category))
        return config

    def config_value(self, category: str, option: Any) -> float:
        config = self.lookup(category, option)
        return float(config.value or 0) if config else 0.0

    def config_time(self, category: str, option: Any) -> float:
        config = self.lookup(category, option)
        return float(config.time or 0) if config else 0.0

    def known_fields(self) -> set[str]:
        """Field names a formula can reference; options that do not form an identifier are left out."""
        known = set(FIELD_SPECS) | set(ADDITIONAL_ROOM_LABELS)
        for category in QUANTITY_CATEGORIES:
            known.update(normalize_key(config.option) for config in self.index.candidates(category))
        return {name for name in known if is_identifier(name)}

    def can_resolve(self, field_name: str, draft: BookingDraft) -> bool:
        name = normalize_key(field_name)
        if name in FIELD_SPECS or name in ADDITIONAL_ROOM_LABELS:
            return True
        for mapping in (draft.additional_rooms, draft.bed_sizes, draft.property_features):
            if name in {normalize_key(key) for key in mapping}:
                return True
        return name in self.known_fields()

    def resolve_value(self, field_name: str, draft: BookingDraft) -> float:
        return self.resolve(field_name, draft).value

    def resolve_time(self, field_name: str, draft: BookingDraft) -> float:
        return self.resolve(field_name, draft).time

    def resolve(self, field_name: str, draft: BookingDraft) -> FieldValues:
        name = normalize_key(field_name)
        spec = FIELD_SPECS.get(name)
        if spec is None:
            return self._resolve_unmapped(name, draft)
        raw = getattr(draft, spec.attribute)
        if spec.kind == "number":
            return FieldValues(value=_as_number(raw), matched=raw is not None)
        if spec.kind == "quantity":
            return self._sum_quantities(spec.category, raw or {}, spec.option_labels)
        if spec.kind == "feature_map":
            selected = {key: 1 for key, enabled in (raw or {}).items() if enabled}
            return self._sum_quantities(spec.category, selected, None)
        if spec.kind == "flag":
            return self._from_config(self.lookup(spec.category, spec.fixed_option)) if raw else ZERO
        if spec.kind == "boolean" and raw is not None:
            return self._from_config(self.lookup(spec.category, "Yes" if raw else "No"))
        return self._resolve_selection(spec.category, raw)

    def selected_option(self, field_name: str, draft: BookingDraft) -> str | None:
        """The option a selection is priced as, after falling back to the category default."""
        spec = FIELD_SPECS[normalize_key(field_name)]
        raw = getattr(draft, spec.attribute)
        if _is_empty(raw):
            return self.defaults.default_for(spec.category)
        return _format_option(raw)

    def _resolve_selection(self, category: str, raw: Any) -> FieldValues:
        if _is_empty(raw):
            default_option = self.defaults.default_for(category)
            if default_option is None:
                return ZERO
            raw = default_option
        if isinstance(raw, (list, tuple, set)):
            return self._sum_quantities(category, {str(item): 1 for item in raw}, None)
        return self._from_config(self.lookup(category, _format_option(raw)))

    def _sum_quantities(
        self,
        category: str,
        quantities: Mapping[str, Any],
        labels: Mapping[str, str] | None,
    ) -> FieldValues:
        value = 0.0
        time = 0.0
        matched = False
        for key, count in quantities.items():
            qty = _as_number(count)
            if not qty:
                continue
            label = (labels or {}).get(normalize_key(key))
            config = self.index.find(category, label) if label else None
            if config is None:
                config = self.lookup(category, key)
            if config is None:
                continue
            matched = True
            value += float(config.value or 0) * qty
            time += float(config.time or 0) * qty
        return FieldValues(value=value, time=time, matched=matched)

    def _resolve_unmapped(self, name: str, draft: BookingDraft) -> FieldValues:
        for attribute, category in (
            ("additional_rooms", "additional rooms"),
            ("bed_sizes", "bed sizes"),
        ):
            quantities = {normalize_key(key): count for key, count in getattr(draft, attribute).items()}
            if name in quantities:
                count = _as_number(quantities[name])
                label = ADDITIONAL_ROOM_LABELS.get(name, name) if attribute == "additional_rooms" else name
                unit_time = self.config_time(category, label) if count else 0.0
                return FieldValues(value=count, time=unit_time * count, matched=True)
        features = {normalize_key(key): enabled for key, enabled in draft.property_features.items()}
        if name in features:
            enabled = bool(features[name])
            unit_time = self.config_time("property features", name) if enabled else 0.0
            return FieldValues(value=float(enabled), time=unit_time, matched=True)
        logger.debug("field_unmapped", extra={"extra": {"field": name}})
        return ZERO

    @staticmethod
    def _from_config(config: FieldConfig | None) -> FieldValues:
        if config is None:
            return ZERO
        return FieldValues(
            value=float(config.value or 0),
            time=float(config.time or 0),
            min_value=float(config.min_value or 0),
            max_value=float(config.max_value or 0),
            matched=True,
        )
