"""Indexed lookup of field configs by (category, option).

Options are matched in three tiers, each available on its own:

1. ``match_exact``: normalized option equality.
2. ``match_numeric``: the digits of the query equal the digits of a config option
   ("3" resolves to "3 Bedrooms"), falling back to options that start or end with
   that digit run.
3. ``match_substring``: the normalized query is contained in the normalized option.

``FieldConfigIndex.find`` runs the tiers in order and returns the first hit.
"""

import re
from typing import Iterable, Sequence

from cleanquote.domain.pricing.models import FieldConfig

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_NON_DIGIT_RE = re.compile(r"[^0-9]")


def normalize_key(raw: object) -> str:
    if raw is None:
        return ""
    return _NON_ALNUM_RE.sub("", str(raw).lower())


def digits_of(raw: str) -> str:
    return _NON_DIGIT_RE.sub("", raw)


def match_exact(candidates: Sequence[FieldConfig], option: str) -> FieldConfig | None:
    normalized = normalize_key(option)
    if not normalized:
        return None
    for config in candidates:
        if normalize_key(config.option) == normalized:
            return config
    return None


def match_numeric(candidates: Sequence[FieldConfig], option: str) -> FieldConfig | None:
    digits = digits_of(normalize_key(option))
    if not digits:
        return None
    for config in candidates:
        if digits_of(normalize_key(config.option)) == digits:
            return config
    for config in candidates:
        normalized = normalize_key(config.option)
        if normalized.startswith(digits) or normalized.endswith(digits):
            return config
    return None


def match_substring(candidates: Sequence[FieldConfig], option: str) -> FieldConfig | None:
    normalized = normalize_key(option)
    if not normalized:
        return None
    for config in candidates:
        if normalized in normalize_key(config.option):
            return config
    return None


_MATCHERS = (match_exact, match_numeric, match_substring)


class FieldConfigIndex:
    def __init__(self, configs: Iterable[FieldConfig]) -> None:
        by_category: dict[str, list[FieldConfig]] = {}
        ordered = sorted(
            (config for config in configs if config.is_active),
            key=lambda config: config.display_order,
        )
        for config in ordered:
            by_category.setdefault(normalize_key(config.category), []).append(config)
        self._by_category = {key: tuple(value) for key, value in by_category.items()}

    def candidates(self, category: str) -> tuple[FieldConfig, ...]:
        return self._by_category.get(normalize_key(category), ())

    def find(self, category: str, option: object) -> FieldConfig | None:
        if option is None:
            return None
        candidates = self.candidates(category)
        if not candidates:
            return None
        text = str(option)
        for matcher in _MATCHERS:
            config = matcher(candidates, text)
            if config is not None:
                return config
        return None

    def values(self, category: str) -> list[float]:
        return sorted(float(config.value or 0) for config in self.candidates(category))
