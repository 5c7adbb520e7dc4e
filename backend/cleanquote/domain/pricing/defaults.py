from typing import Iterable

from cleanquote.domain.pricing.field_lookup import normalize_key
from cleanquote.domain.pricing.models import CategoryDefault


class CategoryDefaultResolver:
    """Fallback option per category, used when a draft leaves the category empty."""

    def __init__(self, defaults: Iterable[CategoryDefault]) -> None:
        self._defaults: dict[str, str] = {}
        for row in defaults:
            if row.default_option:
                self._defaults[normalize_key(row.category)] = row.default_option

    def default_for(self, category: str) -> str | None:
        return self._defaults.get(normalize_key(category))
