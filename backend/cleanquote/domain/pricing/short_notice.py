import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Iterable, Sequence

from cleanquote.domain.pricing.field_lookup import FieldConfigIndex
from cleanquote.domain.pricing.scheduling import parse_slot_start

SHORT_NOTICE_CATEGORY = "time flexibility"
_WITHIN_HOURS_RE = re.compile(r"within\D*(\d+)\D*hour", re.IGNORECASE)


@dataclass(frozen=True)
class ShortNoticeTier:
    max_hours: float
    charge: float
    min_hours: float = float("-inf")
    inclusive: bool = True

    def covers(self, hours: float) -> bool:
        if hours < self.min_hours:
            return False
        return hours <= self.max_hours if self.inclusive else hours < self.max_hours


def tiers_from_configs(index: FieldConfigIndex) -> list[ShortNoticeTier]:
    """Tiers configured under the time flexibility category.

    Configs carrying ``max_value`` describe an explicit hours window; otherwise
    options named like ``within-12-hours`` are used.
    """
    candidates = index.candidates(SHORT_NOTICE_CATEGORY)
    windowed = [
        ShortNoticeTier(
            max_hours=float(config.max_value),
            charge=float(config.value or 0),
            min_hours=float(config.min_value or 0),
            inclusive=False,
        )
        for config in candidates
        if config.max_value is not None
    ]
    if windowed:
        return sorted(windowed, key=lambda tier: tier.max_hours)
    named = []
    for config in candidates:
        match = _WITHIN_HOURS_RE.search(config.option)
        if match:
            named.append(ShortNoticeTier(max_hours=float(match.group(1)), charge=float(config.value or 0)))
    return sorted(named, key=lambda tier: tier.max_hours)


def appointment_start(selected_date: date, slot: str | None, tz: tzinfo) -> datetime | None:
    minutes = parse_slot_start(slot)
    if minutes is None:
        return None
    return datetime.combine(selected_date, time(hour=minutes // 60, minute=minutes % 60), tzinfo=tz)


def hours_until(appointment: datetime, now: datetime) -> float:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    # datetimes sharing a tzinfo subtract as wall-clock time
    return (appointment.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds() / 3600


def charge_for_hours(hours: float, tiers: Sequence[ShortNoticeTier]) -> float:
    for tier in sorted(tiers, key=lambda tier: tier.max_hours):
        if tier.covers(hours):
            return tier.charge
    return 0.0


def short_notice_charge(
    selected_date: date | None,
    slot: str | None,
    *,
    now: datetime,
    tz: tzinfo,
    configured: Iterable[ShortNoticeTier],
    fallback: Iterable[ShortNoticeTier],
) -> float:
    if selected_date is None:
        return 0.0
    appointment = appointment_start(selected_date, slot, tz)
    if appointment is None:
        return 0.0
    tiers = list(configured) or list(fallback)
    return charge_for_hours(hours_until(appointment, now), tiers)
