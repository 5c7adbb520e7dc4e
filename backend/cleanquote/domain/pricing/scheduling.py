import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from cleanquote.domain.pricing.models import ModifierDetail, SchedulingRule, SchedulingRuleType

logger = logging.getLogger(__name__)

_CLOCK_RE = re.compile(r"^\s*(\d{1,2})(?:[:.](\d{2})(?::(\d{2}))?)?\s*([ap])?\.?\s*m?\.?\s*$", re.IGNORECASE)
_RANGE_SEPARATOR_RE = re.compile(r"\s*(?:-|–|—|\bto\b)\s*", re.IGNORECASE)


def parse_clock(text: str | None) -> int | None:
    """Minutes since midnight for "9:00 AM", "9am", "14:30", "09:00" or "18:00:00"."""
    if not text:
        return None
    match = _CLOCK_RE.match(text)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    seconds = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").lower()
    if minutes > 59 or seconds > 59:
        return None
    if meridiem:
        if not 1 <= hours <= 12:
            return None
        if meridiem == "p" and hours != 12:
            hours += 12
        if meridiem == "a" and hours == 12:
            hours = 0
    elif hours > 23:
        return None
    return hours * 60 + minutes


def parse_slot_start(slot: str | None) -> int | None:
    """Start of a time slot ("9am - 10am", "9:00 AM") in minutes since midnight."""
    if not slot:
        return None
    start = _RANGE_SEPARATOR_RE.split(slot.strip(), maxsplit=1)[0]
    return parse_clock(start)


def js_weekday(day: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


@dataclass
class ScheduleAdjustment:
    additional_charge: float = 0.0
    discount: float = 0.0
    details: list[ModifierDetail] = field(default_factory=list)

    def apply(self, rule: SchedulingRule, cleaning_cost: float, fallback_label: str) -> None:
        if rule.modifier_type == "percentage":
            amount = cleaning_cost * rule.price_modifier / 100
        else:
            amount = rule.price_modifier
        if amount > 0:
            self.additional_charge += amount
            self.details.append(
                ModifierDetail(type="additional", label=rule.label or fallback_label, amount=amount)
            )
        elif amount < 0:
            self.discount += abs(amount)
            self.details.append(
                ModifierDetail(type="discount", label=rule.label or fallback_label, amount=abs(amount))
            )


def _active(rules: Iterable[SchedulingRule], rule_type: SchedulingRuleType) -> list[SchedulingRule]:
    selected = [rule for rule in rules if rule.is_active and rule.rule_type == rule_type]
    return sorted(selected, key=lambda rule: rule.display_order)


def day_rule_for(day: date, rules: Iterable[SchedulingRule]) -> SchedulingRule | None:
    weekday = js_weekday(day)
    for rule in _active(rules, SchedulingRuleType.day_pricing):
        if rule.day_of_week == weekday:
            return rule
    return None


def time_rules_for(slot_minutes: int, rules: Iterable[SchedulingRule]) -> list[SchedulingRule]:
    matching = []
    for rule in _active(rules, SchedulingRuleType.time_surcharge):
        start = parse_clock(rule.start_time)
        end = parse_clock(rule.end_time)
        if start is None or end is None:
            logger.warning(
                "scheduling_rule_invalid_window",
                extra={"extra": {"rule_id": rule.id, "start_time": rule.start_time, "end_time": rule.end_time}},
            )
            continue
        if start <= slot_minutes < end:
            matching.append(rule)
    return matching


def apply_modifiers(
    cleaning_cost: float,
    selected_date: date | None,
    time_slot: str | None,
    rules: Iterable[SchedulingRule],
) -> ScheduleAdjustment:
    """Day-of-week and time-of-day price modifiers on top of the cleaning cost.

    At most one day rule applies; every time rule whose [start, end) window
    contains the slot start stacks. Positive amounts are charges, negative
    amounts are discounts reported as positive magnitudes.
    """
    rules = list(rules)
    adjustment = ScheduleAdjustment()
    if selected_date is not None:
        day_rule = day_rule_for(selected_date, rules)
        if day_rule is not None:
            adjustment.apply(day_rule, cleaning_cost, "Day pricing")
    slot_minutes = parse_slot_start(time_slot)
    if slot_minutes is not None:
        for rule in time_rules_for(slot_minutes, rules):
            adjustment.apply(rule, cleaning_cost, "Time surcharge")
    return adjustment
