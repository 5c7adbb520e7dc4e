import math
from decimal import ROUND_HALF_UP, Decimal


def round_minutes_to_hours(minutes: float) -> float:
    """Convert minutes to hours in half-hour steps.

    A remainder under 15 minutes rounds down, 15-44 minutes adds half an hour and
    45 minutes or more rounds up to the next whole hour.
    """
    if not math.isfinite(minutes) or minutes <= 0:
        return 0.0
    hours = math.floor(minutes / 60)
    remainder = minutes - hours * 60
    if remainder < 15:
        return float(hours)
    if remainder <= 44:
        return hours + 0.5
    return float(hours + 1)


def round_money(amount: float) -> float:
    if not math.isfinite(amount):
        return 0.0
    return float(Decimal(repr(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def half_hour_blocks(minutes: float) -> float:
    """ceil(minutes / 30) / 2, used for linen drying and ironing."""
    if minutes <= 0:
        return 0.0
    return math.ceil(minutes / 30) / 2
