"""Duration rounding policy for billed time."""
from datetime import datetime

from hourbook.exceptions import InvalidInputError


def round_duration(raw_minutes: int, interval: int) -> int:
    """
    Round a duration up to the next multiple of ``interval`` minutes.

    Billing never under-charges for a partial interval, so this is a
    ceiling. Exact multiples and zero are left unchanged.

    Args:
        raw_minutes: Elapsed whole minutes (non-negative)
        interval: Rounding interval in minutes; 0 or less disables rounding

    Returns:
        Billed minutes

    Raises:
        InvalidInputError: If raw_minutes is negative

    Examples:
        >>> round_duration(47, 15)
        60
        >>> round_duration(15, 15)
        15
        >>> round_duration(7, 0)
        7
    """
    if raw_minutes < 0:
        raise InvalidInputError(f"Duration cannot be negative: {raw_minutes}")

    if interval <= 0:
        return raw_minutes

    return -(-raw_minutes // interval) * interval


def elapsed_minutes(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two timestamps, never negative."""
    seconds = (end_time - start_time).total_seconds()
    return max(0, int(seconds // 60))
