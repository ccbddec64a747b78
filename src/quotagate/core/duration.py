"""
Duration codec.

Interval strings such as ``"30s"`` or ``"5m"`` are converted to an integer
number of milliseconds. Formatting goes the other way but only knows the
units up to days, so ``format_duration(parse_duration("1w"))`` is ``"7d"``.
"""

import re
import time

from quotagate.core.errors import InvalidDurationError, UnknownDurationUnitError

_DURATION_RE = re.compile(r"(\d+)([a-zA-Z])", re.ASCII)

SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR

UNIT_MILLIS = {
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
    "d": DAY,
    "w": 7 * DAY,
    "y": 365 * DAY,
}


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def parse_duration(text: str) -> int:
    """
    Parse an interval string into milliseconds.

    Args:
        text: Integer magnitude followed by one of ``s m h d w y``.

    Returns:
        The interval length in milliseconds.

    Raises:
        InvalidDurationError: The text does not have the ``<digits><letter>`` shape.
        UnknownDurationUnitError: The letter is not a supported unit.

    Example:
        >>> parse_duration("5m")
        300000
    """
    if not isinstance(text, str):
        raise InvalidDurationError(text)

    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise InvalidDurationError(text)

    value, unit = match.groups()
    try:
        multiplier = UNIT_MILLIS[unit]
    except KeyError:
        raise UnknownDurationUnitError(text, unit) from None

    return int(value) * multiplier


def format_duration(ms: int) -> str:
    """Render milliseconds using the largest unit (ms, s, m, h, d) that fits."""
    sign = "-" if ms < 0 else ""
    ms = abs(int(ms))

    if ms < SECOND:
        return f"{sign}{ms}ms"
    if ms < MINUTE:
        return f"{sign}{ms // SECOND}s"
    if ms < HOUR:
        return f"{sign}{ms // MINUTE}m"
    if ms < DAY:
        return f"{sign}{ms // HOUR}h"
    return f"{sign}{ms // DAY}d"
