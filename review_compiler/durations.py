"""
ISO-8601 duration strings of the form PnDTnHnMn.nS.

Only days, hours, minutes and seconds are accepted (no years or months).
A leading sign applies to the whole duration and each component may carry
its own sign, so "-PT5S" and "PT-5S" both mean minus five seconds.
"""

import re
from datetime import timedelta
from typing import Optional

_DURATION_PATTERN = re.compile(
    r"^([-+]?)P"
    r"(?:([-+]?[0-9]+)D)?"
    r"(T"
    r"(?:([-+]?[0-9]+)H)?"
    r"(?:([-+]?[0-9]+)M)?"
    r"(?:([-+]?[0-9]+)(?:[.,]([0-9]{0,9}))?S)?"
    r")?$",
    re.IGNORECASE,
)


def parse_duration(text: str) -> timedelta:
    """
    Parse an ISO-8601 duration into a timedelta.

    Raises ValueError when the text does not follow the grammar.
    """
    match = _DURATION_PATTERN.match(text.strip())
    if not match:
        raise ValueError(f"Text cannot be parsed to a Duration: {text!r}")

    sign, days, time_part, hours, minutes, seconds, fraction = match.groups()

    # "P" alone and a dangling "T" are both invalid
    if days is None and hours is None and minutes is None and seconds is None:
        raise ValueError(f"Text cannot be parsed to a Duration: {text!r}")
    if time_part is not None and time_part.upper() == "T":
        raise ValueError(f"Text cannot be parsed to a Duration: {text!r}")

    whole_seconds = int(seconds) if seconds is not None else 0
    micros = 0
    if fraction:
        micros = int(fraction.ljust(9, "0")[:6])
        if seconds is not None and seconds.startswith("-"):
            micros = -micros

    result = timedelta(
        days=int(days) if days is not None else 0,
        hours=int(hours) if hours is not None else 0,
        minutes=int(minutes) if minutes is not None else 0,
        seconds=whole_seconds,
        microseconds=micros,
    )
    return -result if sign == "-" else result


def format_duration(value: Optional[timedelta]) -> Optional[str]:
    """Render a timedelta back into PT...S form for logs and plan output."""
    if value is None:
        return None
    total = value.total_seconds()
    sign = "-" if total < 0 else ""
    total = abs(total)
    text = f"{total:.6f}".rstrip("0").rstrip(".")
    return f"{sign}PT{text}S"
