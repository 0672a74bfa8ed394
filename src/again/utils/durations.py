"""Duration parsing and formatting.

Durations are plain float seconds everywhere in again. Text forms accept a
bare number of seconds or unit-suffixed parts (``500ms``, ``2s``, ``1m30s``,
``1h``).
"""

from __future__ import annotations

import re

__all__ = ["format_duration", "parse_duration"]

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> float:
    """Parse a duration string into seconds.

    Args:
        value: ``"1.5"``, ``"500ms"``, ``"2s"``, ``"1m30s"`` ...

    Returns:
        Seconds as float

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip().lower()
    if not text:
        raise ValueError("empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _PART_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Format seconds as a compact duration (``250ms``, ``1.5s``, ``2m5s``)."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.3f}".rstrip("0").rstrip(".") + "s"

    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    secs_str = f"{secs:.3f}".rstrip("0").rstrip(".")
    if hours:
        return f"{hours}h{minutes}m{secs_str}s"
    return f"{minutes}m{secs_str}s"
