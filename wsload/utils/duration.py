import math
import re
from datetime import timedelta
from typing import Union

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h|d)')


def _to_timedelta(seconds: float, value: object) -> timedelta:
    try:
        if math.isfinite(seconds):
            return timedelta(seconds=seconds)
    except OverflowError:
        pass
    raise ValueError(f"Invalid duration: {value!r}")


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a k6-style duration.

    Accepts "500ms", "30s", "2m", "1h30m", bare numbers (seconds) and
    timedelta instances. Raises ValueError on anything else, including
    values that are not finite or too large to represent.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return _to_timedelta(value, value)

    text = str(value).strip().lower()
    if not text:
        raise ValueError("Duration must not be empty")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return _to_timedelta(seconds, value)

    total = 0.0
    pos = 0
    for match in _PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")

    return _to_timedelta(total, value)


def format_duration(value: timedelta) -> str:
    seconds = value.total_seconds()
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:g}s"
    minutes, secs = divmod(seconds, 60)
    if secs:
        return f"{int(minutes)}m{secs:g}s"
    return f"{int(minutes)}m"
