"""Duration strings for sweep intervals and claim leases.

Accepts human-readable values ("30s", "5m", "1h30m") and ISO-8601
durations ("PT5M", "PT1H30M", "P1D").
"""

import re

_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")
_HUMAN_PATTERN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed or is out of range."""


def parse_duration(duration_str: str) -> int:
    """Parse a duration string to whole seconds.

    Args:
        duration_str: e.g. "5m", "PT5M", "1h30m"

    Returns:
        Duration in seconds (always > 0)

    Raises:
        DurationParseError: If the string is empty, malformed, or zero

    Examples:
        >>> parse_duration("5m")
        300
        >>> parse_duration("PT1H")
        3600
    """
    if not isinstance(duration_str, str) or not duration_str.strip():
        raise DurationParseError("Duration string cannot be empty")

    value = duration_str.strip()
    if value.upper().startswith("P"):
        seconds = _parse_iso8601(value.upper())
    else:
        seconds = _parse_human(value.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return seconds


def _parse_iso8601(value: str) -> int:
    match = _ISO_PATTERN.match(value)
    if not match or value in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'PT5M', 'PT1H30M' or 'P1D'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * _UNIT_SECONDS["d"]
        + int(hours or 0) * _UNIT_SECONDS["h"]
        + int(minutes or 0) * _UNIT_SECONDS["m"]
        + int(float(seconds or 0))
    )


def _parse_human(value: str) -> int:
    matches = _HUMAN_PATTERN.findall(value)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Expected format like '30s', '5m', '1h' or '1h30m'"
        )

    # Every character must belong to a number+unit pair
    if "".join(f"{num}{unit}" for num, unit in matches) != re.sub(r"\s+", "", value):
        raise DurationParseError(
            f"Invalid characters in duration: '{value}'. "
            "Use only digits and units: s, m, h, d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int,
    max_seconds: int,
    label: str = "Duration",
) -> None:
    """Raise DurationParseError if the duration is outside [min, max]."""
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {humanize_seconds(duration_seconds)}. "
            f"Minimum is {humanize_seconds(min_seconds)}."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {humanize_seconds(duration_seconds)}. "
            f"Maximum is {humanize_seconds(max_seconds)}."
        )


def humanize_seconds(seconds: int) -> str:
    """Render seconds in the largest whole unit, e.g. "5 minutes"."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
