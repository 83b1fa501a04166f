"""Duration strings used by the rate-limit window and reminder interval."""

import re


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


_ISO_PATTERN = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)
_HUMAN_PATTERN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to whole seconds.

    Accepts ISO-8601 (``PT1M``, ``P1D``, ``PT1H30M``) or the short human form
    (``30s``, ``1m``, ``1h30m``, ``1d``).

    Raises:
        DurationParseError: If the string is empty, malformed or zero

    Examples:
        >>> parse_duration("1m")
        60
        >>> parse_duration("P1D")
        86400
    """
    text = duration_str.strip()
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text.upper().startswith("P"):
        seconds = _parse_iso8601(text.upper())
    else:
        seconds = _parse_human(text.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return seconds


def _parse_iso8601(text: str) -> int:
    match = _ISO_PATTERN.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{text}'. Expected e.g. 'P1D', 'PT1H', 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * 86400
        + int(hours or 0) * 3600
        + int(minutes or 0) * 60
        + int(float(seconds or 0))
    )


def _parse_human(text: str) -> int:
    matches = _HUMAN_PATTERN.findall(text)
    if not matches:
        raise DurationParseError(
            f"Invalid duration: '{text}'. Expected e.g. '30s', '1m', '1h30m', '1d'"
        )

    # Reject leftovers such as "10x" or "5m!"
    if "".join(f"{num}{unit}" for num, unit in matches) != re.sub(r"\s+", "", text):
        raise DurationParseError(
            f"Invalid characters in duration: '{text}'. Use digits and s, m, h or d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int,
    max_seconds: int,
    label: str = "Duration",
) -> None:
    """Raise DurationParseError if ``duration_seconds`` is outside the bounds."""
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {duration_seconds}s. Minimum is {min_seconds}s."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {duration_seconds}s. Maximum is {max_seconds}s."
        )
