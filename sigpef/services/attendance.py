import re

MINUTES_PER_DAY = 24 * 60

_CLOCK_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')


def parse_clock(value: str | None) -> int | None:
    """Minutes since midnight for an ``HH:MM`` reading, or None."""
    if not value:
        return None
    match = _CLOCK_PATTERN.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def calculate_duration(arrival: str | None, departure: str | None) -> str | None:
    """Elapsed time between two same-day clock readings, e.g. ``"9h 30m"``.

    A departure earlier than the arrival is read as the next day.
    """
    start = parse_clock(arrival)
    end = parse_clock(departure)
    if start is None or end is None:
        return None

    diff = end - start
    if diff < 0:
        diff += MINUTES_PER_DAY

    hours, minutes = divmod(diff, 60)
    if hours == 0 and minutes == 0:
        return '0m'

    parts = []
    if hours > 0:
        parts.append(f'{hours}h')
    if minutes > 0:
        parts.append(f'{minutes}m')
    return ' '.join(parts)
