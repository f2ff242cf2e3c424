import pytest

from sigpef.services.attendance import calculate_duration, parse_clock


@pytest.mark.parametrize(
    ('arrival', 'departure', 'expected'),
    [
        ('08:00', '17:30', '9h 30m'),
        ('22:00', '02:00', '4h'),
        ('09:00', '09:00', '0m'),
        ('09:00', '09:45', '45m'),
        ('08:00:00', '12:15:00', '4h 15m'),
        ('8:05', '9:00', '55m'),
    ],
)
def test_calculate_duration(arrival: str, departure: str, expected: str) -> None:
    assert calculate_duration(arrival, departure) == expected


@pytest.mark.parametrize(
    ('arrival', 'departure'),
    [(None, '17:00'), ('08:00', None), ('', ''), ('08h00', '17:00'), ('25:00', '17:00'), ('08:00', '17:60')],
)
def test_calculate_duration_returns_none_for_missing_or_invalid_input(arrival, departure) -> None:
    assert calculate_duration(arrival, departure) is None


def test_parse_clock_returns_minutes_since_midnight() -> None:
    assert parse_clock('00:00') == 0
    assert parse_clock(' 23:59 ') == 23 * 60 + 59
    assert parse_clock('abc') is None
