from __future__ import annotations

import pytest

from gwbridge.durations import UNIT_MS, InvalidDuration, format_duration, parse_duration_ms


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2h", 7_200_000),
        ("500ms", 500),
        ("10s", 10_000),
        ("3m", 180_000),
        ("1.5s", 1_500),
        ("2.5ms", 3),
        ("1.4ms", 1),
        ("  15S  ", 15_000),
        ("250", 250),
        ("0", 0),
    ],
)
def test_parse_duration_ms(raw: str, expected: int) -> None:
    assert parse_duration_ms(raw) == expected


def test_default_unit_applies_to_bare_numbers() -> None:
    assert parse_duration_ms("5", default_unit="s") == 5_000
    assert parse_duration_ms("5ms", default_unit="h") == 5


@pytest.mark.parametrize("raw", ["", "   ", "-5s", "abc", "5d", "1.s", ".5s", "5 s", "9" * 400])
def test_invalid_durations(raw: str) -> None:
    with pytest.raises(InvalidDuration):
        parse_duration_ms(raw)


def test_invalid_duration_is_value_error() -> None:
    with pytest.raises(ValueError, match="empty"):
        parse_duration_ms("")


@pytest.mark.parametrize("unit", sorted(UNIT_MS))
@pytest.mark.parametrize("n", [0, 1, 7, 250])
def test_format_then_parse(unit: str, n: int) -> None:
    assert parse_duration_ms(format_duration(n, unit)) == n * UNIT_MS[unit]  # type: ignore[arg-type]


def test_format_duration_rejects_negative() -> None:
    with pytest.raises(InvalidDuration):
        format_duration(-1, "s")


def test_format_duration_uses_fixed_notation_for_small_values() -> None:
    assert format_duration(0.00001, "s") == "0.00001s"
    assert parse_duration_ms(format_duration(0.00001, "s")) == 0
    assert format_duration(0.25, "m") == "0.25m"
    assert parse_duration_ms(format_duration(0.0005, "h")) == 1800
