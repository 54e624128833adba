from __future__ import annotations

from datetime import date

import pytest

from sds_lifecycle.core.clock import add_months, add_years


@pytest.mark.parametrize(
    ("value", "months", "expected"),
    [
        (date(2026, 10, 19), -6, date(2026, 4, 19)),
        (date(2026, 3, 15), -6, date(2025, 9, 15)),
        (date(2026, 8, 31), -6, date(2026, 2, 28)),
        (date(2024, 8, 31), -6, date(2024, 2, 29)),
        (date(2026, 11, 30), 3, date(2027, 2, 28)),
    ],
)
def test_add_months(value, months, expected) -> None:
    assert add_months(value, months) == expected


def test_add_years_clamps_leap_day() -> None:
    assert add_years(date(2024, 2, 29), 3) == date(2027, 2, 28)
