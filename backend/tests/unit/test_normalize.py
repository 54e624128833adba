"""Unit tests for identifier normalisation."""

from __future__ import annotations

import pytest

from sds_lifecycle.modules.chemicals.normalize import (
    normalize_cas,
    normalize_catalog,
    normalize_supplier,
    parse_hazard_codes,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("107-13-1", "107-13-1"),
        ("67-64-1", "67-64-1"),
        (" 64-17-5 ", "64-17-5"),
        ("7732-18-5", "7732-18-5"),
        ("107-13-2", None),  # bad checksum
        ("10713-1", None),
        ("not a cas", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_cas(raw: str | None, expected: str | None) -> None:
    assert normalize_cas(raw) == expected


def test_normalize_supplier_and_catalog() -> None:
    assert normalize_supplier("Sigma-Aldrich Norway AS") == "sigma-aldrich-norway-as"
    assert normalize_supplier("  ") is None
    assert normalize_catalog(" ab 123-5 ") == "AB123-5"
    assert normalize_catalog(None) is None


def test_parse_hazard_codes_keeps_order_and_drops_duplicates() -> None:
    text = ["H225 Highly flammable", "H319; EUH066", "H360Fd May damage fertility", "H225"]
    assert parse_hazard_codes(text) == ["H225", "H319", "H360Fd"]


def test_parse_hazard_codes_accepts_spaced_codes() -> None:
    assert parse_hazard_codes("H 350 May cause cancer") == ["H350"]
    assert parse_hazard_codes(None) == []
