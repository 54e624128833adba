"""Unit tests for rule-based hazard classification."""

from __future__ import annotations

import itertools

import pytest

from sds_lifecycle.modules.registry.hazard import (
    SubstitutionPriority,
    calculate_hazard_level,
    classify,
    is_cmr_substance,
    substitution_priority,
)


def test_acrylonitrile_carcinogenicity_marks_cmr() -> None:
    """CAS 107-13-1 (acrylonitrile) carries H350 → CMR, priority at least MEDIUM."""
    result = classify(["H225", "H301", "H311", "H317", "H331", "H335", "H350", "H411"])
    assert result.is_cmr is True
    assert result.substitution_priority.rank >= SubstitutionPriority.MEDIUM.rank
    assert result.hazard_level == 5


@pytest.mark.parametrize(
    ("codes", "level"),
    [
        ([], 1),
        (["H201"], 5),
        (["H225"], 4),
        (["H290"], 3),
        (["H301"], 5),
        (["H315", "H319"], 4),
        (["H336"], 5),
        (["H350"], 5),
        (["H373"], 5),
        (["H400"], 4),
        (["H413"], 3),
        (["EUH066"], 1),
    ],
)
def test_hazard_level_buckets(codes: list[str], level: int) -> None:
    assert calculate_hazard_level(codes) == level


def test_hazard_level_reads_free_text_statements() -> None:
    assert calculate_hazard_level("H225: Highly flammable liquid and vapour. H319: Causes eye irritation") == 4


@pytest.mark.parametrize("code", ["H340", "H341", "H350", "H350i", "H351", "H360", "H360Fd", "H361d", "H362"])
def test_cmr_codes_including_suffixed_variants(code: str) -> None:
    assert is_cmr_substance([code]) is True


@pytest.mark.parametrize("codes", [[], ["H225"], ["H370"], ["EUH208"]])
def test_non_cmr_codes(codes: list[str]) -> None:
    assert is_cmr_substance(codes) is False


def test_adding_codes_never_lowers_hazard_level() -> None:
    pool = ["H225", "H290", "H315", "H350", "H400", "H413"]
    for base_size in range(len(pool)):
        for base in itertools.combinations(pool, base_size):
            for extra in pool:
                assert calculate_hazard_level([*base, extra]) >= calculate_hazard_level(list(base))


@pytest.mark.parametrize(
    ("is_cmr", "is_svhc", "level", "expected"),
    [
        (False, False, 1, SubstitutionPriority.LOW),
        (False, False, 3, SubstitutionPriority.MEDIUM),
        (False, False, 4, SubstitutionPriority.HIGH),
        (False, True, 1, SubstitutionPriority.MEDIUM),
        (True, False, 2, SubstitutionPriority.MEDIUM),
        (True, False, 5, SubstitutionPriority.HIGH),
    ],
)
def test_substitution_priority(is_cmr: bool, is_svhc: bool, level: int, expected: SubstitutionPriority) -> None:
    assert substitution_priority(is_cmr, is_svhc, level) is expected


def test_svhc_flag_flows_into_record_values() -> None:
    values = classify(["H315"], is_svhc=True).as_record_values()
    assert values == {
        "hazard_level": 4,
        "is_cmr": False,
        "is_svhc": True,
        "substitution_priority": "HIGH",
    }
