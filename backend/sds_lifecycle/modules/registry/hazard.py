"""Rule-based hazard classification from GHS hazard statement codes.

Hazard level is 1 (low) to 5 (very high), taken as the maximum over all
codes:

    H200-H205 explosives                      5
    H220-H229 flammable gases/liquids         4
    other H2xx physical hazards               3
    H300-H311, H330-H336 acute toxicity       5
    H340-H351, H360-H373 CMR / organ damage   5
    H312-H319 harmful / irritant              4
    other H3xx health hazards                 3
    H400-H411 aquatic toxicity                4
    other H4xx environmental hazards          3
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from sds_lifecycle.modules.chemicals.normalize import parse_hazard_codes

_DIGITS = re.compile(r"H(\d{3})")

CMR_CODES = frozenset({340, 341, 350, 351, 360, 361, 362})


class SubstitutionPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {
    SubstitutionPriority.LOW: 0,
    SubstitutionPriority.MEDIUM: 1,
    SubstitutionPriority.HIGH: 2,
}


def _code_numbers(codes: list[str]) -> list[int]:
    numbers = []
    for code in codes:
        match = _DIGITS.match(code.upper())
        if match:
            numbers.append(int(match.group(1)))
    return numbers


def _level_for(code: int) -> int:
    if 200 <= code < 300:
        if code <= 205:
            return 5
        if 220 <= code <= 229:
            return 4
        return 3
    if 300 <= code < 400:
        if code <= 311 or 330 <= code <= 336 or 340 <= code <= 351 or 360 <= code <= 373:
            return 5
        if 312 <= code <= 319:
            return 4
        return 3
    if 400 <= code < 500:
        return 4 if code <= 411 else 3
    return 1


def calculate_hazard_level(hazard_statements: list[str] | str | None) -> int:
    numbers = _code_numbers(parse_hazard_codes(hazard_statements))
    return max((_level_for(n) for n in numbers), default=1)


def is_cmr_substance(hazard_statements: list[str] | str | None) -> bool:
    """Carcinogenic (H350/H351), mutagenic (H340/H341) or reprotoxic (H360-H362).

    Suffixed variants such as H350i or H360Fd count.
    """
    return any(n in CMR_CODES for n in _code_numbers(parse_hazard_codes(hazard_statements)))


def substitution_priority(is_cmr: bool, is_svhc: bool, hazard_level: int) -> SubstitutionPriority:
    if hazard_level >= 4:
        priority = SubstitutionPriority.HIGH
    elif hazard_level == 3:
        priority = SubstitutionPriority.MEDIUM
    else:
        priority = SubstitutionPriority.LOW

    if (is_cmr or is_svhc) and priority is SubstitutionPriority.LOW:
        priority = SubstitutionPriority.MEDIUM
    if is_cmr and hazard_level >= 4:
        priority = SubstitutionPriority.HIGH
    return priority


@dataclass(frozen=True)
class HazardClassification:
    hazard_level: int
    is_cmr: bool
    is_svhc: bool
    substitution_priority: SubstitutionPriority

    def as_record_values(self) -> dict:
        return {
            "hazard_level": self.hazard_level,
            "is_cmr": self.is_cmr,
            "is_svhc": self.is_svhc,
            "substitution_priority": self.substitution_priority.value,
        }


def classify(
    hazard_statements: list[str] | str | None,
    is_svhc: bool = False,
    known_cmr: bool = False,
) -> HazardClassification:
    """Classify from the codes; *known_cmr* keeps an existing CMR flag set."""
    level = calculate_hazard_level(hazard_statements)
    cmr = known_cmr or is_cmr_substance(hazard_statements)
    return HazardClassification(
        hazard_level=level,
        is_cmr=cmr,
        is_svhc=is_svhc,
        substitution_priority=substitution_priority(cmr, is_svhc, level),
    )
