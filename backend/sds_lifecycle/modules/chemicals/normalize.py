"""Identifier normalisation for matching and registry lookups."""

from __future__ import annotations

import re

_CAS_PATTERN = re.compile(r"^(\d{2,7})-(\d{2})-(\d)$")
_H_CODE_PATTERN = re.compile(r"\b(EU)?H\s?(\d{3})([A-Za-z]{0,2})\b")


def normalize_cas(raw: str | None) -> str | None:
    """Return a checksum-valid CAS number (``NNNNNNN-NN-N``) or None."""
    if not raw:
        return None
    text = re.sub(r"\s+", "", str(raw))
    match = _CAS_PATTERN.match(text)
    if not match:
        return None
    body = match.group(1) + match.group(2)
    check = int(match.group(3))
    total = sum(int(d) * i for i, d in enumerate(reversed(body), start=1))
    if total % 10 != check:
        return None
    return text


def normalize_supplier(raw: str | None) -> str | None:
    if not raw:
        return None
    text = re.sub(r"[^a-z0-9]+", "-", raw.lower()).strip("-")
    return text or None


def normalize_catalog(raw: str | None) -> str | None:
    if not raw:
        return None
    text = re.sub(r"\s+", "", str(raw)).upper()
    return text or None


def parse_hazard_codes(statements: list[str] | str | None) -> list[str]:
    """Pull H-codes (``H350``, ``H360Fd``) out of free-text hazard statements.

    Order of first appearance is preserved, duplicates dropped. EU
    supplemental codes (EUH0xx) are skipped; they carry no GHS class.
    """
    if not statements:
        return []
    text = statements if isinstance(statements, str) else " ".join(str(s) for s in statements)
    codes: list[str] = []
    for eu_prefix, digits, suffix in _H_CODE_PATTERN.findall(text):
        if eu_prefix:
            continue
        code = f"H{digits}{suffix}"
        if code not in codes:
            codes.append(code)
    return codes
