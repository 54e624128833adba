"""Post-processing of LLM extraction output.

Fixes the usual LLM output problems before the payload becomes a
StructuredExtraction:
  1. Markdown code fences around the JSON
  2. camelCase or alternate key names
  3. Hazard/precautionary statements as one string instead of a list
  4. CAS numbers with whitespace, several CAS numbers, or invalid checksums
  5. Dates in non-ISO formats
  6. Confidence outside [0, 1] or given as a percentage
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from sds_lifecycle.modules.chemicals.normalize import normalize_cas, parse_hazard_codes
from sds_lifecycle.modules.extraction.schemas import LIST_FIELDS, SDS_FIELDS

# Alternate key spellings seen in model output
KEY_ALIASES = {
    "productName": "product_name",
    "name": "product_name",
    "trade_name": "product_name",
    "manufacturer": "supplier",
    "supplierName": "supplier",
    "catalogNumber": "catalog_number",
    "product_number": "catalog_number",
    "article_number": "catalog_number",
    "casNumber": "cas_number",
    "cas": "cas_number",
    "ecNumber": "ec_number",
    "hazardStatements": "hazard_statements",
    "h_statements": "hazard_statements",
    "precautionaryStatements": "precautionary_statements",
    "p_statements": "precautionary_statements",
    "signalWord": "signal_word",
    "sdsVersion": "sds_version",
    "version": "sds_version",
    "sdsDate": "sds_date",
    "revision_date": "sds_date",
    "revisionDate": "sds_date",
}

_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y", "%B %d, %Y", "%d %B %Y")
_STATEMENT_SPLIT = re.compile(r"[;\n]+")
_PICTOGRAM = re.compile(r"GHS0[1-9]")


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = _STATEMENT_SPLIT.split(value)
    elif isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                # {"code": "H225", "text": "..."} style entries
                item = " ".join(str(v) for v in item.values() if v)
            items.append(str(item))
    else:
        items = [str(value)]
    cleaned: list[str] = []
    for item in items:
        item = item.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned


def _parse_date(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _first_valid_cas(value: Any) -> str | None:
    candidates = value if isinstance(value, (list, tuple)) else re.split(r"[,;/\s]+", str(value or ""))
    for candidate in candidates:
        cas = normalize_cas(str(candidate))
        if cas:
            return cas
    return None


def _parse_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence > 1.0:
        # Percentages
        confidence = confidence / 100.0
    return min(max(confidence, 0.0), 1.0)


def sanitize_extraction(data: dict[str, Any]) -> tuple[dict[str, Any], float]:
    """Normalise raw LLM output to the SDS field vocabulary.

    Returns ``(fields, confidence)``. Unknown keys are dropped; empty values
    are kept as None/[] so callers can tell "absent" from "not asked".
    """
    renamed: dict[str, Any] = {}
    for key, value in data.items():
        renamed.setdefault(KEY_ALIASES.get(key, key), value)

    fields: dict[str, Any] = {}
    for name in SDS_FIELDS:
        value = renamed.get(name)
        if name in LIST_FIELDS:
            fields[name] = _as_list(value)
        elif name == "cas_number":
            fields[name] = _first_valid_cas(value)
        elif name == "sds_date":
            fields[name] = _parse_date(value)
        elif value is None:
            fields[name] = None
        else:
            text = str(value).strip()
            fields[name] = text or None

    if fields["signal_word"]:
        fields["signal_word"] = fields["signal_word"].capitalize()
    if fields["pictograms"]:
        codes = _PICTOGRAM.findall(" ".join(fields["pictograms"]).upper())
        fields["pictograms"] = list(dict.fromkeys(codes)) or fields["pictograms"]

    # Fall back to H-codes only when the model gave no statement text at all
    if not fields["hazard_statements"] and renamed.get("hazard_codes"):
        fields["hazard_statements"] = parse_hazard_codes(renamed["hazard_codes"])

    return fields, _parse_confidence(renamed.get("confidence"))
