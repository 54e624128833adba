"""Unit tests for LLM output post-processing."""

from __future__ import annotations

from sds_lifecycle.modules.extraction.sanitizer import sanitize_extraction, strip_code_fences


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_sanitize_maps_aliases_and_normalises_values() -> None:
    fields, confidence = sanitize_extraction(
        {
            "productName": "Acetone",
            "manufacturer": "VWR International",
            "casNumber": "CAS 67-64-1; 64-17-5",
            "hazardStatements": "H225 Highly flammable liquid; H319 Causes serious eye irritation",
            "signalWord": "DANGER",
            "pictograms": ["GHS02 flame", "ghs07"],
            "revisionDate": "01.05.2024",
            "confidence": 92,
            "unrelated": "dropped",
        }
    )
    assert fields["product_name"] == "Acetone"
    assert fields["supplier"] == "VWR International"
    assert fields["cas_number"] == "67-64-1"
    assert fields["hazard_statements"] == [
        "H225 Highly flammable liquid",
        "H319 Causes serious eye irritation",
    ]
    assert fields["signal_word"] == "Danger"
    assert fields["pictograms"] == ["GHS02", "GHS07"]
    assert fields["sds_date"] == "2024-05-01"
    assert "unrelated" not in fields
    assert confidence == 0.92


def test_sanitize_rejects_invalid_cas_and_unparsable_date() -> None:
    fields, _ = sanitize_extraction({"cas_number": "123-45-6", "sds_date": "sometime in spring"})
    assert fields["cas_number"] is None
    assert fields["sds_date"] is None


def test_sanitize_falls_back_to_hazard_codes() -> None:
    fields, _ = sanitize_extraction({"product_name": "X", "hazard_codes": "H350, H301"})
    assert fields["hazard_statements"] == ["H350", "H301"]


def test_sanitize_clamps_confidence() -> None:
    assert sanitize_extraction({"confidence": "n/a"})[1] == 0.0
    assert sanitize_extraction({"confidence": -0.4})[1] == 0.0
    assert sanitize_extraction({"confidence": 0.55})[1] == 0.55
    assert sanitize_extraction({})[1] == 0.0


def test_sanitize_keeps_absent_fields_empty() -> None:
    fields, _ = sanitize_extraction({"product_name": "  "})
    assert fields["product_name"] is None
    assert fields["precautionary_statements"] == []
