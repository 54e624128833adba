"""Extraction service contract: StructuredExtraction and the SDS field vocabulary."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel, Field

# Fields an extraction may carry onto a ChemicalRecord, in merge order.
SDS_FIELDS: tuple[str, ...] = (
    "product_name",
    "supplier",
    "catalog_number",
    "cas_number",
    "ec_number",
    "hazard_statements",
    "precautionary_statements",
    "pictograms",
    "signal_word",
    "sds_version",
    "sds_date",
)

LIST_FIELDS = {"hazard_statements", "precautionary_statements", "pictograms"}

IDENTIFYING_FIELDS = ("product_name", "cas_number")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class StructuredExtraction(BaseModel):
    """Immutable output of the extraction service."""

    data: dict[str, Any] = {}
    confidence: float = Field(ge=0.0, le=1.0)
    provider: str | None = None
    model: str | None = None

    model_config = {"frozen": True}

    def non_empty_fields(self) -> dict[str, Any]:
        return {k: v for k, v in self.data.items() if k in SDS_FIELDS and not is_empty(v)}

    @property
    def has_identity(self) -> bool:
        return any(not is_empty(self.data.get(name)) for name in IDENTIFYING_FIELDS)

    @property
    def content_hash(self) -> str:
        """SHA-256 over the canonical JSON of the non-empty field map.

        Two extractions of the same document revision hash equal even when
        the model reports a slightly different confidence.
        """
        canonical = json.dumps(
            self.non_empty_fields(), sort_keys=True, separators=(",", ":"), default=str
        )
        return hashlib.sha256(canonical.encode()).hexdigest()
