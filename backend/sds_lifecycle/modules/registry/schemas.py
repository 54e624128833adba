from __future__ import annotations

from pydantic import BaseModel


class RegistrySubstance(BaseModel):
    """Canonical hazard metadata for one substance, as reported by the registry."""

    cas_number: str
    name: str | None = None
    ec_number: str | None = None
    is_svhc: bool = False
    reach_status: str | None = None
    hazard_codes: list[str] = []

    model_config = {"frozen": True}


class AlternativesOut(BaseModel):
    record_id: int
    alternatives: list[str]
    generated_at: str
    cached: bool
