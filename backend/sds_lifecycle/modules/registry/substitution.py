from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.clock import ensure_utc, utcnow
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.chemicals.models import ChemicalRecord, SubstitutionSuggestion
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()


class AlternativesProvider(ABC):
    @abstractmethod
    async def suggest(self, record: ChemicalRecord) -> list[str]:
        """Return safer alternatives for the record's substance, possibly empty."""
        ...


# Known substitutes keyed by CAS number
KNOWN_SUBSTITUTES: dict[str, list[str]] = {
    "50-00-0": [  # formaldehyde
        "Glutaraldehyde (less hazardous fixative)",
        "Alcohol-based disinfectants",
    ],
    "75-09-2": [  # dichloromethane
        "Ethyl acetate for extraction",
        "Benzyl alcohol based paint strippers",
    ],
    "71-43-2": [  # benzene
        "Heptane or cyclohexane as non-polar solvent",
    ],
    "127-18-4": [  # tetrachloroethylene
        "Hydrocarbon or modified-alcohol degreasers",
    ],
    "79-01-6": [  # trichloroethylene
        "Aqueous alkaline degreasing",
    ],
    "68-12-2": [  # N,N-dimethylformamide
        "Dimethyl sulfoxide (DMSO)",
        "Cyrene (dihydrolevoglucosenone)",
    ],
}

GENERIC_CMR_ADVICE = "Ask the supplier for a non-CMR formulation"


class StaticAlternativesProvider(AlternativesProvider):
    """Table lookup; CMR records without an entry get generic advice."""

    def __init__(self, table: dict[str, list[str]] | None = None) -> None:
        self.table = KNOWN_SUBSTITUTES if table is None else table

    async def suggest(self, record: ChemicalRecord) -> list[str]:
        alternatives = list(self.table.get((record.cas_number or "").strip(), []))
        if not alternatives and record.is_cmr:
            alternatives.append(GENERIC_CMR_ADVICE)
        return alternatives


async def get_alternatives(
    db: AsyncSession,
    scope: TenantScope,
    record: ChemicalRecord,
    provider: AlternativesProvider,
    cooldown_days: int = 30,
    now: datetime | None = None,
) -> tuple[SubstitutionSuggestion, bool]:
    """Return cached alternatives, regenerating them once the cooldown has passed.

    The second element is True when the cached row was served.
    """
    scope.check_owned(record, "ChemicalRecord")
    now = now or utcnow()
    cached = await chemicals_service.get_substitution(db, scope.tenant_id, record.id)
    if cached and ensure_utc(cached.generated_at) > now - timedelta(days=cooldown_days):
        return cached, True

    alternatives = await provider.suggest(record)
    row = await chemicals_service.save_substitution(db, scope, record.id, alternatives, now)
    logger.info(
        "substitution_alternatives_generated",
        record_id=record.id,
        count=len(alternatives),
    )
    return row, False
