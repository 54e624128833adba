from __future__ import annotations

import re

from sds_lifecycle.modules.suppliers.base import SupplierCatalogClient
from sds_lifecycle.modules.suppliers.providers import (
    FisherScientificClient,
    SigmaAldrichClient,
    VWRClient,
)
from sds_lifecycle.modules.tenants.schemas import SupplierCredentials

# Brand aliases → provider key
_ALIASES: list[tuple[tuple[str, ...], str]] = [
    (("vwr", "avantor"), "vwr"),
    (("sigma", "aldrich", "merck", "millipore"), "sigma-aldrich"),
    (("fisher", "thermo", "acros", "alfa-aesar"), "fisher"),
]


def normalize_supplier_name(supplier: str | None) -> str | None:
    """Map a free-text supplier name to a provider key ("Sigma-Aldrich Norway AS" → "sigma-aldrich")."""
    if not supplier:
        return None
    normalized = re.sub(r"\s+", "-", supplier.strip().lower())
    for needles, key in _ALIASES:
        if any(needle in normalized for needle in needles):
            return key
    return normalized or None


class SupplierRegistry:
    """Provider key → client. Adding a provider only means registering it here."""

    def __init__(self, clients: dict[str, SupplierCatalogClient] | None = None) -> None:
        self._clients: dict[str, SupplierCatalogClient] = dict(clients or {})

    @classmethod
    def from_credentials(cls, credentials: SupplierCredentials) -> SupplierRegistry:
        registry = cls()
        if credentials.vwr_api_key:
            registry.register(VWRClient(credentials.vwr_api_key, region=credentials.vwr_region))
        if credentials.sigma_aldrich_api_key:
            registry.register(SigmaAldrichClient(credentials.sigma_aldrich_api_key))
        if credentials.fisher_scientific_api_key:
            registry.register(FisherScientificClient(credentials.fisher_scientific_api_key))
        return registry

    def register(self, client: SupplierCatalogClient) -> None:
        self._clients[client.name] = client

    def resolve(self, supplier: str | None) -> SupplierCatalogClient | None:
        key = normalize_supplier_name(supplier)
        return self._clients.get(key) if key else None

    @property
    def providers(self) -> list[str]:
        return sorted(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    async def aclose(self) -> None:
        for client in self._clients.values():
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
