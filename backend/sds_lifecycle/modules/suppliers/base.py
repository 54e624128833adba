from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

import httpx
import structlog

from sds_lifecycle.core.http import send
from sds_lifecycle.modules.suppliers.schemas import SupplierProduct, SupplierSDSInfo, UpdateCheck

logger = structlog.get_logger()


def parse_revision_date(value: Any) -> date | None:
    """Provider dates come as ISO dates or ISO timestamps, sometimes with a Z suffix."""
    if not value:
        return None
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.warning("supplier_revision_date_unparsable", value=text)
            return None


class SupplierCatalogClient(ABC):
    """One capability interface over every supplier catalog API."""

    name: str

    @abstractmethod
    async def search_product(self, catalog_number: str) -> SupplierProduct | None:
        ...

    @abstractmethod
    async def get_sds_info(self, catalog_number: str) -> SupplierSDSInfo | None:
        ...

    @abstractmethod
    async def download_sds(self, catalog_number: str, download_url: str | None = None) -> bytes | None:
        """Fetch the SDS PDF, resolving the download URL first when none is given."""
        ...

    async def check_for_update(self, catalog_number: str, known_date: date | None) -> UpdateCheck:
        """Compare the provider's latest revision with the stored SDS date.

        A record without a known date always has an update when the provider
        has an SDS; a provider without a revision date is treated the same.
        """
        info = await self.get_sds_info(catalog_number)
        if info is None or not info.sds_available:
            return UpdateCheck(has_update=False)
        if known_date is not None and info.revision_date is not None:
            has_update = info.revision_date > known_date
        else:
            has_update = True
        return UpdateCheck(
            has_update=has_update,
            version=info.sds_version,
            revision_date=info.revision_date,
            download_url=info.download_url or info.sds_url,
        )


class HttpSupplierClient(SupplierCatalogClient):
    """Shared httpx plumbing for the REST-based providers."""

    base_url: str

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None, timeout_s: float = 30.0) -> None:
        self.api_key = api_key
        self._client = client
        self._timeout = timeout_s

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    async def _get_json(self, url: str, params: dict | None = None) -> dict | None:
        resp = await send(
            self._http(),
            "GET",
            url,
            service=self.name,
            allow_statuses=(404,),
            headers=self.headers(),
            params=params,
        )
        if resp.status_code == 404:
            return None
        return resp.json()

    async def download_sds(self, catalog_number: str, download_url: str | None = None) -> bytes | None:
        if download_url is None:
            info = await self.get_sds_info(catalog_number)
            download_url = info.download_url if info else None
        if not download_url:
            return None
        resp = await send(
            self._http(),
            "GET",
            download_url,
            service=self.name,
            allow_statuses=(404,),
            headers=self.download_headers(),
        )
        if resp.status_code == 404:
            logger.warning("supplier_sds_missing", supplier=self.name, catalog_number=catalog_number)
            return None
        return resp.content

    def download_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}
