"""VWR (Avantor), Sigma-Aldrich (Merck) and Fisher Scientific (Thermo Fisher)."""

from __future__ import annotations

from urllib.parse import quote

import httpx

from sds_lifecycle.modules.suppliers.base import HttpSupplierClient, parse_revision_date
from sds_lifecycle.modules.suppliers.schemas import SupplierProduct, SupplierSDSInfo


class VWRClient(HttpSupplierClient):
    name = "vwr"

    BASE_URLS = {
        "eu": "https://api.vwr.com/v1",
        "us": "https://api.us.vwr.com/v1",
        "asia": "https://api.asia.vwr.com/v1",
    }

    def __init__(
        self,
        api_key: str,
        region: str = "eu",
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        super().__init__(api_key, client=client, timeout_s=timeout_s)
        self.base_url = self.BASE_URLS.get(region, self.BASE_URLS["eu"])

    async def search_product(self, catalog_number: str) -> SupplierProduct | None:
        data = await self._get_json(f"{self.base_url}/products/search", {"q": catalog_number})
        products = (data or {}).get("products") or []
        if not products:
            return None
        product = products[0]
        return SupplierProduct(
            catalog_number=product.get("catalogNumber") or catalog_number,
            product_name=product.get("productName") or "",
            cas_number=product.get("casNumber"),
            manufacturer=product.get("manufacturer"),
        )

    async def get_sds_info(self, catalog_number: str) -> SupplierSDSInfo | None:
        data = await self._get_json(f"{self.base_url}/products/{quote(catalog_number, safe='')}/sds")
        if data is None:
            return None
        product = await self.search_product(catalog_number)
        if product is None:
            return None
        return SupplierSDSInfo(
            product=product,
            sds_available=bool(data.get("available")),
            sds_url=data.get("url"),
            sds_version=data.get("version"),
            revision_date=parse_revision_date(data.get("lastUpdated")),
            download_url=data.get("downloadUrl"),
        )


class SigmaAldrichClient(HttpSupplierClient):
    name = "sigma-aldrich"
    base_url = "https://api.sigmaaldrich.com/v1"

    def headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key, "Accept": "application/json"}

    def download_headers(self) -> dict[str, str]:
        # PDF links are pre-signed
        return {}

    async def search_product(self, catalog_number: str) -> SupplierProduct | None:
        data = await self._get_json(f"{self.base_url}/products/{quote(catalog_number, safe='')}")
        if not data:
            return None
        return SupplierProduct(
            catalog_number=data.get("productNumber") or catalog_number,
            product_name=data.get("productName") or "",
            cas_number=data.get("casNumber"),
            manufacturer="Sigma-Aldrich",
        )

    async def get_sds_info(self, catalog_number: str) -> SupplierSDSInfo | None:
        data = await self._get_json(f"{self.base_url}/products/{quote(catalog_number, safe='')}/sds")
        if data is None:
            return None
        product = await self.search_product(catalog_number)
        if product is None:
            return None
        return SupplierSDSInfo(
            product=product,
            sds_available=bool(data.get("available")),
            sds_url=data.get("pdfUrl"),
            sds_version=data.get("version"),
            revision_date=parse_revision_date(data.get("revisionDate")),
            download_url=data.get("pdfUrl"),
        )


class FisherScientificClient(HttpSupplierClient):
    name = "fisher"
    base_url = "https://api.fishersci.com/v1"

    async def search_product(self, catalog_number: str) -> SupplierProduct | None:
        data = await self._get_json(f"{self.base_url}/products", {"catalogNumber": catalog_number})
        products = (data or {}).get("products") or []
        if not products:
            return None
        product = products[0]
        return SupplierProduct(
            catalog_number=product.get("catalogNumber") or catalog_number,
            product_name=product.get("description") or "",
            cas_number=product.get("casNumber"),
            manufacturer=product.get("manufacturer"),
        )

    async def get_sds_info(self, catalog_number: str) -> SupplierSDSInfo | None:
        data = await self._get_json(f"{self.base_url}/products/{quote(catalog_number, safe='')}/sds")
        if data is None:
            return None
        product = await self.search_product(catalog_number)
        if product is None:
            return None
        # Fisher lists only products that have an SDS
        return SupplierSDSInfo(
            product=product,
            sds_available=True,
            sds_url=data.get("sdsUrl"),
            sds_version=data.get("revision"),
            revision_date=parse_revision_date(data.get("issueDate")),
            download_url=data.get("pdfLink"),
        )
