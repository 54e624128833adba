from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class SupplierProduct(BaseModel):
    catalog_number: str
    product_name: str
    cas_number: str | None = None
    manufacturer: str | None = None


class SupplierSDSInfo(BaseModel):
    product: SupplierProduct
    sds_available: bool = False
    sds_url: str | None = None
    sds_version: str | None = None
    revision_date: date | None = None
    download_url: str | None = None


class UpdateCheck(BaseModel):
    """Unified answer of every provider to "is there a newer SDS?"."""

    has_update: bool
    version: str | None = None
    revision_date: date | None = None
    download_url: str | None = None
