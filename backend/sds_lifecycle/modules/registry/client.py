from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from sds_lifecycle.core.http import send
from sds_lifecycle.modules.chemicals.normalize import parse_hazard_codes
from sds_lifecycle.modules.registry.schemas import RegistrySubstance

logger = structlog.get_logger()

SERVICE = "hazard_registry"

_EC_PATTERN = re.compile(r"\b\d{3}-\d{3}-\d\b")


class HazardRegistryClient(ABC):
    """Looks up canonical hazard data by CAS number."""

    @abstractmethod
    async def lookup(self, cas_number: str) -> RegistrySubstance | None:
        """Return the substance, or None when the registry does not know it."""
        ...


def _iter_information(node: Any) -> Iterator[dict]:
    """Walk a PUG-View record and yield every ``Information`` entry."""
    if isinstance(node, dict):
        for info in node.get("Information", []):
            yield info
        for child in node.get("Section", []):
            yield from _iter_information(child)
        if "Record" in node:
            yield from _iter_information(node["Record"])
    elif isinstance(node, list):
        for child in node:
            yield from _iter_information(child)


def _strings(info: dict) -> list[str]:
    value = info.get("Value", {})
    return [s.get("String", "") for s in value.get("StringWithMarkup", []) if s.get("String")]


class PubChemRegistryClient(HazardRegistryClient):
    """PubChem PUG-REST / PUG-View lookup.

    CAS → CID, then the GHS classification, EC number and regulatory
    sections of the compound record. SVHC status is read from the EU
    regulatory listings PubChem aggregates from ECHA.
    """

    def __init__(
        self,
        base_url: str = "https://pubchem.ncbi.nlm.nih.gov/rest",
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout_s

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, **params: str) -> dict | None:
        resp = await send(
            self._http(), "GET", url, service=SERVICE, allow_statuses=(404,), params=params or None
        )
        if resp.status_code == 404:
            return None
        return resp.json()

    async def _view(self, cid: int, heading: str) -> dict | None:
        return await self._get_json(
            f"{self.base_url}/pug_view/data/compound/{cid}/JSON", heading=heading
        )

    async def lookup(self, cas_number: str) -> RegistrySubstance | None:
        cids = await self._get_json(
            f"{self.base_url}/pug/compound/name/{quote(cas_number, safe='')}/cids/JSON"
        )
        cid_list = (cids or {}).get("IdentifierList", {}).get("CID", [])
        if not cid_list:
            logger.info("registry_substance_not_found", cas_number=cas_number)
            return None
        cid = int(cid_list[0])

        ghs = await self._view(cid, "GHS Classification")
        name = None
        hazard_text: list[str] = []
        if ghs:
            name = ghs.get("Record", {}).get("RecordTitle")
            for info in _iter_information(ghs):
                if info.get("Name") == "GHS Hazard Statements":
                    hazard_text.extend(_strings(info))

        ec_number = None
        ec_view = await self._view(cid, "European Community (EC) Number")
        for info in _iter_information(ec_view or {}):
            for text in _strings(info):
                match = _EC_PATTERN.search(text)
                if match:
                    ec_number = match.group(0)
                    break
            if ec_number:
                break

        is_svhc = False
        reach_status = None
        regulatory = await self._view(cid, "Regulatory Information")
        for info in _iter_information(regulatory or {}):
            text = " ".join([info.get("Name", "")] + _strings(info)).lower()
            if "candidate list" in text or "svhc" in text or "very high concern" in text:
                is_svhc = True
            if "reach" in text and "registered" in text:
                reach_status = "REGISTERED"

        substance = RegistrySubstance(
            cas_number=cas_number,
            name=name,
            ec_number=ec_number,
            is_svhc=is_svhc,
            reach_status=reach_status,
            hazard_codes=parse_hazard_codes(hazard_text),
        )
        logger.info(
            "registry_lookup_complete",
            cas_number=cas_number,
            cid=cid,
            hazard_codes=len(substance.hazard_codes),
            is_svhc=is_svhc,
        )
        return substance
