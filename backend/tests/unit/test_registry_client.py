"""PubChem registry client against a mocked PUG-REST / PUG-View API."""

from __future__ import annotations

import httpx
import pytest

from sds_lifecycle.core.exceptions import TransientExternalError
from sds_lifecycle.modules.registry.client import PubChemRegistryClient

BASE = "https://pubchem.test/rest"


def info(name: str, *strings: str) -> dict:
    return {"Name": name, "Value": {"StringWithMarkup": [{"String": s} for s in strings]}}


def view(title: str, *information: dict) -> dict:
    return {
        "Record": {
            "RecordTitle": title,
            "Section": [{"TOCHeading": "Safety", "Section": [{"Information": list(information)}]}],
        }
    }


ACRYLONITRILE_VIEWS = {
    "GHS Classification": view(
        "Acrylonitrile",
        info("Pictogram(s)", "Flammable"),
        info(
            "GHS Hazard Statements",
            "H225 (100%): Highly Flammable liquid and vapor",
            "H350 (100%): May cause cancer",
        ),
    ),
    "European Community (EC) Number": view("Acrylonitrile", info("EC Number", "203-466-5")),
    "Regulatory Information": view(
        "Acrylonitrile",
        info("REACH Registered Substance", "Acrylonitrile: Registered"),
        info("Candidate List of SVHC", "Substance of very high concern"),
    ),
}


def pubchem(views: dict[str, dict] | None = None, cids: dict[str, list[int]] | None = None, status: int = 200):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if status != 200:
            return httpx.Response(status)
        path = request.url.path
        if path.endswith("/cids/JSON"):
            cas = path.split("/")[-3]
            found = (cids or {}).get(cas)
            if not found:
                return httpx.Response(404, json={"Fault": {"Code": "PUGREST.NotFound"}})
            return httpx.Response(200, json={"IdentifierList": {"CID": found}})
        heading = request.url.params.get("heading")
        if heading in (views or {}):
            return httpx.Response(200, json=views[heading])
        return httpx.Response(404)

    client = PubChemRegistryClient(BASE, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return client, requests


async def test_lookup_collects_codes_ec_and_regulatory_status() -> None:
    client, requests = pubchem(ACRYLONITRILE_VIEWS, {"107-13-1": [7855]})

    substance = await client.lookup("107-13-1")
    await client.aclose()

    assert substance is not None
    assert substance.name == "Acrylonitrile"
    assert substance.hazard_codes == ["H225", "H350"]
    assert substance.ec_number == "203-466-5"
    assert substance.is_svhc is True
    assert substance.reach_status == "REGISTERED"
    assert requests[1].url.path == "/rest/pug_view/data/compound/7855/JSON"


async def test_lookup_without_regulatory_sections() -> None:
    views = {"GHS Classification": ACRYLONITRILE_VIEWS["GHS Classification"]}
    client, _ = pubchem(views, {"107-13-1": [7855]})

    substance = await client.lookup("107-13-1")

    assert substance is not None
    assert substance.ec_number is None
    assert substance.is_svhc is False
    assert substance.reach_status is None


async def test_unknown_cas_returns_none() -> None:
    client, requests = pubchem(ACRYLONITRILE_VIEWS, {})
    assert await client.lookup("64-17-5") is None
    assert len(requests) == 1


async def test_server_errors_are_transient() -> None:
    client, _ = pubchem(status=503)
    with pytest.raises(TransientExternalError):
        await client.lookup("107-13-1")
