"""Unit tests for PDF parsing and the LLM extraction client.

PDFs are generated on the fly with PyMuPDF; the LLM is a stub subclass of
``LLMClient`` so no provider SDK is called.
"""

from __future__ import annotations

import json

import fitz  # PyMuPDF
import pytest

from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import (
    ConfigurationError,
    PermanentExtractionError,
    TransientExternalError,
)
from sds_lifecycle.modules.extraction.client import (
    AnthropicClient,
    LLMClient,
    LLMExtractionClient,
    OpenAIClient,
    get_llm_client,
)
from sds_lifecycle.modules.extraction.pdf_service import looks_like_sds, parse_pdf

SDS_TEXT = (
    "SAFETY DATA SHEET\n"
    "SECTION 1: Identification\n"
    "Product name: Acetone\n"
    "CAS-No.: 67-64-1\n"
    "SECTION 2: Hazards identification\n"
    "H225 Highly flammable liquid and vapour"
)


def make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


class StubLLM(LLMClient):
    provider = "stub"

    def __init__(self, response: str | None = None, error: Exception | None = None) -> None:
        super().__init__(api_key="test", model="stub-1")
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, system_prompt: str, user_content: str) -> str | None:
        self.prompts.append(user_content)
        if self.error is not None:
            raise self.error
        return self.response


class ProviderError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


# ---------------------------------------------------------------------------
# parse_pdf
# ---------------------------------------------------------------------------


def test_parse_pdf_reads_text_layer() -> None:
    parsed = parse_pdf(make_pdf(SDS_TEXT, "SECTION 3: Composition"))
    assert parsed.page_count == 2
    assert "Acetone" in parsed.text
    assert "## Page 2" in parsed.text
    assert parsed.looks_like_sds is True


@pytest.mark.parametrize("payload", [b"", b"definitely not a pdf"])
def test_parse_pdf_rejects_unreadable_bytes(payload: bytes) -> None:
    with pytest.raises(PermanentExtractionError):
        parse_pdf(payload)


def test_parse_pdf_rejects_scans_without_text() -> None:
    with pytest.raises(PermanentExtractionError, match="no text layer"):
        parse_pdf(make_pdf(""))


def test_parse_pdf_enforces_size_limit() -> None:
    with pytest.raises(PermanentExtractionError, match="limit"):
        parse_pdf(b"%PDF" + b"0" * (1024 * 1024 + 1), max_file_size_mb=1)


def test_looks_like_sds() -> None:
    assert looks_like_sds("Sicherheitsdatenblatt gemäß Verordnung (EG) Nr. 1907/2006")
    assert not looks_like_sds("Invoice 2026-118 for 4 x Acetone 2.5 L")


# ---------------------------------------------------------------------------
# LLMExtractionClient
# ---------------------------------------------------------------------------


async def test_extract_returns_sanitised_extraction() -> None:
    response = json.dumps(
        {
            "productName": "Acetone",
            "cas_number": "67-64-1",
            "hazard_statements": "H225 Highly flammable liquid and vapour",
            "sds_date": "2026-03-01",
            "confidence": 0.93,
        }
    )
    llm = StubLLM(f"```json\n{response}\n```")

    result = await LLMExtractionClient(llm).extract(make_pdf(SDS_TEXT))

    assert result.data["product_name"] == "Acetone"
    assert result.data["hazard_statements"] == ["H225 Highly flammable liquid and vapour"]
    assert result.confidence == 0.93
    assert result.provider == "stub"
    assert "Acetone" in llm.prompts[0]


async def test_extract_caps_confidence_for_non_sds_documents() -> None:
    llm = StubLLM(json.dumps({"product_name": "Acetone", "confidence": 0.99}))
    result = await LLMExtractionClient(llm).extract(make_pdf("Invoice for 4 x Acetone 2.5 L"))
    assert result.confidence == 0.5
    assert llm.prompts[0].startswith("NOTE: no SDS headings")


@pytest.mark.parametrize("response", [None, "", "not json", "[1, 2]"])
async def test_extract_rejects_unusable_model_output(response: str | None) -> None:
    with pytest.raises(PermanentExtractionError):
        await LLMExtractionClient(StubLLM(response)).extract(make_pdf(SDS_TEXT))


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ProviderError(429), TransientExternalError),
        (ProviderError(503), TransientExternalError),
        (ConnectionError("reset"), TransientExternalError),
        (ProviderError(400), PermanentExtractionError),
        (ProviderError(413), PermanentExtractionError),
    ],
)
async def test_extract_classifies_provider_errors(error: Exception, expected: type[Exception]) -> None:
    with pytest.raises(expected):
        await LLMExtractionClient(StubLLM(error=error)).extract(make_pdf(SDS_TEXT))


def test_get_llm_client_picks_provider_and_default_model() -> None:
    client = get_llm_client(Settings(_env_file=None, extraction_provider="anthropic", anthropic_api_key="k"))
    assert isinstance(client, AnthropicClient)
    assert client.model.startswith("claude")

    client = get_llm_client(
        Settings(_env_file=None, extraction_provider="openai", openai_api_key="k", extraction_model="gpt-4.1")
    )
    assert isinstance(client, OpenAIClient)
    assert client.model == "gpt-4.1"


def test_get_llm_client_requires_key_and_known_provider() -> None:
    with pytest.raises(ConfigurationError):
        get_llm_client(Settings(_env_file=None, extraction_provider="openai", openai_api_key=""))
    with pytest.raises(ConfigurationError):
        get_llm_client(Settings(_env_file=None, extraction_provider="mistral", openai_api_key="k"))
