from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod

import httpx
import structlog

from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import (
    ConfigurationError,
    PermanentExtractionError,
    TransientExternalError,
)
from sds_lifecycle.modules.extraction.pdf_service import parse_pdf
from sds_lifecycle.modules.extraction.sanitizer import sanitize_extraction, strip_code_fences
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an expert in chemical safety documentation (EU CLP / REACH, OSHA HazCom).

You will receive the text layer of a Safety Data Sheet. Extract the fields below from
sections 1 (identification), 2 (hazards identification), 3 (composition) and the
document header (version, revision date).

Return a JSON object with these fields:
{
  "product_name": "Trade name as printed in section 1.1",
  "supplier": "Company responsible for placing on the market",
  "catalog_number": "Product / article / catalog number, null if absent",
  "cas_number": "CAS number of the substance (single substance) or main hazardous component",
  "ec_number": "EC number, null if absent",
  "hazard_statements": ["H225: Highly flammable liquid and vapour", "..."],
  "precautionary_statements": ["P210: Keep away from heat ...", "..."],
  "pictograms": ["GHS02", "GHS07"],
  "signal_word": "Danger|Warning|null",
  "sds_version": "Version string as printed, null if absent",
  "sds_date": "Revision date as YYYY-MM-DD, null if absent",
  "confidence": 0.85  // 0.0-1.0, how sure you are this is an SDS and the fields are right
}

Rules:
- Only report values that are literally present in the text, never infer CAS numbers
- Use null (or []) for anything that is not present
- Hazard statements must keep their H-code prefix
- confidence below 0.3 means the document is probably not an SDS"""

# Default models per provider
DEFAULT_MODELS = {
    "openai": "gpt-4.1-mini",
    "anthropic": "claude-haiku-4-5-20251001",
    "google": "gemini-2.0-flash",
}

# HTTP statuses that mean the request itself is bad and will never succeed
_PERMANENT_STATUSES = {400, 413, 422}


class ExtractionClient(ABC):
    """Turns raw SDS bytes into a StructuredExtraction."""

    @abstractmethod
    async def extract(self, document: bytes) -> StructuredExtraction:
        ...


# --- LLM provider abstraction ---


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider: str

    def __init__(self, api_key: str, model: str) -> None:
        if not api_key:
            raise ConfigurationError(f"No API key configured for {self.provider}")
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def complete(self, system_prompt: str, user_content: str) -> str | None:
        """Send a prompt and return the raw text response."""
        ...


class OpenAIClient(LLMClient):
    provider = "openai"

    async def complete(self, system_prompt: str, user_content: str) -> str | None:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.api_key)
        response = await client.chat.completions.create(
            model=self.model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=0.0,
        )
        return response.choices[0].message.content


class AnthropicClient(LLMClient):
    provider = "anthropic"

    async def complete(self, system_prompt: str, user_content: str) -> str | None:
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=self.api_key)
        response = await client.messages.create(
            model=self.model,
            max_tokens=4096,
            system=system_prompt,
            messages=[{"role": "user", "content": user_content}],
            temperature=0.0,
        )
        return response.content[0].text if response.content else None


class GoogleClient(LLMClient):
    provider = "google"

    async def complete(self, system_prompt: str, user_content: str) -> str | None:
        from google import genai

        client = genai.Client(api_key=self.api_key)
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=f"{system_prompt}\n\n{user_content}",
            config=genai.types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=0.0,
            ),
        )
        return response.text


_PROVIDERS: dict[str, tuple[type[LLMClient], str]] = {
    "openai": (OpenAIClient, "openai_api_key"),
    "anthropic": (AnthropicClient, "anthropic_api_key"),
    "google": (GoogleClient, "google_ai_api_key"),
}


def get_llm_client(settings: Settings) -> LLMClient:
    """Factory: return the configured LLM client."""
    provider = settings.extraction_provider.lower()
    if provider not in _PROVIDERS:
        raise ConfigurationError(f"Unknown extraction provider: {provider}")
    client_cls, key_attr = _PROVIDERS[provider]
    model = settings.extraction_model or DEFAULT_MODELS[provider]
    return client_cls(api_key=getattr(settings, key_attr), model=model)


def _is_transient(exc: Exception) -> bool:
    """Classify a provider SDK exception.

    The openai/anthropic/google SDKs all expose the HTTP status as
    ``status_code`` (or ``code``) on their API errors; connection and timeout
    errors carry none.
    """
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if isinstance(status, int):
        return status not in _PERMANENT_STATUSES
    return type(exc).__name__ in {"APIConnectionError", "APITimeoutError"}


class LLMExtractionClient(ExtractionClient):
    """PDF text layer → LLM JSON → sanitised StructuredExtraction."""

    def __init__(self, llm: LLMClient, max_chars: int = 12000, max_file_size_mb: int = 20) -> None:
        self.llm = llm
        self.max_chars = max_chars
        self.max_file_size_mb = max_file_size_mb

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMExtractionClient:
        return cls(
            get_llm_client(settings),
            max_chars=settings.extraction_max_chars,
            max_file_size_mb=settings.extraction_max_file_size_mb,
        )

    async def extract(self, document: bytes) -> StructuredExtraction:
        parsed = parse_pdf(document, max_file_size_mb=self.max_file_size_mb)
        user_content = parsed.text[: self.max_chars]
        if not parsed.looks_like_sds:
            user_content = "NOTE: no SDS headings were detected in this document.\n\n" + user_content

        try:
            raw = await self.llm.complete(SYSTEM_PROMPT, user_content)
        except Exception as exc:
            if _is_transient(exc):
                raise TransientExternalError(self.llm.provider, str(exc)) from exc
            raise PermanentExtractionError(f"{self.llm.provider} rejected document: {exc}") from exc

        if not raw:
            raise PermanentExtractionError(f"{self.llm.provider} returned an empty response")
        try:
            payload = json.loads(strip_code_fences(raw))
        except json.JSONDecodeError as exc:
            raise PermanentExtractionError(f"Unparsable model output: {exc}") from exc
        if not isinstance(payload, dict):
            raise PermanentExtractionError("Model output is not a JSON object")

        fields, confidence = sanitize_extraction(payload)
        if not parsed.looks_like_sds:
            confidence = min(confidence, 0.5)

        logger.info(
            "sds_extracted",
            provider=self.llm.provider,
            model=self.llm.model,
            pages=parsed.page_count,
            confidence=confidence,
            product_name=fields.get("product_name"),
            cas_number=fields.get("cas_number"),
        )
        return StructuredExtraction(
            data=fields,
            confidence=confidence,
            provider=self.llm.provider,
            model=self.llm.model,
        )
