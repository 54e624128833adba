"""Per-run digest email: one message per recipient summarising the whole run."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from html import escape

import httpx
import structlog

logger = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com"


@dataclass(frozen=True)
class DigestItem:
    record_id: int | None
    product_name: str
    detail: str


@dataclass
class RunDigest:
    tenant_name: str
    job: str
    applied: list[DigestItem] = field(default_factory=list)
    queued: list[DigestItem] = field(default_factory=list)
    reclassified: list[DigestItem] = field(default_factory=list)
    review_due: list[DigestItem] = field(default_factory=list)
    substitution: list[DigestItem] = field(default_factory=list)
    supplier_requests: list[DigestItem] = field(default_factory=list)

    def sections(self) -> list[tuple[str, list[DigestItem]]]:
        return [
            ("Automatically updated safety data sheets", self.applied),
            ("Waiting for your review", self.queued),
            ("Hazard classification changed", self.reclassified),
            ("SDS review due", self.review_due),
            ("Substitution candidates (CMR/SVHC)", self.substitution),
            ("Request an updated SDS from the supplier", self.supplier_requests),
        ]

    @property
    def is_empty(self) -> bool:
        return not any(items for _, items in self.sections())

    @property
    def total(self) -> int:
        return sum(len(items) for _, items in self.sections())


def render_digest(digest: RunDigest, dashboard_base_url: str) -> tuple[str, str, str]:
    """Return ``(subject, html, text)``."""
    subject = f"[{digest.tenant_name}] Chemical register: {digest.total} update(s)"
    link = f"{dashboard_base_url.rstrip('/')}/dashboard/chemicals"

    text_lines = [f"Summary of the {digest.job} run for {digest.tenant_name}", ""]
    html_parts = [f"<h2>Chemical register: {escape(digest.tenant_name)}</h2>"]
    for heading, items in digest.sections():
        if not items:
            continue
        text_lines.append(f"{heading} ({len(items)})")
        html_parts.append(f"<h3>{escape(heading)} ({len(items)})</h3><ul>")
        for item in items:
            text_lines.append(f"  - {item.product_name}: {item.detail}")
            html_parts.append(
                f"<li><strong>{escape(item.product_name)}</strong>: {escape(item.detail)}</li>"
            )
        html_parts.append("</ul>")
        text_lines.append("")
    text_lines.append(f"Open the chemical register: {link}")
    html_parts.append(f'<p><a href="{escape(link)}">Open the chemical register</a></p>')

    return subject, "\n".join(html_parts), "\n".join(text_lines)


class DigestSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html: str, text: str) -> bool:
        """Deliver one email. Returns False on failure; never raises for delivery errors."""
        ...


class ResendDigestSender(DigestSender):
    """Sends through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, timeout_s: float = 30.0) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.timeout_s = timeout_s

    async def send(self, to: str, subject: str, html: str, text: str) -> bool:
        if not self.api_key:
            logger.warning("digest_email_skipped", reason="No Resend API key configured")
            return False

        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            try:
                resp = await client.post(
                    f"{RESEND_API_URL}/emails",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.from_address,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )
                resp.raise_for_status()
            except httpx.HTTPError:
                logger.warning("digest_email_failed", to=to, exc_info=True)
                return False

        logger.info("digest_email_sent", to=to, email_id=resp.json().get("id"))
        return True
