from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import quote

import httpx
import structlog

from sds_lifecycle.core.exceptions import ConfigurationError
from sds_lifecycle.core.http import send
from sds_lifecycle.modules.tenants.schemas import MailboxCredentials

logger = structlog.get_logger()

GRAPH_API_URL = "https://graph.microsoft.com/v1.0"
GRAPH_TOKEN_URL = "https://login.microsoftonline.com/{directory_id}/oauth2/v2.0/token"
SERVICE = "microsoft_graph"


@dataclass(frozen=True)
class MailAttachment:
    id: str
    name: str
    content_type: str
    size: int = 0


@dataclass(frozen=True)
class MailMessage:
    id: str
    subject: str
    sender: str | None
    received_at: datetime | None
    attachments: list[MailAttachment] = field(default_factory=list)


class MailboxClient(ABC):
    @abstractmethod
    async def list_messages(self, since: datetime) -> list[MailMessage]:
        """Messages with attachments received since *since*, oldest first."""
        ...

    @abstractmethod
    async def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        ...

    async def aclose(self) -> None:
        """Close the underlying HTTP client, if any."""


class GraphMailboxClient(MailboxClient):
    """Microsoft Graph (Office 365) mailbox over OAuth2 client credentials."""

    def __init__(
        self,
        credentials: MailboxCredentials,
        client: httpx.AsyncClient | None = None,
        page_size: int = 50,
        timeout_s: float = 30.0,
    ) -> None:
        if not (credentials.directory_id and credentials.client_id and credentials.client_secret):
            raise ConfigurationError("Incomplete Microsoft Graph credentials")
        self.credentials = credentials
        self.page_size = page_size
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._token: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def _mailbox_url(self) -> str:
        return f"{GRAPH_API_URL}/users/{quote(self.credentials.mailbox_email)}"

    async def _access_token(self) -> str:
        if self._token:
            return self._token
        resp = await send(
            self._client,
            "POST",
            GRAPH_TOKEN_URL.format(directory_id=self.credentials.directory_id),
            service=SERVICE,
            data={
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
        )
        self._token = resp.json()["access_token"]
        return self._token

    async def _get(self, url: str, params: dict | None = None) -> dict:
        token = await self._access_token()
        resp = await send(
            self._client,
            "GET",
            url,
            service=SERVICE,
            headers={"Authorization": f"Bearer {token}"},
            params=params,
        )
        return resp.json()

    async def list_messages(self, since: datetime) -> list[MailMessage]:
        stamp = since.strftime("%Y-%m-%dT%H:%M:%SZ")
        url: str | None = f"{self._mailbox_url}/messages"
        params: dict | None = {
            "$filter": f"receivedDateTime ge {stamp} and hasAttachments eq true",
            "$select": "id,subject,from,receivedDateTime,hasAttachments",
            "$orderby": "receivedDateTime asc",
            "$top": str(self.page_size),
        }

        messages: list[MailMessage] = []
        while url:
            data = await self._get(url, params)
            for item in data.get("value", []):
                attachments = await self._list_attachments(item["id"])
                sender = ((item.get("from") or {}).get("emailAddress") or {}).get("address")
                received = item.get("receivedDateTime")
                messages.append(
                    MailMessage(
                        id=item["id"],
                        subject=item.get("subject") or "",
                        sender=sender,
                        received_at=(
                            datetime.fromisoformat(received.replace("Z", "+00:00"))
                            if received
                            else None
                        ),
                        attachments=attachments,
                    )
                )
            # nextLink already carries the query string
            url, params = data.get("@odata.nextLink"), None

        logger.info("mailbox_messages_listed", mailbox=self.credentials.mailbox_email, count=len(messages))
        return messages

    async def _list_attachments(self, message_id: str) -> list[MailAttachment]:
        data = await self._get(
            f"{self._mailbox_url}/messages/{message_id}/attachments",
            {"$select": "id,name,contentType,size"},
        )
        return [
            MailAttachment(
                id=a["id"],
                name=a.get("name") or "",
                content_type=a.get("contentType") or "",
                size=a.get("size") or 0,
            )
            for a in data.get("value", [])
        ]

    async def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        data = await self._get(f"{self._mailbox_url}/messages/{message_id}/attachments/{attachment_id}")
        return base64.b64decode(data.get("contentBytes") or "")
