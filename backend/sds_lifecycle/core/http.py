"""httpx call wrapper mapping network failures onto the error taxonomy."""

from __future__ import annotations

from typing import Any

import httpx

from sds_lifecycle.core.exceptions import TransientExternalError

# Statuses worth retrying on the next attempt or run
RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    allow_statuses: tuple[int, ...] = (),
    **kwargs: Any,
) -> httpx.Response:
    """Send a request; transport errors and retryable statuses raise TransientExternalError.

    Statuses in *allow_statuses* (typically 404) are returned to the caller
    untouched. Any other 4xx raises ``httpx.HTTPStatusError``.
    """
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.TransportError as exc:
        raise TransientExternalError(service, f"{type(exc).__name__}: {exc}") from exc

    if resp.status_code in allow_statuses:
        return resp
    if resp.status_code in RETRYABLE_STATUSES or resp.status_code >= 500:
        raise TransientExternalError(service, f"HTTP {resp.status_code} from {url}")
    resp.raise_for_status()
    return resp
