"""Single-shot HTTP probe raced against a timeout."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

import httpx

from healthchecks.health.resolver import LoopbackRequest

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """DNS / connection / reset failure while probing."""


class ProbeTimeout(TimeoutError):
    """The probe did not complete within its allotted time."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"No response within {timeout:g}s")


@dataclass
class ProbeResponse:
    """Status, headers and body of one completed probe."""

    url: str
    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: str = ""
    elapsed_ms: float = 0.0


async def probe(
    client: httpx.AsyncClient,
    request: LoopbackRequest,
    timeout: float,
    headers: dict[str, str] | None = None,
) -> ProbeResponse:
    """GET ``request`` once, never following redirects.

    The request is cancelled if ``timeout`` expires first, which closes the
    underlying connection; a late response is never accounted for.
    """
    merged = {**(headers or {}), **request.headers}
    t0 = time.perf_counter()
    try:
        resp = await asyncio.wait_for(
            client.get(request.loopback_url, headers=merged, follow_redirects=False),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise ProbeTimeout(timeout) from e
    except httpx.HTTPError as e:
        raise TransportError(str(e) or type(e).__name__) from e

    elapsed = (time.perf_counter() - t0) * 1000
    logger.debug("%s: %d in %.1fms", request.url, resp.status_code, elapsed)
    return ProbeResponse(
        url=str(request.url),
        status_code=resp.status_code,
        headers=resp.headers,
        body=resp.text,
        elapsed_ms=round(elapsed, 1),
    )
