"""Loopback resolution — turns a check URL into a request against this server.

A check may say ``//admin.example.com/dashboard`` while in development the
server listens on ``127.0.0.1:5000``. The probe connects to the socket address
from the RequestContext and carries the intended host in the ``Host`` header
(and the intended scheme in ``X-Forwarded-Proto``), so virtual-host and
subdomain routing still see the URL the check author wrote.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx


class InvalidURL(ValueError):
    """Raised when a check or redirect URL cannot be resolved."""


@dataclass(frozen=True)
class RequestContext:
    """Per-invocation data supplied by the serving layer."""

    protocol: str  # http | https
    host: str  # loopback address to connect to
    port: int
    request_id: str | None = None


@dataclass(frozen=True)
class LoopbackRequest:
    """A resolved probe target.

    ``url`` is what the check author meant (used for redirects and domain
    rules); ``loopback_url`` is where the connection actually goes.
    """

    url: httpx.URL
    loopback_url: httpx.URL
    headers: dict[str, str]

    @property
    def hostname(self) -> str:
        return self.url.host


def resolve(
    check_url: str,
    context: RequestContext,
    base: httpx.URL | None = None,
) -> LoopbackRequest:
    """Resolve ``check_url`` against ``base`` (or the context protocol on localhost)."""
    try:
        base_url = base or httpx.URL(f"{context.protocol}://localhost/")
        url = base_url.join(check_url)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidURL(f"Cannot resolve {check_url!r}: {e}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURL(f"Cannot resolve {check_url!r}: not an HTTP/S URL")

    try:
        loopback_url = url.copy_with(
            scheme=context.protocol,
            host=context.host,
            port=context.port,
        )
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidURL(f"Cannot resolve {check_url!r}: {e}") from e

    headers = {
        "Host": url.netloc.decode("ascii"),
        "X-Forwarded-Proto": url.scheme,
    }
    return LoopbackRequest(url=url, loopback_url=loopback_url, headers=headers)


def within_same_domain(target: str, current: str) -> bool:
    """Same hostname, a subdomain of it, or a parent domain of it."""
    target = target.lower()
    current = current.lower()
    return (
        target == current
        or target.endswith(f".{current}")
        or current.endswith(f".{target}")
    )
