"""Health check engine — probes every configured check against this server.

For each check the engine resolves a loopback request, probes it with a
timeout, follows same-domain redirects, and classifies the result into an
Outcome. All checks of one invocation run concurrently; the Outcomes are
partitioned into passed / failed and sorted by URL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from healthchecks.checks.registry import Check, CheckSet
from healthchecks.config import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from healthchecks.health.prober import ProbeResponse, ProbeTimeout, TransportError, probe
from healthchecks.health.resolver import (
    InvalidURL,
    LoopbackRequest,
    RequestContext,
    resolve,
    within_same_domain,
)

logger = logging.getLogger(__name__)

# HTTP status codes which we follow as redirects.
REDIRECT_STATUSES = frozenset({301, 302, 303, 307})

# The maximum amount of redirects we will follow.
MAX_REDIRECTS = 10


class TooManyRedirectsError(Exception):
    """The redirect chain exceeded MAX_REDIRECTS hops."""

    def __init__(self, hops: int) -> None:
        self.hops = hops
        super().__init__(f"Too many redirects ({hops})")


class BodyMismatchError(Exception):
    """Expected text is missing from the response body."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Response did not contain {', '.join(repr(t) for t in missing)}")


# ── Models ───────────────────────────────────────────────────────────────────


class Reason(str, Enum):
    TIMEOUT = "timeout"
    ERROR = "error"
    TOO_MANY_REDIRECTS = "tooManyRedirects"
    STATUS_CODE = "statusCode"
    BODY_MISMATCH = "bodyMismatch"


@dataclass
class Outcome:
    """Classified result of running one check once.

    ``url`` is always the configured check URL, never the final redirect
    target. ``reason`` is None when the check passed.
    """

    url: str
    elapsed_ms: float
    reason: Reason | None = None
    error: str | None = None
    status_code: int | None = None
    body: str | None = None
    missing: list[str] = field(default_factory=list)
    redirects: int = 0

    @property
    def passed(self) -> bool:
        return self.reason is None

    @property
    def timeout(self) -> bool:
        return self.reason is Reason.TIMEOUT

    def log(self) -> None:
        if self.reason is Reason.ERROR:
            logger.debug("%s: Server responded with error %s", self.url, self.error)
        elif self.reason is Reason.TIMEOUT:
            logger.debug("%s: Server response timeout", self.url)
        elif self.reason is Reason.TOO_MANY_REDIRECTS:
            logger.debug("%s: Too many redirects", self.url)
        elif self.reason is Reason.STATUS_CODE:
            logger.debug("%s: Server responded with status code %s", self.url, self.status_code)
        elif self.reason is Reason.BODY_MISMATCH:
            logger.debug("%s: Server response did not contain expected text", self.url)

    def __str__(self) -> str:
        if self.reason is None:
            return self.url
        if self.reason is Reason.ERROR:
            return f"{self.url} => {self.error}"
        if self.reason is Reason.STATUS_CODE:
            return f"{self.url} => {self.status_code}"
        return f"{self.url} => {self.reason.value}"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "url": self.url,
            "elapsed_ms": self.elapsed_ms,
            "reason": self.reason.value if self.reason else None,
            "status_code": self.status_code,
            "redirects": self.redirects,
        }
        if self.error:
            d["error"] = self.error
        if self.missing:
            d["missing"] = self.missing
        return d


@dataclass(frozen=True)
class AggregateResult:
    """Outcomes of one invocation, partitioned and sorted by URL."""

    passed: tuple[Outcome, ...] = ()
    failed: tuple[Outcome, ...] = ()

    def __len__(self) -> int:
        return len(self.passed) + len(self.failed)

    @property
    def ok(self) -> bool:
        return bool(self.passed) and not self.failed

    @property
    def status_code(self) -> int:
        """200 if all passed, 500 if any failed, 404 when nothing was checked."""
        if self.failed:
            return 500
        if self.passed:
            return 200
        return 404

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "ok" if self.ok else "failed",
            "passed": [o.to_dict() for o in self.passed],
            "failed": [o.to_dict() for o in self.failed],
            "counts": {"passed": len(self.passed), "failed": len(self.failed)},
        }


def aggregate(outcomes: list[Outcome]) -> AggregateResult:
    """Partition outcomes on ``reason`` and sort each side by URL."""
    passed = sorted((o for o in outcomes if o.passed), key=lambda o: o.url)
    failed = sorted((o for o in outcomes if not o.passed), key=lambda o: o.url)
    return AggregateResult(passed=tuple(passed), failed=tuple(failed))


# ── Redirect following ───────────────────────────────────────────────────────


@dataclass
class RedirectChain:
    """Every probe made for one check; the last one is terminal."""

    hops: list[ProbeResponse] = field(default_factory=list)

    @property
    def response(self) -> ProbeResponse:
        return self.hops[-1]

    @property
    def redirects(self) -> int:
        return len(self.hops) - 1

    @property
    def elapsed_ms(self) -> float:
        return round(sum(h.elapsed_ms for h in self.hops), 1)


async def follow_redirects(
    client: httpx.AsyncClient,
    url: str,
    context: RequestContext,
    timeout: float,
    headers: dict[str, str] | None = None,
) -> RedirectChain:
    """Probe ``url``, following same-domain redirects up to MAX_REDIRECTS.

    Cross-domain redirects and redirects without a Location header are
    returned as-is. Timeouts apply to each hop separately.
    """
    chain = RedirectChain()
    request: LoopbackRequest = resolve(url, context)

    while True:
        response = await probe(client, request, timeout, headers=headers)
        chain.hops.append(response)

        if response.status_code not in REDIRECT_STATUSES:
            return chain
        if chain.redirects >= MAX_REDIRECTS:
            raise TooManyRedirectsError(chain.redirects)

        location = response.headers.get("location")
        if not location:
            return chain
        target = resolve(location, context, base=request.url)
        if not within_same_domain(target.hostname, request.hostname):
            logger.debug("%s: not following redirect to %s", url, target.url)
            return chain
        request = target


# ── Executor ─────────────────────────────────────────────────────────────────


def verify_body(expected: tuple[str, ...], body: str) -> None:
    """Literal substring containment; raises BodyMismatchError."""
    missing = [text for text in expected if text not in body]
    if missing:
        raise BodyMismatchError(missing)


class CheckExecutor:
    """Runs a CheckSet against the local server.

    Built once at startup; ``run()`` is called for every inbound health-check
    request and shares no state between invocations.
    """

    def __init__(
        self,
        checks: CheckSet,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        verify_tls: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.checks = checks
        self.timeout = timeout
        self.user_agent = user_agent
        self.verify_tls = verify_tls
        self._client = client

    def _make_client(self) -> httpx.AsyncClient:
        # trust_env=False: loopback probes must never go through a proxy
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            verify=self.verify_tls,
            trust_env=False,
        )

    async def run(self, context: RequestContext) -> AggregateResult:
        """Run all checks concurrently and aggregate the outcomes."""
        if not self.checks:
            return AggregateResult()

        headers = {
            "User-Agent": self.user_agent,
            "X-Request-Id": context.request_id or "",
        }

        if self._client is not None:
            outcomes = await self._run_all(self._client, context, headers)
        else:
            async with self._make_client() as client:
                outcomes = await self._run_all(client, context, headers)

        result = aggregate(outcomes)
        logger.info("%d passed and %d failed", len(result.passed), len(result.failed))
        return result

    async def _run_all(
        self,
        client: httpx.AsyncClient,
        context: RequestContext,
        headers: dict[str, str],
    ) -> list[Outcome]:
        # gather() returns results in check order, whatever the completion order
        return list(await asyncio.gather(*(
            self.run_check(client, check, context, headers) for check in self.checks
        )))

    async def run_check(
        self,
        client: httpx.AsyncClient,
        check: Check,
        context: RequestContext,
        headers: dict[str, str] | None = None,
    ) -> Outcome:
        """Run one check; every failure mode becomes an Outcome."""
        t0 = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - t0) * 1000, 1)

        try:
            chain = await follow_redirects(client, check.url, context, self.timeout, headers)
        except ProbeTimeout:
            outcome = Outcome(check.url, elapsed(), reason=Reason.TIMEOUT)
        except (TransportError, InvalidURL) as e:
            outcome = Outcome(check.url, elapsed(), reason=Reason.ERROR, error=str(e))
        except TooManyRedirectsError as e:
            outcome = Outcome(
                check.url, elapsed(), reason=Reason.TOO_MANY_REDIRECTS,
                error=str(e), redirects=e.hops,
            )
        except Exception as e:
            logger.exception("%s: unexpected error while checking", check.url)
            outcome = Outcome(
                check.url, elapsed(), reason=Reason.ERROR,
                error=f"{type(e).__name__}: {e}",
            )
        else:
            outcome = self._classify(check, chain, max(elapsed(), chain.elapsed_ms))

        outcome.log()
        return outcome

    @staticmethod
    def _classify(check: Check, chain: RedirectChain, elapsed_ms: float) -> Outcome:
        response = chain.response
        outcome = Outcome(
            check.url, elapsed_ms,
            status_code=response.status_code,
            body=response.body,
            redirects=chain.redirects,
        )
        if response.status_code < 200 or response.status_code >= 400:
            outcome.reason = Reason.STATUS_CODE
            return outcome
        try:
            verify_body(check.expected, response.body)
        except BodyMismatchError as e:
            outcome.reason = Reason.BODY_MISMATCH
            outcome.missing = e.missing
        return outcome
