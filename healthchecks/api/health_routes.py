"""Health-check route — runs every check against this server.

Endpoint:
  GET {checks_path}   — HTML breakdown, or JSON when the client accepts it

Response status:
  200  all checks passed
  500  at least one check failed
  404  no checks configured
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from healthchecks.health.engine import AggregateResult, CheckExecutor
from healthchecks.health.resolver import RequestContext
from healthchecks.notifications import call_on_failed

logger = logging.getLogger(__name__)


def request_context(
    request: Request,
    loopback_host: str = "",
    loopback_port: int = 0,
    loopback_protocol: str = "",
) -> RequestContext:
    """Target the local socket the request arrived on, not the public host.

    The checks may say //www.example.com/ but in development we connect to
    127.0.0.1:5000.

    ``scope["scheme"]`` is rewritten from X-Forwarded-Proto when the server
    trusts proxy headers, so behind a TLS-terminating proxy it describes the
    proxy, not this socket. ``loopback_protocol`` pins it.
    """
    server = request.scope.get("server") or ("127.0.0.1", 80)
    return RequestContext(
        protocol=loopback_protocol or request.scope.get("scheme", "http"),
        host=loopback_host or server[0],
        port=loopback_port or server[1],
        request_id=request.headers.get("x-request-id"),
    )


def _wants_json(request: Request) -> bool:
    if request.query_params.get("format") == "json":
        return True
    return "application/json" in request.headers.get("accept", "")


def create_health_router(path: str = "/_healthchecks") -> APIRouter:
    """Router serving the aggregated health of the configured checks.

    Expects ``app.state.executor`` and ``app.state.renderer``; uses the
    optional ``app.state.on_failed`` hook and ``app.state.settings`` loopback
    overrides.
    """
    router = APIRouter(tags=["healthchecks"])

    @router.get(path)
    async def run_healthchecks(request: Request, background: BackgroundTasks) -> Response:
        state = request.app.state
        executor: CheckExecutor = state.executor
        settings = getattr(state, "settings", None)

        context = request_context(
            request,
            loopback_host=getattr(settings, "loopback_host", ""),
            loopback_port=getattr(settings, "loopback_port", 0),
            loopback_protocol=getattr(settings, "loopback_protocol", ""),
        )
        logger.debug(
            "Running against %s://%s:%s with request-ID %s",
            context.protocol, context.host, context.port, context.request_id,
        )

        result: AggregateResult = await executor.run(context)

        on_failed = getattr(state, "on_failed", None)
        if result.failed and on_failed is not None:
            background.add_task(call_on_failed, on_failed, list(result.failed))

        if _wants_json(request):
            return JSONResponse(status_code=result.status_code, content=result.to_dict())
        html = state.renderer.render(result)
        return HTMLResponse(status_code=result.status_code, content=html)

    return router
