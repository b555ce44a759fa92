"""FastAPI app serving the health checks of the server it runs in."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from healthchecks.api.health_routes import create_health_router
from healthchecks.api.rendering import Renderer
from healthchecks.checks.registry import CheckSet, load_checks
from healthchecks.config import Settings, settings as default_settings
from healthchecks.health.engine import CheckExecutor
from healthchecks.notifications import NotificationManager, OnFailed

logger = logging.getLogger(__name__)


def build_executor(checks: CheckSet, settings: Settings) -> CheckExecutor:
    return CheckExecutor(
        checks,
        timeout=settings.check_timeout,
        user_agent=settings.user_agent,
        verify_tls=settings.verify_tls,
    )


def mount_healthchecks(
    app: FastAPI,
    checks: CheckSet,
    settings: Settings | None = None,
    on_failed: OnFailed | None = None,
) -> None:
    """Attach the health-check route to an existing app.

    ``checks`` must already be loaded, so a bad checks file fails here, at
    startup, rather than on the first request.
    """
    settings = settings or default_settings
    app.state.settings = settings
    app.state.checks = checks
    app.state.executor = build_executor(checks, settings)
    app.state.renderer = Renderer()
    app.state.on_failed = on_failed
    app.include_router(create_health_router(settings.checks_path))


def create_app(
    settings: Settings | None = None,
    checks: CheckSet | None = None,
    on_failed: OnFailed | None = None,
) -> FastAPI:
    """Create the app; the checks file is loaded eagerly (ConfigurationError is fatal)."""
    settings = settings or default_settings
    if checks is None:
        checks = load_checks(settings.checks_file)

    if on_failed is None:
        notifier = NotificationManager.from_settings(settings)
        if notifier.is_enabled:
            on_failed = notifier.notify_checks_failed

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Serving %d checks on %s (timeout %.1fs)",
            len(checks), settings.checks_path, settings.check_timeout,
        )
        yield

    app = FastAPI(
        title="Health Checks",
        version="0.1.0",
        lifespan=lifespan,
    )
    mount_healthchecks(app, checks, settings=settings, on_failed=on_failed)
    return app
