"""FastAPI application with lifespan management."""

from __future__ import annotations

import importlib.metadata
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import Depends, FastAPI

from visa_audit.api.middleware.error_handler import register_error_handlers
from visa_audit.api.rate_limit import RateLimiter, enforce_rate_limit
from visa_audit.api.routes import advisory, analyze, health, sessions
from visa_audit.core.config import APIConfig, AppSettings
from visa_audit.core.startup_checks import validate_settings
from visa_audit.hooks import setup_logging
from visa_audit.interfaces.research import RequirementsResearcher
from visa_audit.pipeline.channel import TaskRegistry
from visa_audit.pipeline.orchestrator import AuditPipeline
from visa_audit.providers.client import LLMClient
from visa_audit.reaudit.orchestrator import ReauditRunner
from visa_audit.session.store import SessionStore

log = logging.getLogger(__name__)


def _get_version() -> str:
    """Read package version from installed metadata, with dev fallback."""
    try:
        return importlib.metadata.version("visa-audit")
    except importlib.metadata.PackageNotFoundError:
        return "0.0.0-dev"


def create_app(
    settings: AppSettings | None = None,
    *,
    client=None,
    researcher: RequirementsResearcher | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use; read from the environment at startup when omitted.
        client: LLM client to use instead of one built from ``settings.llm``.
        researcher: Optional requirements researcher for ``POST /api/analyze``.
        clock: Monotonic clock for sessions, rate limiting and throttles.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application startup/shutdown lifecycle."""
        app_settings = settings or AppSettings()
        validate_settings(app_settings)
        setup_logging(app_settings.observability)

        llm = client or LLMClient(app_settings.llm)
        tasks = TaskRegistry()
        pipeline = AuditPipeline(llm, app_settings, researcher=researcher, tasks=tasks, clock=clock)

        app.state.settings = app_settings
        app.state.tasks = tasks
        app.state.pipeline = pipeline
        app.state.reaudit = ReauditRunner(pipeline)
        app.state.sessions = SessionStore(
            app_settings.session, scheduler_config=app_settings.scheduler, clock=clock
        )
        app.state.rate_limiter = (
            RateLimiter.from_config(app_settings.rate_limit, clock=clock)
            if app_settings.rate_limit.enabled
            else None
        )
        log.info("visa-audit ready (model=%s)", app_settings.llm.model)
        yield

        await tasks.drain()
        await llm.close()

    api_config = settings.api if settings is not None else APIConfig()
    app = FastAPI(
        title=api_config.title,
        description=api_config.description,
        version=_get_version(),
        lifespan=lifespan,
    )
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(analyze.router, prefix="/api", dependencies=[Depends(enforce_rate_limit)])
    app.include_router(advisory.router, prefix="/api", dependencies=[Depends(enforce_rate_limit)])
    app.include_router(sessions.router, prefix="/api", dependencies=[Depends(enforce_rate_limit)])
    return app


app = create_app()
