"""
GTC Workflow API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Optional

import redis.asyncio as redis
import structlog
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from gtcflow.api.v1 import router as api_v1_router
from gtcflow.api.v1.auth import router as auth_router
from gtcflow.core.auth import AppContext
from gtcflow.core.config import Settings, get_settings
from gtcflow.core.database import async_session_factory, get_session_context
from gtcflow.core.exceptions import register_exception_handlers
from gtcflow.core.logging import configure_logging
from gtcflow.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from gtcflow.core.realtime import RedisRealtimeChannel
from gtcflow.core.storage import LocalFileStore
from gtcflow.core.token_store import InMemoryTokenStore, RedisTokenStore
from gtcflow.core.tokens import TokenAuthority
from gtcflow.services.notifications import NotificationDispatcher
from gtcflow.tasks.email import ArqEmailQueue

settings = get_settings()
log = structlog.get_logger()


async def build_context(settings: Settings) -> AppContext:
    """Wire production collaborators: Redis-backed stores, ARQ email queue, local files."""
    client = redis.from_url(settings.redis_url, decode_responses=True)
    if settings.token_store == "memory":
        log.warning("tokens.memory_store", detail="sessions are lost on restart")
        store = InMemoryTokenStore()
    else:
        store = RedisTokenStore(client)

    try:
        arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    except Exception:
        await client.aclose()
        raise
    dispatcher = NotificationDispatcher(
        async_session_factory,
        RedisRealtimeChannel(client),
        ArqEmailQueue(arq_pool),
    )
    return AppContext(
        authority=TokenAuthority.from_settings(store, settings),
        token_store=store,
        dispatcher=dispatcher,
        files=LocalFileStore(settings.upload_dir),
        redis=client,
        arq_pool=arq_pool,
    )


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass a prebuilt `context`; otherwise the lifespan builds one.
    """
    configure_logging(settings.debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = app.state.context if context is not None else await build_context(settings)
        app.state.context = ctx
        log.info("gtc.starting", token_store=settings.token_store)

        sweeper = None
        if isinstance(ctx.token_store, InMemoryTokenStore):
            sweeper = asyncio.create_task(
                ctx.token_store.run_sweeper(settings.token_sweep_interval_seconds)
            )
        try:
            yield
        finally:
            log.info("gtc.shutting_down")
            if sweeper is not None:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            if context is None:
                await ctx.aclose()

    app = FastAPI(
        title="GTC Workflow",
        description="Convention and onboarding workflows for GTC points.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    # Middleware (order matters, outermost last)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database reachable, Redis reachable when configured."""
        checks = {}
        try:
            async with get_session_context() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            log.warning("ready.database_failed", error=str(e))
            checks["database"] = "unavailable"

        ctx: Optional[AppContext] = getattr(app.state, "context", None)
        if ctx is not None and ctx.redis is not None:
            try:
                await ctx.redis.ping()
                checks["redis"] = "ok"
            except Exception as e:
                log.warning("ready.redis_failed", error=str(e))
                checks["redis"] = "unavailable"

        ready = all(v == "ok" for v in checks.values())
        return {"status": "ready" if ready else "degraded", "checks": checks}

    return app


app = create_app()
