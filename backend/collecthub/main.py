"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from starlette.middleware.gzip import GZipMiddleware

from collecthub.api.v1 import router as api_v1_router, worker_routers
from collecthub.config import Settings, get_settings
from collecthub.exceptions import CollectError
from collecthub.services.container import build_services

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    session_factory: async_sessionmaker | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    if engine is None:
        from collecthub.models.base import engine as default_engine

        engine = default_engine
    if session_factory is None:
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        from collecthub.models.base import Base

        logger.info("Starting %s...", settings.app_name)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified")

        services = build_services(settings, session_factory)
        app.state.settings = settings
        app.state.services = services

        try:
            await services.type_bind.preload()
        except Exception:
            logger.exception("Type binding preload failed; bindings load on demand")

        if settings.scheduler_backend == "inprocess":
            await services.scheduler.start()
            if settings.runner_enabled:
                await services.runner.start()
        else:
            logger.info(f"In-process scheduler disabled (backend={settings.scheduler_backend})")

        yield

        logger.info("Shutting down...")
        await services.scheduler.stop()
        await services.runner.stop()
        await services.cache.close()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Collection orchestration: job/run/task queue, worker pull protocol and ingestion merge",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CollectError)
    async def collect_error_handler(request: Request, exc: CollectError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Include API routers
    app.include_router(api_v1_router)
    for router in worker_routers:
        app.include_router(router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.app_name}

    @app.get("/health/detailed")
    async def detailed_health_check():
        checks = {}

        # Database
        try:
            async with session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                checks["database"] = {"ok": True}
        except Exception as e:
            checks["database"] = {"ok": False, "message": str(e)}

        services = app.state.services

        # Redis (optional; the type binding cache falls back to memory)
        if services.cache.is_enabled():
            try:
                await services.cache.ping()
                checks["redis"] = {"ok": True}
            except Exception as e:
                checks["redis"] = {"ok": False, "message": str(e)}
        else:
            checks["redis"] = {"ok": True, "enabled": False}

        # Scheduler
        scheduler = services.scheduler
        if settings.scheduler_backend == "inprocess":
            checks["scheduler"] = {
                "ok": scheduler.started and scheduler.last_tick_ok is not False,
                "backend": "inprocess",
                "last_tick_ok": scheduler.last_tick_ok,
                "runner_active": services.runner.is_running,
            }
        else:
            checks["scheduler"] = {"ok": True, "backend": settings.scheduler_backend}

        all_ok = all(check.get("ok", False) for check in checks.values())
        status = "healthy" if all_ok else "degraded"

        return {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }

    return app


app = create_app()
