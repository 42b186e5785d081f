"""FastAPI application factory for the LinkLens portal."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from linklens import __version__
from linklens.config import LinkLensConfig
from linklens.errors import LinkLensError
from linklens.session.manager import CaptureManager

logger = logging.getLogger(__name__)

_FRONTEND_DIR = Path(__file__).parent / "frontend"


async def _cleanup_loop(manager: CaptureManager, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            manager.cleanup()
        except Exception:
            logger.exception("Capture cleanup pass failed")


def create_app(
    config: LinkLensConfig | None = None,
    manager: CaptureManager | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or LinkLensConfig.load()
    manager = manager or CaptureManager(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = asyncio.create_task(_cleanup_loop(manager, config.cleanup_interval))
        try:
            yield
        finally:
            cleanup.cancel()
            await manager.shutdown()

    app = FastAPI(
        title="LinkLens",
        version=__version__,
        docs_url="/api/docs",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.manager = manager

    @app.exception_handler(LinkLensError)
    async def linklens_error(request: Request, exc: LinkLensError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "message": "; ".join(problems)},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "Internal server error"},
        )

    from linklens.web.api.captures import router as captures_router
    from linklens.web.api.health import router as health_router
    from linklens.web.api.john import router as john_router
    from linklens.web.api.live import router as live_router
    from linklens.web.api.nmap import router as nmap_router
    from linklens.web.api.zap import router as zap_router

    app.include_router(health_router, prefix="/api")
    app.include_router(captures_router, prefix="/api")
    app.include_router(live_router, prefix="/api")
    app.include_router(zap_router, prefix="/api")
    app.include_router(nmap_router, prefix="/api")
    app.include_router(john_router, prefix="/api")

    # Serve the built frontend when it has been bundled
    if _FRONTEND_DIR.is_dir():
        app.mount(
            "/",
            StaticFiles(directory=str(_FRONTEND_DIR), html=True),
            name="frontend",
        )

    return app
