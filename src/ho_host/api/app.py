"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import AppConfig, load_config
from ..errors import HostingError
from ..orchestrator import DeploymentOrchestrator, build_orchestrator
from ..paths import HostingPaths
from ..utils.logging import audit, configure_logging, get_logger
from .auth import StaticTokenResolver
from .routes import router

logger = get_logger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    orchestrator: Optional[DeploymentOrchestrator] = None,
) -> FastAPI:
    """Build the API around a fresh orchestrator unless one is supplied."""
    config = config or load_config()
    paths = HostingPaths.from_config(config.paths)

    log_file = None
    if config.logging.file:
        log_file = paths.base_dir / config.logging.file
    configure_logging(config.logging.level, log_file)

    orchestrator = orchestrator or build_orchestrator(config)
    orchestrator.recover()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        audit(logger, None, "SERVER_STARTED", f"Ports {orchestrator.ports.range_label}")
        yield
        orchestrator.shutdown()

    app = FastAPI(title="ho-host", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.orchestrator = orchestrator
    app.state.token_resolver = StaticTokenResolver(config.server.api_tokens)
    app.state.log_file = log_file

    @app.exception_handler(HostingError)
    async def hosting_error_handler(request: Request, exc: HostingError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status, content=exc.to_payload())

    app.include_router(router)
    return app
