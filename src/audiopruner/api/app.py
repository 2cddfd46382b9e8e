"""FastAPI application for the AudioPruner daemon."""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from audiopruner import __version__
from audiopruner.api import routes
from audiopruner.api.middleware import RequestLoggingMiddleware
from audiopruner.config import Config
from audiopruner.core.catalog import LibraryCatalog
from audiopruner.core.orchestrator import RemuxOrchestrator
from audiopruner.errors import AudioPrunerError
from audiopruner.utils.logger import get_logger

logger = get_logger(__name__)


class AppState:
    """Application state container."""

    def __init__(
        self,
        config: Config,
        catalog: Optional[LibraryCatalog] = None,
        orchestrator: Optional[RemuxOrchestrator] = None,
    ):
        self.config = config
        self.start_time = time.time()
        self.catalog = catalog or LibraryCatalog(config.library)
        self.orchestrator = orchestrator or RemuxOrchestrator(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting AudioPruner daemon", version=__version__)

    app_state = app.state.audiopruner

    loop = asyncio.get_running_loop()
    item_count = await loop.run_in_executor(None, app_state.catalog.refresh)
    logger.info("Library catalog loaded", item_count=item_count)

    yield

    logger.info("Shutdown complete")


def create_app(
    config: Config,
    catalog: Optional[LibraryCatalog] = None,
    orchestrator: Optional[RemuxOrchestrator] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Application configuration
        catalog: Library catalog (defaults to one scanning config.library)
        orchestrator: Remux orchestrator (defaults to one built from config)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="AudioPruner",
        description="Keep a single audio track in video files without re-encoding",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.audiopruner = AppState(config, catalog, orchestrator)

    @app.exception_handler(AudioPrunerError)
    async def audiopruner_exception_handler(request: Request, exc: AudioPrunerError):
        """Render domain failures as structured diagnostics."""
        log = logger.warning if exc.http_status < 500 else logger.error
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )

        return JSONResponse(
            status_code=exc.http_status,
            content={"status": "error", "title": exc.title, "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with detailed logging."""
        logger.warning(
            "Request validation failed",
            path=request.url.path,
            method=request.method,
            errors=exc.errors(),
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "status": "error",
                "title": "Invalid request",
                "detail": "Request validation failed",
                "errors": exc.errors(),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "status": "error",
                "title": "Internal server error",
                "detail": str(exc),
            },
        )

    app.include_router(routes.router)
    app.include_router(routes.api_router)

    logger.info(
        "FastAPI application created",
        version=__version__,
        api_port=config.api.port,
        admin_auth=config.api.admin_token is not None,
        library_roots=config.library.roots,
    )

    return app
