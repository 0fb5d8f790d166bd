"""FastAPI web application for feedscout.

The application factory takes the service container built by the
composition root, so the same queue instances are shared by every
request. Without one it builds its own from settings and closes it on
shutdown. ``start_server`` launches Uvicorn with the factory.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..services import ServiceContainer
from ..utils.logging import get_logger
from .routes import router

logger = get_logger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    owns_container = container is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.container is None:
            app.state.container = ServiceContainer.from_settings()
        yield
        if owns_container:
            await app.state.container.aclose()

    app = FastAPI(
        title="feedscout",
        description="Topic search queue API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container
    app.include_router(router)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Error handling {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": str(exc) or "Internal error"})

    return app


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Start the Uvicorn web server.

    Parameters
    ----------
    host: str
        Host to bind the server to. Defaults to ``0.0.0.0``.
    port: int
        Port to listen on. Defaults to 8000.
    reload: bool
        Whether to enable auto-reload. Useful during development.
    """
    uvicorn.run(
        "feedscout.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    start_server()
