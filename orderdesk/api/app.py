"""FastAPI application factory."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from orderdesk import __version__
from orderdesk.api.errors import install_error_handlers
from orderdesk.api.routes import router
from orderdesk.di.container import Container
from orderdesk.logging import get_logger, LogContext, LogStream

logger = get_logger(LogStream.API)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(container: Container) -> FastAPI:
    """
    Build the HTTP app around an initialized container.

    Open streams are closed when the app shuts down.
    """
    if not container.initialized:
        raise RuntimeError("Container not initialized")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API started")
        yield
        container.stop()
        logger.info("API stopped")

    app = FastAPI(title="OrderDesk API", version=__version__, lifespan=lifespan)
    app.state.container = container

    origins = container.get_config().server.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        with LogContext(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            started = time.perf_counter()
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(f"{request.method} {request.url.path} {response.status_code}", extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            })
            return response

    install_error_handlers(app)
    app.include_router(router)
    return app
