from __future__ import annotations

import argparse
import sys
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cmcimock.api.error_handling import register_exception_handlers
from cmcimock.api.routes import admin_router, router
from cmcimock.api.schemas import HealthResponse
from cmcimock.config import get_settings
from cmcimock.logging import get_logger, set_correlation_id
from cmcimock.storage.models import utcnow

logger = get_logger(__name__)

__version__ = "0.1.0"

_settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the result set sweep on startup and cancel it on shutdown."""
    from cmcimock.service.runtime import get_runtime

    try:
        runtime = get_runtime()
        await runtime.sweeper.start()
    except Exception as exc:
        logger.error("startup_sweeper_failed", error=str(exc))

    yield

    try:
        runtime = get_runtime()
        await runtime.sweeper.stop()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="CICS CMCI Mock Server", version=__version__, lifespan=lifespan)

_origins = _settings.allowed_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    # Browsers refuse credentials with a wildcard origin
    allow_credentials="*" not in _origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "LtpaToken2",
        "X-Request-ID",
    ],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation id for structured logging.

    The id comes from the X-Request-ID header when the client sends one and
    is echoed back in the response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


register_exception_handlers(app)
app.include_router(router)
app.include_router(admin_router)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness check reporting the size of each in-memory store."""
    from cmcimock.service.runtime import get_runtime

    counts = get_runtime().store.counts()
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=utcnow(),
        **counts,
    )


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="CICS CMCI mock server.")
    parser.add_argument("--serve", action="store_true", help="Run the FastAPI app with uvicorn.")
    parser.add_argument("--host", default=_settings.host, help="Bind address.")
    parser.add_argument("--port", type=int, default=_settings.port, help="Bind port.")
    args = parser.parse_args(argv)

    if args.serve:
        import uvicorn

        logger.info("server_starting", host=args.host, port=args.port)
        uvicorn.run("cmcimock.app:app", host=args.host, port=args.port, log_level="info")
    else:
        parser.print_help()


def serve() -> None:
    """Console entry point that always starts the server."""
    main(["--serve", *sys.argv[1:]])


if __name__ == "__main__":  # pragma: no cover
    main()
