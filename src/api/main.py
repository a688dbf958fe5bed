"""Mongo API application entry point

Startup sequence: create the FastAPI app, register the MongoDB connector and
then the routes plugin, bind the listening socket and serve. Only
:func:`main` terminates the process; everything it calls raises instead.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.middleware.error_handler import (
    error_handling_middleware,
    http_exception_handler,
    validation_exception_handler,
)
from src.api.middleware.logging import request_logging_middleware
from src.api.server import SERVER_HOST, SERVER_PORT, Listener, ListenError
from src.plugins.base import ServerBuilder
from src.plugins.database import db_connector
from src.plugins.routes import routes
from src.utils.config_loader import Settings, get_settings
from src.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management"""
    logger.info("Application started", app=app.title)

    yield

    # Shutdown
    context = getattr(app.state, "context", None)
    if context is not None:
        await context.close()
    logger.info("Application stopped", app=app.title)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application"""

    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add custom middleware, the last one added runs first
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(error_handling_middleware)

    # Add exception handlers
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    return app


def build_server(app: Optional[FastAPI] = None) -> ServerBuilder:
    """Queue the plugins that make up the server

    The connector goes first: the routes plugin requires the database
    capability it provides.
    """
    builder = ServerBuilder(app or create_app())
    builder.register(db_connector, name="db-connector")
    builder.register(routes, name="routes")
    return builder


async def start(
    host: str = SERVER_HOST,
    port: int = SERVER_PORT,
    builder: Optional[ServerBuilder] = None,
) -> Listener:
    """Register every plugin and bind the listening socket

    Args:
        host: Interface to bind
        port: TCP port to bind
        builder: Builder to start, defaults to :func:`build_server`

    Returns:
        A listener in the ``listening`` state

    Raises:
        ListenError: If the socket cannot be bound
    """
    builder = builder or build_server()
    context = builder.context
    try:
        await builder.ready()
    except Exception:
        # Release whatever the earlier plugins opened
        await context.close()
        raise

    listener = Listener(context.app, host=host, port=port)
    try:
        address = listener.listen()
    except ListenError:
        await context.close()
        raise

    logger.info("Server listening at", address=address)
    print(f"Server is now listening on {address}")
    return listener


async def run(host: str = SERVER_HOST, port: int = SERVER_PORT) -> None:
    """Start the server and serve until shutdown"""
    listener = await start(host, port)
    await listener.serve()


def main(host: str = SERVER_HOST, port: int = SERVER_PORT) -> None:
    """Main entry point for running the application"""
    setup_logging()

    try:
        asyncio.run(run(host, port))
    except ListenError as exc:
        logger.error(
            "Failed to start server",
            host=exc.host,
            port=exc.port,
            error=str(exc.cause),
            error_type=type(exc.cause).__name__,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
