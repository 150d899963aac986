"""FastAPI application factory.

This module creates the FastAPI application with all routers, the static
mount for published packages, error handlers and the publish pruning task.

Web routes are thin proxies to core APIs in ipa_signer/.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi import status as http_status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ipa_signer import __version__
from ipa_signer.config import Settings, get_settings, require_allowed_udids
from ipa_signer.errors import (
    GENERIC_FAILURE_MESSAGE,
    AuthorizationError,
    PackageTooLargeError,
    PipelineError,
    ValidationError,
)
from ipa_signer.pipeline.publish import prune_published
from ipa_signer.pipeline.service import make_signing_limiter
from web.routers import health, install, ota, sign

logger = logging.getLogger(__name__)


async def prune_loop(settings: Settings) -> None:
    """Prune the publish directory every ``prune_interval`` seconds."""
    while True:
        await asyncio.sleep(settings.prune_interval)
        try:
            await asyncio.to_thread(
                prune_published,
                settings.public_dir,
                settings.published_max_age,
            )
        except Exception:
            logger.exception("Publish directory prune failed; retrying next interval")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Starts the publish pruning task on startup and stops it on shutdown.
    """
    settings: Settings = app.state.settings
    task: asyncio.Task[None] | None = None
    if settings.prune_interval > 0:
        task = asyncio.create_task(prune_loop(settings))
    yield
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report a missing or invalid request input."""
    if isinstance(exc, PackageTooLargeError):
        return _message(http_status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, str(exc))
    return _message(http_status.HTTP_400_BAD_REQUEST, str(exc))


async def authorization_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Report an unauthorized device UDID."""
    return _message(http_status.HTTP_403_FORBIDDEN, str(exc))


async def pipeline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report any pipeline failure without internal detail."""
    return _message(http_status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_FAILURE_MESSAGE)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment if not
            provided.

    Returns:
        Configured FastAPI application.

    Raises:
        ConfigurationError: If no device UDIDs are allowed.
    """
    if settings is None:
        settings = get_settings()
    require_allowed_udids(settings)

    settings.work_dir.mkdir(parents=True, exist_ok=True)
    settings.public_dir.mkdir(parents=True, exist_ok=True)

    application = FastAPI(
        title="IPA Signer API",
        description="Re-sign iOS packages and publish them for OTA install",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.signing_limiter = make_signing_limiter(settings)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(ValidationError, validation_error_handler)
    application.add_exception_handler(AuthorizationError, authorization_error_handler)
    application.add_exception_handler(PipelineError, pipeline_error_handler)

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(sign.router, tags=["sign"])
    application.include_router(ota.router, prefix="/ota", tags=["ota"])
    application.include_router(install.router, prefix="/install", tags=["install"])
    application.mount(
        "/public",
        StaticFiles(directory=settings.public_dir),
        name="public",
    )

    logger.info(
        "Serving %d allowed UDIDs, publishing to %s",
        len(settings.allowed_udids),
        settings.public_dir,
    )
    return application
