"""Request dependencies for FastAPI.

Settings and the signing limiter are created once by the application factory
and stored on ``app.state``; handlers receive them through dependency
injection rather than module globals.
"""

from __future__ import annotations

import threading
from typing import Annotated, Any

from fastapi import Depends, Request

from ipa_signer.config import Settings


def get_app_settings(request: Request) -> Settings:
    """Get settings from app state.

    Args:
        request: FastAPI request object.

    Returns:
        Settings the application was created with.
    """
    settings: Any = request.app.state.settings
    return settings  # type: ignore[no-any-return]


def get_signing_limiter(request: Request) -> threading.BoundedSemaphore | None:
    """Get the signing limiter from app state (None when unbounded)."""
    limiter: Any = request.app.state.signing_limiter
    return limiter  # type: ignore[no-any-return]


def get_base_url(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Public base URL for links returned to clients.

    Uses the configured base URL when set; otherwise derives it from the
    ``X-Forwarded-Proto`` and ``Host`` headers.

    Args:
        request: FastAPI request object.
        settings: Application settings.

    Returns:
        Base URL without a trailing slash.
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")

    host = request.headers.get("host") or request.url.netloc
    forwarded = request.headers.get("x-forwarded-proto", "http")
    protocol = "https" if forwarded.strip().lower() == "https" else "http"
    return f"{protocol}://{host}"


AppSettings = Annotated[Settings, Depends(get_app_settings)]
SigningLimiter = Annotated[
    threading.BoundedSemaphore | None, Depends(get_signing_limiter)
]
BaseURL = Annotated[str, Depends(get_base_url)]
