"""Health check endpoint.

Reports the service version and whether the publish directory can take
new packages.
"""

import os

from fastapi import APIRouter

from ipa_signer import __version__
from ipa_signer.config import Settings
from web.deps import AppSettings

router = APIRouter()


def publish_dir_state(settings: Settings) -> str:
    """State of the publish directory: ``ok``, ``missing`` or ``read_only``."""
    public_dir = settings.public_dir
    if not public_dir.is_dir():
        return "missing"
    if not os.access(public_dir, os.W_OK | os.X_OK):
        return "read_only"
    return "ok"


@router.get("/health")
def health(settings: AppSettings) -> dict[str, str]:
    """Health check endpoint.

    Returns:
        ``status`` (``ok`` or ``degraded``), version and publish directory
        state.
    """
    publish_dir = publish_dir_state(settings)
    return {
        "status": "ok" if publish_dir == "ok" else "degraded",
        "version": __version__,
        "publish_dir": publish_dir,
    }
