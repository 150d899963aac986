"""Published package URLs and publish directory pruning."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from urllib.parse import quote

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/public"
OTA_PREFIX = "/ota"
INSTALL_PREFIX = "/install"


def _segment(value: str) -> str:
    return quote(value, safe="")


def published_url(base_url: str, file_name: str) -> str:
    """URL of a published package under the static mount."""
    return f"{base_url.rstrip('/')}{PUBLIC_PREFIX}/{_segment(file_name)}"


def manifest_url(
    base_url: str,
    bundle_identifier: str,
    bundle_version: str,
    file_name: str,
) -> str:
    """URL of the OTA manifest for a published package."""
    return (
        f"{base_url.rstrip('/')}{OTA_PREFIX}/{_segment(bundle_identifier)}"
        f"/{_segment(bundle_version)}/{_segment(file_name)}"
    )


def install_url(
    base_url: str,
    bundle_identifier: str,
    bundle_version: str,
    file_name: str,
) -> str:
    """URL of the install page for a published package."""
    return (
        f"{base_url.rstrip('/')}{INSTALL_PREFIX}/{_segment(bundle_identifier)}"
        f"/{_segment(bundle_version)}/{_segment(file_name)}"
    )


def prune_published(
    public_dir: Path,
    max_age: float = 0,
    now: float | None = None,
) -> list[Path]:
    """Delete published packages older than max_age seconds.

    Only regular files directly inside public_dir are considered. Failures
    are logged per file and do not stop the prune.

    Args:
        public_dir: Publish directory.
        max_age: Minimum age in seconds; 0 removes every file.
        now: Reference time (defaults to the current time).

    Returns:
        Paths that were removed.
    """
    if not public_dir.is_dir():
        logger.warning("Publish directory does not exist: %s", public_dir)
        return []

    if now is None:
        now = time.time()

    try:
        entries = sorted(public_dir.iterdir())
    except OSError as e:
        logger.error("Failed to list publish directory %s: %s", public_dir, e)
        return []

    removed: list[Path] = []
    for path in entries:
        try:
            if not path.is_file():
                continue
            if max_age and now - path.stat().st_mtime < max_age:
                continue
            path.unlink()
            removed.append(path)
        except OSError as e:
            logger.error("Failed to delete published file %s: %s", path, e)

    logger.info("Pruned %d published files from %s", len(removed), public_dir)
    return removed


__all__ = [
    "INSTALL_PREFIX",
    "OTA_PREFIX",
    "PUBLIC_PREFIX",
    "install_url",
    "manifest_url",
    "prune_published",
    "published_url",
]
