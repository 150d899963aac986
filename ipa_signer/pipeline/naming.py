"""Collision-free naming for per-request artifacts.

Names combine a millisecond timestamp with a random UUID so that no two
allocations collide, whatever the interleaving of concurrent requests.
Nothing here touches the filesystem; callers create what they need.
"""

from __future__ import annotations

import re
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from ipa_signer.types import WorkItem

if TYPE_CHECKING:
    from ipa_signer.config import Settings

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")

UPLOAD_SUFFIX = ".ipa.upload"
PACKAGE_SUFFIX = ".ipa"


def sanitize_file_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``.

    Args:
        name: Client-supplied file name.

    Returns:
        Name safe to embed in a path and a URL.
    """
    return _UNSAFE_CHARS.sub("_", name)


def allocate(prefix: str, root: Path, suffix: str = "") -> Path:
    """Allocate a unique path under root.

    Args:
        prefix: Human-readable part of the name.
        root: Parent directory.
        suffix: Optional suffix such as a file extension.

    Returns:
        ``root / "<epoch_ms>_<uuid>_<prefix><suffix>"``.
    """
    stamp = time.time_ns() // 1_000_000
    return root / f"{stamp}_{uuid.uuid4().hex}_{prefix}{suffix}"


def allocate_work_item(
    settings: Settings,
    device_id: str,
    file_name: str,
) -> WorkItem:
    """Allocate every path a signing request will use.

    Args:
        settings: Application settings (work and publish directories).
        device_id: Canonical device UDID.
        file_name: Client-supplied package name.

    Returns:
        WorkItem with disjoint temp input, working dir and output paths.
    """
    label = f"{sanitize_file_name(device_id)}_{sanitize_file_name(file_name)}"
    work_dir = allocate(label, settings.work_dir)
    return WorkItem(
        id=uuid.uuid4().hex,
        temp_input_path=allocate(label, settings.work_dir, UPLOAD_SUFFIX),
        work_dir=work_dir,
        output_path=allocate(label, settings.public_dir, PACKAGE_SUFFIX),
    )


__all__ = [
    "PACKAGE_SUFFIX",
    "UPLOAD_SUFFIX",
    "allocate",
    "allocate_work_item",
    "sanitize_file_name",
]
