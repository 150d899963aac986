"""IPA extraction and repackaging.

This module handles:
- Extracting an uploaded IPA (zip container) into a fresh working directory
- Re-archiving a signed working directory into a distributable IPA

Both operations are all-or-nothing: a failed extraction leaves no working
directory behind and a failed repackage leaves no file at the output path.
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from ipa_signer.errors import ExtractionError, PackagingError

logger = logging.getLogger(__name__)

PARTIAL_PREFIX = "."
PARTIAL_SUFFIX = ".partial"


def _check_member_path(name: str) -> None:
    """Reject archive members that would escape the destination."""
    member_path = PurePosixPath(name.replace("\\", "/"))
    if member_path.is_absolute() or ".." in member_path.parts:
        raise ExtractionError(
            f"Refusing to extract {name}: path traversal detected",
            code="path_traversal",
        )


def extract_package(archive_path: Path, dest_dir: Path) -> Path:
    """Extract an IPA archive into a new directory.

    The archive is extracted as-is, so an IPA yields ``dest_dir/Payload/...``.

    Args:
        archive_path: Path to the uploaded archive.
        dest_dir: Destination directory; must not exist yet.

    Returns:
        The destination directory.

    Raises:
        ExtractionError: If the archive is malformed, unsafe or unreadable.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)

    if dest_dir.exists():
        raise ExtractionError(
            f"Destination already exists: {dest_dir}",
            code="destination_exists",
        )

    try:
        with zipfile.ZipFile(archive_path) as zf:
            members = zf.infolist()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path.name} is empty",
                    code="empty_archive",
                )
            for member in members:
                _check_member_path(member.filename)

            dest_dir.mkdir(parents=True)
            zf.extractall(dest_dir)

    except ExtractionError:
        _discard_tree(dest_dir)
        raise
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        EOFError,
        zlib.error,
        NotImplementedError,
        RuntimeError,
    ) as e:
        # NotImplementedError: unsupported compression method.
        # RuntimeError: encrypted member without a password.
        _discard_tree(dest_dir)
        raise ExtractionError(
            f"Invalid IPA archive {archive_path.name}: {e}",
            code="bad_archive",
        ) from e
    except OSError as e:
        _discard_tree(dest_dir)
        raise ExtractionError(
            f"Failed to extract {archive_path.name}: {e}",
            code="io_error",
        ) from e

    logger.info("Extracted %d entries to %s", len(members), dest_dir)
    return dest_dir


def _discard_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)


def _partial_path(output_path: Path) -> Path:
    return output_path.with_name(f"{PARTIAL_PREFIX}{output_path.name}{PARTIAL_SUFFIX}")


def create_package(
    source_dir: Path,
    output_path: Path,
    compression_level: int,
) -> Path:
    """Archive the contents of a directory into an IPA.

    Entries are stored relative to ``source_dir`` (no enclosing directory
    entry). Files are streamed into the archive one at a time; the result is
    written under a hidden temporary name and renamed into place.

    Args:
        source_dir: Signed working directory.
        output_path: Final package path.
        compression_level: Deflate level 0-9.

    Returns:
        The output path.

    Raises:
        PackagingError: If the archive cannot be written.
    """
    if not 0 <= compression_level <= 9:
        raise PackagingError(
            f"Compression level must be 0-9, got {compression_level}",
            code="invalid_compression",
        )
    if not source_dir.is_dir():
        raise PackagingError(
            f"Source directory does not exist: {source_dir}",
            code="missing_source",
        )

    partial = _partial_path(output_path)
    logger.info("Packaging %s into %s", source_dir, output_path)

    entries = 0
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(
            partial,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level,
            allowZip64=True,
        ) as zf:
            for path in sorted(source_dir.rglob("*")):
                arcname = path.relative_to(source_dir).as_posix()
                zf.write(path, arcname)
                entries += 1
        os.replace(partial, output_path)

    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        partial.unlink(missing_ok=True)
        raise PackagingError(f"Failed to create {output_path.name}: {e}") from e

    logger.info(
        "Packaged %d entries into %s (%d bytes)",
        entries,
        output_path.name,
        output_path.stat().st_size,
    )
    return output_path


__all__ = ["create_package", "extract_package"]
