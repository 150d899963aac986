"""Signing pipeline service.

This module provides the high-level signing API:
- authorize_request(): request validation against the UDID allow-list
- sign_package(): main entry point - spool, extract, sign, repackage, publish
- Cleanup of per-request temporary files on every exit path

The pipeline moves through received -> extracted -> signed -> packaged ->
published -> done, or to failed from any earlier stage. The uploaded file is
removed as soon as extraction finishes; the working directory is removed once
packaging concludes, whatever the outcome.
"""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from ipa_signer.errors import (
    AuthorizationError,
    InternalError,
    PackageTooLargeError,
    PipelineError,
    SigningError,
    ValidationError,
)
from ipa_signer.pipeline.archive import create_package, extract_package
from ipa_signer.pipeline.naming import allocate_work_item
from ipa_signer.pipeline.runner import run_signer
from ipa_signer.types import PipelineStage, SignedPackage, SignRequest

if TYPE_CHECKING:
    from ipa_signer.config import Settings

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1 MiB
PACKAGE_EXTENSION = ".ipa"


def normalize_udid(udid: str) -> str:
    """Canonical form of a device UDID (trimmed, upper-cased)."""
    return udid.strip().upper()


def authorize_request(
    udid: str | None,
    has_package: bool,
    file_name: str | None,
    allowed_udids: frozenset[str],
) -> str:
    """Validate a sign request before any resource is allocated.

    Args:
        udid: Device UDID as sent by the client.
        has_package: Whether package content was supplied.
        file_name: Client-supplied package file name.
        allowed_udids: Canonical allow-list.

    Returns:
        Canonical UDID.

    Raises:
        ValidationError: If the UDID or the package is missing, or the
            package is not an IPA.
        AuthorizationError: If the UDID is not allowed.
    """
    if not udid or not udid.strip():
        raise ValidationError("Device UDID is missing.", code="missing_udid")

    canonical = normalize_udid(udid)
    if canonical not in allowed_udids:
        logger.warning("Unauthorized UDID attempt: %s", canonical)
        raise AuthorizationError(canonical)

    if not has_package or not file_name:
        raise ValidationError("No file uploaded.", code="missing_package")

    if not file_name.lower().endswith(PACKAGE_EXTENSION):
        raise ValidationError(
            "Uploaded file is not a valid iOS IPA file.",
            code="invalid_package_type",
        )

    return canonical


def make_signing_limiter(settings: Settings) -> threading.BoundedSemaphore | None:
    """Build the semaphore capping concurrent signer processes, if configured."""
    if settings.max_concurrent_signings is None:
        return None
    return threading.BoundedSemaphore(settings.max_concurrent_signings)


@contextmanager
def signing_slot(
    limiter: threading.BoundedSemaphore | None,
) -> Iterator[None]:
    """Hold a signing slot for the duration of the block.

    Args:
        limiter: Optional semaphore; None means unbounded.

    Yields:
        None when a slot is held.
    """
    if limiter is None:
        yield
        return
    with limiter:
        yield


def spool_upload(
    source: BinaryIO,
    dest_path: Path,
    max_bytes: int,
    chunk_size: int = UPLOAD_CHUNK_SIZE,
) -> int:
    """Copy an upload stream to a new file, enforcing a size limit.

    Args:
        source: Readable binary stream.
        dest_path: Destination file; must not exist.
        max_bytes: Maximum accepted size.
        chunk_size: Size of chunks to copy.

    Returns:
        Number of bytes written.

    Raises:
        PackageTooLargeError: If the stream exceeds max_bytes.
        ValidationError: If the stream is empty.
    """
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    total_bytes = 0
    with dest_path.open("xb") as f:
        while chunk := source.read(chunk_size):
            total_bytes += len(chunk)
            if total_bytes > max_bytes:
                raise PackageTooLargeError(max_bytes)
            f.write(chunk)

    if total_bytes == 0:
        raise ValidationError("No file uploaded.", code="missing_package")

    logger.debug("Spooled %d bytes to %s", total_bytes, dest_path)
    return total_bytes


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Error deleting uploaded file %s: %s", path, e)


def _remove_tree(path: Path) -> None:
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.error("Error deleting work directory %s: %s", path, e)


def sign_package(
    request: SignRequest,
    settings: Settings,
    limiter: threading.BoundedSemaphore | None = None,
) -> SignedPackage:
    """Run the signing pipeline for one request.

    Steps:
    1. Allocate unique paths and spool the upload to the temp input path
    2. Extract the IPA into the working directory, then delete the upload
    3. Run zsign on the working directory (holding a signing slot)
    4. Repackage the signed tree into the publish directory
    5. Remove the working directory

    Args:
        request: Validated sign request.
        settings: Application settings.
        limiter: Optional semaphore capping concurrent signer runs.

    Returns:
        SignedPackage describing the published artifact.

    Raises:
        ValidationError: If the upload is empty or too large.
        PipelineError: ExtractionError, SigningError, PackagingError or
            InternalError, with ``stage`` set to the last stage reached.
    """
    work_item = allocate_work_item(settings, request.device_id, request.file_name)
    history: list[PipelineStage] = [PipelineStage.RECEIVED]
    logger.info(
        "Signing request %s for %s (%s)",
        work_item.id,
        request.device_id,
        request.file_name,
    )

    try:
        try:
            spool_upload(
                request.package,
                work_item.temp_input_path,
                settings.max_upload_bytes,
            )
            extract_package(work_item.temp_input_path, work_item.work_dir)
        finally:
            _remove_file(work_item.temp_input_path)
        history.append(PipelineStage.EXTRACTED)

        with signing_slot(limiter):
            result = run_signer(work_item.work_dir, settings)

        if not result.signed:
            raise SigningError(
                "Signing failed: success marker not found in signer output",
                code="not_signed",
                raw_output=result.raw_output,
            )
        if not result.bundle_identifier or not result.bundle_version:
            raise SigningError(
                "Signing succeeded but bundle metadata is missing",
                code="missing_bundle_metadata",
                raw_output=result.raw_output,
            )
        logger.debug("Signer output for %s:\n%s", work_item.id, result.raw_output)
        history.append(PipelineStage.SIGNED)

        create_package(
            work_item.work_dir,
            work_item.output_path,
            settings.zip_compression,
        )
        history.append(PipelineStage.PACKAGED)

    except ValidationError:
        history.append(PipelineStage.FAILED)
        raise
    except PipelineError as e:
        e.stage = history[-1]
        history.append(PipelineStage.FAILED)
        _log_failure(work_item.id, e)
        raise
    except Exception as e:
        error = InternalError(f"Unexpected failure: {e}")
        error.stage = history[-1]
        history.append(PipelineStage.FAILED)
        logger.exception("Request %s failed after %s", work_item.id, error.stage.value)
        raise error from e
    finally:
        _remove_tree(work_item.work_dir)

    history.append(PipelineStage.PUBLISHED)
    history.append(PipelineStage.DONE)
    logger.info(
        "Request %s published %s (%s %s)",
        work_item.id,
        work_item.published_name,
        result.bundle_identifier,
        result.bundle_version,
    )
    return SignedPackage(
        work_item=work_item,
        result=result,
        stage_history=tuple(history),
    )


def _log_failure(request_id: str, error: PipelineError) -> None:
    stage = error.stage.value if error.stage else "unknown"
    logger.error(
        "Request %s failed after %s [%s]: %s",
        request_id,
        stage,
        error.code,
        error,
    )
    if isinstance(error, SigningError) and error.raw_output is not None:
        logger.error("Signer output for %s:\n%s", request_id, error.raw_output)


__all__ = [
    "authorize_request",
    "make_signing_limiter",
    "normalize_udid",
    "sign_package",
    "signing_slot",
    "spool_upload",
]
