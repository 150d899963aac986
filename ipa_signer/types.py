"""Shared type definitions for ipa_signer.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO


class PipelineStage(str, Enum):
    """Stage of a signing request."""

    RECEIVED = "received"
    EXTRACTED = "extracted"
    SIGNED = "signed"
    PACKAGED = "packaged"
    PUBLISHED = "published"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SignRequest:
    """A validated request to sign one uploaded package.

    Attributes:
        device_id: Canonical (trimmed, upper-cased) device UDID.
        package: Readable binary stream with the uploaded IPA.
        file_name: File name supplied by the client.
    """

    device_id: str
    package: BinaryIO
    file_name: str


@dataclass(frozen=True)
class WorkItem:
    """Filesystem paths owned by a single signing request.

    Attributes:
        id: Unique token for the request.
        temp_input_path: Where the upload is spooled before extraction.
        work_dir: Directory holding the extracted, then signed, tree.
        output_path: Final location of the signed package in the publish dir.
    """

    id: str
    temp_input_path: Path
    work_dir: Path
    output_path: Path

    @property
    def published_name(self) -> str:
        """File name of the published package."""
        return self.output_path.name


@dataclass(frozen=True)
class SignResult:
    """Parsed result of one signing tool run.

    Attributes:
        signed: Whether the tool printed its success marker.
        bundle_identifier: Bundle identifier scraped from the output.
        bundle_version: Bundle version scraped from the output.
        raw_output: Combined stdout/stderr, for server-side diagnostics only.
        exit_code: Process exit code (informational).
    """

    signed: bool
    bundle_identifier: str | None = None
    bundle_version: str | None = None
    raw_output: str = ""
    exit_code: int | None = None


@dataclass(frozen=True)
class Manifest:
    """Values embedded into an OTA install manifest."""

    package_url: str
    bundle_identifier: str
    bundle_version: str
    title: str


@dataclass(frozen=True)
class SignedPackage:
    """Outcome of a successful pipeline run."""

    work_item: WorkItem
    result: SignResult
    stage_history: tuple[PipelineStage, ...] = field(default_factory=tuple)

    @property
    def published_name(self) -> str:
        """File name of the published package."""
        return self.work_item.published_name


__all__ = [
    "Manifest",
    "PipelineStage",
    "SignRequest",
    "SignResult",
    "SignedPackage",
    "WorkItem",
]
