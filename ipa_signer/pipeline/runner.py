"""Signing runner for executing zsign.

This module handles:
- Composing the zsign command line
- Executing zsign against a working directory with subprocess
- Scraping the success marker and bundle metadata from its output

zsign reports its result only as free text; the exit code is not
authoritative. All knowledge of its output format lives in this module.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from ipa_signer.errors import SigningToolError
from ipa_signer.types import SignResult

if TYPE_CHECKING:
    from ipa_signer.config import Settings

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "Signed OK!"
BUNDLE_ID_MARKER = "BundleId:"
# zsign prints "BundleVersion:" on its success path and "BundleVer:" on its
# error path; both are scanned on every run.
BUNDLE_VERSION_MARKERS = ("BundleVersion:", "BundleVer:")

SIGNER_ENV = {"WINEDEBUG": "-all"}


def compose_sign_command(
    zsign_path: Path,
    profile_path: Path,
    key_path: Path,
    work_dir: Path,
) -> list[str]:
    """Compose the zsign command line.

    Args:
        zsign_path: zsign executable.
        profile_path: Provisioning profile.
        key_path: Private key.
        work_dir: Directory signed in place.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [
        str(zsign_path),
        "-m",
        str(profile_path),
        "-k",
        str(key_path),
        "-s",
        str(work_dir),
    ]


def _value_after(line: str, marker: str) -> str:
    return line.rsplit(marker, 1)[1].strip()


def parse_sign_output(
    output: str,
    exit_code: int | None = None,
) -> SignResult:
    """Parse zsign output into a SignResult.

    Lines are scanned independently of their order. When a marker appears on
    several lines the last occurrence wins.

    Args:
        output: Combined stdout/stderr text.
        exit_code: Process exit code, recorded for diagnostics.

    Returns:
        SignResult; ``signed`` is True only if the success marker was seen.
    """
    signed = False
    bundle_identifier: str | None = None
    bundle_version: str | None = None

    for line in output.splitlines():
        if SUCCESS_MARKER in line:
            signed = True

        if BUNDLE_ID_MARKER in line:
            bundle_identifier = _value_after(line, BUNDLE_ID_MARKER)

        for marker in BUNDLE_VERSION_MARKERS:
            if marker in line:
                bundle_version = _value_after(line, marker)
                break

    return SignResult(
        signed=signed,
        bundle_identifier=bundle_identifier or None,
        bundle_version=bundle_version or None,
        raw_output=output,
        exit_code=exit_code,
    )


def combine_output(stdout: str | None, stderr: str | None) -> str:
    """Join captured stdout and stderr the way zsign logs are read."""
    combined = stdout or ""
    if stderr:
        combined += "\n" + stderr
    return combined


def _as_text(data: str | bytes | None) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""


def run_signer(work_dir: Path, settings: Settings) -> SignResult:
    """Sign a working directory in place with zsign.

    A tool run that does not print the success marker is reported through
    ``SignResult.signed`` rather than raised.

    Args:
        work_dir: Extracted IPA tree.
        settings: Application settings (tool and credential paths, timeout).

    Returns:
        Parsed SignResult.

    Raises:
        SigningToolError: If the working directory is missing or zsign
            cannot be started.
    """
    if not work_dir.is_dir():
        raise SigningToolError(
            f"The specified working directory does not exist: {work_dir}",
            code="missing_workdir",
        )

    cmd = compose_sign_command(
        settings.zsign_path,
        settings.profile_path,
        settings.key_path,
        work_dir,
    )
    logger.info("Executing signer: %s", shlex.join(cmd))

    env = dict(os.environ)
    env.update(SIGNER_ENV)

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=settings.sign_timeout,
            env=env,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        output = combine_output(_as_text(e.stdout), _as_text(e.stderr))
        output += f"\n# TIMEOUT after {settings.sign_timeout} seconds"
        logger.error(
            "Signer timed out after %s seconds for %s",
            settings.sign_timeout,
            work_dir,
        )
        # A killed run never counts as signed, whatever it printed first.
        return replace(parse_sign_output(output, exit_code=-1), signed=False)
    except OSError as e:
        raise SigningToolError(
            f"Failed to execute signer: {e}",
            code="tool_unavailable",
        ) from e

    output = combine_output(result.stdout, result.stderr)
    sign_result = parse_sign_output(output, exit_code=result.returncode)

    logger.info(
        "Signer exited with code %d (signed=%s, bundle=%s, version=%s)",
        result.returncode,
        sign_result.signed,
        sign_result.bundle_identifier,
        sign_result.bundle_version,
    )
    return sign_result


__all__ = [
    "BUNDLE_ID_MARKER",
    "BUNDLE_VERSION_MARKERS",
    "SUCCESS_MARKER",
    "combine_output",
    "compose_sign_command",
    "parse_sign_output",
    "run_signer",
]
