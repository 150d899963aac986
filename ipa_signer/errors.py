"""Error taxonomy for the signing service.

Every error carries a stable ``code`` for logging and programmatic handling.
Request errors (validation, authorization) are raised before any resource is
allocated. Pipeline errors carry the stage in which they happened and are
surfaced to clients as one generic failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ipa_signer.types import PipelineStage

# Stable error codes
VALIDATION_ERROR = "validation"
PACKAGE_TOO_LARGE = "package_too_large"
AUTHORIZATION_ERROR = "unauthorized_udid"
EXTRACTION_ERROR = "extraction_error"
SIGNING_ERROR = "signing_error"
PACKAGING_ERROR = "packaging_error"
INTERNAL_ERROR = "internal_error"
CONFIGURATION_ERROR = "configuration_error"

GENERIC_FAILURE_MESSAGE = "An error occurred while processing your request."


class SignerError(Exception):
    """Base error for all signing service operations."""

    def __init__(self, message: str, code: str = "signer_error") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(SignerError):
    """Raised when startup configuration is unusable."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message, code)


class ValidationError(SignerError):
    """Raised when a sign request is missing required input."""

    def __init__(self, message: str, code: str = VALIDATION_ERROR) -> None:
        super().__init__(message, code)


class PackageTooLargeError(ValidationError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Uploaded file exceeds the {limit} byte limit.",
            code=PACKAGE_TOO_LARGE,
        )
        self.limit = limit


class AuthorizationError(SignerError):
    """Raised when a device UDID is not in the allow-list."""

    def __init__(self, udid: str, code: str = AUTHORIZATION_ERROR) -> None:
        super().__init__("Unauthorized UDID.", code)
        self.udid = udid


class PipelineError(SignerError):
    """Base error for failures inside the signing pipeline."""

    def __init__(self, message: str, code: str = "pipeline_error") -> None:
        super().__init__(message, code)
        self.stage: PipelineStage | None = None


class ExtractionError(PipelineError):
    """Raised when an uploaded package cannot be extracted."""

    def __init__(self, message: str, code: str = EXTRACTION_ERROR) -> None:
        super().__init__(message, code)


class SigningError(PipelineError):
    """Raised when the signing tool did not report a successful signature."""

    def __init__(
        self,
        message: str,
        code: str = SIGNING_ERROR,
        raw_output: str | None = None,
    ) -> None:
        super().__init__(message, code)
        self.raw_output = raw_output


class SigningToolError(SigningError):
    """Raised when the signing tool cannot be run at all."""


class PackagingError(PipelineError):
    """Raised when the signed tree cannot be repackaged."""

    def __init__(self, message: str, code: str = PACKAGING_ERROR) -> None:
        super().__init__(message, code)


class InternalError(PipelineError):
    """Raised for unexpected failures inside the pipeline."""

    def __init__(self, message: str, code: str = INTERNAL_ERROR) -> None:
        super().__init__(message, code)


__all__ = [
    "AUTHORIZATION_ERROR",
    "CONFIGURATION_ERROR",
    "EXTRACTION_ERROR",
    "GENERIC_FAILURE_MESSAGE",
    "INTERNAL_ERROR",
    "PACKAGE_TOO_LARGE",
    "PACKAGING_ERROR",
    "SIGNING_ERROR",
    "VALIDATION_ERROR",
    "AuthorizationError",
    "ConfigurationError",
    "ExtractionError",
    "InternalError",
    "PackageTooLargeError",
    "PackagingError",
    "PipelineError",
    "SignerError",
    "SigningError",
    "SigningToolError",
    "ValidationError",
]
