"""Sign endpoint.

- POST /sign - Upload an IPA with a device UDID; returns package, manifest
  and install URLs

Request validation happens before any file is written. Pipeline failures are
reported with one generic message; details stay in the server log.
"""

from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile

from ipa_signer.ota.install import build_install_links
from ipa_signer.pipeline.publish import published_url
from ipa_signer.pipeline.service import authorize_request, sign_package
from ipa_signer.types import SignRequest
from web.deps import AppSettings, BaseURL, SigningLimiter

router = APIRouter()

SUCCESS_MESSAGE = "IPA signed successfully."


@router.post("/sign")
def sign_endpoint(
    settings: AppSettings,
    limiter: SigningLimiter,
    base_url: BaseURL,
    udid: Annotated[str | None, Form()] = None,
    file: Annotated[UploadFile | None, File()] = None,
) -> dict[str, str]:
    """Re-sign an uploaded IPA and publish it.

    Args:
        settings: Application settings.
        limiter: Optional signing concurrency limiter.
        base_url: Public base URL.
        udid: Device UDID form field.
        file: Uploaded IPA.

    Returns:
        Message with ``ipa_url``, ``ota_url`` and ``install_url``.
    """
    file_name = file.filename if file is not None else None
    device_id = authorize_request(
        udid,
        has_package=file is not None,
        file_name=file_name,
        allowed_udids=settings.allowed_udids,
    )

    signed = sign_package(
        SignRequest(
            device_id=device_id,
            package=file.file,  # type: ignore[union-attr]
            file_name=file_name or "",
        ),
        settings,
        limiter=limiter,
    )

    result = signed.result
    links = build_install_links(
        base_url,
        result.bundle_identifier or "",
        result.bundle_version or "",
        signed.published_name,
    )
    return {
        "message": SUCCESS_MESSAGE,
        "ipa_url": published_url(base_url, signed.published_name),
        "ota_url": links.manifest_url,
        "install_url": links.install_url,
    }
