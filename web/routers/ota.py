"""OTA manifest endpoint.

- GET /ota/{bundle_id}/{bundle_version}/{ipa_file_name} - itms-services
  manifest for a published package
"""

from fastapi import APIRouter
from fastapi.responses import Response

from ipa_signer.ota.manifest import MANIFEST_CONTENT_TYPE, build_manifest
from ipa_signer.pipeline.publish import published_url
from web.deps import BaseURL

router = APIRouter()


@router.get("/{bundle_id}/{bundle_version}/{ipa_file_name}")
def ota_manifest_endpoint(
    bundle_id: str,
    bundle_version: str,
    ipa_file_name: str,
    base_url: BaseURL,
) -> Response:
    """Serve the install manifest for a published package.

    The bundle identifier doubles as the title shown during install.

    Args:
        bundle_id: Bundle identifier.
        bundle_version: Bundle version.
        ipa_file_name: Published package file name.
        base_url: Public base URL.

    Returns:
        Property list document.
    """
    manifest = build_manifest(
        published_url(base_url, ipa_file_name),
        bundle_id,
        bundle_version,
        bundle_id,
    )
    return Response(content=manifest, media_type=MANIFEST_CONTENT_TYPE)
