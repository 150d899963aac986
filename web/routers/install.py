"""Install page endpoint.

- GET /install/{bundle_id}/{bundle_version}/{ipa_file_name} - redirect iOS
  clients to the itms-services link, show a QR code to everything else
"""

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from ipa_signer.ota.install import (
    build_install_links,
    classify_user_agent,
    redirect_target,
)
from web.deps import BaseURL

router = APIRouter()

templates = Jinja2Templates(directory=Path(__file__).resolve().parent.parent / "templates")


@router.get("/{bundle_id}/{bundle_version}/{ipa_file_name}", name="install_page")
def install_endpoint(
    request: Request,
    bundle_id: str,
    bundle_version: str,
    ipa_file_name: str,
    base_url: BaseURL,
) -> Response:
    """Route a client to the install of a published package.

    Args:
        request: FastAPI request object.
        bundle_id: Bundle identifier.
        bundle_version: Bundle version.
        ipa_file_name: Published package file name.
        base_url: Public base URL.

    Returns:
        Temporary redirect for iOS clients, otherwise an HTML QR page.
    """
    links = build_install_links(base_url, bundle_id, bundle_version, ipa_file_name)
    client = classify_user_agent(request.headers.get("user-agent", ""))

    target = redirect_target(links, client)
    if target is not None:
        return RedirectResponse(target, status_code=307)

    return templates.TemplateResponse(
        request=request,
        name="install.html",
        context={
            "bundle_id": bundle_id,
            "bundle_version": bundle_version,
            "install_url": links.install_url,
        },
    )
