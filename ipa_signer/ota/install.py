"""Install links for published packages.

Apple devices install through an ``itms-services`` link pointing at the OTA
manifest, which only Safari honours. Third-party iOS browsers are bounced to
Safari with the ``x-safari-`` scheme; other clients get a page with a QR code
to scan from a device.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ipa_signer.pipeline.publish import install_url, manifest_url

APPLE_DEVICE_TOKENS = ("iPhone", "iPad", "iPod", "AppleWatch", "Vision")
NON_SAFARI_TOKENS = ("CriOS", "FxiOS", "EdgiOS", "OPiOS", "YaBrowser", "DuckDuckGo")


class InstallClient(str, Enum):
    """How a client should be sent to the install."""

    SAFARI = "safari"
    IOS_BROWSER = "ios-browser"
    OTHER = "other"


@dataclass(frozen=True)
class InstallLinks:
    """Links for installing one published package."""

    install_url: str
    manifest_url: str
    itms_url: str
    safari_url: str


def classify_user_agent(user_agent: str) -> InstallClient:
    """Classify a User-Agent header for install routing."""
    if not any(token in user_agent for token in APPLE_DEVICE_TOKENS):
        return InstallClient.OTHER
    if any(token in user_agent for token in NON_SAFARI_TOKENS):
        return InstallClient.IOS_BROWSER
    return InstallClient.SAFARI


def build_install_links(
    base_url: str,
    bundle_identifier: str,
    bundle_version: str,
    file_name: str,
) -> InstallLinks:
    """Build the install, manifest, itms-services and Safari links.

    Args:
        base_url: Public base URL of the service.
        bundle_identifier: Application bundle identifier.
        bundle_version: Application version.
        file_name: Published package file name.

    Returns:
        InstallLinks for the package.
    """
    page = install_url(base_url, bundle_identifier, bundle_version, file_name)
    manifest = manifest_url(base_url, bundle_identifier, bundle_version, file_name)
    return InstallLinks(
        install_url=page,
        manifest_url=manifest,
        itms_url=f"itms-services://?action=download-manifest&url={manifest}",
        safari_url=f"x-safari-{page}",
    )


def redirect_target(links: InstallLinks, client: InstallClient) -> str | None:
    """Redirect target for a client, or None when a QR page should be shown."""
    if client is InstallClient.SAFARI:
        return links.itms_url
    if client is InstallClient.IOS_BROWSER:
        return links.safari_url
    return None


__all__ = [
    "InstallClient",
    "InstallLinks",
    "build_install_links",
    "classify_user_agent",
    "redirect_target",
]
