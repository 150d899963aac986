"""OTA install manifest generation.

Renders the property list an iOS device fetches through
``itms-services://?action=download-manifest``. Every value is XML-escaped
before insertion; bundle metadata comes from the uploaded package and is not
trusted.
"""

from __future__ import annotations

import re
from string import Template
from xml.sax.saxutils import escape

from ipa_signer.types import Manifest

MANIFEST_CONTENT_TYPE = "application/xml"

_QUOTE_ENTITIES = {"'": "&apos;", '"': "&quot;"}

# Characters outside the XML 1.0 Char production.
_INVALID_XML_CHARS = re.compile(
    "[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)

MANIFEST_TEMPLATE = Template(
    """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>items</key>
  <array>
    <dict>
      <key>assets</key>
      <array>
        <dict>
          <key>kind</key>
          <string>software-package</string>
          <key>url</key>
          <string>${package_url}</string>
        </dict>
      </array>
      <key>metadata</key>
      <dict>
        <key>bundle-identifier</key>
        <string>${bundle_identifier}</string>
        <key>bundle-version</key>
        <string>${bundle_version}</string>
        <key>kind</key>
        <string>software</string>
        <key>title</key>
        <string>${title}</string>
      </dict>
    </dict>
  </array>
</dict>
</plist>
"""
)


def escape_xml(value: str) -> str:
    """Escape ``& < > ' "`` for insertion into XML text.

    Characters XML 1.0 cannot represent at all (most C0 controls, lone
    surrogates, U+FFFE and U+FFFF) are dropped.
    """
    return escape(_INVALID_XML_CHARS.sub("", value), _QUOTE_ENTITIES)


def render_manifest(manifest: Manifest) -> str:
    """Render a Manifest as a property list document."""
    return MANIFEST_TEMPLATE.substitute(
        package_url=escape_xml(manifest.package_url),
        bundle_identifier=escape_xml(manifest.bundle_identifier),
        bundle_version=escape_xml(manifest.bundle_version),
        title=escape_xml(manifest.title),
    )


def build_manifest(
    package_url: str,
    bundle_identifier: str,
    bundle_version: str,
    title: str,
) -> str:
    """Build an OTA install manifest for one software package.

    Args:
        package_url: Download URL of the signed IPA.
        bundle_identifier: Application bundle identifier.
        bundle_version: Application version.
        title: Title shown on the device during install.

    Returns:
        Property list document as text.
    """
    return render_manifest(
        Manifest(
            package_url=package_url,
            bundle_identifier=bundle_identifier,
            bundle_version=bundle_version,
            title=title,
        )
    )


__all__ = [
    "MANIFEST_CONTENT_TYPE",
    "build_manifest",
    "escape_xml",
    "render_manifest",
]
