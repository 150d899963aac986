"""OTA install module.

This module handles:
- Rendering itms-services install manifests
- Building install links and picking the right one for a user agent
"""

from ipa_signer.ota.manifest import build_manifest, escape_xml

__all__ = ["build_manifest", "escape_xml"]
