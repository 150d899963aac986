"""FastAPI web application for IPA Signer.

This module provides the HTTP surface: the sign upload endpoint, OTA
manifests, install pages and static serving of published packages.

All business logic is delegated to core modules in ipa_signer/.
"""

from web.app import create_app

__all__ = ["create_app"]
