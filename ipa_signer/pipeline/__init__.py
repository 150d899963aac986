"""Signing pipeline module.

This module handles:
- Collision-free naming of per-request artifacts
- IPA extraction and repackaging
- Running zsign and parsing its output
- Orchestrating a request from upload to published package
- Pruning the publish directory
"""

from ipa_signer.pipeline.service import authorize_request, sign_package

__all__ = ["authorize_request", "sign_package"]
