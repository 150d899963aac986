"""IPA Signer - re-sign iOS packages and publish them for OTA install.

This package wraps the zsign tool to re-sign uploaded IPA files with a
server-held identity, publishes the result and serves itms-services
install manifests.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
