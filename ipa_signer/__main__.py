"""Allow running as ``python -m ipa_signer``."""

from ipa_signer.cli import app

app(prog_name="ipa-signer")
