"""Shared fixtures: sample IPAs, a stub signer and isolated settings."""

import zipfile
from pathlib import Path

import pytest

from ipa_signer.config import Settings

SIGNED_OUTPUT = "Signed OK!\nBundleId: com.test.app\nBundleVersion: 1.0"


def make_ipa(path: Path, app_name: str = "Test") -> Path:
    """Write a minimal IPA (zip with a Payload/<app>.app tree)."""
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"Payload/{app_name}.app/Info.plist", "<plist></plist>")
        zf.writestr(f"Payload/{app_name}.app/{app_name}", b"\xcf\xfa\xed\xfe" * 256)
        zf.writestr(f"Payload/{app_name}.app/Frameworks/", "")
    return path


def write_stub_signer(
    path: Path,
    output: str = SIGNED_OUTPUT,
    exit_code: int = 0,
    stderr: str = "",
) -> Path:
    """Write an executable stand-in for zsign.

    The stub prints ``output`` (and ``stderr`` to stderr), drops a marker file
    into the directory it was asked to sign, and exits with ``exit_code``.
    """
    script = [
        "#!/bin/sh",
        'target="$6"',
        'if [ -d "$target" ]; then echo signed > "$target/.signed"; fi',
        "cat <<'__STDOUT__'",
        output,
        "__STDOUT__",
    ]
    if stderr:
        script += ["cat >&2 <<'__STDERR__'", stderr, "__STDERR__"]
    script.append(f"exit {exit_code}")
    path.write_text("\n".join(script) + "\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def sample_ipa(tmp_path: Path) -> Path:
    """A well-formed IPA on disk."""
    return make_ipa(tmp_path / "Test.ipa")


@pytest.fixture
def stub_signer(tmp_path: Path) -> Path:
    """A stub signer that reports success for com.test.app 1.0."""
    return write_stub_signer(tmp_path / "zsign")


@pytest.fixture
def settings(tmp_path: Path, stub_signer: Path) -> Settings:
    """Settings isolated in tmp_path, allowing the abcd-1234 device."""
    return Settings(
        public_dir=tmp_path / "public",
        work_dir=tmp_path / "work",
        profile_path=tmp_path / "ota.mobileprovision",
        key_path=tmp_path / "key.pem",
        zsign_path=stub_signer,
        valid_udids="abcd-1234, 00008030-001A",
        base_url="https://sign.example.com",
        zip_compression=6,
        prune_interval=0,
    )


@pytest.fixture
def ipa_factory():
    """Factory writing minimal IPAs: ``ipa_factory(path, app_name="Test")``."""
    return make_ipa


@pytest.fixture
def signer_factory():
    """Factory writing stub signers, see write_stub_signer."""
    return write_stub_signer
