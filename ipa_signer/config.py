"""Configuration settings for ipa_signer.

Uses pydantic-settings for config parsing from environment variables
and defaults. Settings are read once at startup and never mutated.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ipa_signer.errors import ConfigurationError


def _default_data_dir() -> Path:
    """Return the default data directory."""
    return Path.home() / ".local" / "share" / "ipa-signer"


def _default_public_dir() -> Path:
    """Return the default publish directory."""
    return _default_data_dir() / "public"


def _default_work_dir() -> Path:
    """Return the default working directory."""
    return _default_data_dir() / "work"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the IPA_SIGNER_ prefix.
    The model is frozen: components receive it explicitly and never change it.
    """

    model_config = SettingsConfigDict(
        env_prefix="IPA_SIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Paths
    public_dir: Path = Field(
        default_factory=_default_public_dir,
        description="Directory served under /public holding signed packages",
    )
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Directory for uploads and per-request working trees",
    )
    profile_path: Path = Field(
        default=Path("ota.mobileprovision"),
        description="Provisioning profile passed to the signing tool",
    )
    key_path: Path = Field(
        default=Path("key.pem"),
        description="Private key passed to the signing tool",
    )
    zsign_path: Path = Field(
        default=Path("/zsign"),
        description="Path to the zsign executable",
    )

    # Access control
    valid_udids: str = Field(
        default="",
        description="Comma-separated device UDIDs allowed to request signing",
    )

    # Public surface
    base_url: str | None = Field(
        default=None,
        description="Public base URL; derived from request headers if not set",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser",
    )
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="HTTP bind port")

    # Packaging
    zip_compression: int = Field(
        default=6,
        ge=0,
        le=9,
        description="Deflate level used when repackaging signed IPAs",
    )
    max_upload_bytes: int = Field(
        default=8 * 1024 * 1024 * 1024,
        ge=1,
        description="Maximum accepted upload size in bytes",
    )

    # Concurrency and timeouts
    max_concurrent_signings: int | None = Field(
        default=None,
        ge=1,
        description="Maximum concurrent zsign processes (unbounded if not set)",
    )
    sign_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Deadline for one zsign run in seconds (none if not set)",
    )

    # Publish pruning
    prune_interval: int = Field(
        default=6 * 60 * 60,
        ge=0,
        description="Seconds between publish directory prunes (0 disables)",
    )
    published_max_age: int = Field(
        default=6 * 60 * 60,
        ge=0,
        description="Age in seconds after which published packages are pruned",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def allowed_udids(self) -> frozenset[str]:
        """Canonical (trimmed, upper-cased) allow-list of device UDIDs."""
        return frozenset(
            udid.strip().upper()
            for udid in self.valid_udids.split(",")
            if udid.strip()
        )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def require_allowed_udids(settings: Settings) -> frozenset[str]:
    """Return the allow-list, refusing to run without one.

    Args:
        settings: Application settings.

    Returns:
        Canonical set of allowed UDIDs.

    Raises:
        ConfigurationError: If no UDIDs are configured.
    """
    allowed = settings.allowed_udids
    if not allowed:
        raise ConfigurationError(
            "No valid UDIDs found. Please define IPA_SIGNER_VALID_UDIDS.",
            code="no_valid_udids",
        )
    return allowed


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json", "require_allowed_udids"]
