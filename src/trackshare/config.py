"""Configuration management for the Trackshare API server."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_CONFIG_FILE = "trackshare.toml"
_CONFIG_ENV = "TRACKSHARE_CONFIG"

# Environment variable -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SUPABASE_URL": ("backend", "url"),
    "SUPABASE_KEY": ("backend", "service_key"),
    "TRACKSHARE_HOST": ("server", "host"),
    "TRACKSHARE_PORT": ("server", "port"),
    "TRACKSHARE_LOG_LEVEL": ("server", "log_level"),
    "TRACKSHARE_LOG_DIR": ("server", "log_dir"),
}


def get_config_path() -> Path:
    """Return the TOML config path (``$TRACKSHARE_CONFIG`` or ./trackshare.toml)."""
    override = os.environ.get(_CONFIG_ENV)
    if override:
        return Path(override)
    return Path.cwd() / _CONFIG_FILE


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class BackendConfig(BaseModel):
    """Connection settings for the hosted backend (auth, tables, storage)."""

    url: str = Field(default="", description="Base URL of the backend project")
    service_key: SecretStr = Field(default=SecretStr(""), description="Service role key")
    audio_bucket: str = Field(default="track_audios", description="Bucket for audio objects")
    cover_bucket: str = Field(default="track_cover_images", description="Bucket for cover images")
    signed_url_ttl: int = Field(default=3600, description="Lifetime of signed audio URLs in seconds")


class ServerConfig(BaseModel):
    """Settings for the HTTP listener."""

    host: str = Field(default="0.0.0.0", description="Interface to bind")  # noqa: S104
    port: int = Field(default=3000, description="Port to listen on")
    log_level: str = Field(default="info", description="Logging level")
    log_dir: Path | None = Field(default=None, description="Directory for rotating log files")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")


class UploadConfig(BaseModel):
    """Rules for the track upload flow."""

    require_audio_on_finalize: bool = Field(
        default=False,
        description="Refuse to expose a track that has no audio uploaded",
    )


class AppConfig(BaseModel):
    """Top-level application configuration."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)

    def is_backend_configured(self) -> bool:
        """Return True if the backend URL and key are both set."""
        return bool(self.backend.url and self.backend.service_key.get_secret_value())


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _apply_env(raw: dict) -> dict:
    """Overlay environment variables onto the raw TOML mapping."""
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            raw.setdefault(section, {})[key] = value
    return raw


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from TOML and the environment.

    Defaults are overridden by the TOML file (when present), which is in turn
    overridden by environment variables.
    """
    path = path or get_config_path()
    raw: dict = {}
    if path.is_file():
        with open(path, "rb") as f:
            raw = tomllib.load(f)

    return AppConfig.model_validate(_apply_env(raw))
