"""Settings for ghub-desk.

Configuration is loaded from, highest priority first:
- environment variables (``GHUB_DESK_*``)
- a local ``.env`` file (if present)
- a YAML file (``~/.config/ghub-desk/config.yaml`` or ``--config``)

The YAML file may reference environment variables as ``${VAR}``. Credentials
are held in memory only; :func:`masked_settings` is the one view that may be
printed.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from ghub_desk.errors import ConfigurationInvalid

APP_NAME = "ghub-desk"
DEFAULT_DB_PATH = "ghub-desk.db"


def default_config_path() -> Path:
    return Path.home() / ".config" / APP_NAME / "config.yaml"


class GhubDeskSettings(BaseSettings):
    """Organization, credentials and local options.

    Environment variables:
    - GHUB_DESK_ORGANIZATION
    - GHUB_DESK_GITHUB_TOKEN
    - GHUB_DESK_APP_ID, GHUB_DESK_INSTALLATION_ID, GHUB_DESK_PRIVATE_KEY
    - GHUB_DESK_DB_PATH            (optional, also GHUB_DESK_DATABASE_PATH)
    - GHUB_DESK_GITHUB_BASE_URL    (optional, GitHub Enterprise)
    - GHUB_DESK_LOG_LEVEL          (optional)
    - GHUB_DESK_INTERVAL           (optional, seconds between API requests)

    In the YAML file GitHub App credentials live under ``github_app:`` and
    REST front end permissions under ``mcp:``.
    """

    organization: str = Field(default="", description="GitHub organization login")
    github_token: str = Field(default="", repr=False, description="Personal access token")

    app_id: int | None = Field(default=None, description="GitHub App id")
    installation_id: int | None = Field(default=None, description="GitHub App installation id")
    private_key: str = Field(default="", repr=False, description="GitHub App private key (PEM)")

    github_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )
    database_path: str = Field(
        default=DEFAULT_DB_PATH,
        validation_alias="GHUB_DESK_DB_PATH",
        description="SQLite cache file",
    )

    log_level: str = Field(default="INFO", description="Root logging level")
    debug: bool = Field(default=False, description="Enable debug logging")
    interval: float = Field(
        default=3.0, ge=0.0, description="Seconds to sleep between paginated API requests"
    )

    allow_pull: bool = Field(default=False, description="Expose pull tools over REST")
    allow_write: bool = Field(default=False, description="Expose push tools over REST")

    model_config = SettingsConfigDict(
        env_prefix="GHUB_DESK_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # The YAML file arrives as init kwargs; the environment overrides it.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @model_validator(mode="before")
    @classmethod
    def _flatten_sections(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        for section in ("github_app", "mcp"):
            nested = out.pop(section, None)
            if isinstance(nested, dict):
                for key, value in nested.items():
                    out.setdefault(key, value)
        return out

    @property
    def token_configured(self) -> bool:
        return bool(self.github_token.strip())

    @property
    def app_configured(self) -> bool:
        return bool(self.app_id and self.installation_id and self.private_key.strip())


def validate_settings(settings: GhubDeskSettings) -> GhubDeskSettings:
    """Check the organization/credential context and normalise the database path."""

    if not settings.organization.strip():
        raise ConfigurationInvalid(
            "organization is not set; set GHUB_DESK_ORGANIZATION or add it to the config file"
        )
    if settings.token_configured and settings.app_configured:
        raise ConfigurationInvalid(
            "ambiguous authentication: both github_token and github_app are configured"
        )
    if not settings.token_configured and not settings.app_configured:
        raise ConfigurationInvalid(
            "authentication not configured: set either github_token or github_app"
        )

    settings.database_path = str(resolve_database_path(settings.database_path))
    return settings


def resolve_database_path(raw: str, cwd: Path | None = None) -> Path:
    """Return an absolute cache path. Relative paths must stay inside ``cwd``."""

    if not raw.strip() or "\x00" in raw:
        raise ConfigurationInvalid("invalid database_path: empty or contains NUL")
    path = Path(raw.strip())
    if path.name in ("", ".", ".."):
        raise ConfigurationInvalid(f"invalid database_path {raw!r}: not a file name")
    if path.is_absolute():
        return Path(os.path.normpath(path))

    base = (cwd or Path.cwd()).resolve()
    resolved = Path(os.path.normpath(base / path))
    if not resolved.is_relative_to(base):
        raise ConfigurationInvalid(
            f"invalid database_path {raw!r}: must reside within the current working directory"
        )
    return resolved


def read_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    """Read a YAML config file, expanding ``${VAR}`` references."""

    if not path.exists():
        if required:
            raise ConfigurationInvalid(f"--config file not found: {path}")
        return {}
    try:
        text = os.path.expandvars(path.read_text(encoding="utf-8"))
        raw = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationInvalid(f"failed to read config file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationInvalid(f"config file {path} must contain a mapping")
    return raw


def load_settings(
    config_path: str | Path | None = None,
    *,
    validate: bool = True,
    env_file: str | Path | None = ".env",
) -> GhubDeskSettings:
    """Load settings from the YAML file and the environment.

    A missing default config file is ignored; a missing ``config_path`` is an
    error.
    """

    path = Path(config_path).expanduser() if config_path else default_config_path()
    data = read_config_file(path, required=config_path is not None)
    try:
        settings = GhubDeskSettings(_env_file=env_file, **data)
    except ValidationError as e:
        raise ConfigurationInvalid(f"invalid configuration: {e}") from e
    return validate_settings(settings) if validate else settings


def _mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) > 8:
        return "[masked]..." + value[-4:]
    return "[masked]"


def masked_settings(settings: GhubDeskSettings) -> dict[str, Any]:
    """Settings in config-file layout with credentials masked."""

    return {
        "organization": settings.organization,
        "github_token": _mask_secret(settings.github_token),
        "github_app": {
            "app_id": settings.app_id or 0,
            "installation_id": settings.installation_id or 0,
            "private_key": "[masked PEM]" if settings.private_key else "",
        },
        "mcp": {
            "allow_pull": settings.allow_pull,
            "allow_write": settings.allow_write,
        },
        "database_path": settings.database_path,
        "github_base_url": settings.github_base_url,
        "interval": settings.interval,
    }
