"""
Process-level settings for keel.

These are the knobs of the runtime itself (where the store lives, how to log,
where runtime secrets come from), as opposed to the module configuration tree
that the engine versions and persists.

All fields can be set via ``KEEL_*`` environment variables (e.g.
``KEEL_DATABASE_URL=sqlite:///app.db``) or a ``.env`` file.

Tags:
    keel-core, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KeelSettings(BaseSettings):
    """keel runtime configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KEEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///keel.db")
    database_echo: bool = Field(default=False)

    # ── Configuration store ──────────────────────────────────────
    store_secrets: bool = Field(
        default=True,
        description="Persist extracted secrets as a 'secrets' row next to the config",
    )
    base_path: str = Field(default="/api", description="Mount prefix for module routes")

    # ── Secrets ──────────────────────────────────────────────────
    secret_env_prefix: str = Field(default="KEEL_SECRET_")
    secrets_dir: str | None = Field(default=None, description="Directory of file-mounted secrets")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console or json")
    modules_debug: bool = Field(default=False, description="Log every module build step")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value


@lru_cache(maxsize=1)
def get_settings() -> KeelSettings:
    """Load and cache a :class:`KeelSettings` instance."""
    return KeelSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    get_settings.cache_clear()
