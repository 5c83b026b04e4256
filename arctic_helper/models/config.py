"""
Pydantic model for application settings.
Provides robust validation for all settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CATALOG_ENDPOINT = (
    "https://raw.githubusercontent.com/ArcticLatent/Arctic-Helper/refs/heads/main/"
    "assets/catalog.json"
)
DEFAULT_UPDATE_MANIFEST_URL = (
    "https://github.com/ArcticLatent/Arctic-Helper/releases/latest/download/"
    "update.json"
)


class AppSettings(BaseModel):
    """
    A validated settings object injected into the core components.

    The core never reads or writes the settings file itself; ``ConfigManager``
    builds this object and callers pass it (or fields of it) down.
    """

    install_root: Optional[Path] = None
    civitai_token: str = ""
    catalog_endpoint: str = DEFAULT_CATALOG_ENDPOINT
    update_manifest_url: str = DEFAULT_UPDATE_MANIFEST_URL
    max_workers: int = 2
    skip_remote_refresh: bool = False
    catalog_path: Optional[Path] = None

    # Internal fields not loaded from INI file
    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".cache", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 4:
            raise ValueError("Max workers must be between 1 and 4.")
        return v

    @field_validator("install_root", "catalog_path", mode="before")
    @classmethod
    def empty_path_is_none(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return Path(v).expanduser()

    @field_validator("catalog_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """An empty endpoint disables remote refresh; anything else must be http(s)."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"Catalog endpoint must be an http(s) URL, got: {v}")
        return v

    @property
    def remote_refresh_enabled(self) -> bool:
        return bool(self.catalog_endpoint) and not self.skip_remote_refresh

    @property
    def token(self) -> str | None:
        return self.civitai_token or None

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"cache_dir"}
        return {key for key in cls.model_fields if key not in internal_fields}
