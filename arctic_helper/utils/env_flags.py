"""
Environment variable overrides for settings.
"""

import os
from typing import Any

_TRUE_VALUES = {"1", "true", "yes", "on", "enable", "enabled"}
_FALSE_VALUES = {"0", "false", "no", "off", "disable", "disabled"}


def parse_env_bool(name: str) -> bool | None:
    """Reads a boolean flag; unset or unrecognised values yield None."""
    raw = os.getenv(name)
    if raw is None:
        return None
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def settings_overrides() -> dict[str, Any]:
    """
    Collects settings overrides from the environment.

    ARCTIC_SKIP_REMOTE_REFRESH   never contact the remote catalog endpoint
    ARCTIC_USE_LOCAL_CATALOG     same effect, kept for older launch scripts
    ARCTIC_CATALOG_PATH          load the catalog from this file
    ARCTIC_CATALOG_ENDPOINT      alternate remote catalog URL ('' disables)
    CIVITAI_TOKEN                Civitai API token
    """
    overrides: dict[str, Any] = {}

    skip = parse_env_bool("ARCTIC_SKIP_REMOTE_REFRESH")
    if skip is None:
        skip = parse_env_bool("ARCTIC_USE_LOCAL_CATALOG")
    if skip is not None:
        overrides["skip_remote_refresh"] = skip

    if catalog_path := os.getenv("ARCTIC_CATALOG_PATH", "").strip():
        overrides["catalog_path"] = catalog_path

    endpoint = os.getenv("ARCTIC_CATALOG_ENDPOINT")
    if endpoint is not None:
        overrides["catalog_endpoint"] = endpoint.strip()

    if token := os.getenv("CIVITAI_TOKEN", "").strip():
        overrides["civitai_token"] = token

    return overrides
