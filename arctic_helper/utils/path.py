"""
Utilities for handling file paths, slugs, and download URL construction.
"""

import re
from urllib.parse import quote, urlparse

from pathvalidate import sanitize_filename

from arctic_helper.exceptions import CatalogError

HF_BASE_URL = "https://huggingface.co"

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def slugify(value: str, fallback: str = "misc") -> str:
    """
    Normalizes a display name into a filesystem-safe folder name.

    Lowercases, collapses every run of whitespace or punctuation into a single
    underscore and trims underscores from both ends. Applying it twice yields
    the same result as applying it once.
    """
    slug = _SLUG_SEPARATORS.sub("_", value.strip().lower()).strip("_")
    return slug or fallback


def safe_file_name(name: str, fallback: str = "download.bin") -> str:
    """Strips characters that are not allowed in file names on any platform."""
    cleaned = sanitize_filename(name, platform="universal")
    return cleaned or fallback


def file_name_from_url(url: str) -> str | None:
    """Returns the last path segment of a URL without its query string."""
    path = urlparse(url.strip()).path
    last_segment = path.rstrip("/").rsplit("/", 1)[-1]
    return last_segment or None


def _quote_path(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")


def build_download_url(repo: str, path: str) -> str:
    """
    Builds the URL for a catalog artifact.

    Supported ``repo`` forms:
        ``hf://owner/name`` or ``hf://owner/name@revision``
        ``https://huggingface.co/owner/name/blob/<rev>/<file>`` (full file link)
        any other ``http(s)://`` base, treated as a Hugging Face style repo root

    Raises:
        CatalogError: If the repo uses an unsupported scheme.
    """
    repo = repo.strip()
    if repo.startswith("hf://"):
        ref = repo[len("hf://") :].strip("/")
        repo_id, _, revision = ref.partition("@")
        revision = revision or "main"
        return (
            f"{HF_BASE_URL}/{repo_id}/resolve/{revision}/{_quote_path(path)}"
            "?download=1"
        )

    if repo.startswith(("https://", "http://")):
        if "/blob/" in repo:
            resolved = repo.replace("/blob/", "/resolve/", 1)
            separator = "&" if "?" in resolved else "?"
            return f"{resolved}{separator}download=1"
        base = repo.rstrip("/")
        return f"{base}/resolve/main/{_quote_path(path)}?download=1"

    raise CatalogError(f"Unsupported repository reference: {repo}")
