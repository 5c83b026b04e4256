"""
Persists the last successfully fetched remote catalog together with its ETag.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

CACHED_CATALOG_FILE = "catalog.json"
CACHED_ETAG_FILE = "catalog.etag"


@dataclass(frozen=True)
class CachedCatalog:
    body: bytes
    etag: str | None


class CatalogStore:
    """Reads and writes ``catalog.json`` and ``catalog.etag`` inside a cache dir."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = cache_dir

    @property
    def body_path(self) -> Path:
        return self.cache_dir / CACHED_CATALOG_FILE

    @property
    def etag_path(self) -> Path:
        return self.cache_dir / CACHED_ETAG_FILE

    def load(self) -> CachedCatalog | None:
        if not self.body_path.is_file():
            return None
        try:
            body = self.body_path.read_bytes()
        except OSError as e:
            log.warning(f"Could not read cached catalog '{self.body_path}': {e}")
            return None

        etag = None
        if self.etag_path.is_file():
            try:
                etag = self.etag_path.read_text(encoding="utf-8").strip() or None
            except OSError as e:
                log.debug(f"Could not read cached ETag: {e}")
        return CachedCatalog(body=body, etag=etag)

    def save(self, body: bytes, etag: str | None) -> None:
        """
        Writes the body and ETag, each through a temp file and an atomic rename.

        Raises:
            OSError: If the cache directory is not writable.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._write_atomic(self.body_path, body)
        if etag:
            self._write_atomic(self.etag_path, etag.encode("utf-8"))
        elif self.etag_path.exists():
            self.etag_path.unlink()

    def clear(self) -> None:
        for path in (self.body_path, self.etag_path):
            if path.exists():
                path.unlink()

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
