"""
A simple, file-based JSON cache with a time-to-live (TTL).

Used for LoRA metadata responses so repeated lookups do not hit the host API.
Only successful lookups are ever written.
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


class CacheManager:
    """Manages a directory of JSON cache entries that expire after ``max_age_days``."""

    MAX_CACHE_VALUE_KB = 500

    def __init__(self, cache_dir_path: Path, max_age_days: float = 7):
        """
        Initializes the cache manager.

        Args:
            cache_dir_path: The parent directory; entries live in its ``cache/`` child.
            max_age_days: The maximum age of a cache entry in days before it expires.
        """
        self.cache_dir = cache_dir_path / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_days * 86400
        self.hits = 0
        self.misses = 0

    def _get_cache_path(self, key: str) -> Path:
        """Generates a safe filename for a given cache key."""
        hashed_key = hashlib.sha1(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.cache_dir / f"{hashed_key}.json"

    def _is_expired(self, path: Path, now: float) -> bool:
        return now - path.stat().st_mtime > self.max_age_seconds

    def get(self, key: str) -> Any | None:
        """
        Retrieves a value from the cache. Returns None if the key is not found or
        expired.
        """
        cache_path = self._get_cache_path(key)
        if not cache_path.is_file():
            self.misses += 1
            return None

        try:
            if self._is_expired(cache_path, time.time()):
                cache_path.unlink()
                self.misses += 1
                return None

            with open(cache_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Cache read failed for key '{key}': {e}")
            self.misses += 1
            return None

        self.hits += 1
        return data.get("value")

    def set(self, key: str, value: Any) -> bool:
        """
        Saves a value to the cache, with a size limit check.
        """
        cache_path = self._get_cache_path(key)
        try:
            serialized_payload = json.dumps(
                {"key": key, "timestamp": time.time(), "value": value}
            )
        except TypeError as e:
            log.warning(f"Cache value for key '{key}' is not serializable: {e}")
            return False

        size_kb = len(serialized_payload) / 1024
        if size_kb > self.MAX_CACHE_VALUE_KB:
            log.debug(
                f"Cache value for key '{key}' is too large ({size_kb:.1f} KB), "
                "skipping."
            )
            return False

        try:
            with open(cache_path, "w", encoding="utf-8") as f:
                f.write(serialized_payload)
        except OSError as e:
            log.warning(f"Cache write failed for key '{key}': {e}")
            return False
        return True

    def cleanup_expired(self) -> int:
        """Removes expired entries and returns how many were deleted."""
        now = time.time()
        cleaned_count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                if self._is_expired(cache_file, now):
                    cache_file.unlink()
                    cleaned_count += 1
            except OSError as e:
                log.warning(
                    f"Failed to remove expired cache file {cache_file.name}: {e}"
                )
        if cleaned_count > 0:
            log.debug(f"Cache cleanup: removed {cleaned_count} expired entries.")
        return cleaned_count

    def entry_count(self) -> int:
        return sum(1 for _ in self.cache_dir.glob("*.json"))

    def clear(self) -> bool:
        """Removes all items from the cache."""
        log.info("Clearing all cache entries...")
        try:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
