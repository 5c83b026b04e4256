"""
Provides checksum verification for downloaded files.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

from arctic_helper.exceptions import FileIntegrityError

log = logging.getLogger(__name__)

_READ_SIZE = 1048576  # 1 MB


def file_sha256(filepath: Path) -> str:
    """Computes the lowercase hex SHA-256 digest of a file."""
    digest = hashlib.sha256()
    with open(filepath, "rb") as f:
        while chunk := f.read(_READ_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


async def verify_sha256(filepath: Path, expected: str) -> None:
    """
    Checks a file against an expected SHA-256 digest (case-insensitive).

    Args:
        filepath: The file to hash.
        expected: The hex digest it must match.

    Raises:
        FileIntegrityError: If the digests differ or the file cannot be read.
    """
    try:
        actual = await asyncio.to_thread(file_sha256, filepath)
    except OSError as e:
        raise FileIntegrityError(f"Could not hash '{filepath.name}': {e}") from e

    if actual != expected.strip().lower():
        log.warning(
            f"[red]Checksum mismatch for '{filepath.name}': expected {expected}, "
            f"got {actual}.[/red]"
        )
        raise FileIntegrityError(
            f"Checksum mismatch for '{filepath.name}' (expected {expected}, got {actual})."
        )
    log.debug(f"Checksum verified for '{filepath.name}'.")
