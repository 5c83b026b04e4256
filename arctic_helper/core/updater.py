"""
Checks the release manifest and downloads verified update packages.

Installing the package (replacing the running application) is left to the
caller; this module only guarantees that what it hands back matches the
manifest's checksum.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from arctic_helper import __version__
from arctic_helper.exceptions import (
    DownloadCancelled,
    FileIntegrityError,
    IoError,
    NetworkError,
    UpdateError,
)
from arctic_helper.media.downloader import Downloader
from arctic_helper.media.integrity import verify_sha256
from arctic_helper.utils.path import file_name_from_url, safe_file_name

log = logging.getLogger(__name__)


def parse_version(value: str) -> tuple[int, ...]:
    """Turns 'v1.2.10' into (1, 2, 10); non-numeric suffixes are ignored."""
    numbers = []
    for part in value.strip().lstrip("vV").split("."):
        match = re.match(r"\d+", part)
        if not match:
            break
        numbers.append(int(match.group()))
    if not numbers:
        raise UpdateError(f"Unparseable version: {value!r}")
    return tuple(numbers)


def is_newer(candidate: str, current: str) -> bool:
    a, b = parse_version(candidate), parse_version(current)
    width = max(len(a), len(b))
    return a + (0,) * (width - len(a)) > b + (0,) * (width - len(b))


@dataclass(frozen=True)
class AvailableUpdate:
    version: str
    download_url: str
    sha256: str
    notes: str = ""

    @property
    def file_name(self) -> str:
        return safe_file_name(
            file_name_from_url(self.download_url) or f"arctic-helper-{self.version}",
        )


class Updater:
    """Compares the running version against the published update manifest."""

    def __init__(
        self,
        manifest_url: str,
        current_version: str = __version__,
        downloader: Downloader | None = None,
        timeout: float = 15.0,
    ):
        self.manifest_url = manifest_url
        self.current_version = current_version
        self.downloader = downloader or Downloader(max_connections=1)
        self.timeout = timeout

    async def check(self) -> AvailableUpdate | None:
        """
        Fetches the manifest.

        Returns:
            The update when it is newer than the running version, else None.

        Raises:
            UpdateError: If the manifest cannot be fetched or is incomplete.
        """
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(self.manifest_url) as response,
            ):
                if response.status != 200:
                    raise UpdateError(
                        f"Update manifest returned HTTP {response.status}."
                    )
                manifest = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpdateError(f"Could not fetch update manifest: {e}") from e

        if not isinstance(manifest, dict):
            raise UpdateError("Update manifest is not a JSON object.")
        version = str(manifest.get("version") or "").strip()
        download_url = str(manifest.get("download_url") or "").strip()
        sha256 = str(manifest.get("sha256") or "").strip().lower()
        if not version or not download_url or not sha256:
            raise UpdateError(
                "Update manifest must contain version, download_url and sha256."
            )

        if not is_newer(version, self.current_version):
            log.info(f"Already up to date (v{self.current_version}).")
            return None

        log.info(f"[cyan]Update available: v{version}[/cyan]")
        return AvailableUpdate(
            version=version,
            download_url=download_url,
            sha256=sha256,
            notes=str(manifest.get("notes") or ""),
        )

    async def download(self, update: AvailableUpdate, dest_dir: Path) -> Path:
        """
        Downloads the update package and verifies its SHA-256.

        Raises:
            UpdateError: If the transfer fails.
            FileIntegrityError: If the checksum does not match; the file is removed.
        """
        await asyncio.to_thread(dest_dir.mkdir, parents=True, exist_ok=True)
        destination = dest_dir / update.file_name
        temp_path = destination.with_name(destination.name + ".part")

        try:
            await self.downloader.fetch(update.download_url, temp_path)
            await verify_sha256(temp_path, update.sha256)
            await asyncio.to_thread(os.replace, temp_path, destination)
        except FileIntegrityError:
            raise
        except (NetworkError, IoError, DownloadCancelled, OSError) as e:
            raise UpdateError(f"Could not download update v{update.version}: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        log.info(f"[green]✓ Update v{update.version} saved to '{destination}'[/green]")
        return destination

    async def close(self) -> None:
        await self.downloader.close()
