"""
Handles the low-level streaming of files over HTTP with retries, cooperative
cancellation and a shared connection pool.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles
import aiohttp

from arctic_helper import __version__
from arctic_helper.exceptions import DownloadCancelled, IoError, NetworkError

log = logging.getLogger(__name__)

ChunkCallback = Callable[[int, int, int | None], Awaitable[None]]

# Statuses worth another attempt; every other 4xx fails immediately.
RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}


class Downloader:
    """
    A low-level file downloader with retry logic.

    One instance owns one ``aiohttp.ClientSession``; call ``close()`` when done.
    """

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(
        self,
        max_connections: int = 4,
        max_attempts: int = 3,
        base_delay: float = 1.5,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.max_connections = max_connections
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.chunk_size = chunk_size
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the pooled session used for every transfer."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=600,  # 10 minutes
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"User-Agent": f"arctic-helper/{__version__}"},
            )
            log.debug(f"Created download pool with limit_per_host={self.max_connections}")
        return self._session

    async def close(self) -> None:
        """Closes the pooled session."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                log.debug("Downloader connection pool closed.")
            self._session = None

    async def fetch(
        self,
        url: str,
        temp_path: Path,
        headers: dict[str, str] | None = None,
        size_hint: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> int:
        """
        Streams ``url`` into ``temp_path``, overwriting it on every attempt.

        Args:
            url: Source URL.
            temp_path: File to write; its parent must exist.
            headers: Extra request headers (e.g. Authorization).
            size_hint: Declared size, used when the server sends no Content-Length.
            cancel_event: Polled before the request and at every chunk boundary.
            on_chunk: Awaited after each chunk with (chunk length, bytes received,
                expected total).

        Returns:
            The number of bytes written.

        Raises:
            DownloadCancelled: If ``cancel_event`` was set.
            NetworkError: On HTTP errors or once retries are exhausted.
            IoError: If the temp file cannot be written.
        """
        last_exception: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            self._check_cancelled(cancel_event)
            try:
                return await self._fetch_once(
                    url, temp_path, headers, size_hint, cancel_event, on_chunk
                )
            except NetworkError as e:
                if e.status is not None and e.status not in RETRYABLE_STATUSES:
                    raise
                last_exception = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = NetworkError(str(e) or type(e).__name__)

            log.debug(
                f"Download attempt {attempt}/{self.max_attempts} for "
                f"'{temp_path.name}' failed: {last_exception}."
            )
            if attempt < self.max_attempts:
                await self._backoff(attempt, cancel_event)

        raise last_exception

    async def _fetch_once(
        self,
        url: str,
        temp_path: Path,
        headers: dict[str, str] | None,
        size_hint: int | None,
        cancel_event: asyncio.Event | None,
        on_chunk: ChunkCallback | None,
    ) -> int:
        session = await self.get_session()
        async with session.get(url, headers=headers, allow_redirects=True) as response:
            if response.status >= 400:
                raise NetworkError(
                    f"HTTP {response.status} {response.reason or ''}".strip(),
                    status=response.status,
                )

            total = response.content_length or size_hint
            received = 0
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        self._check_cancelled(cancel_event)
                        await f.write(chunk)
                        received += len(chunk)
                        if on_chunk:
                            await on_chunk(len(chunk), received, total)
            except OSError as e:
                raise IoError(f"Could not write '{temp_path}': {e}") from e

        if total is not None and response.content_length and received < total:
            raise NetworkError(
                f"Connection closed after {received} of {total} bytes."
            )
        return received

    async def _backoff(self, attempt: int, cancel_event: asyncio.Event | None) -> None:
        delay = self.base_delay * (2 ** (attempt - 1))
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise DownloadCancelled("Download cancelled.")

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise DownloadCancelled("Download cancelled.")
