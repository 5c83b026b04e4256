"""
Async client for the Civitai REST API.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from arctic_helper import __version__
from arctic_helper.exceptions import LoraNotFound, TransientError, Unauthorized

log = logging.getLogger(__name__)


def auth_headers(token: Optional[str]) -> Dict[str, str]:
    """Bearer header for a Civitai token, or nothing when no token is set."""
    token = (token or "").strip()
    return {"Authorization": f"Bearer {token}"} if token else {}


class CivitaiClient:
    """
    Minimal client for the Civitai JSON API (v1).

    Every request takes the token explicitly so the client holds no
    credentials of its own.
    """

    BASE_URL = "https://civitai.com/api/v1/"

    def __init__(self, base_url: str = BASE_URL, timeout: float = 20.0):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "CivitaiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": f"arctic-helper/{__version__}",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def api_call(self, endpoint: str, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Performs a GET against the API and classifies the outcome.

        Raises:
            Unauthorized: On HTTP 401 or 403.
            LoraNotFound: On HTTP 404.
            TransientError: On any other HTTP error, a timeout, a connection
                problem, or a body that is not JSON.
        """
        await self._initialize_session()
        url = self.base_url + endpoint.lstrip("/")
        try:
            async with self._session.get(url, headers=auth_headers(token)) as r:
                if r.status in (401, 403):
                    raise Unauthorized()
                if r.status == 404:
                    raise LoraNotFound(f"Civitai has no resource at '{endpoint}'.")
                if r.status >= 400:
                    raise TransientError(
                        f"Civitai returned HTTP {r.status} for '{endpoint}'."
                    )
                return await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.debug(f"API call to {endpoint} failed: {e!r}")
            raise TransientError(
                f"Could not reach Civitai: {e or type(e).__name__}"
            ) from e

    async def fetch_model_version(
        self, version_id: str, token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.api_call(f"model-versions/{version_id}", token)

    async def fetch_model(
        self, model_id: str, token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.api_call(f"models/{model_id}", token)
