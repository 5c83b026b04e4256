"""
Supplies catalog snapshots from the remote endpoint, the local cache, an
optional override file, or the copy bundled with the package.
"""

import asyncio
import logging
from pathlib import Path

import aiohttp
from pydantic import ValidationError

from arctic_helper import __version__
from arctic_helper.exceptions import CatalogUnavailable
from arctic_helper.models.catalog import Catalog
from arctic_helper.models.config import AppSettings
from arctic_helper.storage.catalog_store import CachedCatalog, CatalogStore

log = logging.getLogger(__name__)

BUNDLED_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "catalog.json"


class CatalogProvider:
    """
    Loads the catalog with a remote-first, cache-second, bundled-last strategy.

    The current catalog is only ever replaced wholesale, so a snapshot handed
    out earlier stays valid and unchanged. Concurrent ``load()`` calls share a
    single in-flight load.
    """

    def __init__(
        self,
        endpoint: str | None,
        store: CatalogStore,
        bundled_path: Path = BUNDLED_CATALOG_PATH,
        local_path: Path | None = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            endpoint: Remote catalog URL. Empty or None disables remote refresh.
            store: Where the last good remote body and its ETag are kept.
            bundled_path: Catalog shipped with the application.
            local_path: Optional user-supplied catalog file tried before the
                bundled one.
            timeout: Total timeout for the remote request, in seconds.
        """
        self.endpoint = (endpoint or "").strip()
        self.store = store
        self.bundled_path = bundled_path
        self.local_path = local_path
        self.timeout = timeout

        self._catalog: Catalog | None = None
        self._source: str | None = None
        self._inflight: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "CatalogProvider":
        return cls(
            endpoint=settings.catalog_endpoint if settings.remote_refresh_enabled else "",
            store=CatalogStore(settings.cache_dir),
            local_path=settings.catalog_path,
        )

    @property
    def remote_enabled(self) -> bool:
        return bool(self.endpoint)

    @property
    def catalog(self) -> Catalog:
        """The current snapshot. Raises CatalogUnavailable before the first load."""
        if self._catalog is None:
            raise CatalogUnavailable("The catalog has not been loaded yet.")
        return self._catalog

    @property
    def source(self) -> str | None:
        """Where the current snapshot came from: remote, cache, local or bundled."""
        return self._source

    async def load(self) -> Catalog:
        """
        Loads (or revalidates) the catalog.

        Returns:
            The freshly installed catalog snapshot.

        Raises:
            CatalogUnavailable: If every source failed.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._load_once())
        # Shielded so one cancelled caller does not abort the load for the others.
        return await asyncio.shield(self._inflight)

    async def _load_once(self) -> Catalog:
        cached = await asyncio.to_thread(self.store.load)

        if self.remote_enabled:
            catalog = await self._refresh_from_remote(cached)
            if catalog is not None:
                return catalog
        else:
            log.debug("Remote catalog refresh disabled.")

        if cached is not None:
            catalog = self._parse(cached.body, "cache")
            if catalog is not None:
                return self._install(catalog, "cache", cached.etag)

        for source, path in (("local", self.local_path), ("bundled", self.bundled_path)):
            if path is None:
                continue
            catalog = await self._load_file(path, source)
            if catalog is not None:
                return self._install(catalog, source)

        raise CatalogUnavailable(
            "No usable catalog: remote, cached and bundled sources all failed."
        )

    async def _refresh_from_remote(self, cached: CachedCatalog | None) -> Catalog | None:
        headers = {"User-Agent": f"arctic-helper/{__version__}"}
        if cached is not None and cached.etag:
            headers["If-None-Match"] = cached.etag

        log.debug(f"Refreshing catalog from {self.endpoint}")
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get(self.endpoint, headers=headers) as response,
            ):
                if response.status == 304:
                    if cached is None:
                        return None
                    log.info("Remote catalog is up to date (HTTP 304).")
                    catalog = self._parse(cached.body, "cache")
                    return self._install(catalog, "cache", cached.etag) if catalog else None

                if response.status != 200:
                    log.warning(
                        f"[yellow]Catalog refresh skipped: server returned "
                        f"{response.status}.[/yellow]"
                    )
                    return None

                body = await response.read()
                etag = response.headers.get("ETag")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"[yellow]Catalog refresh failed: {e or type(e).__name__}[/yellow]")
            return None

        catalog = self._parse(body, "remote")
        if catalog is None:
            return None

        try:
            await asyncio.to_thread(self.store.save, body, etag)
        except OSError as e:
            log.warning(f"Could not persist refreshed catalog: {e}")

        return self._install(catalog, "remote", etag)

    async def _load_file(self, path: Path, source: str) -> Catalog | None:
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            log.warning(f"Could not read {source} catalog '{path}': {e}")
            return None
        return self._parse(body, source)

    @staticmethod
    def _parse(body: bytes, source: str) -> Catalog | None:
        try:
            return Catalog.model_validate_json(body)
        except ValidationError as e:
            log.warning(
                f"[yellow]Ignoring malformed {source} catalog "
                f"({e.error_count()} errors).[/yellow]"
            )
            log.debug(f"Catalog validation errors:\n{e}")
            return None

    def _install(self, catalog: Catalog, source: str, etag: str | None = None) -> Catalog:
        catalog = catalog.model_copy(update={"etag": etag})
        self._catalog = catalog
        self._source = source
        log.info(
            f"Catalog v{catalog.catalog_version} loaded from {source}: "
            f"{len(catalog.models)} models, {len(catalog.loras)} LoRAs."
        )
        return catalog
