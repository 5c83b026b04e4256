import asyncio
import json

import pytest
from aiohttp import web

from arctic_helper.core.catalog_provider import BUNDLED_CATALOG_PATH, CatalogProvider
from arctic_helper.exceptions import CatalogUnavailable
from arctic_helper.models.config import AppSettings
from arctic_helper.storage.catalog_store import CatalogStore


class CatalogEndpoint:
    def __init__(self, body: bytes, etag: str = '"v2"', delay: float = 0.0):
        self.body = body
        self.etag = etag
        self.delay = delay
        self.status = 200
        self.requests = 0
        self.if_none_match: list[str | None] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/catalog.json", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.Response:
        self.requests += 1
        self.if_none_match.append(request.headers.get("If-None-Match"))
        await asyncio.sleep(self.delay)
        if self.status != 200:
            return web.Response(status=self.status)
        if request.headers.get("If-None-Match") == self.etag:
            return web.Response(status=304)
        return web.Response(body=self.body, headers={"ETag": self.etag})


async def _provider(serve, endpoint: CatalogEndpoint, tmp_path, **kwargs):
    server = await serve(endpoint.app())
    return CatalogProvider(
        endpoint=str(server.make_url("/catalog.json")),
        store=CatalogStore(tmp_path / "cache"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_remote_catalog_is_loaded_and_persisted(serve, tmp_path, catalog_data):
    endpoint = CatalogEndpoint(json.dumps(catalog_data).encode())
    provider = await _provider(serve, endpoint, tmp_path)

    catalog = await provider.load()

    assert catalog.catalog_version == 7
    assert provider.source == "remote"
    assert provider.catalog is catalog
    assert catalog.etag == '"v2"'
    cached = provider.store.load()
    assert cached.etag == '"v2"'
    assert json.loads(cached.body)["catalog_version"] == 7


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_request(serve, tmp_path, catalog_data):
    endpoint = CatalogEndpoint(json.dumps(catalog_data).encode(), delay=0.2)
    provider = await _provider(serve, endpoint, tmp_path)

    first, second = await asyncio.gather(provider.load(), provider.load())

    assert endpoint.requests == 1
    assert first is second


@pytest.mark.asyncio
async def test_not_modified_reuses_cached_body(serve, tmp_path, catalog_data):
    endpoint = CatalogEndpoint(b"unused", etag='"v1"')
    provider = await _provider(serve, endpoint, tmp_path)
    provider.store.save(json.dumps(catalog_data).encode(), '"v1"')

    catalog = await provider.load()

    assert endpoint.if_none_match == ['"v1"']
    assert provider.source == "cache"
    assert catalog.etag == '"v1"'
    assert catalog.find_model("sdxl-base") is not None


@pytest.mark.asyncio
async def test_malformed_remote_falls_back_to_bundled(serve, tmp_path):
    endpoint = CatalogEndpoint(b"{not json")
    provider = await _provider(serve, endpoint, tmp_path)

    catalog = await provider.load()

    assert provider.source == "bundled"
    assert catalog.models
    assert catalog.etag is None
    assert provider.store.load() is None


@pytest.mark.asyncio
async def test_remote_model_id_escaping_the_install_root_is_rejected(
    serve, tmp_path, catalog_data
):
    catalog_data["models"][0]["id"] = "../../../escaped"
    endpoint = CatalogEndpoint(json.dumps(catalog_data).encode())
    provider = await _provider(serve, endpoint, tmp_path)

    catalog = await provider.load()

    assert provider.source == "bundled"
    assert all("/" not in m.id for m in catalog.models)
    assert provider.store.load() is None


@pytest.mark.asyncio
async def test_server_error_falls_back_to_cache(serve, tmp_path, catalog_data):
    endpoint = CatalogEndpoint(b"")
    endpoint.status = 503
    provider = await _provider(serve, endpoint, tmp_path)
    provider.store.save(json.dumps(catalog_data).encode(), None)

    await provider.load()

    assert provider.source == "cache"


@pytest.mark.asyncio
async def test_local_catalog_precedes_bundled(tmp_path, catalog_data):
    local = tmp_path / "my-catalog.json"
    local.write_text(json.dumps(catalog_data), encoding="utf-8")
    provider = CatalogProvider(
        endpoint="", store=CatalogStore(tmp_path / "cache"), local_path=local
    )

    catalog = await provider.load()

    assert provider.source == "local"
    assert catalog.catalog_version == 7


@pytest.mark.asyncio
async def test_every_source_failing_raises(tmp_path):
    provider = CatalogProvider(
        endpoint=None,
        store=CatalogStore(tmp_path / "cache"),
        bundled_path=tmp_path / "missing.json",
    )

    with pytest.raises(CatalogUnavailable):
        provider.catalog
    with pytest.raises(CatalogUnavailable):
        await provider.load()


def test_from_settings_honours_skip_flag(tmp_path):
    settings = AppSettings(skip_remote_refresh=True, cache_dir=tmp_path)
    provider = CatalogProvider.from_settings(settings)
    assert not provider.remote_enabled
    assert provider.bundled_path == BUNDLED_CATALOG_PATH
    assert BUNDLED_CATALOG_PATH.is_file()
