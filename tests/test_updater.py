import hashlib

import pytest
from aiohttp import web

from arctic_helper.core.updater import Updater, is_newer, parse_version
from arctic_helper.exceptions import FileIntegrityError, UpdateError
from arctic_helper.media.downloader import Downloader

PACKAGE = b"new release bytes"


def test_version_comparison():
    assert parse_version("v1.2.10") == (1, 2, 10)
    assert is_newer("1.2.10", "1.2.9")
    assert is_newer("1.3", "1.2.9")
    assert not is_newer("1.2", "1.2.0")
    with pytest.raises(UpdateError):
        parse_version("latest")


async def _release_server(serve, manifest: dict | None, status: int = 200):
    async def manifest_handler(request):
        if status != 200:
            return web.Response(status=status)
        return web.json_response(manifest)

    async def package_handler(request):
        return web.Response(body=PACKAGE)

    app = web.Application()
    app.router.add_get("/update.json", manifest_handler)
    app.router.add_get("/arctic-helper-setup.zip", package_handler)
    server = await serve(app)
    return server


def _manifest(server, sha256: str, version: str = "9.0.0") -> dict:
    return {
        "version": version,
        "download_url": str(server.make_url("/arctic-helper-setup.zip")),
        "sha256": sha256,
        "notes": "Faster downloads.",
    }


@pytest.mark.asyncio
async def test_update_is_downloaded_and_verified(serve, tmp_path):
    manifest = {}
    server = await _release_server(serve, manifest)
    manifest.update(_manifest(server, hashlib.sha256(PACKAGE).hexdigest().upper()))
    updater = Updater(
        str(server.make_url("/update.json")),
        current_version="0.4.0",
        downloader=Downloader(max_attempts=1),
    )

    try:
        update = await updater.check()
        assert update.version == "9.0.0"
        assert update.notes == "Faster downloads."
        path = await updater.download(update, tmp_path / "updates")
    finally:
        await updater.close()

    assert path == tmp_path / "updates" / "arctic-helper-setup.zip"
    assert path.read_bytes() == PACKAGE


@pytest.mark.asyncio
async def test_checksum_mismatch_removes_the_package(serve, tmp_path):
    manifest = {}
    server = await _release_server(serve, manifest)
    manifest.update(_manifest(server, "0" * 64))
    updater = Updater(
        str(server.make_url("/update.json")),
        current_version="0.4.0",
        downloader=Downloader(max_attempts=1),
    )

    try:
        update = await updater.check()
        with pytest.raises(FileIntegrityError):
            await updater.download(update, tmp_path)
    finally:
        await updater.close()

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_same_version_means_no_update(serve):
    manifest = {}
    server = await _release_server(serve, manifest)
    manifest.update(_manifest(server, "ab" * 32, version="0.4.0"))
    updater = Updater(str(server.make_url("/update.json")), current_version="0.4.0")

    assert await updater.check() is None
    await updater.close()


@pytest.mark.asyncio
async def test_incomplete_or_missing_manifest_raises(serve):
    server = await _release_server(serve, {"version": "9.9.9"})
    updater = Updater(str(server.make_url("/update.json")), current_version="0.4.0")
    with pytest.raises(UpdateError):
        await updater.check()

    server = await _release_server(serve, None, status=404)
    updater = Updater(str(server.make_url("/update.json")), current_version="0.4.0")
    with pytest.raises(UpdateError):
        await updater.check()
