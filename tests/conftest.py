"""Shared fixtures: a small catalog, an install root and local HTTP servers."""

import asyncio
import json
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from arctic_helper.models.catalog import Catalog

SAMPLE_CATALOG = {
    "catalog_version": 7,
    "models": [
        {
            "id": "sdxl-base",
            "display_name": "SDXL Base",
            "family": "SDXL",
            "always": [
                {
                    "name": "core",
                    "artifacts": [
                        {
                            "repo": "hf://stabilityai/sdxl-vae",
                            "path": "vae.safetensors",
                            "category": "vae",
                        }
                    ],
                }
            ],
            "variants": [
                {
                    "id": "tier_a",
                    "tier": "A",
                    "model_size": "6 GB",
                    "quantization": "FP8",
                    "artifacts": [
                        {
                            "repo": "hf://stabilityai/sdxl-base",
                            "path": "unet-fp8.gguf",
                            "category": "checkpoints",
                        }
                    ],
                },
                {
                    "id": "tier_s",
                    "tier": "S",
                    "artifacts": [
                        {
                            "repo": "hf://stabilityai/sdxl-base",
                            "path": "unet-fp16.safetensors",
                            "category": "checkpoints",
                        }
                    ],
                },
            ],
        },
        {
            "id": "sdxl-encoders",
            "display_name": "SDXL with encoders",
            "family": "SDXL",
            "always": [
                {
                    "name": "core",
                    "artifacts": [
                        {
                            "repo": "hf://stabilityai/sdxl-vae",
                            "path": "vae.safetensors",
                            "category": "vae",
                        },
                        {
                            "repo": "hf://stabilityai/sdxl-te",
                            "path": "text_encoder.bin",
                            "category": "text_encoders",
                            "ram_tier_min": "B",
                        },
                    ],
                }
            ],
            "variants": [
                {
                    "id": "tier_a",
                    "tier": "tier_a",
                    "artifacts": [
                        {
                            "repo": "hf://stabilityai/sdxl-base",
                            "path": "unet-fp8.gguf",
                            "category": "checkpoints",
                        }
                    ],
                }
            ],
        },
        {
            "id": "upscalers",
            "display_name": "Upscalers",
            "always": [],
            "variants": [],
        },
    ],
    "loras": [
        {
            "id": "realism",
            "display_name": "Realism",
            "family": "Flux Dev",
            "host_ref": 706528,
        },
        {
            "id": "motion",
            "display_name": "Motion",
            "family": "Wan 2.2",
            "download_url": "https://example.com/files/motion_v2.safetensors?token=x",
        },
    ],
}


@pytest.fixture
def catalog_data() -> dict:
    return json.loads(json.dumps(SAMPLE_CATALOG))


@pytest.fixture
def catalog(catalog_data) -> Catalog:
    return Catalog.model_validate(catalog_data)


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    root = tmp_path / "ComfyUI"
    root.mkdir()
    return root


@pytest_asyncio.fixture
async def serve():
    """Starts ``aiohttp.web`` applications on local ports; closed after the test."""
    servers = []

    async def _serve(app: web.Application) -> TestServer:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield _serve

    for server in servers:
        await server.close()


class FileHost:
    """Serves in-memory files and counts the requests it receives."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.statuses: dict[str, int] = {}
        self.slow: set[str] = set()
        self.requests: list[str] = []
        self.headers: list[dict[str, str]] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/files/{name}", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.requests.append(name)
        self.headers.append(dict(request.headers))

        if name in self.statuses:
            return web.Response(status=self.statuses[name], text="nope")
        if name not in self.files:
            return web.Response(status=404, text="missing")

        body = self.files[name]
        if name not in self.slow:
            return web.Response(body=body)

        response = web.StreamResponse()
        response.content_length = len(body)
        await response.prepare(request)
        for start in range(0, len(body), 1024):
            await response.write(body[start : start + 1024])
            await asyncio.sleep(0.02)
        await response.write_eof()
        return response


@pytest_asyncio.fixture
async def file_host(serve):
    host = FileHost()
    server = await serve(host.app())
    host.url = lambda name: str(server.make_url(f"/files/{name}"))
    return host
