"""
LoRA metadata lookup and authenticated LoRA downloads.

Metadata comes from Civitai and degrades gracefully: LoRAs hosted elsewhere
get a placeholder, a missing creator lookup falls back to "Unknown creator",
and 401/403 responses surface as ``Unauthorized`` so callers can prompt for a
token. Downloads go through the shared ``DownloadEngine``.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from bs4 import BeautifulSoup
from pydantic import ValidationError

from arctic_helper.core.download_engine import BatchHandle, DownloadEngine
from arctic_helper.core.resolver import TierResolver
from arctic_helper.exceptions import (
    DownloadCancelled,
    DownloadFailed,
    LoraNotFound,
    TransientError,
    Unauthorized,
    UnknownLora,
)
from arctic_helper.models.civitai import CivitaiImage, CivitaiModel, CivitaiModelVersion
from arctic_helper.models.events import FailureReason, TransferKind
from arctic_helper.models.transfer import BatchStatus, ResolvedArtifact, ResolvedLora
from arctic_helper.storage.cache import CacheManager

from .client import CivitaiClient, auth_headers

log = logging.getLogger(__name__)

CIVITAI_USER_URL = "https://civitai.com/user/{username}"
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov")

UNKNOWN_CREATOR = "Unknown creator"
NO_STRENGTH = "Not provided"
NO_DESCRIPTION = "No description available."
NOT_ON_CIVITAI = "Metadata is available for Civitai LoRAs only."


@dataclass(frozen=True)
class LoraMetadata:
    creator: str
    strength: str
    description: str
    creator_url: Optional[str] = None
    triggers: list[str] = field(default_factory=list)
    preview_url: Optional[str] = None
    preview_kind: str = "none"  # "image", "video" or "none"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoraMetadata":
        return cls(**data)


def is_video_url(url: str) -> bool:
    lowered = url.lower()
    return any(
        lowered.endswith(ext) or f"{ext}?" in lowered for ext in VIDEO_EXTENSIONS
    )


def strip_html(text: str) -> str:
    """Flattens an HTML fragment to plain text."""
    soup = BeautifulSoup(text, "html.parser")
    return " ".join(soup.get_text(" ").split())


def format_strength(value: Any) -> str:
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return NO_STRENGTH


def pick_preview(images: list[CivitaiImage]) -> tuple[Optional[str], str]:
    """Returns the first preview's URL and whether it is an image or a video."""
    for image in images:
        url = image.url
        if not url:
            continue
        if image.type == "video" or is_video_url(url):
            return url, "video"
        return url, "image"
    return None, "none"


class LoraAdapter:
    """
    Bridges catalog LoRAs to the Civitai API and the download engine.

    Args:
        resolver: Resolves LoRA ids against the current catalog snapshot.
        engine: The shared download engine.
        client: Civitai API client.
        cache: Optional metadata cache owned by the caller.
    """

    def __init__(
        self,
        resolver: TierResolver,
        engine: DownloadEngine,
        client: CivitaiClient,
        cache: Optional[CacheManager] = None,
    ):
        self.resolver = resolver
        self.engine = engine
        self.client = client
        self.cache = cache

    @staticmethod
    def _cache_key(lora_id: str) -> str:
        return f"lora_meta_{lora_id}"

    async def get_metadata(self, lora_id: str, token: Optional[str] = None) -> LoraMetadata:
        """
        Fetches display metadata for a catalog LoRA.

        Raises:
            UnknownLora: If the id is not in the catalog.
            Unauthorized: If Civitai answers 401/403.
            LoraNotFound: If Civitai does not know the model version.
            TransientError: For network problems, other HTTP errors and
                responses that do not look like a model version.
        """
        lora = self.resolver.catalog.find_lora(lora_id)
        if lora is None:
            raise UnknownLora(f"LoRA '{lora_id}' is not in the catalog.")

        if not lora.host_ref:
            return LoraMetadata(
                creator="N/A",
                strength="N/A",
                description=lora.note or NOT_ON_CIVITAI,
            )

        if self.cache is not None:
            cached = self.cache.get(self._cache_key(lora_id))
            if cached:
                log.debug(f"Using cached metadata for LoRA '{lora_id}'.")
                return LoraMetadata.from_dict(cached)

        payload = await self.client.fetch_model_version(lora.host_ref, token)
        try:
            version = CivitaiModelVersion.model_validate(payload)
        except ValidationError as e:
            log.debug(f"Unexpected model-version payload for {lora.host_ref}: {e}")
            raise TransientError(
                f"Civitai returned an unexpected response for LoRA '{lora_id}'."
            ) from e
        model = await self._fetch_parent_model(version.model_id, token)
        metadata = self._build_metadata(version, model)

        if self.cache is not None:
            self.cache.set(self._cache_key(lora_id), metadata.to_dict())
        return metadata

    async def _fetch_parent_model(
        self, model_id: Any, token: Optional[str]
    ) -> CivitaiModel:
        """The parent model only adds creator and description, so errors other
        than auth are tolerated."""
        if not model_id:
            return CivitaiModel()
        try:
            payload = await self.client.fetch_model(str(model_id), token)
            return CivitaiModel.model_validate(payload)
        except (LoraNotFound, TransientError, ValidationError) as e:
            log.debug(f"Could not load parent model {model_id}: {e}")
            return CivitaiModel()

    @staticmethod
    def _build_metadata(version: CivitaiModelVersion, model: CivitaiModel) -> LoraMetadata:
        creator_name = model.creator.username if model.creator else None
        description_html = model.description or version.description or ""
        description = strip_html(description_html) if description_html else ""
        strength = version.strength
        preview_url, preview_kind = pick_preview(version.images)

        return LoraMetadata(
            creator=creator_name or UNKNOWN_CREATOR,
            creator_url=(
                CIVITAI_USER_URL.format(username=creator_name) if creator_name else None
            ),
            strength=format_strength(strength) if strength is not None else NO_STRENGTH,
            triggers=[w.strip() for w in version.trained_words if w.strip()],
            description=description or NO_DESCRIPTION,
            preview_url=preview_url,
            preview_kind=preview_kind,
        )

    def start_download(
        self, lora_id: str, token: Optional[str] = None
    ) -> tuple[ResolvedLora, BatchHandle]:
        """
        Enqueues a single-LoRA batch on the shared engine.

        Raises:
            UnknownLora: If the id is not in the catalog.
            EngineBusy: If another batch is running.
        """
        resolved = self.resolver.resolve_lora(lora_id)
        headers = auth_headers(token) if resolved.lora.host_ref else {}
        item = ResolvedArtifact(
            name=resolved.name,
            url=resolved.url,
            destination=resolved.destination,
            category="loras",
            headers=headers,
        )
        handle = self.engine.enqueue_batch(TransferKind.LORA, [item])
        return resolved, handle

    async def download(self, lora_id: str, token: Optional[str] = None) -> ResolvedLora:
        """
        Downloads a LoRA and waits for it.

        Raises:
            Unauthorized: If the host rejected the download with 401/403.
            DownloadFailed: For any other transfer failure.
            DownloadCancelled: If the batch was cancelled.
        """
        resolved, handle = self.start_download(lora_id, token)
        result = await handle.wait()

        if result.status is BatchStatus.CANCELLED:
            raise DownloadCancelled(f"Download of '{resolved.name}' was cancelled.")
        if result.status is BatchStatus.FAILED:
            outcome = result.failed[0]
            if outcome.reason is FailureReason.UNAUTHORIZED:
                raise Unauthorized()
            raise DownloadFailed(f"Could not download '{resolved.name}': {outcome.message}")
        return resolved
