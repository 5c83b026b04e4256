"""
Turns a hardware-tier selection into the concrete list of files to download.
"""

import logging
from pathlib import Path

from arctic_helper.exceptions import (
    ConfigurationError,
    UnknownLora,
    UnknownModel,
    UnknownVariant,
)
from arctic_helper.models.catalog import Artifact, Catalog, RamTier, Variant, VramTier
from arctic_helper.models.transfer import ResolvedArtifact, ResolvedLora
from arctic_helper.utils.path import build_download_url, safe_file_name, slugify

log = logging.getLogger(__name__)

CIVITAI_DOWNLOAD_URL = "https://civitai.com/api/download/models/{host_ref}"


class TierResolver:
    """Resolves catalog entries against one catalog snapshot and one install root."""

    def __init__(self, catalog: Catalog, install_root: Path | None):
        self.catalog = catalog
        self.install_root = Path(install_root) if install_root else None

    @property
    def models_dir(self) -> Path:
        if self.install_root is None:
            raise ConfigurationError(
                "No ComfyUI install folder configured. "
                "Run 'arctic-helper init --install-root <path>' first."
            )
        return self.install_root / "models"

    def resolve(
        self, model_id: str, variant_id: str, ram_tier: RamTier
    ) -> list[ResolvedArtifact]:
        """
        Builds the ordered download list for one model variant.

        The model's "always" artifacts come first, in group order, followed by
        the variant's own artifacts. Artifacts whose ``ram_tier_min`` is above
        ``ram_tier`` are dropped, as are repeats of an earlier destination.

        Args:
            model_id: Catalog model id.
            variant_id: Variant id within that model.
            ram_tier: The machine's RAM tier.

        Returns:
            Resolved artifacts in catalog declaration order.

        Raises:
            UnknownModel: If the model id is not in the catalog.
            UnknownVariant: If the variant id is not in the model.
        """
        model = self.catalog.find_model(model_id)
        if model is None:
            raise UnknownModel(f"Model '{model_id}' is not in the catalog.")
        variant = model.find_variant(variant_id)
        if variant is None:
            raise UnknownVariant(
                f"Variant '{variant_id}' does not exist for model '{model_id}'."
            )

        resolved: dict[Path, ResolvedArtifact] = {}
        for artifact in [*model.always_artifacts(), *variant.artifacts]:
            if not ram_tier.satisfies(artifact.ram_tier_min):
                log.debug(
                    f"Skipping '{artifact.file_name}': needs RAM "
                    f"{artifact.ram_tier_min.description}, have {ram_tier.description}."
                )
                continue
            item = self._resolve_artifact(model.id, artifact)
            # The same file may be listed in a group and in the variant.
            resolved.setdefault(item.destination, item)
        return list(resolved.values())

    def _resolve_artifact(self, model_id: str, artifact: Artifact) -> ResolvedArtifact:
        name = safe_file_name(artifact.file_name)
        url = artifact.direct_url or build_download_url(artifact.repo, artifact.path)
        return ResolvedArtifact(
            name=name,
            url=url,
            destination=self.models_dir / artifact.category / model_id / name,
            size=artifact.size_bytes,
            category=artifact.category,
            sha256=artifact.sha256,
        )

    def variants_for_tier(self, model_id: str, vram_tier: VramTier) -> list[Variant]:
        """
        Lists the variants built for exactly ``vram_tier``.

        A model without variants yields an empty list.
        """
        model = self.catalog.find_model(model_id)
        if model is None:
            raise UnknownModel(f"Model '{model_id}' is not in the catalog.")
        return model.variants_for_tier(vram_tier)

    def resolve_lora(self, lora_id: str) -> ResolvedLora:
        """
        Resolves a LoRA into ``models/loras/<family slug>/<file name>``.

        Raises:
            UnknownLora: If the id is not in the catalog.
        """
        lora = self.catalog.find_lora(lora_id)
        if lora is None:
            raise UnknownLora(f"LoRA '{lora_id}' is not in the catalog.")

        if lora.host_ref:
            url = CIVITAI_DOWNLOAD_URL.format(host_ref=lora.host_ref)
        else:
            url = lora.download_url

        name = safe_file_name(
            lora.derived_file_name, fallback=f"{lora.id}-lora.safetensors"
        )

        destination = self.models_dir / "loras" / slugify(lora.family) / name
        return ResolvedLora(lora=lora, destination=destination, url=url)
