"""
Pydantic models for the curated model catalog.

A ``Catalog`` is parsed once per load cycle and handed around as an immutable
snapshot. Everything that hangs off it (models, variants, artifacts, LoRAs) is
frozen as well, so resolvers can share it freely across tasks.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Human-readable labels for the destination subfolders under ``models/``.
CATEGORY_LABELS = {
    "checkpoints": "Checkpoint",
    "diffusion_models": "Diffusion Model",
    "unet": "UNet",
    "vae": "VAE",
    "clip": "CLIP",
    "text_encoders": "Text Encoder",
    "clip_vision": "CLIP Vision",
    "loras": "LoRA",
    "controlnet": "ControlNet",
    "ipadapter": "IP-Adapter",
    "upscale_models": "Upscaler",
}


def _normalize_tier_identifier(value: str) -> str:
    """Accepts 'A', 'a', 'tier_a' and 'tier-a' spellings."""
    normalized = value.strip().lower().replace("-", "_")
    if normalized.startswith("tier_"):
        normalized = normalized[len("tier_") :]
    return normalized.upper()


class VramTier(str, Enum):
    """GPU memory capability bucket. S is the most capable."""

    S = "S"
    A = "A"
    B = "B"
    C = "C"

    @property
    def rank(self) -> int:
        return {"S": 4, "A": 3, "B": 2, "C": 1}[self.value]

    @classmethod
    def parse(cls, value: Any) -> "VramTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(_normalize_tier_identifier(str(value)))
        except ValueError:
            raise ValueError(f"Unknown VRAM tier: {value!r}") from None

    @classmethod
    def from_total_gb(cls, total_gb: float) -> "VramTier":
        if total_gb >= 24:
            return cls.S
        if total_gb >= 16:
            return cls.A
        if total_gb >= 12:
            return cls.B
        return cls.C


class RamTier(str, Enum):
    """System memory capability bucket. A is the most capable."""

    A = "A"
    B = "B"
    C = "C"

    @property
    def rank(self) -> int:
        return {"A": 3, "B": 2, "C": 1}[self.value]

    @property
    def description(self) -> str:
        return {
            "A": "Tier A (64 GB+)",
            "B": "Tier B (32-63 GB)",
            "C": "Tier C (<32 GB)",
        }[self.value]

    def satisfies(self, minimum: Optional["RamTier"]) -> bool:
        """True when this tier meets a declared minimum (or no minimum is set)."""
        return minimum is None or self.rank >= minimum.rank

    @classmethod
    def parse(cls, value: Any) -> "RamTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(_normalize_tier_identifier(str(value)))
        except ValueError:
            raise ValueError(f"Unknown RAM tier: {value!r}") from None

    @classmethod
    def from_total_gb(cls, total_gb: float) -> "RamTier":
        if total_gb >= 64:
            return cls.A
        if total_gb >= 32:
            return cls.B
        return cls.C


class Artifact(BaseModel):
    """A single remote file referenced by the catalog."""

    repo: str
    path: str
    category: str
    ram_tier_min: Optional[RamTier] = None
    size_bytes: Optional[int] = None
    sha256: Optional[str] = None
    direct_url: Optional[str] = None
    license_url: Optional[str] = None

    class Config:
        frozen = True
        str_strip_whitespace = True

    @field_validator("ram_tier_min", mode="before")
    @classmethod
    def parse_ram_tier(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return RamTier.parse(v)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """The category becomes a folder name, so it must be one safe segment."""
        v = v.lower()
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"Invalid artifact category: {v!r}")
        return v

    @field_validator("size_bytes")
    @classmethod
    def validate_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("size_bytes cannot be negative.")
        return v

    @property
    def file_name(self) -> str:
        last_segment = self.path.replace("\\", "/").rsplit("/", 1)[-1]
        return last_segment.split("?", 1)[0]

    @property
    def category_label(self) -> str:
        return CATEGORY_LABELS.get(self.category, self.category)


class ArtifactGroup(BaseModel):
    """A named list of artifacts that ship with every variant of a model."""

    name: str
    artifacts: list[Artifact] = Field(default_factory=list)

    class Config:
        frozen = True


class Variant(BaseModel):
    """A hardware-tier-specific expression of a model."""

    id: str
    tier: VramTier
    model_size: Optional[str] = None
    quantization: Optional[str] = None
    note: Optional[str] = None
    artifacts: list[Artifact] = Field(default_factory=list)

    class Config:
        frozen = True

    @field_validator("tier", mode="before")
    @classmethod
    def parse_tier(cls, v: Any) -> VramTier:
        return VramTier.parse(v)

    def selection_label(self) -> str:
        parts = [p for p in (self.model_size, self.quantization) if p]
        parts.append(f"Tier {self.tier.value}")
        if self.note:
            parts.append(self.note)
        return " • ".join(parts)


class MasterModel(BaseModel):
    """A catalog model: shared 'always' artifacts plus per-tier variants."""

    id: str
    display_name: str
    family: str = ""
    always: list[ArtifactGroup] = Field(default_factory=list)
    variants: list[Variant] = Field(default_factory=list)

    class Config:
        frozen = True

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """The id becomes a folder name under each category, so it must be one
        safe segment."""
        v = v.strip()
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"Invalid model id: {v!r}")
        return v

    @property
    def is_selectable(self) -> bool:
        return bool(self.variants)

    def find_variant(self, variant_id: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.id == variant_id), None)

    def variants_for_tier(self, tier: VramTier) -> list[Variant]:
        return [v for v in self.variants if v.tier == tier]

    def always_artifacts(self) -> list[Artifact]:
        return [artifact for group in self.always for artifact in group.artifacts]


class LoraDefinition(BaseModel):
    """A LoRA hosted on Civitai (``host_ref``) or at a direct download URL."""

    id: str
    display_name: str
    family: str = ""
    host_ref: Optional[str] = None
    file_name: Optional[str] = None
    note: Optional[str] = None
    download_url: Optional[str] = None

    class Config:
        frozen = True
        str_strip_whitespace = True

    @field_validator("host_ref", mode="before")
    @classmethod
    def stringify_host_ref(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return str(v)

    @model_validator(mode="after")
    def validate_source(self) -> "LoraDefinition":
        if not self.host_ref and not self.download_url:
            raise ValueError(
                f"LoRA '{self.id}' needs either a host_ref or a download_url."
            )
        return self

    @property
    def derived_file_name(self) -> str:
        if self.file_name:
            return self.file_name
        if self.download_url:
            last_segment = self.download_url.strip().replace("\\", "/").rsplit("/", 1)[-1]
            cleaned = last_segment.split("?", 1)[0]
            if cleaned:
                return cleaned
        return f"{self.id}-lora.safetensors"

    def matches_family(self, family_filter: Optional[str]) -> bool:
        if not family_filter:
            return True
        return self.family.lower() == family_filter.lower()


class Catalog(BaseModel):
    """Root catalog document."""

    catalog_version: int = 1
    models: list[MasterModel] = Field(default_factory=list)
    loras: list[LoraDefinition] = Field(default_factory=list)
    # Set by the provider from the HTTP ETag of the loaded body.
    etag: Optional[str] = Field(default=None, exclude=True)

    class Config:
        frozen = True

    def find_model(self, model_id: str) -> Optional[MasterModel]:
        return next((m for m in self.models if m.id == model_id), None)

    def find_lora(self, lora_id: str) -> Optional[LoraDefinition]:
        return next((lora for lora in self.loras if lora.id == lora_id), None)

    def selectable_models(self) -> list[MasterModel]:
        return [m for m in self.models if m.is_selectable]

    def model_families(self) -> list[str]:
        return sorted({m.family for m in self.models if m.family})

    def lora_families(self) -> list[str]:
        return sorted({lora.family for lora in self.loras if lora.family})

    def loras_in_family(self, family_filter: Optional[str]) -> list[LoraDefinition]:
        return [lora for lora in self.loras if lora.matches_family(family_filter)]
