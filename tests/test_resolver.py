import pytest
from pydantic import ValidationError

from arctic_helper.core.resolver import TierResolver
from arctic_helper.exceptions import (
    ConfigurationError,
    UnknownLora,
    UnknownModel,
    UnknownVariant,
)
from arctic_helper.models.catalog import Catalog, RamTier, VramTier


@pytest.mark.parametrize("ram_tier", list(RamTier))
def test_resolve_orders_always_artifacts_first(catalog, install_root, ram_tier):
    resolver = TierResolver(catalog, install_root)

    resolved = resolver.resolve("sdxl-base", "tier_a", ram_tier)

    assert [a.name for a in resolved] == ["vae.safetensors", "unet-fp8.gguf"]
    assert resolved[0].destination == (
        install_root / "models" / "vae" / "sdxl-base" / "vae.safetensors"
    )
    assert resolved[1].destination == (
        install_root / "models" / "checkpoints" / "sdxl-base" / "unet-fp8.gguf"
    )
    assert resolved[1].url == (
        "https://huggingface.co/stabilityai/sdxl-base/resolve/main/unet-fp8.gguf"
        "?download=1"
    )


@pytest.mark.parametrize(
    "ram_tier, included",
    [(RamTier.C, False), (RamTier.B, True), (RamTier.A, True)],
)
def test_resolve_gates_on_ram_tier(catalog, install_root, ram_tier, included):
    resolver = TierResolver(catalog, install_root)

    names = [a.name for a in resolver.resolve("sdxl-encoders", "tier_a", ram_tier)]

    assert ("text_encoder.bin" in names) is included
    assert names[0] == "vae.safetensors"
    assert names[-1] == "unet-fp8.gguf"


def test_unknown_ids_raise(catalog, install_root):
    resolver = TierResolver(catalog, install_root)
    with pytest.raises(UnknownModel):
        resolver.resolve("nope", "tier_a", RamTier.A)
    with pytest.raises(UnknownVariant):
        resolver.resolve("sdxl-base", "tier_c", RamTier.A)
    with pytest.raises(UnknownLora):
        resolver.resolve_lora("nope")


def test_variants_for_tier_is_exact(catalog, install_root):
    resolver = TierResolver(catalog, install_root)
    assert [v.id for v in resolver.variants_for_tier("sdxl-base", VramTier.S)] == ["tier_s"]
    assert resolver.variants_for_tier("sdxl-base", VramTier.B) == []
    assert resolver.variants_for_tier("upscalers", VramTier.A) == []


def test_resolve_lora_uses_family_slug(catalog, install_root):
    resolver = TierResolver(catalog, install_root)

    civitai = resolver.resolve_lora("realism")
    direct = resolver.resolve_lora("motion")

    assert civitai.destination == (
        install_root / "models" / "loras" / "flux_dev" / "realism-lora.safetensors"
    )
    assert civitai.url == "https://civitai.com/api/download/models/706528"
    assert direct.destination.parent.name == "wan_2_2"
    assert direct.url.startswith("https://example.com/files/motion_v2")


def test_missing_install_root_fails_only_when_resolving(catalog):
    resolver = TierResolver(catalog, None)
    assert resolver.variants_for_tier("sdxl-base", VramTier.A)
    with pytest.raises(ConfigurationError):
        resolver.resolve("sdxl-base", "tier_a", RamTier.A)


@pytest.mark.parametrize("model_id", ["../../../escaped", "a/b", "a\\b", "..", " "])
def test_model_ids_cannot_leave_the_models_folder(catalog_data, model_id):
    catalog_data["models"][0]["id"] = model_id
    with pytest.raises(ValidationError):
        Catalog.model_validate(catalog_data)


def test_destinations_stay_inside_the_models_folder(catalog, install_root):
    resolver = TierResolver(catalog, install_root)
    models_dir = (install_root / "models").resolve()

    for model in catalog.selectable_models():
        for variant in model.variants:
            for item in resolver.resolve(model.id, variant.id, RamTier.A):
                assert item.destination.resolve().is_relative_to(models_dir)


def test_repeated_destination_is_downloaded_once(catalog_data, install_root):
    vae = {"repo": "hf://other/vae", "path": "vae.safetensors", "category": "vae"}
    catalog_data["models"][0]["variants"][0]["artifacts"].insert(0, vae)
    resolver = TierResolver(Catalog.model_validate(catalog_data), install_root)

    resolved = resolver.resolve("sdxl-base", "tier_a", RamTier.A)

    assert [a.name for a in resolved] == ["vae.safetensors", "unet-fp8.gguf"]
    assert "sdxl-vae" in resolved[0].url
