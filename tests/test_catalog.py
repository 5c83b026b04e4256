import pytest
from pydantic import ValidationError

from arctic_helper.models.catalog import (
    Artifact,
    Catalog,
    LoraDefinition,
    RamTier,
    VramTier,
)


def test_tier_spellings_are_normalized():
    assert VramTier.parse("tier_a") is VramTier.A
    assert VramTier.parse("Tier-S") is VramTier.S
    assert RamTier.parse("b") is RamTier.B
    with pytest.raises(ValueError):
        VramTier.parse("tier_x")


def test_ram_tier_satisfies_minimum():
    assert RamTier.A.satisfies(RamTier.B)
    assert RamTier.B.satisfies(RamTier.B)
    assert not RamTier.C.satisfies(RamTier.B)
    assert RamTier.C.satisfies(None)


@pytest.mark.parametrize(
    "gb, tier",
    [(24, VramTier.S), (16, VramTier.A), (12, VramTier.B), (8, VramTier.C)],
)
def test_vram_tier_from_total(gb, tier):
    assert VramTier.from_total_gb(gb) is tier


def test_ram_tier_from_total():
    assert RamTier.from_total_gb(96) is RamTier.A
    assert RamTier.from_total_gb(32) is RamTier.B
    assert RamTier.from_total_gb(15.6) is RamTier.C


def test_catalog_parses_and_is_frozen(catalog):
    assert catalog.catalog_version == 7
    model = catalog.find_model("sdxl-base")
    assert model.find_variant("tier_a").tier is VramTier.A
    assert [v.id for v in model.variants_for_tier(VramTier.S)] == ["tier_s"]
    with pytest.raises(ValidationError):
        model.id = "other"


def test_models_without_variants_are_not_selectable(catalog):
    ids = [m.id for m in catalog.selectable_models()]
    assert "upscalers" not in ids
    assert catalog.find_model("upscalers").variants_for_tier(VramTier.A) == []


def test_artifact_rejects_path_like_categories():
    with pytest.raises(ValidationError):
        Artifact(repo="hf://a/b", path="x.bin", category="../etc")


def test_artifact_file_name_and_label():
    artifact = Artifact(
        repo="hf://a/b", path="split_files/vae/ae.safetensors", category="VAE"
    )
    assert artifact.file_name == "ae.safetensors"
    assert artifact.category == "vae"
    assert artifact.category_label == "VAE"


def test_lora_needs_a_source():
    with pytest.raises(ValidationError):
        LoraDefinition(id="x", display_name="X")


def test_lora_file_name_derivation(catalog):
    assert catalog.find_lora("motion").derived_file_name == "motion_v2.safetensors"
    assert catalog.find_lora("realism").derived_file_name == "realism-lora.safetensors"
    assert catalog.find_lora("realism").host_ref == "706528"


def test_lora_family_filter(catalog):
    assert [lora.id for lora in catalog.loras_in_family("flux dev")] == ["realism"]
    assert len(catalog.loras_in_family(None)) == 2
    assert catalog.lora_families() == ["Flux Dev", "Wan 2.2"]


def test_model_families_are_sorted_and_unique(catalog):
    assert catalog.model_families() == ["SDXL"]
    assert catalog.etag is None


def test_malformed_catalog_is_rejected():
    with pytest.raises(ValidationError):
        Catalog.model_validate_json(b'{"models": [{"id": 1}]}')
