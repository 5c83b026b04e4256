import pytest

from arctic_helper.exceptions import CatalogError
from arctic_helper.utils.path import (
    build_download_url,
    file_name_from_url,
    safe_file_name,
    slugify,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("Flux Dev", "flux_dev"),
        ("  Wan 2.2 / I2V  ", "wan_2_2_i2v"),
        ("SDXL", "sdxl"),
        ("---", "misc"),
    ],
)
def test_slugify(value, expected):
    assert slugify(value) == expected
    assert slugify(slugify(value)) == slugify(value)


def test_safe_file_name_strips_reserved_characters():
    assert safe_file_name('lo:ra?"v1".safetensors') == "lorav1.safetensors"
    assert safe_file_name("???", fallback="x.bin") == "x.bin"


def test_file_name_from_url():
    assert file_name_from_url("https://h/a/b/model.gguf?download=1") == "model.gguf"
    assert file_name_from_url("https://h/") is None


def test_build_download_url_forms():
    assert build_download_url("hf://owner/repo@v2", "sub dir/f.bin") == (
        "https://huggingface.co/owner/repo/resolve/v2/sub%20dir/f.bin?download=1"
    )
    assert build_download_url(
        "https://huggingface.co/o/r/blob/main/f.safetensors", "ignored"
    ) == "https://huggingface.co/o/r/resolve/main/f.safetensors?download=1"
    assert build_download_url("https://huggingface.co/o/r/", "/f.bin") == (
        "https://huggingface.co/o/r/resolve/main/f.bin?download=1"
    )


def test_build_download_url_rejects_unknown_scheme():
    with pytest.raises(CatalogError):
        build_download_url("s3://bucket/key", "f.bin")
