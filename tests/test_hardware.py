import subprocess

from arctic_helper.models.catalog import RamTier, VramTier
from arctic_helper.utils import hardware


def test_parse_nvidia_smi_picks_the_largest_gpu():
    output = "NVIDIA GeForce RTX 3060, 12288\nNVIDIA GeForce RTX 4090, 24564\n"
    gpu = hardware.parse_nvidia_smi(output)
    assert gpu.name == "NVIDIA GeForce RTX 4090"
    assert gpu.vram_gb == 24.0
    assert gpu.tier is VramTier.S


def test_parse_nvidia_smi_ignores_garbage():
    assert hardware.parse_nvidia_smi("") is None
    assert hardware.parse_nvidia_smi("No devices were found\n") is None
    assert hardware.parse_nvidia_smi("GPU, [N/A]\nRTX 3060, 12288").tier is VramTier.B


def test_detect_gpu_without_driver(monkeypatch):
    monkeypatch.setattr(hardware.shutil, "which", lambda name: None)
    assert hardware.detect_gpu() is None
    assert hardware.detect_vram_tier() is None


def test_detect_gpu_when_query_fails(monkeypatch):
    def fail(*args, **kwargs):
        raise subprocess.CalledProcessError(9, "nvidia-smi")

    monkeypatch.setattr(hardware.shutil, "which", lambda name: "/usr/bin/nvidia-smi")
    monkeypatch.setattr(hardware.subprocess, "check_output", fail)
    assert hardware.detect_gpu() is None


def test_detect_ram_tier(monkeypatch):
    monkeypatch.setattr(hardware, "total_ram_gb", lambda: 31.9)
    assert hardware.detect_ram_tier() is RamTier.C
    monkeypatch.setattr(hardware, "total_ram_gb", lambda: 64.0)
    assert hardware.detect_ram_tier() is RamTier.A
