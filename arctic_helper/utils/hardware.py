"""
Detects the local machine's RAM and VRAM tiers.

Both results are only suggestions for the CLI defaults; users can always pick
a tier explicitly.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass

import psutil

from arctic_helper.models.catalog import RamTier, VramTier

log = logging.getLogger(__name__)

_GIB = 1024**3


@dataclass(frozen=True)
class GpuInfo:
    name: str
    vram_gb: float

    @property
    def tier(self) -> VramTier:
        return VramTier.from_total_gb(self.vram_gb)


def total_ram_gb() -> float:
    return round(psutil.virtual_memory().total / _GIB, 1)


def detect_ram_tier() -> RamTier:
    total_gb = total_ram_gb()
    tier = RamTier.from_total_gb(total_gb)
    log.debug(f"Detected {total_gb} GB of system memory ({tier.description}).")
    return tier


def detect_gpu() -> GpuInfo | None:
    """
    Queries ``nvidia-smi`` for the largest NVIDIA GPU.

    Returns:
        The GPU name and total memory, or None when no NVIDIA driver is present.
    """
    executable = shutil.which("nvidia-smi")
    if executable is None:
        log.debug("nvidia-smi not found; skipping VRAM detection.")
        return None

    try:
        out = subprocess.check_output(
            [
                executable,
                "--query-gpu=name,memory.total",
                "--format=csv,noheader,nounits",
            ],
            text=True,
            stderr=subprocess.DEVNULL,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug(f"nvidia-smi query failed: {e}")
        return None

    return parse_nvidia_smi(out)


def parse_nvidia_smi(output: str) -> GpuInfo | None:
    best: GpuInfo | None = None
    for line in output.strip().splitlines():
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < 2:
            continue
        try:
            vram_gb = round(int(parts[1]) / 1024, 1)
        except ValueError:
            continue
        if best is None or vram_gb > best.vram_gb:
            best = GpuInfo(name=parts[0], vram_gb=vram_gb)
    return best


def detect_vram_tier() -> VramTier | None:
    gpu = detect_gpu()
    if gpu is None:
        return None
    log.debug(f"Detected {gpu.name} with {gpu.vram_gb} GB VRAM (tier {gpu.tier.value}).")
    return gpu.tier
