"""
Data Models Layer.

This package contains the Pydantic catalog and settings models plus the
dataclasses that describe resolved downloads, transfer events and statistics.
"""

from .catalog import (
    Artifact,
    Catalog,
    LoraDefinition,
    MasterModel,
    RamTier,
    Variant,
    VramTier,
)
from .config import AppSettings
from .stats import DownloadStats

__all__ = [
    "AppSettings",
    "Artifact",
    "Catalog",
    "DownloadStats",
    "LoraDefinition",
    "MasterModel",
    "RamTier",
    "Variant",
    "VramTier",
]
