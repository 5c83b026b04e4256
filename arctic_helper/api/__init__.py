"""
LoRA Host Layer.

This package handles all communication with the Civitai API.
"""

from .client import CivitaiClient
from .lora_adapter import LoraAdapter, LoraMetadata

__all__ = ["CivitaiClient", "LoraAdapter", "LoraMetadata"]
