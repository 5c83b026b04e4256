"""
Hardware-tiered model and LoRA download helper for ComfyUI installs.
"""

__version__ = "0.4.0"
