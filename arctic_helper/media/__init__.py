"""
Transfer Layer.

This package is responsible for the low-level streaming of remote files to
disk and for verifying downloaded files.
"""

from .downloader import Downloader
from .integrity import verify_sha256

__all__ = ["Downloader", "verify_sha256"]
