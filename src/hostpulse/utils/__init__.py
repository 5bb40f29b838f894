"""Utility modules."""

from .logger import setup_logging
from .net import mask_token, normalize_url

__all__ = ["setup_logging", "mask_token", "normalize_url"]
