"""Sleeve - cover art resolution and caching for a music library."""

__version__ = "0.1.0"
__author__ = "KyokoMiki"
__description__ = "Cover art resolution and caching for a music library"

from .core import Sleeve, open_sleeve

__all__ = [
    "Sleeve",
    "open_sleeve",
    "__version__",
    "__author__",
    "__description__",
]
