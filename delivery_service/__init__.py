"""Resilient message delivery with fallback backends."""

__version__ = "1.0.0"
