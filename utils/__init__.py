# utils/__init__.py
"""General utilities for DraftLoop."""

from .logging import setup_logging

__all__ = ["setup_logging"]
