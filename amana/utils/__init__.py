"""Utility functions for amana."""

from amana.utils.helpers import ensure_dir, now_in, safe_filename

__all__ = ["ensure_dir", "now_in", "safe_filename"]
