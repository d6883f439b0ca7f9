"""Utility modules."""

from smartdocs.utils.text_extraction import extract_text

__all__ = ["extract_text"]
