"""Utility functions and helpers."""

from content_converter.utils.rich_text import LINE_BREAK, escape_note_body

__all__ = ["LINE_BREAK", "escape_note_body"]
