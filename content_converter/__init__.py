"""Converts legacy notes and attachments into shareable content files."""

__version__ = "1.0.0"
