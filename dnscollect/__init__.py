"""Decode DNS wire-format messages and EDNS options, and render them as JSON or text lines."""

__version__ = "0.1.0"
__all__ = ["dns", "edns", "message", "payload", "textformat"]