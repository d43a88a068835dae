"""Utility helpers for wikiagent."""

from wikiagent.utils.logging import configure_logging

__all__ = ["configure_logging"]
