"""Utility functions for meshrelay."""

from meshrelay.utils.logging import configure_logging

__all__ = ["configure_logging"]
