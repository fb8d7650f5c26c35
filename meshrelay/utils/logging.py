"""Runtime logging setup for meshrelay."""

from __future__ import annotations

import sys

from loguru import logger

_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
_DEFAULT_LEVEL = "INFO"
_CONFIGURED = False


def _normalize_level(level: str | None) -> str:
    if not level:
        return _DEFAULT_LEVEL
    normalized = level.strip().upper()
    if normalized in _VALID_LEVELS:
        return normalized
    return _DEFAULT_LEVEL


def configure_logging(level: str | None = None, *, force: bool = False) -> str:
    """Route loguru output to a single stderr sink. Idempotent unless ``force=True``."""
    global _CONFIGURED

    resolved = _normalize_level(level)
    if _CONFIGURED and not force:
        return resolved

    logger.remove()
    logger.add(
        sys.stderr,
        level=resolved,
        backtrace=False,
        diagnose=False,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level:<8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
    )
    _CONFIGURED = True
    logger.debug(f"Logging configured: level={resolved}")
    return resolved
