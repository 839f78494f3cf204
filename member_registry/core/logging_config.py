"""Logging setup."""

from __future__ import annotations

import logging

from member_registry.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""

    level = logging.DEBUG if settings.app_debug else settings.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
