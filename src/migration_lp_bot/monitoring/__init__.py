"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging
from .metrics import METRICS
from .notifier import DiscordNotifier, MetadataLookup


def bootstrap_observability(
    config: Optional[AppConfig] = None,
    *,
    metadata_lookup: Optional[MetadataLookup] = None,
) -> DiscordNotifier:
    """Configure logging and build the notification sink."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    return DiscordNotifier(app_config.monitoring, metadata_lookup=metadata_lookup)


__all__ = ["bootstrap_observability", "DiscordNotifier", "METRICS"]
