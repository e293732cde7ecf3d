"""Discord webhook notifications for pipeline milestones."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import requests

from ..config.settings import MonitoringConfig, get_app_config
from .logger import get_logger
from .metrics import METRICS


class NotificationKind(str, Enum):
    MIGRATION = "migration"
    POOL_MATCHED = "pool_matched"
    PURCHASE = "purchase"
    POSITION = "position"
    WARNING = "warning"
    FAILURE = "failure"
    STATUS = "status"


_COLOURS = {
    NotificationKind.MIGRATION: 0x3498DB,
    NotificationKind.POOL_MATCHED: 0x9B59B6,
    NotificationKind.PURCHASE: 0x2ECC71,
    NotificationKind.POSITION: 0x1ABC9C,
    NotificationKind.WARNING: 0xF1C40F,
    NotificationKind.FAILURE: 0xE74C3C,
    NotificationKind.STATUS: 0x95A5A6,
}


@dataclass(slots=True)
class Notification:
    kind: NotificationKind
    title: str
    description: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    token_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


MetadataLookup = Callable[[str], Awaitable[Optional[Any]]]


class DiscordNotifier:
    """Fire-and-forget delivery; failures are logged and never propagated."""

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        metadata_lookup: Optional[MetadataLookup] = None,
    ) -> None:
        self._config = config or get_app_config().monitoring
        self._session = session or requests.Session()
        self._metadata_lookup = metadata_lookup
        self._pending: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return self._config.discord_webhook_url is not None

    def notify(self, notification: Notification) -> None:
        """Schedule delivery on the running loop without waiting for it."""

        self._logger.info(
            "%s: %s",
            notification.title,
            notification.description,
            extra={"kind": notification.kind.value, "fields": notification.fields},
        )
        if not self.enabled:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, notification: Notification) -> None:
        """Deliver immediately; used by scripts that exit right after."""

        if self.enabled:
            await self._deliver(notification)

    async def _deliver(self, notification: Notification) -> None:
        try:
            if notification.token_id and self._metadata_lookup and self._config.enrich_token_metadata:
                metadata = await self._metadata_lookup(notification.token_id)
                if metadata is not None:
                    notification.fields.setdefault("Name", getattr(metadata, "name", "") or "unknown")
                    notification.fields.setdefault("Symbol", getattr(metadata, "symbol", "") or "unknown")
            await asyncio.to_thread(self._post, self.build_payload(notification))
        except Exception as exc:  # noqa: BLE001 - notifications must never break the pipeline
            METRICS.increment("notifier.failed")
            self._logger.warning("Failed to deliver %s notification: %s", notification.kind.value, exc)

    def build_payload(self, notification: Notification) -> Dict[str, Any]:
        embed: Dict[str, Any] = {
            "title": notification.title,
            "description": notification.description,
            "color": _COLOURS[notification.kind],
            "timestamp": notification.timestamp.isoformat(),
            "fields": [
                {"name": name, "value": str(value)[:1024] or "-", "inline": len(str(value)) <= 24}
                for name, value in notification.fields.items()
            ],
            "footer": {"text": self._config.bot_name},
        }
        return {"username": self._config.bot_name, "embeds": [embed]}

    def _post(self, payload: Dict[str, Any]) -> None:
        try:
            response = self._session.post(
                str(self._config.discord_webhook_url),
                json=payload,
                timeout=self._config.notification_timeout,
            )
            response.raise_for_status()
            METRICS.increment("notifier.sent")
        except requests.RequestException as exc:
            METRICS.increment("notifier.failed")
            self._logger.warning("Failed to post Discord notification: %s", exc)

    async def aclose(self) -> None:
        """Wait for notifications that are still in flight."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._session.close()


__all__ = ["DiscordNotifier", "Notification", "NotificationKind"]
