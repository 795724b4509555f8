# notifier.py — Outbound staff-action notifications for the chat platform
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

import config
from models import utcnow

logger = logging.getLogger("arcadia-panel.notifier")


@dataclass
class Notification:
    title: str
    description: str
    fields: Dict[str, str] = field(default_factory=dict)
    color: int = 0x5865F2


class ChatNotifier:
    """Interface consumed by bot actions. Delivery is best-effort."""

    async def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LogNotifier(ChatNotifier):
    async def send(self, notification: Notification) -> None:
        logger.info(f"[notify] {notification.title}: {notification.description} {notification.fields}")


class DiscordWebhookNotifier(ChatNotifier):
    def __init__(self, webhook_url: str, timeout: float = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _payload(self, notification: Notification) -> dict:
        return {
            "embeds": [{
                "title": notification.title,
                "description": notification.description,
                "color": notification.color,
                "timestamp": utcnow().isoformat(),
                "fields": [
                    {"name": name, "value": value or "-", "inline": True}
                    for name, value in notification.fields.items()
                ],
            }],
        }

    async def send(self, notification: Notification) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.webhook_url, json=self._payload(notification))
                resp.raise_for_status()
        except httpx.HTTPError as e:
            # The action this reports on has already been committed
            logger.warning(f"Webhook notification '{notification.title}' failed: {e}")


def build_notifier(webhook_url: Optional[str] = None) -> ChatNotifier:
    url = webhook_url if webhook_url is not None else config.DISCORD_WEBHOOK_URL
    if url:
        return DiscordWebhookNotifier(url)
    return LogNotifier()
