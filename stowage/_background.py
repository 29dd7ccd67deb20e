from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, TypedDict
from urllib.parse import urlsplit

from stowage._config import WorkerConfig
from stowage._exceptions import MalformedPushPayload
from stowage._host import AsyncBaseClients, AsyncBaseNotifications, Client, Notification

logger = logging.getLogger("stowage.background")

Operation = Callable[[], Awaitable[Any]]


async def _noop() -> None:
    return None


class PushMessage(TypedDict):
    title: str
    body: str
    url: str


def parse_push_payload(data: Any, config: WorkerConfig) -> PushMessage:
    """
    Turn a push payload into the fields of a notification.

    Accepts raw JSON (bytes or str) or an already decoded mapping. Missing fields
    fall back to the application name, an empty body and the default URL.

    Raises:
        MalformedPushPayload: if the payload is not a JSON object or a field has the wrong type.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPushPayload("Push payload is not valid UTF-8") from exc

    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MalformedPushPayload("Push payload is not valid JSON") from exc

    if not isinstance(data, Mapping):
        raise MalformedPushPayload(f"Push payload must be a JSON object, got {type(data).__name__}")

    message = PushMessage(
        title=data.get("title") or config.app_name,
        body=data.get("body") or "",
        url=data.get("url") or config.default_notification_url,
    )
    for key, value in message.items():
        if not isinstance(value, str):
            raise MalformedPushPayload(f"Push field {key!r} must be a string")
    return message


def _same_target(client_url: str, target: str) -> bool:
    if client_url == target:
        return True
    client_parts = urlsplit(client_url)
    target_parts = urlsplit(target)
    if target_parts.netloc and target_parts.netloc != client_parts.netloc:
        return False
    return (client_parts.path or "/") == (target_parts.path or "/") and client_parts.query == target_parts.query


class AsyncBackgroundHandlers:
    """
    Work the host runs outside of the request path.

    Args:
        config: The worker configuration. Its tags decide which wake-ups are meaningful.
        clients: Open application contexts, used when a notification is clicked.
        notifications: Where push messages are displayed.
        flush_pending_writes: Sends writes queued while offline. Awaited on deferred sync.
        refresh_catalog: Refreshes data in the background. Awaited on periodic sync.
    """

    def __init__(
        self,
        config: WorkerConfig,
        clients: AsyncBaseClients,
        notifications: AsyncBaseNotifications,
        flush_pending_writes: Optional[Operation] = None,
        refresh_catalog: Optional[Operation] = None,
    ) -> None:
        self.config = config
        self.clients = clients
        self.notifications = notifications
        self.flush_pending_writes = flush_pending_writes or _noop
        self.refresh_catalog = refresh_catalog or _noop

    async def sync(self, tag: str) -> bool:
        if tag != self.config.sync_tag:
            logger.debug(f"Ignoring sync with unknown tag {tag!r}")
            return False
        logger.info("Syncing pending writes")
        await self.flush_pending_writes()
        return True

    async def periodic_sync(self, tag: str) -> bool:
        if tag != self.config.periodic_sync_tag:
            logger.debug(f"Ignoring periodic sync with unknown tag {tag!r}")
            return False
        logger.info("Refreshing catalog")
        await self.refresh_catalog()
        return True

    async def push(self, data: Any) -> Optional[Notification]:
        try:
            message = parse_push_payload(data, self.config)
        except MalformedPushPayload as exc:
            logger.warning(f"Skipping notification: {exc}")
            return None

        return await self.notifications.show(
            message["title"],
            body=message["body"],
            data={"url": message["url"]},
        )

    async def notification_click(self, notification: Notification) -> Optional[Client]:
        notification.close()
        target = notification.data.get("url") or self.config.default_notification_url

        for client in await self.clients.match_all():
            if _same_target(client.url, target):
                logger.debug(f"Focusing client {client.id} at {client.url}")
                return await client.focus()

        logger.debug(f"Opening a new client at {target}")
        return await self.clients.open_window(self.config.resolve(target))
