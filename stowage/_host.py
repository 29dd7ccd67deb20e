from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger("stowage.host")

__all__ = (
    "Client",
    "AsyncBaseClients",
    "LocalClient",
    "LocalClients",
    "Notification",
    "AsyncBaseNotifications",
    "LocalNotifications",
)


class Client(abc.ABC):
    """
    An open application context (a page, a window, an embedding process) the worker can talk to.
    """

    id: str
    url: str

    @abc.abstractmethod
    async def focus(self) -> "Client":
        pass

    @abc.abstractmethod
    async def post_message(self, message: Mapping[str, Any]) -> None:
        pass


class AsyncBaseClients(abc.ABC):
    @abc.abstractmethod
    async def match_all(self) -> List[Client]:
        pass

    @abc.abstractmethod
    async def open_window(self, url: str) -> Optional[Client]:
        pass

    @abc.abstractmethod
    async def claim(self, controller: str) -> None:
        """
        Make `controller` the generation that handles requests of every open client.
        """
        pass


@dataclass(eq=False)
class LocalClient(Client):
    url: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    focused: bool = False
    controller: Optional[str] = None
    inbox: List[Dict[str, Any]] = field(default_factory=list)

    async def focus(self) -> "LocalClient":
        self.focused = True
        return self

    async def post_message(self, message: Mapping[str, Any]) -> None:
        self.inbox.append(dict(message))


class LocalClients(AsyncBaseClients):
    """
    Clients tracked in process memory.
    """

    def __init__(self, clients: Optional[List[LocalClient]] = None) -> None:
        self.clients: List[LocalClient] = list(clients or [])

    async def match_all(self) -> List[Client]:
        return list(self.clients)

    async def open_window(self, url: str) -> LocalClient:
        client = LocalClient(url=url, focused=True)
        self.clients.append(client)
        logger.debug(f"Opened client {client.id} at {url}")
        return client

    async def claim(self, controller: str) -> None:
        for client in self.clients:
            client.controller = controller


@dataclass(eq=False)
class Notification:
    title: str
    body: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    closed: bool = False

    def close(self) -> None:
        self.closed = True


class AsyncBaseNotifications(abc.ABC):
    @abc.abstractmethod
    async def show(self, title: str, *, body: str = "", data: Optional[Mapping[str, Any]] = None) -> Notification:
        pass


class LocalNotifications(AsyncBaseNotifications):
    def __init__(self) -> None:
        self.shown: List[Notification] = []

    async def show(self, title: str, *, body: str = "", data: Optional[Mapping[str, Any]] = None) -> Notification:
        notification = Notification(title=title, body=body, data=dict(data or {}))
        self.shown.append(notification)
        return notification

    @property
    def visible(self) -> List[Notification]:
        return [notification for notification in self.shown if not notification.closed]
