import json
from typing import Any

import pytest

from stowage import (
    AsyncBackgroundHandlers,
    LocalClient,
    LocalClients,
    LocalNotifications,
    MalformedPushPayload,
    Notification,
    WorkerConfig,
)
from stowage._background import parse_push_payload


class Recorder:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


def make_handlers(config: WorkerConfig, clients: Any = None, **kwargs: Any) -> AsyncBackgroundHandlers:
    return AsyncBackgroundHandlers(
        config=config,
        clients=clients if clients is not None else LocalClients(),
        notifications=kwargs.pop("notifications", LocalNotifications()),
        **kwargs,
    )


@pytest.mark.anyio
async def test_sync_runs_flush(config: WorkerConfig):
    flush = Recorder()
    handlers = make_handlers(config, flush_pending_writes=flush)

    assert await handlers.sync("sync-orders") is True
    assert await handlers.sync("sync-something-else") is False
    assert flush.calls == 1


@pytest.mark.anyio
async def test_periodic_sync_runs_refresh(config: WorkerConfig):
    refresh = Recorder()
    handlers = make_handlers(config, refresh_catalog=refresh)

    assert await handlers.periodic_sync("update-products") is True
    assert await handlers.periodic_sync("sync-orders") is False
    assert refresh.calls == 1


@pytest.mark.anyio
async def test_sync_without_operation(config: WorkerConfig):
    handlers = make_handlers(config)

    assert await handlers.sync("sync-orders") is True
    assert await handlers.periodic_sync("update-products") is True


@pytest.mark.anyio
async def test_push_shows_notification(config: WorkerConfig):
    notifications = LocalNotifications()
    handlers = make_handlers(config, notifications=notifications)
    payload = json.dumps({"title": "Order shipped", "body": "Order #42 is on its way", "url": "/orders/42"})

    notification = await handlers.push(payload.encode())

    assert notification is not None
    assert notifications.visible == [notification]
    assert notification.title == "Order shipped"
    assert notification.body == "Order #42 is on its way"
    assert notification.data == {"url": "/orders/42"}


@pytest.mark.anyio
async def test_push_defaults(config: WorkerConfig):
    handlers = make_handlers(config)

    notification = await handlers.push({})

    assert notification is not None
    assert notification.title == "shop"
    assert notification.body == ""
    assert notification.data == {"url": "/"}


@pytest.mark.anyio
@pytest.mark.parametrize("payload", [b"\xff\xfe", "not json", "[1, 2]", {"title": 3}])
async def test_malformed_push_is_skipped(config: WorkerConfig, payload: Any, caplog: pytest.LogCaptureFixture):
    notifications = LocalNotifications()
    handlers = make_handlers(config, notifications=notifications)

    with caplog.at_level("WARNING", logger="stowage.background"):
        assert await handlers.push(payload) is None

    assert notifications.shown == []
    assert caplog.messages[0].startswith("Skipping notification: ")


def test_parse_push_payload_errors(config: WorkerConfig):
    with pytest.raises(MalformedPushPayload, match="must be a JSON object, got list"):
        parse_push_payload("[]", config)

    with pytest.raises(MalformedPushPayload, match="'url' must be a string"):
        parse_push_payload({"url": ["/"]}, config)


@pytest.mark.anyio
async def test_notification_click_focuses_open_client(config: WorkerConfig):
    orders = LocalClient(url="https://shop.example/orders/42")
    clients = LocalClients([LocalClient(url="https://shop.example/"), orders])
    handlers = make_handlers(config, clients=clients)
    notification = Notification(title="Order shipped", data={"url": "/orders/42"})

    client = await handlers.notification_click(notification)

    assert client is orders
    assert orders.focused is True
    assert notification.closed is True
    assert len(clients.clients) == 2


@pytest.mark.anyio
async def test_notification_click_opens_window(config: WorkerConfig):
    clients = LocalClients([LocalClient(url="https://shop.example/")])
    handlers = make_handlers(config, clients=clients)

    client = await handlers.notification_click(Notification(title="Sale", data={"url": "/sale"}))

    assert client is not None
    assert client.url == "https://shop.example/sale"
    assert [c.url for c in clients.clients] == ["https://shop.example/", "https://shop.example/sale"]


@pytest.mark.anyio
async def test_notification_click_without_url(config: WorkerConfig):
    home = LocalClient(url="https://shop.example/")
    handlers = make_handlers(config, clients=LocalClients([home]))

    client = await handlers.notification_click(Notification(title="Hello"))

    assert client is home


@pytest.mark.anyio
async def test_notification_click_other_origin_opens_window(config: WorkerConfig):
    clients = LocalClients([LocalClient(url="https://other.example/sale")])
    handlers = make_handlers(config, clients=clients)

    notification = Notification(title="Sale", data={"url": "https://shop.example/sale"})

    client = await handlers.notification_click(notification)

    assert client is not None
    assert client.url == "https://shop.example/sale"
    assert len(clients.clients) == 2
