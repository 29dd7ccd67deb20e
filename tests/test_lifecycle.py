from typing import Any, List

import pytest
from inline_snapshot import snapshot

from stowage import (
    Active,
    Activating,
    AssetFetchError,
    AsyncLifecycleController,
    Installing,
    LifecycleError,
    LocalClient,
    LocalClients,
    Parsed,
    Redundant,
    Request,
    Superseded,
    Waiting,
    WorkerConfig,
)
from tests.conftest import HOME_PAGE, ORIGIN, FakeNetwork


def make_controller(
    config: WorkerConfig, storage: Any, network: FakeNetwork, **kwargs: Any
) -> AsyncLifecycleController:
    return AsyncLifecycleController(
        config=config,
        storage=storage,
        request_sender=network,
        clients=kwargs.pop("clients", LocalClients()),
        **kwargs,
    )


def test_state_transitions():
    state = Parsed(generation="shop-v1")

    installing = state.next()
    assert isinstance(installing, Installing)
    assert isinstance(installing.next(succeeded=False), Redundant)

    waiting = installing.next(succeeded=True)
    assert isinstance(waiting, Waiting)

    activating = waiting.next()
    assert isinstance(activating, Activating)

    active = activating.next()
    assert isinstance(active, Active)
    assert active.generation == "shop-v1"

    superseded = active.next()
    assert isinstance(superseded, Superseded)
    assert superseded.next() is None
    assert superseded.supersede() is superseded


def test_redundant_can_install_again():
    assert isinstance(Redundant(generation="shop-v1").next(), Installing)


@pytest.mark.anyio
async def test_install_stores_every_manifest_asset(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)

    state = await controller.install()

    assert isinstance(state, Waiting)
    assert await storage.keys() == ["shop-v1.0.0"]
    async with storage.open_store("shop-v1.0.0") as store:
        entries = await store.entries()
    assert sorted(entry.request.url for entry in entries) == [
        "https://shop.example/",
        "https://shop.example/index.html",
        "https://shop.example/logo.png",
    ]

    entry = await storage.match(Request(method="GET", url=ORIGIN))
    assert entry is not None
    assert entry.response.content == HOME_PAGE


@pytest.mark.anyio
async def test_install_reports_states(config: WorkerConfig, storage: Any, network: FakeNetwork):
    seen: List[str] = []
    controller = make_controller(
        config,
        storage,
        network,
        on_state_change=lambda state: seen.append(state.__class__.__name__),
    )

    await controller.install()

    assert seen == snapshot(["Installing", "Waiting"])


@pytest.mark.anyio
async def test_install_is_idempotent(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)

    await controller.install()
    await controller.install()

    async with storage.open_store("shop-v1.0.0") as store:
        assert len(await store.entries()) == 3
    assert isinstance(controller.state, Waiting)


@pytest.mark.anyio
async def test_install_twice_with_skip_waiting(storage: Any, network: FakeNetwork):
    config = WorkerConfig(
        app_name="shop",
        version="1.0.0",
        origin=ORIGIN,
        static_assets=("/", "/index.html", "/logo.png"),
        external_resources=(),
    )
    controller = make_controller(config, storage, network)

    await controller.install()
    state = await controller.install()

    assert isinstance(state, Active)
    async with storage.open_store("shop-v1.0.0") as store:
        assert len(await store.entries()) == 3
    assert network.count(ORIGIN + "logo.png") == 2


@pytest.mark.anyio
async def test_failed_store_write_rolls_back_install(
    config: WorkerConfig, storage: Any, network: FakeNetwork, monkeypatch: pytest.MonkeyPatch
):
    writes: List[str] = []
    open_store = storage.open

    async def open_with_failing_put(name: str) -> Any:
        store = await open_store(name)
        put = store.put

        async def failing_put(request: Request, response: Any) -> None:
            writes.append(request.url)
            if len(writes) == 2:
                raise OSError("disk full")
            await put(request, response)

        store.put = failing_put
        return store

    monkeypatch.setattr(storage, "open", open_with_failing_put)
    controller = make_controller(config, storage, network)

    with pytest.raises(OSError, match="disk full"):
        await controller.install()

    assert isinstance(controller.state, Redundant)
    assert await storage.has("shop-v1.0.0") is False

    monkeypatch.undo()
    state = await controller.install()

    assert isinstance(state, Waiting)
    async with storage.open_store("shop-v1.0.0") as store:
        assert len(await store.entries()) == 3


@pytest.mark.anyio
async def test_failed_install_stores_nothing(config: WorkerConfig, storage: Any, network: FakeNetwork):
    network.failing.add(ORIGIN + "logo.png")
    controller = make_controller(config, storage, network)

    with pytest.raises(AssetFetchError) as exc_info:
        await controller.install()

    assert exc_info.value.url == "https://shop.example/logo.png"
    assert isinstance(controller.state, Redundant)
    assert await storage.has("shop-v1.0.0") is False
    assert await storage.match(Request(method="GET", url=ORIGIN)) is None


@pytest.mark.anyio
async def test_install_fails_on_error_status(config: WorkerConfig, storage: Any, network: FakeNetwork):
    del network.routes[ORIGIN + "index.html"]
    controller = make_controller(config, storage, network)

    with pytest.raises(AssetFetchError, match="unexpected status 404"):
        await controller.install()

    assert isinstance(controller.state, Redundant)
    assert await storage.keys() == []


@pytest.mark.anyio
async def test_install_after_failure(config: WorkerConfig, storage: Any, network: FakeNetwork):
    network.online = False
    controller = make_controller(config, storage, network)
    with pytest.raises(AssetFetchError):
        await controller.install()

    network.online = True
    state = await controller.install()

    assert isinstance(state, Waiting)
    assert await storage.has("shop-v1.0.0") is True


@pytest.mark.anyio
async def test_install_fetches_external_resources(storage: Any, network: FakeNetwork):
    font_css = "https://cdn.example/font-awesome/all.min.css"
    network.routes[font_css] = (b".fa{}", "text/css")
    config = WorkerConfig(
        app_name="shop",
        version="1.0.0",
        origin=ORIGIN,
        static_assets=("/",),
        external_resources=(font_css,),
        skip_waiting=False,
    )
    controller = make_controller(config, storage, network)

    await controller.install()

    entry = await storage.match(Request(method="GET", url=font_css))
    assert entry is not None
    assert entry.store == "shop-v1.0.0"


@pytest.mark.anyio
async def test_activate_removes_stale_stores(config: WorkerConfig, storage: Any, network: FakeNetwork):
    for name in ["shop-v0.9.0", "shop-dynamic-v1", "unrelated"]:
        await (await storage.open(name)).release()
    controller = make_controller(config, storage, network)
    await controller.install()

    state = await controller.activate()

    assert isinstance(state, Active)
    assert sorted(await storage.keys()) == ["shop-dynamic-v1", "shop-v1.0.0"]


@pytest.mark.anyio
async def test_activate_claims_clients(config: WorkerConfig, storage: Any, network: FakeNetwork):
    clients = LocalClients([LocalClient(url=ORIGIN), LocalClient(url=ORIGIN + "cart")])
    controller = make_controller(config, storage, network, clients=clients)
    await controller.install()

    await controller.activate()

    assert [client.controller for client in clients.clients] == ["shop-v1.0.0", "shop-v1.0.0"]


@pytest.mark.anyio
async def test_activate_requires_install(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)

    with pytest.raises(LifecycleError):
        await controller.activate()


@pytest.mark.anyio
async def test_activate_twice(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.install()

    first = await controller.activate()
    second = await controller.activate()

    assert first is second


@pytest.mark.anyio
async def test_skip_waiting_activates_after_install(storage: Any, network: FakeNetwork):
    config = WorkerConfig(app_name="shop", version="1.0.0", origin=ORIGIN, static_assets=("/",), external_resources=())
    controller = make_controller(config, storage, network)

    state = await controller.install()

    assert isinstance(state, Active)


@pytest.mark.anyio
async def test_skip_waiting_on_waiting_generation(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.install()

    await controller.skip_waiting()

    assert isinstance(controller.state, Active)


@pytest.mark.anyio
async def test_skip_waiting_before_install(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.skip_waiting()

    assert isinstance(controller.state, Parsed)
    assert isinstance(await controller.install(), Active)


@pytest.mark.anyio
async def test_install_refreshes_active_generation(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.install()
    await controller.activate()
    network.routes[ORIGIN + "logo.png"] = (b"new png", "image/png")

    state = await controller.install()

    assert isinstance(state, Active)
    entry = await storage.match(Request(method="GET", url=ORIGIN + "logo.png"))
    assert entry is not None
    assert entry.response.content == b"new png"


@pytest.mark.anyio
async def test_superseded_generation_cannot_install(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.install()
    controller.supersede()

    with pytest.raises(LifecycleError):
        await controller.install()


@pytest.mark.anyio
async def test_supersede(config: WorkerConfig, storage: Any, network: FakeNetwork):
    controller = make_controller(config, storage, network)
    await controller.install()
    await controller.activate()

    state = controller.supersede()

    assert isinstance(state, Superseded)
    assert state.generation == "shop-v1.0.0"
