from stowage._core._storages import (
    AsyncBaseCacheStorage as AsyncBaseCacheStorage,
    AsyncBaseStore as AsyncBaseStore,
    AsyncInMemoryCacheStorage as AsyncInMemoryCacheStorage,
    AsyncSqliteCacheStorage as AsyncSqliteCacheStorage,
)
from stowage._core._headers import Headers as Headers
from stowage._core.models import (
    CachedEntry as CachedEntry,
    Request as Request,
    RequestDescriptor as RequestDescriptor,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from stowage._config import WorkerConfig as WorkerConfig
from stowage._lifecycle import (
    Activating as Activating,
    Active as Active,
    AnyState as AnyState,
    AsyncLifecycleController as AsyncLifecycleController,
    Installing as Installing,
    Parsed as Parsed,
    Redundant as Redundant,
    State as State,
    Superseded as Superseded,
    Waiting as Waiting,
)
from stowage._router import Strategy as Strategy, classify as classify
from stowage._strategies import AsyncStrategySet as AsyncStrategySet
from stowage._messages import AsyncControlChannel as AsyncControlChannel
from stowage._background import AsyncBackgroundHandlers as AsyncBackgroundHandlers
from stowage._host import (
    AsyncBaseClients as AsyncBaseClients,
    AsyncBaseNotifications as AsyncBaseNotifications,
    Client as Client,
    LocalClient as LocalClient,
    LocalClients as LocalClients,
    LocalNotifications as LocalNotifications,
    Notification as Notification,
)
from stowage._worker import AsyncRegistration as AsyncRegistration, AsyncServiceWorker as AsyncServiceWorker
from stowage._exceptions import (
    AssetFetchError as AssetFetchError,
    LifecycleError as LifecycleError,
    MalformedPushPayload as MalformedPushPayload,
    NetworkError as NetworkError,
    StoreWriteError as StoreWriteError,
    StowageError as StowageError,
)

__all__ = (
    ## States
    "State",
    "AnyState",
    "Parsed",
    "Installing",
    "Waiting",
    "Activating",
    "Active",
    "Superseded",
    "Redundant",
    ## Models
    "Request",
    "Response",
    "ResponseMetadata",
    "RequestDescriptor",
    "CachedEntry",
    ## Headers
    "Headers",
    ## Storages
    "AsyncBaseStore",
    "AsyncBaseCacheStorage",
    "AsyncInMemoryCacheStorage",
    "AsyncSqliteCacheStorage",
    # Worker
    "WorkerConfig",
    "AsyncLifecycleController",
    "Strategy",
    "classify",
    "AsyncStrategySet",
    "AsyncControlChannel",
    "AsyncBackgroundHandlers",
    "AsyncServiceWorker",
    "AsyncRegistration",
    # Host
    "Client",
    "AsyncBaseClients",
    "LocalClient",
    "LocalClients",
    "Notification",
    "AsyncBaseNotifications",
    "LocalNotifications",
    # Errors
    "StowageError",
    "AssetFetchError",
    "NetworkError",
    "StoreWriteError",
    "MalformedPushPayload",
    "LifecycleError",
)
