from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, TypedDict

import anyio

from stowage._config import WorkerConfig
from stowage._core._storages import AsyncBaseCacheStorage
from stowage._host import Client
from stowage._lifecycle import AsyncLifecycleController

logger = logging.getLogger("stowage.messages")

FORCE_ACTIVATE = "force-activate"
CLEAR_ALL_CACHES = "clear-all-caches"
VERSION_QUERY = "version-query"
VERSION_RESPONSE = "version-response"

# Action names sent by older application builds.
LEGACY_ACTIONS = {
    "skipWaiting": FORCE_ACTIVATE,
    "CLEAR_CACHE": CLEAR_ALL_CACHES,
}


class ControlMessage(TypedDict, total=False):
    action: str
    version: str


class VersionResponse(TypedDict):
    action: str
    version: str


def parse_action(message: Any) -> Optional[str]:
    """
    Return the normalized action of a control message, or None if it is not one.

    Examples:
        >>> parse_action({"action": "version-query"})
        'version-query'
        >>> parse_action({"action": "skipWaiting"})
        'force-activate'
        >>> parse_action("version-query") is None
        True
    """
    if not isinstance(message, Mapping):
        return None
    action = message.get("action")
    if not isinstance(action, str):
        return None
    action = LEGACY_ACTIONS.get(action, action)
    if action not in (FORCE_ACTIVATE, CLEAR_ALL_CACHES, VERSION_QUERY):
        return None
    return action


class AsyncControlChannel:
    """
    Reacts to control messages posted by the application.

    Unknown messages are ignored.
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: AsyncBaseCacheStorage,
        controller: AsyncLifecycleController,
    ) -> None:
        self.config = config
        self.storage = storage
        self.controller = controller

    async def dispatch(self, message: Any, source: Optional[Client] = None) -> Optional[str]:
        """
        Run the action named by `message` and return it, or None when the message was ignored.
        """
        action = parse_action(message)
        if action is None:
            logger.debug(f"Ignoring unrecognized message: {message!r}")
            return None

        if action == FORCE_ACTIVATE:
            await self.force_activate()
        elif action == CLEAR_ALL_CACHES:
            await self.clear_all_caches(message.get("version"))
        elif action == VERSION_QUERY:
            if source is None:
                logger.debug("Version query without a source client, nothing to reply to")
                return None
            await self.reply_version(source)
        return action

    async def force_activate(self) -> None:
        logger.info("Forced activation requested")
        await self.controller.skip_waiting()

    async def clear_all_caches(self, version: Optional[str] = None) -> None:
        names = await self.storage.keys()
        logger.info(f"Clearing all stores for version {version or self.config.version}: {names}")
        async with anyio.create_task_group() as task_group:
            for name in names:
                task_group.start_soon(self.storage.delete, name)

    async def reply_version(self, source: Client) -> None:
        await source.post_message(VersionResponse(action=VERSION_RESPONSE, version=self.config.version))
