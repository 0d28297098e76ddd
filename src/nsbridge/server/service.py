"""Storage service: owns the registry and dispatcher for one process run."""

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from nsbridge.server.callbacks import CallbackManager
from nsbridge.server.dispatcher import RequestDispatcher
from nsbridge.server.managers.locations import LocationRegistry
from nsbridge.server.managers.shares import ShareIntegration
from nsbridge.server.ports import (
    FileListCache,
    FileManager,
    KeyValueStore,
    NullUiLauncher,
    PrivilegeShell,
    StringResources,
    UiLauncher,
)
from nsbridge.transport.base import ClientTransport

logger = logging.getLogger(__name__)


@dataclass
class ServiceConfig:
    locations_key: str = "locations"
    shares_key: str = "cifs_shares"

    persist_full_entries: bool = True
    """Persist every entry field. False keeps the legacy four-field shape."""

    include_device_root: bool = False
    """Seed the secondary root-like entry (id 6) into the default set."""


class StorageService:
    """Wires the registry, share adapter and dispatcher together.

    `start()` loads the location registry from the store, `stop()` waits for
    background requests and writes the registry back. Between the two the
    dispatcher is the only thing mutating the registry.
    """

    def __init__(
        self,
        store: KeyValueStore,
        files: FileManager,
        cache: FileListCache,
        launcher: UiLauncher | None = None,
        privilege: PrivilegeShell | None = None,
        strings: StringResources | None = None,
        config: ServiceConfig | None = None,
    ):
        self.config = config or ServiceConfig()
        self.store = store
        self.callbacks = CallbackManager()
        self.registry = LocationRegistry(
            key=self.config.locations_key,
            persist_full_entries=self.config.persist_full_entries,
            include_device_root=self.config.include_device_root,
        )
        launcher = launcher or NullUiLauncher()
        self.shares = ShareIntegration(store, launcher, key=self.config.shares_key)
        self.dispatcher = RequestDispatcher(
            registry=self.registry,
            shares=self.shares,
            files=files,
            cache=cache,
            launcher=launcher,
            privilege=privilege,
            strings=strings,
            callbacks=self.callbacks,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Load the registry. Safe to call more than once."""
        if self._started:
            return
        entries = await self.registry.load(self.store)
        logger.info(f"Storage service started with {len(entries)} locations")
        self._started = True

    async def stop(self) -> None:
        """Finish background requests and persist the registry."""
        if not self._started:
            return
        await self.dispatcher.drain()
        await self.registry.save(self.store)
        self._started = False
        logger.info("Storage service stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
        return None

    # ================================
    # Transport bridge
    # ================================

    async def serve(self, transport: ClientTransport) -> None:
        """Answer calls arriving on a transport until it closes.

        Registers result and progress sinks that forward events to the
        transport, so a transport client replaces any previously registered
        sinks.
        """
        await self.start()

        async def send_result(
            server_id: int, opcode: int, result: dict[str, Any]
        ) -> None:
            await transport.send(
                {
                    "event": "result",
                    "serverId": server_id,
                    "opcode": opcode,
                    "result": result,
                }
            )

        async def send_progress(
            server_id: int, opcode: int, progress: dict[str, Any]
        ) -> None:
            await transport.send(
                {
                    "event": "progress",
                    "serverId": server_id,
                    "opcode": opcode,
                    "progress": progress,
                }
            )

        self.dispatcher.register_result_callback(send_result)
        self.dispatcher.register_progress_callback(send_progress)
        try:
            async for message in transport.messages():
                try:
                    await self._handle_call(transport, message)
                except Exception as e:
                    logger.error(f"Error handling call {message!r}: {e}")
        finally:
            # Requests still running report to this client before it is detached.
            await self.dispatcher.drain()
            self.dispatcher.unregister_result_callback(send_result)
            self.dispatcher.unregister_progress_callback(send_progress)
            await self.stop()

    async def _handle_call(
        self, transport: ClientTransport, message: dict[str, Any]
    ) -> None:
        call = message.get("call")
        server_id = message.get("serverId", 0)
        declared_type = message.get("type")
        opcode = message.get("opcode", -1)
        extras = message.get("extras") or {}

        if call == "asyncRequest":
            self.dispatcher.async_request(server_id, declared_type, opcode, extras)
            return
        if call == "syncRequest":
            value: Any = await self.dispatcher.sync_request(
                server_id, declared_type, opcode, extras
            )
        elif call == "cancel":
            value = await self.dispatcher.cancel(server_id)
        elif call == "retryRequest":
            value = await self.dispatcher.retry(server_id)
        else:
            logger.warning(f"Unknown call {call!r}")
            return
        await transport.send({"event": "reply", "call": call, "value": value})

