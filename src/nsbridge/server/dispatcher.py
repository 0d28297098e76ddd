"""Request dispatch for the storage service.

Accepts opcode-keyed requests, tracks them while they run, routes each one to
its handler and reports the outcome through the registered result callback.

Cancellation is cooperative and late: handlers never look at the flag. It is
read once, after the handler has finished and the request has been untracked,
and only decides whether the result callback fires. Whatever the handler did
(registry changes, file operations) stays done.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from nsbridge.protocol.base import RESULT_SUCCESS, new_result
from nsbridge.protocol.locations import LocationEntry, default_locations
from nsbridge.protocol.opcodes import Opcode
from nsbridge.server.callbacks import CallbackManager
from nsbridge.server.managers.locations import LocationRegistry
from nsbridge.server.managers.shares import ShareIntegration
from nsbridge.server.ports import (
    EmptyStringResources,
    FileListCache,
    FileManager,
    NullPrivilegeShell,
    PrivilegeShell,
    StringResources,
    UiLauncher,
)
from nsbridge.server.request_tracker import InFlightRequest, RequestTracker
from nsbridge.server.routing import (
    FolderRoute,
    RouteKind,
    classify_add_route,
    classify_folder_route,
    list_predicate,
)

logger = logging.getLogger(__name__)

Result = dict[str, Any]
OpcodeHandler = Callable[[InFlightRequest, Result], Awaitable[None]]


class RequestDispatcher:
    """Routes requests by opcode and delivers their results.

    Every `async_request` runs as its own asyncio task; there is no pool and
    no backpressure. `sync_request` runs the same path inline.
    """

    def __init__(
        self,
        registry: LocationRegistry,
        shares: ShareIntegration,
        files: FileManager,
        cache: FileListCache,
        launcher: UiLauncher,
        privilege: PrivilegeShell | None = None,
        strings: StringResources | None = None,
        callbacks: CallbackManager | None = None,
    ):
        self.registry = registry
        self.shares = shares
        self.files = files
        self.cache = cache
        self.launcher = launcher
        self.privilege = privilege or NullPrivilegeShell()
        self.strings = strings or EmptyStringResources()
        self.callbacks = callbacks or CallbackManager()
        self.tracker = RequestTracker()
        self._handlers: dict[int, OpcodeHandler] = {}
        self._tasks: set[asyncio.Task[Result]] = set()
        self._register_handlers()

    # ================================
    # Entry points
    # ================================

    def async_request(
        self,
        server_id: int,
        type: str | None,
        opcode: int,
        extras: dict[str, Any] | None = None,
    ) -> None:
        """Accept a request and run it in the background.

        Returns immediately. The outcome arrives later through the result
        callback, unless the request is cancelled first.

        Must be called from within the running event loop.
        """
        request = self._accept(server_id, type, opcode, extras)
        task = asyncio.create_task(
            self._run(request),
            name=f"request_{opcode}_{server_id}_{request.request_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def sync_request(
        self,
        server_id: int,
        type: str | None,
        opcode: int,
        extras: dict[str, Any] | None = None,
    ) -> Result:
        """Accept a request and run it to completion.

        The result is returned and also delivered to the result callback.
        A cancelled request still returns its result; only the callback is
        skipped.
        """
        request = self._accept(server_id, type, opcode, extras)
        return await self._run(request)

    async def cancel(self, server_id: int) -> bool:
        """Flag the latest in-flight request for a server id as cancelled.

        The handler keeps running; only its result callback is suppressed.

        Returns:
            bool: False if nothing is in flight for that id.
        """
        request = self.tracker.latest_for_server(server_id)
        if request is None:
            return False
        request.cancel()
        return True

    async def cancel_request(self, request_id: str) -> bool:
        """Flag one specific in-flight request as cancelled."""
        request = self.tracker.get(request_id)
        if request is None:
            return False
        request.cancel()
        return True

    async def retry(self, server_id: int) -> bool:
        """Re-submit the latest in-flight request for a server id.

        The original record is untouched; a new request with identical
        parameters is accepted alongside it.
        """
        request = self.tracker.latest_for_server(server_id)
        if request is None:
            return False
        self.async_request(
            request.server_id, request.type, request.opcode, request.extras
        )
        return True

    async def drain(self) -> None:
        """Wait until every background request, including retries, finishes."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def cancel_all(self) -> int:
        """Abort every background task. Returns how many were running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.tracker.clear()
        return len(tasks)

    @property
    def in_flight(self) -> int:
        return self.tracker.count()

    # ================================
    # Callback slots
    # ================================

    def register_result_callback(self, callback) -> bool:
        return self.callbacks.register_result(callback)

    def unregister_result_callback(self, callback=None) -> bool:
        return self.callbacks.unregister_result(callback)

    def register_progress_callback(self, callback) -> bool:
        return self.callbacks.register_progress(callback)

    def unregister_progress_callback(self, callback=None) -> bool:
        return self.callbacks.unregister_progress(callback)

    # ================================
    # Execution
    # ================================

    def _accept(
        self,
        server_id: int,
        type: str | None,
        opcode: int,
        extras: dict[str, Any] | None,
    ) -> InFlightRequest:
        request = InFlightRequest(
            server_id=server_id, type=type, opcode=opcode, extras=dict(extras or {})
        )
        self.tracker.track(request)
        return request

    async def _run(self, request: InFlightRequest) -> Result:
        result = new_result()
        try:
            await self._execute(request, result)
        finally:
            self.tracker.untrack(request.request_id)

        if request.cancelled:
            logger.info(
                f"Request {request.request_id} for {request.server_id} was "
                "cancelled, result not delivered"
            )
            return result

        await self.callbacks.call_result(request.server_id, request.opcode, result)
        return result

    async def _execute(self, request: InFlightRequest, result: Result) -> None:
        """Run the opcode handler. No exception escapes."""
        opcode = Opcode.lookup(request.opcode)
        label = opcode.name if opcode else f"unknown opcode {request.opcode}"
        logger.info(f"Handling {label} type {request.type}")
        for key, value in request.extras.items():
            logger.debug(f"  {key}={value!r}")

        handler = self._handlers.get(request.opcode)
        if handler is None:
            return

        try:
            await handler(request, result)
        except Exception as e:
            logger.exception(f"Handler for opcode {request.opcode} failed: {e}")
            result[RESULT_SUCCESS] = False
            result["result"] = False

    # ================================
    # Server list
    # ================================

    async def _handle_get_server_list(
        self, request: InFlightRequest, result: Result
    ) -> None:
        logger.info(f"Listing servers for type: {request.type}")
        entries = await self.registry.filter(list_predicate(request.type))
        result["serverList"] = [entry.to_protocol() for entry in entries]
        result["result"] = True

    async def _handle_add_server(
        self, request: InFlightRequest, result: Result
    ) -> None:
        extras = request.extras
        server_addr = extras.get("serverAddr", "")
        route = classify_add_route(
            server_addr, request.type, extras.get("serverType")
        )
        logger.info(
            f"Add server - type: {request.type!r}, "
            f"serverAddr: {server_addr!r}, route: {route.value}"
        )

        if route is RouteKind.REAL_ADDRESS:
            fields = {k: v for k, v in extras.items() if k != "serverId"}
            server_id = await self.registry.add(LocationEntry.from_protocol(fields))
            result["result"] = True
            result["serverId"] = server_id
        elif route is RouteKind.SHARE_MANAGER_PLACEHOLDER:
            await self._launch(self.shares.open_manager, result, "share manager")
        elif route is RouteKind.NATIVE_PASSTHROUGH:
            # The client's own FTPS dialog takes over.
            result["result"] = False
        else:
            await self._launch(
                self.launcher.launch_root_location, result, "root location flow"
            )

    async def _launch(
        self, flow: Callable[[], Awaitable[Any]], result: Result, name: str
    ) -> None:
        """Run a UI hand-off; success mints an id without touching the registry."""
        try:
            await flow()
        except Exception as e:
            logger.exception(f"Error launching {name}: {e}")
            result["result"] = False
            return
        result["result"] = True
        result["serverId"] = self.registry.next_id()

    async def _handle_update_server(
        self, request: InFlightRequest, result: Result
    ) -> None:
        server_id = request.extras.get("serverId")
        result["result"] = await self.registry.update(server_id, request.extras)

    async def _handle_delete_server(
        self, request: InFlightRequest, result: Result
    ) -> None:
        server_id = request.extras.get("serverId")
        result["result"] = await self.registry.remove(server_id)

    async def _handle_find_server(
        self, request: InFlightRequest, result: Result
    ) -> None:
        entries = default_locations(
            with_ids=False, include_device_root=self.registry.include_device_root
        )
        result["serverList"] = [entry.to_protocol() for entry in entries]
        result["result"] = True

    # ================================
    # Shared folders
    # ================================

    async def _handle_get_shared_folder(
        self, request: InFlightRequest, result: Result
    ) -> None:
        server_addr = request.extras.get("serverAddr")
        folder_id = request.extras.get("serverId", 0)
        route = classify_folder_route(server_addr)
        logger.info(
            f"Shared folder request for {server_addr!r} ({folder_id}): {route.value}"
        )

        if route is FolderRoute.SHARE_LIST:
            shares = await self.shares.list_shares()
            folders = [entry.to_protocol() for entry in shares]
        elif route is FolderRoute.SHARE_ACCESS:
            folders = self.shares.access_share(folder_id, server_addr)
        elif route is FolderRoute.SHARE_MANAGER:
            folders = []
            try:
                await self.shares.open_manager()
            except Exception as e:
                logger.exception(f"Error opening share manager: {e}")
        else:
            if route is FolderRoute.FALLBACK and server_addr is not None:
                logger.warning(f"Unknown serverAddr, using root dir: {server_addr}")
            folders = await self.files.get_shared_folder_root_dir(folder_id)

        result["sharedFolderList"] = folders
        result["result"] = True

    # ================================
    # File operations
    # ================================

    async def _handle_get_file_list(
        self, request: InFlightRequest, result: Result
    ) -> None:
        extras = request.extras
        result["fileList"] = await self.files.get_file_list(
            extras.get("filePath"), extras.get("serverId", 0)
        )
        result["result"] = True

    async def _handle_get_file_object(
        self, request: InFlightRequest, result: Result
    ) -> None:
        extras = request.extras
        result["fileObject"] = await self.files.get_file_object(
            extras.get("filePath"), extras.get("serverId", 0)
        )
        result["result"] = True

    async def _handle_create_folder(
        self, request: InFlightRequest, result: Result
    ) -> None:
        extras = request.extras
        result[RESULT_SUCCESS] = await self.files.new_folder(
            extras.get("parentPath"), extras.get("newName")
        )
        result["result"] = True

    async def _handle_rename(self, request: InFlightRequest, result: Result) -> None:
        extras = request.extras
        result[RESULT_SUCCESS] = await self.files.rename(
            extras.get("sourcePath"), extras.get("newName")
        )
        result["result"] = True

    async def _handle_upload(self, request: InFlightRequest, result: Result) -> None:
        extras = request.extras
        result[RESULT_SUCCESS] = await self.files.upload(
            extras.get("fileDescriptor"),
            extras.get("dstFolderPath"),
            extras.get("dstFileName"),
            self.callbacks.call_progress,
            request.server_id,
            request.opcode,
        )
        result["result"] = True

    async def _handle_get_file_descriptor(
        self, request: InFlightRequest, result: Result
    ) -> None:
        result["fileDescriptor"] = await self.files.get_file_descriptor(
            request.extras.get("sourcePath")
        )
        result["result"] = True

    async def _handle_delete(self, request: InFlightRequest, result: Result) -> None:
        result[RESULT_SUCCESS] = await self.files.delete(
            request.extras.get("sourcePath")
        )
        result["result"] = True

    async def _copy(self, request: InFlightRequest) -> bool:
        extras = request.extras
        return await self.files.copy(
            extras.get("sourcePath"),
            extras.get("dstFolderPath"),
            extras.get("dstFileName"),
            self.callbacks.call_progress,
            request.server_id,
            request.opcode,
        )

    async def _handle_internal_copy(
        self, request: InFlightRequest, result: Result
    ) -> None:
        result[RESULT_SUCCESS] = await self._copy(request)
        result["result"] = True

    async def _handle_internal_move(
        self, request: InFlightRequest, result: Result
    ) -> None:
        # The source is deleted only after a successful copy.
        moved = await self._copy(request)
        if moved:
            moved = await self.files.delete(request.extras.get("sourcePath"))
        result[RESULT_SUCCESS] = moved
        result["result"] = True

    async def _handle_exists(self, request: InFlightRequest, result: Result) -> None:
        result["result"] = await self.files.exists(request.extras.get("sourcePath"))

    async def _handle_remove_cached_file_list(
        self, request: InFlightRequest, result: Result
    ) -> None:
        self.cache.clear()
        result["result"] = True

    # ================================
    # Host integration
    # ================================

    async def _handle_get_string_map(
        self, request: InFlightRequest, result: Result
    ) -> None:
        strings: dict[str, str] = {}
        for name in self.strings.names():
            try:
                strings[name] = self.strings.get(name)
            except Exception as e:
                logger.warning(f"String resource {name} unavailable: {e}")
                strings[name] = ""
        result["result"] = strings

    async def _handle_check_permission(
        self, request: InFlightRequest, result: Result
    ) -> None:
        try:
            await self.privilege.acquire()
        except Exception as e:
            logger.exception(f"Privilege elevation failed: {e}")

    # ================================
    # Register handlers
    # ================================

    def register_handler(self, opcode: int, handler: OpcodeHandler) -> None:
        """Route an opcode to a handler, replacing any existing one.

        Args:
            opcode: Operation selector, usually an `Opcode` member.
            handler: Async function taking (request, result) that layers its
                fields onto the result in place.
        """
        self._handlers[int(opcode)] = handler

    def _register_handlers(self) -> None:
        # CONNECT, GET_RESOURCE, VERIFY_SERVER_INFO, GET_SERVER_COUNT,
        # REMOVE_MONITOR, EXTERNAL_COPY and EXTERNAL_MOVE do no work.
        self.register_handler(Opcode.GET_SERVER_LIST, self._handle_get_server_list)
        self.register_handler(Opcode.ADD_SERVER, self._handle_add_server)
        self.register_handler(Opcode.UPDATE_SERVER, self._handle_update_server)
        self.register_handler(Opcode.DELETE_SERVER, self._handle_delete_server)
        self.register_handler(Opcode.FIND_SERVER, self._handle_find_server)
        self.register_handler(
            Opcode.GET_SHARED_FOLDER, self._handle_get_shared_folder
        )
        self.register_handler(Opcode.GET_FILE_LIST, self._handle_get_file_list)
        self.register_handler(Opcode.GET_FILE_OBJECT, self._handle_get_file_object)
        self.register_handler(Opcode.GET_STRING_MAP, self._handle_get_string_map)
        self.register_handler(
            Opcode.CHECK_PERMISSION, self._handle_check_permission
        )
        self.register_handler(
            Opcode.REMOVE_CACHED_FILE_LIST, self._handle_remove_cached_file_list
        )
        self.register_handler(Opcode.CREATE_FOLDER, self._handle_create_folder)
        self.register_handler(Opcode.RENAME, self._handle_rename)
        self.register_handler(Opcode.UPLOAD, self._handle_upload)
        self.register_handler(
            Opcode.GET_FILE_DESCRIPTOR, self._handle_get_file_descriptor
        )
        self.register_handler(Opcode.DELETE, self._handle_delete)
        self.register_handler(Opcode.INTERNAL_COPY, self._handle_internal_copy)
        self.register_handler(Opcode.INTERNAL_MOVE, self._handle_internal_move)
        self.register_handler(Opcode.EXIST, self._handle_exists)
