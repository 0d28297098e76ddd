"""Collaborators the dispatcher calls into.

Persistence, filesystem I/O, the file-list cache, UI hand-off, privilege
elevation and string resources live outside the core. Each is an abstract
port here; concrete implementations sit in `nsbridge.storage` and
`nsbridge.files`, and tests substitute mocks.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, int, dict[str, Any]], Awaitable[None]]
"""Receives (server_id, opcode, progress) while a copy is running."""

FileInfo = dict[str, Any]


class KeyValueStore(ABC):
    """String key-value persistence."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key was never written."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""


class FileListCache(ABC):
    """Directory listings cached by (path, server id)."""

    @abstractmethod
    def get(self, path: str, server_id: int) -> list[FileInfo] | None: ...

    @abstractmethod
    def put(self, path: str, server_id: int, files: list[FileInfo]) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class FileManager(ABC):
    """Filesystem operations behind the file opcodes.

    Boolean-returning methods report operational success; they should not
    raise for ordinary failures such as a missing path.
    """

    @abstractmethod
    async def get_shared_folder_root_dir(self, server_id: int) -> list[FileInfo]:
        """Top-level folders shown for the device-root location."""

    @abstractmethod
    async def get_file_list(self, path: str, server_id: int) -> list[FileInfo]: ...

    @abstractmethod
    async def get_file_object(self, path: str, server_id: int) -> FileInfo | None: ...

    @abstractmethod
    async def new_folder(self, parent_path: str, name: str) -> bool: ...

    @abstractmethod
    async def rename(self, source_path: str, new_name: str) -> bool: ...

    @abstractmethod
    async def upload(
        self,
        descriptor: Any,
        dst_folder: str,
        dst_name: str,
        progress: ProgressSink | None,
        server_id: int,
        opcode: int,
    ) -> bool:
        """Copy from an already-open descriptor into `dst_folder/dst_name`."""

    @abstractmethod
    async def copy(
        self,
        source_path: str,
        dst_folder: str,
        dst_name: str,
        progress: ProgressSink | None,
        server_id: int,
        opcode: int,
    ) -> bool: ...

    @abstractmethod
    async def get_file_descriptor(self, source_path: str) -> Any: ...

    @abstractmethod
    async def delete(self, source_path: str) -> bool: ...

    @abstractmethod
    async def exists(self, source_path: str) -> bool: ...


class UiLauncher(ABC):
    """Hands control to a user-facing configuration surface."""

    @abstractmethod
    async def launch_root_location(self) -> None:
        """Open the add-root-location flow.

        Raises:
            Exception: If the flow cannot be started.
        """

    @abstractmethod
    async def launch_share_manager(self) -> bool:
        """Open the share manager. Returns False if it is not available."""


class PrivilegeShell(ABC):
    @abstractmethod
    async def acquire(self) -> None:
        """Request an elevated shell, prompting the user if needed."""


class StringResources(ABC):
    @abstractmethod
    def names(self) -> list[str]:
        """Names of every display string."""

    @abstractmethod
    def get(self, name: str) -> str:
        """Look up one display string.

        Raises:
            KeyError: If the name has no string.
        """


class NullUiLauncher(UiLauncher):
    """Launcher for hosts without a UI. Nothing is ever shown."""

    async def launch_root_location(self) -> None:
        logger.info("No UI available for the root location flow")

    async def launch_share_manager(self) -> bool:
        return False


class NullPrivilegeShell(PrivilegeShell):
    async def acquire(self) -> None:
        logger.debug("Privilege elevation not supported on this host")


class EmptyStringResources(StringResources):
    def names(self) -> list[str]:
        return []

    def get(self, name: str) -> str:
        raise KeyError(name)
