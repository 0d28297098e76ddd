"""File operations against a directory on the local filesystem.

Client paths are POSIX-style and relative to the manager's root, so `/` is
the root itself and `/Music/a.mp3` is `<root>/Music/a.mp3`. Paths that
resolve outside the root are refused.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Any, BinaryIO

from nsbridge.server.ports import FileInfo, FileListCache, FileManager, ProgressSink

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class LocalFileManager(FileManager):
    """Serves the file opcodes from a local directory tree.

    Blocking calls run through `asyncio.to_thread`. Listings are answered
    from the file-list cache when possible; every mutation clears it.
    """

    def __init__(self, root: str | Path, cache: FileListCache):
        self.root = Path(root).resolve()
        self.cache = cache

    # ================================
    # Path helpers
    # ================================

    def resolve(self, client_path: str | None) -> Path:
        """Map a client path onto the filesystem.

        Raises:
            ValueError: If the path is missing or escapes the root.
        """
        if client_path is None:
            raise ValueError("path is required")
        relative = str(client_path).lstrip("/")
        path = (self.root / relative).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"path escapes root: {client_path}")
        return path

    def child(self, parent: Path, name: str) -> Path:
        """Join one entry name onto a directory inside the root.

        Raises:
            ValueError: If the name is empty, has a separator, is `.` or
                `..`, or the joined path escapes the root.
        """
        if not isinstance(name, str) or name in ("", ".", ".."):
            raise ValueError(f"invalid name: {name!r}")
        if "/" in name or os.sep in name:
            raise ValueError(f"name has a path separator: {name!r}")
        path = (parent / name).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"path escapes root: {name}")
        return path

    def client_path(self, path: Path) -> str:
        relative = path.relative_to(self.root)
        return str(PurePosixPath("/") / PurePosixPath(*relative.parts))

    def describe(self, path: Path, server_id: int) -> FileInfo:
        """File info mapping for one path. The path must exist."""
        stat = path.stat()
        is_directory = path.is_dir()
        return {
            "serverId": server_id,
            "filePath": self.client_path(path),
            "fileName": path.name,
            "isDirectory": is_directory,
            "fileSize": 0 if is_directory else stat.st_size,
            "lastModified": int(stat.st_mtime * 1000),
        }

    def _list(self, directory: Path, server_id: int) -> list[FileInfo]:
        files = []
        for child in sorted(directory.iterdir(), key=lambda p: p.name.lower()):
            try:
                files.append(self.describe(child, server_id))
            except OSError as e:
                logger.warning(f"Skipping unreadable entry {child}: {e}")
        return files

    # ================================
    # Listings
    # ================================

    async def get_shared_folder_root_dir(self, server_id: int) -> list[FileInfo]:
        files = await asyncio.to_thread(self._list, self.root, server_id)
        return [info for info in files if info["isDirectory"]]

    async def get_file_list(self, path: str, server_id: int) -> list[FileInfo]:
        cached = self.cache.get(path, server_id)
        if cached is not None:
            logger.debug(f"File list cache hit for {path}")
            return cached

        directory = self.resolve(path)
        files = await asyncio.to_thread(self._list, directory, server_id)
        self.cache.put(path, server_id, files)
        return files

    async def get_file_object(self, path: str, server_id: int) -> FileInfo | None:
        target = self.resolve(path)
        try:
            return await asyncio.to_thread(self.describe, target, server_id)
        except FileNotFoundError:
            return None

    # ================================
    # Mutations
    # ================================

    async def new_folder(self, parent_path: str, name: str) -> bool:
        try:
            target = self.child(self.resolve(parent_path), name)
            await asyncio.to_thread(target.mkdir)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Cannot create folder {name} in {parent_path}: {e}")
            return False
        self.cache.clear()
        return True

    async def rename(self, source_path: str, new_name: str) -> bool:
        try:
            source = self.resolve(source_path)
            target = self.child(source.parent, new_name)
            if target.exists():
                logger.error(f"Rename target already exists: {target}")
                return False
            await asyncio.to_thread(source.rename, target)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Cannot rename {source_path} to {new_name}: {e}")
            return False
        self.cache.clear()
        return True

    async def delete(self, source_path: str) -> bool:
        try:
            target = self.resolve(source_path)
            if target == self.root:
                logger.error("Refusing to delete the root directory")
                return False
            if target.is_dir():
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await asyncio.to_thread(target.unlink)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot delete {source_path}: {e}")
            return False
        self.cache.clear()
        return True

    async def exists(self, source_path: str) -> bool:
        try:
            target = self.resolve(source_path)
        except ValueError:
            return False
        return await asyncio.to_thread(target.exists)

    # ================================
    # Transfers
    # ================================

    async def get_file_descriptor(self, source_path: str) -> int | None:
        """Open a file for reading and hand back its raw descriptor.

        The receiver owns the descriptor; `upload` closes it when done.
        """
        try:
            target = self.resolve(source_path)
            return await asyncio.to_thread(os.open, target, os.O_RDONLY)
        except (OSError, ValueError) as e:
            logger.error(f"Cannot open {source_path}: {e}")
            return None

    async def upload(
        self,
        descriptor: Any,
        dst_folder: str,
        dst_name: str,
        progress: ProgressSink | None,
        server_id: int,
        opcode: int,
    ) -> bool:
        """Copy from an open descriptor (or a local path) into the tree.

        The descriptor is closed on return, whether or not the copy worked.
        """
        try:
            if isinstance(descriptor, int):
                source = await asyncio.to_thread(os.fdopen, descriptor, "rb")
            else:
                source = await asyncio.to_thread(open, descriptor, "rb")
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Cannot read upload source {descriptor!r}: {e}")
            return False

        try:
            with source:
                target = self.child(self.resolve(dst_folder), dst_name)
                total = await asyncio.to_thread(_stream_size, source)
                await self._copy_stream(
                    source, target, total, progress, server_id, opcode
                )
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Upload to {dst_folder}/{dst_name} failed: {e}")
            return False
        self.cache.clear()
        return True

    async def copy(
        self,
        source_path: str,
        dst_folder: str,
        dst_name: str,
        progress: ProgressSink | None,
        server_id: int,
        opcode: int,
    ) -> bool:
        try:
            source = self.resolve(source_path)
            target = self.child(self.resolve(dst_folder), dst_name or source.name)
            if target == source:
                logger.error(f"Copy source and target are the same: {source}")
                return False

            if source.is_dir():
                await asyncio.to_thread(shutil.copytree, source, target)
                if progress:
                    await progress(
                        server_id, opcode, _progress_event(source, target, 1, 1)
                    )
            else:
                total = source.stat().st_size
                f = await asyncio.to_thread(open, source, "rb")
                with f:
                    await self._copy_stream(
                        f, target, total, progress, server_id, opcode
                    )
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Copy of {source_path} to {dst_folder} failed: {e}")
            return False
        self.cache.clear()
        return True

    async def _copy_stream(
        self,
        source: BinaryIO,
        target: Path,
        total: int,
        progress: ProgressSink | None,
        server_id: int,
        opcode: int,
    ) -> None:
        """Copy in chunks, reporting progress after each one."""
        transferred = 0
        dst = await asyncio.to_thread(open, target, "wb")
        with dst:
            while True:
                chunk = await asyncio.to_thread(source.read, CHUNK_SIZE)
                if not chunk:
                    break
                await asyncio.to_thread(dst.write, chunk)
                transferred += len(chunk)
                if progress:
                    await progress(
                        server_id,
                        opcode,
                        _progress_event(source, target, transferred, total),
                    )
        logger.info(f"Copied {transferred} bytes to {target}")


def _stream_size(stream: BinaryIO) -> int:
    try:
        return os.fstat(stream.fileno()).st_size
    except (OSError, ValueError):
        return 0


def _progress_event(
    source: Any, target: Path, transferred: int, total: int
) -> dict[str, Any]:
    return {
        "sourceName": str(getattr(source, "name", source)),
        "fileName": target.name,
        "transferredSize": transferred,
        "totalSize": total,
    }
