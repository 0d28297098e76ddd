import asyncio
import logging
import os
import sys
from pathlib import Path

from nsbridge.files.cache import MemoryFileListCache
from nsbridge.files.local import LocalFileManager
from nsbridge.server.service import ServiceConfig, StorageService
from nsbridge.storage.json_store import JsonFileStore
from nsbridge.transport.stdio import StdioTransport


async def main():
    # Stdout carries events, so logs go to stderr.
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    root = Path(os.environ.get("NSBRIDGE_ROOT", Path.home()))
    state = Path(os.environ.get("NSBRIDGE_STATE", root / ".nsbridge.json"))

    cache = MemoryFileListCache()
    service = StorageService(
        store=JsonFileStore(state),
        files=LocalFileManager(root, cache),
        cache=cache,
        config=ServiceConfig(include_device_root=True),
    )
    async with StdioTransport() as transport:
        await service.serve(transport)


if __name__ == "__main__":
    asyncio.run(main())
