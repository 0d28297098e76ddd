from nsbridge.server.ports import FileInfo, FileListCache


class MemoryFileListCache(FileListCache):
    """Listings keyed by (path, server id), held until cleared."""

    def __init__(self):
        self._listings: dict[tuple[str, int], list[FileInfo]] = {}

    def get(self, path: str, server_id: int) -> list[FileInfo] | None:
        files = self._listings.get((path, server_id))
        return list(files) if files is not None else None

    def put(self, path: str, server_id: int, files: list[FileInfo]) -> None:
        self._listings[(path, server_id)] = list(files)

    def clear(self) -> None:
        self._listings.clear()

    def __len__(self) -> int:
        return len(self._listings)
