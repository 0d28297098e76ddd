from nsbridge.server.ports import KeyValueStore


class MemoryStore(KeyValueStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def put(self, key: str, value: str) -> None:
        self.values[key] = value
