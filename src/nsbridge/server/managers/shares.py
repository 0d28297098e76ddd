import json
import logging
import time
from typing import Any
from urllib.parse import urlsplit

from pydantic import TypeAdapter, ValidationError

from nsbridge.protocol.locations import (
    FIRST_SHARE_ID,
    NETWORK_STORAGE_ID,
    LocationEntry,
)
from nsbridge.protocol.shares import ShareConfig, example_shares
from nsbridge.server.ports import FileInfo, KeyValueStore, UiLauncher

logger = logging.getLogger(__name__)

SHARE_LIST_ADAPTER = TypeAdapter(list[ShareConfig])

ACCESSIBLE_SCHEMES = frozenset({"smb", "cifs", "ftp", "ftps", "sftp"})

# Children reported for every reachable share until real enumeration exists.
PLACEHOLDER_CHILDREN = ("Documents", "Pictures")


class ShareIntegration:
    """Bridges user-configured shares into location-entry shape.

    Share records are kept in their own list in the key-value store, apart
    from the location registry, and get their own id space starting at 101.
    """

    def __init__(
        self,
        store: KeyValueStore,
        launcher: UiLauncher,
        key: str = "cifs_shares",
    ):
        self.store = store
        self.launcher = launcher
        self.key = key

    async def load_shares(self) -> list[ShareConfig]:
        """Read the stored share records.

        An absent list is empty. Unreadable data falls back to the example
        shares so the user still sees something to pick.
        """
        raw = await self.store.get(self.key)
        if raw is None:
            return []
        try:
            return SHARE_LIST_ADAPTER.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Error loading shares, using examples: {e}")
            return example_shares()

    async def save_shares(self, shares: list[ShareConfig]) -> None:
        rows = [share.to_protocol() for share in shares]
        raw = json.dumps(rows, ensure_ascii=False)
        await self.store.put(self.key, raw)

    async def save_share(self, share: ShareConfig) -> None:
        shares = await self.load_shares()
        shares.append(share)
        await self.save_shares(shares)

    async def remove_share(self, address: str) -> None:
        """Drop every record with this address."""
        shares = await self.load_shares()
        await self.save_shares([s for s in shares if s.address != address])

    async def list_shares(self) -> list[LocationEntry]:
        """Stored shares as location entries under the network-storage node."""
        entries = []
        for server_id, share in enumerate(await self.load_shares(), FIRST_SHARE_ID):
            fields: dict[str, Any] = {
                "serverId": server_id,
                "serverAddr": share.address,
                "serverName": f"  📁 {share.name}",
                "sharedFolder": "",
                "category": "cifs_shares",
                "connectionType": share.connection_type,
                "parentId": str(NETWORK_STORAGE_ID),
                "isAnonymousMode": share.anonymous,
                "serverPort": share.port,
            }
            if not share.anonymous:
                fields["username"] = share.username
                fields["password"] = share.password
            entries.append(LocationEntry.from_protocol(fields))
        return entries

    def access_share(self, server_id: int, address: str) -> list[FileInfo]:
        """List the children of a share address.

        Never raises. Unrecognized schemes give an empty list.

        Args:
            server_id: Id the client asked about; stamped on every child.
            address: Share URL such as `smb://host/share`.

        Returns:
            list[FileInfo]: Directory children with path, directory flag and
                capture timestamp.
        """
        try:
            scheme = urlsplit(address).scheme.lower()
        except ValueError as e:
            logger.warning(f"Cannot parse share address {address!r}: {e}")
            return []
        if scheme not in ACCESSIBLE_SCHEMES:
            logger.warning(f"Unsupported share scheme {scheme!r} in {address!r}")
            return []

        logger.info(f"Accessing share: {address}")
        captured_at = int(time.time() * 1000)
        return [
            {
                "serverId": server_id,
                "filePath": f"{address}/{name}",
                "fileName": name,
                "isDirectory": True,
                "fileSize": 0,
                "lastModified": captured_at,
            }
            for name in PLACEHOLDER_CHILDREN
        ]

    async def open_manager(self) -> None:
        """Ask the UI to show the share manager.

        A missing share manager is only logged. Launcher exceptions propagate
        so the caller can report the failure.
        """
        logger.info("Opening share manager")
        if not await self.launcher.launch_share_manager():
            logger.warning("Share manager is not available")
