"""
Location entries: the browsable roots a client can pick from.

## Placeholder entries

Two reserved addresses never point at a real server. The client only knows
how to talk to FTP and SFTP servers, so the service advertises:

- `ftp://root.local` - opens raw access to the device filesystem root
- `sftp://smb.local` - opens the SMB/CIFS share browser

Requests that mention these addresses (or the matching server-type tags) are
redirected to the corresponding backend instead of a network connection.
"""

from typing import Any

from pydantic import ConfigDict, Field

from nsbridge.protocol.base import ProtocolModel

ROOT_SENTINEL = "ftp://root.local"
SHARE_SENTINEL = "sftp://smb.local"
SENTINEL_ADDRESSES = frozenset({ROOT_SENTINEL, SHARE_SENTINEL})

RESERVED_HOSTS = frozenset({"root.local", "smb.local"})

ADD_SHARE_TOKEN = "cifs://add_new"

ROOT_ACCESS = "ROOT_ACCESS"
SMB_ACCESS = "SMB_ACCESS"

ROOT_PLACEHOLDER_ID = 1
DEVICE_ROOT_ID = 6
NETWORK_STORAGE_ID = 100
FIRST_SHARE_ID = 101


class LocationEntry(ProtocolModel):
    """
    One browsable root or share exposed to the client.

    Keys the client sends that are not modelled here (for example `protocol`,
    `category` or `parentId`) are kept as extra fields and round-trip
    unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    server_id: int | None = Field(default=None, alias="serverId")
    """
    Registry identifier. Unique among registered entries.
    """

    server_name: str = Field(default="", alias="serverName")
    """
    Display label, possibly with a decorative prefix.
    """

    server_addr: str = Field(default="", alias="serverAddr")
    """
    Network address, or one of the reserved sentinel addresses.
    """

    shared_folder: str = Field(default="", alias="sharedFolder")

    connection_type: str | None = Field(default=None, alias="connectionType")
    """
    Protocol label such as `SMB`, `FTP` or `SFTP`.
    """

    server_type: str | None = Field(default=None, alias="serverType")
    """
    `ROOT_ACCESS` or `SMB_ACCESS` for placeholder entries, unset otherwise.
    """

    is_anonymous_mode: bool = Field(default=True, alias="isAnonymousMode")
    server_port: int = Field(default=0, alias="serverPort")
    username: str | None = None
    password: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.server_type in (ROOT_ACCESS, SMB_ACCESS)

    def merged(self, fields: dict[str, Any]) -> "LocationEntry":
        """Return a copy with `fields` layered over this entry.

        The registry id is never changed by a merge.
        """
        data = self.to_protocol()
        data.update(fields)
        data.pop("server_id", None)
        data["serverId"] = self.server_id
        return LocationEntry.from_protocol(data)

    def to_legacy(self) -> dict[str, Any]:
        """The four-field shape older stores persisted."""
        return {
            "serverId": self.server_id,
            "serverName": self.server_name,
            "serverAddr": self.server_addr,
            "sharedFolder": self.shared_folder,
        }


def default_locations(
    with_ids: bool = True, include_device_root: bool = False
) -> list[LocationEntry]:
    """The fixed location set used when nothing has been stored yet.

    Args:
        with_ids: Stamp the deterministic registry ids. Find-server answers
            use the same entries without ids.
        include_device_root: Add the secondary root-like entry (id 6).
    """

    def stamp(server_id: int) -> int | None:
        return server_id if with_ids else None

    entries = [
        LocationEntry(
            server_id=stamp(ROOT_PLACEHOLDER_ID),
            server_name="🔓 Add Root Location",
            server_addr=ROOT_SENTINEL,
            connection_type="FTP",
            server_type=ROOT_ACCESS,
            server_port=21,
            protocol="FTP",
        )
    ]
    if include_device_root:
        entries.append(
            LocationEntry(
                server_id=stamp(DEVICE_ROOT_ID),
                server_name="🗄️ Device Root",
                server_addr=ROOT_SENTINEL,
                shared_folder="/",
                connection_type="FTP",
                server_type=ROOT_ACCESS,
                server_port=21,
                protocol="FTP",
            )
        )
    entries.append(
        LocationEntry(
            server_id=stamp(NETWORK_STORAGE_ID),
            server_name="🌐 Add SMB/CIFS Share",
            server_addr=SHARE_SENTINEL,
            connection_type="SFTP",
            server_type=SMB_ACCESS,
            server_port=22,
            protocol="SFTP",
            category="network_storage",
        )
    )
    for offset, (name, address) in enumerate(
        [
            ("  🌐 Home Server (SMB)", "smb://192.168.1.100/shared"),
            ("  🌐 NAS Drive (SMB)", "smb://192.168.1.200/public"),
        ]
    ):
        entries.append(
            LocationEntry(
                server_id=stamp(FIRST_SHARE_ID + offset),
                server_name=name,
                server_addr=address,
                connection_type="SMB",
                server_port=445,
                category="network_storage",
                parentId=str(NETWORK_STORAGE_ID),
            )
        )
    return entries
