from typing import Any, Self

from pydantic import Field, model_validator

from nsbridge.protocol.base import ProtocolModel

DEFAULT_PORTS = {"SMB": 445, "FTP": 21, "SFTP": 22}
FALLBACK_PORT = 21


def default_port(connection_type: str) -> int:
    """Well-known port for a protocol label, case-insensitive."""
    return DEFAULT_PORTS.get(connection_type.upper(), FALLBACK_PORT)


class ShareConfig(ProtocolModel):
    """
    A share the user configured through the share manager.

    Stored as a list independently of the location registry.
    """

    name: str
    address: str
    username: str | None = None
    password: str | None = None

    connection_type: str = Field(default="SMB", alias="connectionType")
    """
    `SMB`, `FTP` or `SFTP`.
    """

    port: int | None = None
    """
    Defaults to the well-known port of `connection_type` when omitted.
    """

    anonymous: bool = True

    @model_validator(mode="after")
    def fill_default_port(self) -> Self:
        if self.port is None:
            self.port = default_port(self.connection_type)
        return self

    def to_protocol(self) -> dict[str, Any]:
        # Credentials are written even when empty so stored records keep the
        # full shape.
        return self.model_dump(by_alias=True, mode="json")


def example_shares() -> list[ShareConfig]:
    """Shares offered when the stored list cannot be read."""
    return [
        ShareConfig(
            name="Home Server",
            address="smb://192.168.1.100/shared",
            connection_type="SMB",
        ),
        ShareConfig(
            name="FTP Server", address="ftp://192.168.1.200", connection_type="FTP"
        ),
    ]
