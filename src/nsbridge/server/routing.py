"""Address classification and the protocol-disguise routing policy.

The client declares a protocol label (`FTP`, `SFTP`, ...) with each request.
Two of those labels are disguises: `FTP` stands for device-root access and
`SFTP` for the SMB/CIFS share manager. Everything here is pure and total so
routing decisions are made once per request and never raise.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from nsbridge.protocol.locations import (
    ADD_SHARE_TOKEN,
    RESERVED_HOSTS,
    ROOT_ACCESS,
    ROOT_SENTINEL,
    SENTINEL_ADDRESSES,
    SHARE_SENTINEL,
    SMB_ACCESS,
    LocationEntry,
)

IPV4_PATTERN = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
KNOWN_SCHEMES = ("ftp://", "ftps://", "sftp://", "smb://")
SHARE_SCHEMES = ("cifs://", "smb://")


def is_real_address(addr: str | None) -> bool:
    """Check whether an address names a genuine remote endpoint.

    Sentinel addresses and reserved hostnames are never real, whatever their
    syntactic shape. Scheme-prefixed addresses are judged on their host part,
    so `smb://root.local` is not real while `smb://nas.example.com/share` is.

    Args:
        addr: Address as typed by the user or sent by the client.

    Returns:
        True for IPv4 literals, dotted hostnames and scheme URLs with a
        dotted, non-reserved host. False for everything else.
    """
    if not isinstance(addr, str) or not addr.strip():
        return False
    if addr in SENTINEL_ADDRESSES:
        return False

    for scheme in KNOWN_SCHEMES:
        if addr.startswith(scheme):
            remainder = addr[len(scheme) :]
            host = remainder.split("/", 1)[0]
            return "." in remainder and host not in RESERVED_HOSTS

    if IPV4_PATTERN.match(addr):
        return True
    return "." in addr and not any(ch.isspace() for ch in addr)


class RouteKind(Enum):
    """Where an add-server request ends up."""

    REAL_ADDRESS = "real_address"
    ROOT_PLACEHOLDER = "root_placeholder"
    SHARE_MANAGER_PLACEHOLDER = "share_manager_placeholder"
    NATIVE_PASSTHROUGH = "native_passthrough"
    UNKNOWN = "unknown"


class FolderRoute(Enum):
    """Where a get-shared-folder request ends up."""

    ROOT_PLACEHOLDER = "root_placeholder"
    SHARE_LIST = "share_list"
    SHARE_MANAGER = "share_manager"
    SHARE_ACCESS = "share_access"
    FALLBACK = "fallback"


def classify_add_route(
    addr: str | None, declared_type: str | None, server_type: str | None
) -> RouteKind:
    """Decide how an add-server request is handled, in priority order.

    A real address always wins. After that the root disguise is checked
    before the native FTPS passthrough and the share-manager disguise.
    """
    if is_real_address(addr):
        return RouteKind.REAL_ADDRESS
    if declared_type == "FTP" or server_type == ROOT_ACCESS or addr == ROOT_SENTINEL:
        return RouteKind.ROOT_PLACEHOLDER
    if declared_type == "FTPS":
        return RouteKind.NATIVE_PASSTHROUGH
    if (
        declared_type in ("SFTP", "SMB")
        or server_type == SMB_ACCESS
        or addr == SHARE_SENTINEL
    ):
        return RouteKind.SHARE_MANAGER_PLACEHOLDER
    return RouteKind.UNKNOWN


def classify_folder_route(addr: str | None) -> FolderRoute:
    """Decide which backend lists the top-level folders for an address."""
    if addr is None:
        return FolderRoute.FALLBACK
    if addr == ROOT_SENTINEL:
        return FolderRoute.ROOT_PLACEHOLDER
    if addr == SHARE_SENTINEL:
        return FolderRoute.SHARE_LIST
    if addr == ADD_SHARE_TOKEN:
        return FolderRoute.SHARE_MANAGER
    if addr.startswith(SHARE_SCHEMES):
        return FolderRoute.SHARE_ACCESS
    return FolderRoute.FALLBACK


@dataclass(frozen=True)
class ListFilter:
    """Which registry entries a declared protocol label gets to see."""

    connection_types: frozenset[str] = frozenset()
    server_types: frozenset[str] = frozenset()

    def matches(self, entry: LocationEntry) -> bool:
        return (
            entry.connection_type in self.connection_types
            or entry.server_type in self.server_types
        )


LIST_FILTERS: dict[str, ListFilter] = {
    "FTP": ListFilter(frozenset({"FTP"}), frozenset({ROOT_ACCESS})),
    "SFTP": ListFilter(frozenset({"SFTP"}), frozenset({SMB_ACCESS})),
    "FTPS": ListFilter(frozenset({"FTP", "FTPS"}), frozenset({ROOT_ACCESS})),
    "SMB": ListFilter(frozenset({"SMB"})),
}


def list_predicate(
    declared_type: str | None,
) -> Callable[[LocationEntry], bool]:
    """Predicate for list-servers answers.

    No declared type lists everything; an unknown label lists nothing.
    """
    if declared_type is None:
        return lambda entry: True
    list_filter = LIST_FILTERS.get(declared_type)
    if list_filter is None:
        return lambda entry: False
    return list_filter.matches
