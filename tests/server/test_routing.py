import pytest

from nsbridge.protocol.locations import LocationEntry, default_locations
from nsbridge.server.routing import (
    FolderRoute,
    RouteKind,
    classify_add_route,
    classify_folder_route,
    is_real_address,
    list_predicate,
)


class TestIsRealAddress:
    @pytest.mark.parametrize(
        "addr",
        [
            "192.168.1.10",
            "203.0.113.5",
            "nas.example.com",
            "smb://nas.example.com/share",
            "ftp://files.example.org",
            "sftp://10.0.0.2",
        ],
    )
    def test_real(self, addr):
        """Test genuine endpoints classify as real."""
        assert is_real_address(addr) is True

    @pytest.mark.parametrize(
        "addr",
        [
            None,
            "",
            "   ",
            "ftp://root.local",
            "sftp://smb.local",
            "smb://root.local",
            "ftps://smb.local/share",
            "smb://localhost",
            "localhost",
            "my nas.local",
            "cifs://add_new",
        ],
    )
    def test_not_real(self, addr):
        """Test sentinels, reserved hosts and bare names are not real."""
        assert is_real_address(addr) is False

    def test_non_string_is_not_real(self):
        """Test non-string input is not real."""
        assert is_real_address(42) is False


class TestClassifyAddRoute:
    def test_real_address_wins_over_declared_type(self):
        """Test a real address beats any placeholder hint."""
        assert (
            classify_add_route("203.0.113.5", "FTP", "ROOT_ACCESS")
            is RouteKind.REAL_ADDRESS
        )

    @pytest.mark.parametrize(
        "addr,declared_type,server_type",
        [
            ("", "FTP", None),
            ("ftp://root.local", None, None),
            (None, None, "ROOT_ACCESS"),
        ],
    )
    def test_root_placeholder(self, addr, declared_type, server_type):
        """Test FTP, ROOT_ACCESS and the root sentinel route to the root flow."""
        assert (
            classify_add_route(addr, declared_type, server_type)
            is RouteKind.ROOT_PLACEHOLDER
        )

    @pytest.mark.parametrize(
        "addr,declared_type,server_type",
        [
            ("", "SFTP", None),
            ("", "SMB", None),
            ("sftp://smb.local", None, None),
            ("", None, "SMB_ACCESS"),
        ],
    )
    def test_share_manager_placeholder(self, addr, declared_type, server_type):
        """Test SFTP, SMB, SMB_ACCESS and the SMB sentinel route to the share manager."""
        assert (
            classify_add_route(addr, declared_type, server_type)
            is RouteKind.SHARE_MANAGER_PLACEHOLDER
        )

    def test_ftps_is_native_passthrough(self):
        """Test FTPS is left to the client's own dialog."""
        assert classify_add_route("", "FTPS", None) is RouteKind.NATIVE_PASSTHROUGH

    def test_unknown(self):
        """Test anything else is unknown."""
        assert classify_add_route("nas", "WEBDAV", None) is RouteKind.UNKNOWN


class TestClassifyFolderRoute:
    @pytest.mark.parametrize(
        "addr,expected",
        [
            ("ftp://root.local", FolderRoute.ROOT_PLACEHOLDER),
            ("sftp://smb.local", FolderRoute.SHARE_LIST),
            ("cifs://", FolderRoute.SHARE_ACCESS),
            ("cifs://add_new", FolderRoute.SHARE_MANAGER),
            ("cifs://nas/share", FolderRoute.SHARE_ACCESS),
            ("smb://192.168.1.100/shared", FolderRoute.SHARE_ACCESS),
            ("ftp://files.example.org", FolderRoute.FALLBACK),
            (None, FolderRoute.FALLBACK),
        ],
    )
    def test_routes(self, addr, expected):
        """Test each address picks its folder backend."""
        assert classify_folder_route(addr) is expected


class TestListPredicate:
    def setup_method(self):
        self.entries = default_locations() + [
            LocationEntry(server_id=200, server_addr="10.0.0.9", connection_type="FTP"),
            LocationEntry(
                server_id=201, server_addr="10.0.0.8", connection_type="FTPS"
            ),
        ]

    def _ids(self, declared_type):
        predicate = list_predicate(declared_type)
        return [e.server_id for e in self.entries if predicate(e)]

    def test_ftp_sees_root_and_ftp_entries(self):
        """Test FTP lists FTP entries and the root placeholder."""
        assert self._ids("FTP") == [1, 200]

    def test_sftp_sees_share_placeholder(self):
        """Test SFTP lists the share placeholder."""
        assert self._ids("SFTP") == [100]

    def test_ftps_sees_ftp_ftps_and_root(self):
        """Test FTPS lists FTP, FTPS and the root placeholder."""
        assert self._ids("FTPS") == [1, 200, 201]

    def test_smb_sees_smb_entries(self):
        """Test SMB lists only SMB entries."""
        assert self._ids("SMB") == [101, 102]

    def test_no_type_sees_everything(self):
        """Test no declared type lists the full registry."""
        assert self._ids(None) == [1, 100, 101, 102, 200, 201]

    def test_unknown_type_sees_nothing(self):
        """Test an unknown declared type lists nothing."""
        assert self._ids("WEBDAV") == []
