import pytest

from nsbridge.protocol.shares import ShareConfig, default_port, example_shares


class TestShareConfig:
    @pytest.mark.parametrize(
        "connection_type,expected",
        [("SMB", 445), ("smb", 445), ("FTP", 21), ("SFTP", 22), ("WEBDAV", 21)],
    )
    def test_default_port(self, connection_type, expected):
        """Test the port defaults from the connection type."""
        share = ShareConfig(
            name="s", address="smb://h/s", connection_type=connection_type
        )

        assert share.port == expected
        assert default_port(connection_type) == expected

    def test_explicit_port_is_kept(self):
        """Test an explicit port is not overwritten."""
        share = ShareConfig.from_protocol(
            {"name": "s", "address": "ftp://h", "connectionType": "FTP", "port": 2121}
        )

        assert share.port == 2121

    def test_defaults(self):
        """Test a bare share is anonymous SMB."""
        share = ShareConfig(name="s", address="smb://h/s")

        assert share.connection_type == "SMB"
        assert share.anonymous is True

    def test_to_protocol_keeps_full_shape(self):
        """Test stored records keep every field, empty credentials included."""
        share = ShareConfig(name="s", address="smb://h/s")

        data = share.to_protocol()

        assert data == {
            "name": "s",
            "address": "smb://h/s",
            "username": None,
            "password": None,
            "connectionType": "SMB",
            "port": 445,
            "anonymous": True,
        }

    def test_example_shares(self):
        """Test the example shares offered for unreadable data."""
        shares = example_shares()

        assert [s.name for s in shares] == ["Home Server", "FTP Server"]
        assert [s.connection_type for s in shares] == ["SMB", "FTP"]
