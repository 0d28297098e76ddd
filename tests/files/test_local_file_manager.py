import os

import pytest

from nsbridge.files.cache import MemoryFileListCache
from nsbridge.files.local import CHUNK_SIZE, LocalFileManager


class ProgressRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, server_id, opcode, progress):
        self.events.append((server_id, opcode, progress))


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "served"
    root.mkdir()
    (root / "Music").mkdir()
    (root / "Pictures").mkdir()
    (root / "notes.txt").write_text("hello", encoding="utf-8")
    return root


@pytest.fixture
def cache():
    return MemoryFileListCache()


@pytest.fixture
def manager(root, cache):
    return LocalFileManager(root, cache)


def fd_is_open(fd: int) -> bool:
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True


class TestPaths:
    def test_resolve_is_rooted(self, manager, root):
        """Test client paths map under the root, with / as the root itself."""
        assert manager.resolve("/Music") == (root / "Music").resolve()
        assert manager.resolve("/") == root.resolve()

    @pytest.mark.parametrize("path", ["/../etc", "../../x", None])
    def test_resolve_rejects_escapes(self, manager, path):
        """Test paths outside the root or missing paths are refused."""
        with pytest.raises(ValueError):
            manager.resolve(path)

    @pytest.mark.parametrize("name", ["..", ".", "", "../x", "a/b", None])
    def test_child_rejects_non_plain_names(self, manager, root, name):
        """Test only single plain entry names can be joined onto a folder."""
        with pytest.raises(ValueError):
            manager.child(root.resolve(), name)


class TestListings:
    async def test_root_dir_lists_only_directories(self, manager):
        """Test the device-root listing contains only folders."""
        folders = await manager.get_shared_folder_root_dir(6)

        assert [f["fileName"] for f in folders] == ["Music", "Pictures"]
        assert folders[0]["filePath"] == "/Music"
        assert folders[0]["serverId"] == 6

    async def test_file_list_shape(self, manager):
        """Test file entries carry path, size, directory flag and mtime."""
        files = await manager.get_file_list("/", 6)

        notes = next(f for f in files if f["fileName"] == "notes.txt")
        assert notes["isDirectory"] is False
        assert notes["fileSize"] == 5
        assert notes["filePath"] == "/notes.txt"
        assert isinstance(notes["lastModified"], int)

    async def test_file_list_uses_cache(self, manager, cache, root):
        """Test listings come from the cache until it is cleared."""
        # Arrange
        await manager.get_file_list("/", 6)
        (root / "later.txt").write_text("x", encoding="utf-8")

        # Act
        cached = await manager.get_file_list("/", 6)
        cache.clear()
        fresh = await manager.get_file_list("/", 6)

        # Assert
        assert "later.txt" not in [f["fileName"] for f in cached]
        assert "later.txt" in [f["fileName"] for f in fresh]

    async def test_file_object(self, manager):
        """Test a single file is described, and a missing one gives None."""
        info = await manager.get_file_object("/notes.txt", 1)

        assert info["fileName"] == "notes.txt"
        assert await manager.get_file_object("/missing", 1) is None


class TestMutations:
    async def test_new_folder(self, manager, root):
        """Test a folder is created once and a duplicate fails."""
        assert await manager.new_folder("/Music", "Albums") is True
        assert (root / "Music" / "Albums").is_dir()
        assert await manager.new_folder("/Music", "Albums") is False

    async def test_new_folder_cannot_escape_root(self, manager, tmp_path):
        """Test a folder name with .. cannot create anything outside the root."""
        created = await manager.new_folder("/", "../escaped")

        assert created is False
        assert not (tmp_path / "escaped").exists()

    async def test_mutation_clears_cache(self, manager, cache):
        """Test mutations drop every cached listing."""
        await manager.get_file_list("/", 1)

        await manager.new_folder("/", "Docs")

        assert len(cache) == 0

    async def test_rename(self, manager, root):
        """Test a file is renamed in place."""
        assert await manager.rename("/notes.txt", "todo.txt") is True
        assert (root / "todo.txt").exists()
        assert not (root / "notes.txt").exists()

    async def test_rename_refuses_to_overwrite(self, manager, root):
        """Test renaming onto an existing entry fails."""
        (root / "other.txt").write_text("x", encoding="utf-8")

        assert await manager.rename("/notes.txt", "other.txt") is False

    async def test_rename_cannot_move_out_of_root(self, manager, root, tmp_path):
        """Test a new name with .. cannot move the file outside the root."""
        renamed = await manager.rename("/notes.txt", "../moved.txt")

        assert renamed is False
        assert (root / "notes.txt").exists()
        assert not (tmp_path / "moved.txt").exists()

    async def test_delete_file_and_directory(self, manager, root):
        """Test files and whole directories are deleted, missing paths fail."""
        (root / "Music" / "a.mp3").write_bytes(b"123")

        assert await manager.delete("/notes.txt") is True
        assert await manager.delete("/Music") is True
        assert not (root / "Music").exists()
        assert await manager.delete("/missing") is False

    async def test_delete_refuses_root(self, manager, root):
        """Test the root directory itself is never deleted."""
        assert await manager.delete("/") is False
        assert root.exists()

    async def test_exists(self, manager):
        """Test existence checks, including paths outside the root."""
        assert await manager.exists("/notes.txt") is True
        assert await manager.exists("/nope") is False
        assert await manager.exists("/../outside") is False


class TestTransfers:
    async def test_copy_reports_progress(self, manager, root):
        """Test a chunked copy reports progress after every chunk."""
        # Arrange
        payload = os.urandom(CHUNK_SIZE + 10)
        (root / "big.bin").write_bytes(payload)
        progress = ProgressRecorder()

        # Act
        copied = await manager.copy("/big.bin", "/Music", "big.bin", progress, 3, 126)

        # Assert
        assert copied is True
        assert (root / "Music" / "big.bin").read_bytes() == payload
        assert len(progress.events) == 2
        server_id, opcode, last = progress.events[-1]
        assert (server_id, opcode) == (3, 126)
        assert last["transferredSize"] == last["totalSize"] == CHUNK_SIZE + 10
        assert last["fileName"] == "big.bin"

    async def test_copy_directory(self, manager, root):
        """Test directories are copied whole, keeping their name by default."""
        (root / "Music" / "a.mp3").write_bytes(b"1")

        assert await manager.copy("/Music", "/Pictures", "", None, 1, 126) is True
        assert (root / "Pictures" / "Music" / "a.mp3").exists()

    async def test_copy_missing_source(self, manager):
        """Test copying a missing source fails."""
        assert await manager.copy("/missing", "/Music", "x", None, 1, 126) is False

    async def test_copy_onto_itself(self, manager):
        """Test copying a file onto itself fails."""
        copied = await manager.copy("/notes.txt", "/", "notes.txt", None, 1, 126)

        assert copied is False

    async def test_copy_cannot_escape_root(self, manager, tmp_path):
        """Test a destination name with .. cannot write outside the root."""
        copied = await manager.copy("/notes.txt", "/", "../stolen.txt", None, 0, 126)

        assert copied is False
        assert not (tmp_path / "stolen.txt").exists()

    async def test_descriptor_then_upload(self, manager, root):
        """Test an upload from a handed-out descriptor copies and closes it."""
        # Arrange
        descriptor = await manager.get_file_descriptor("/notes.txt")
        progress = ProgressRecorder()

        # Act
        uploaded = await manager.upload(
            descriptor, "/Pictures", "copy.txt", progress, 2, 123
        )

        # Assert
        assert uploaded is True
        assert (root / "Pictures" / "copy.txt").read_text(encoding="utf-8") == "hello"
        assert progress.events[-1][2]["totalSize"] == 5
        assert not fd_is_open(descriptor)

    async def test_upload_cannot_escape_root(self, manager, tmp_path):
        """Test an upload name with .. cannot write outside the root."""
        descriptor = await manager.get_file_descriptor("/notes.txt")

        uploaded = await manager.upload(
            descriptor, "/", "../dropped.txt", None, 0, 123
        )

        assert uploaded is False
        assert not (tmp_path / "dropped.txt").exists()
        assert not fd_is_open(descriptor)

    @pytest.mark.parametrize("dst_folder", [None, "/../.."])
    async def test_failed_upload_closes_descriptor(self, manager, dst_folder):
        """Test the descriptor is closed even when the destination is refused."""
        # Arrange
        descriptor = await manager.get_file_descriptor("/notes.txt")
        assert fd_is_open(descriptor)

        # Act
        uploaded = await manager.upload(descriptor, dst_folder, "x", None, 0, 123)

        # Assert
        assert uploaded is False
        assert not fd_is_open(descriptor)

    async def test_descriptor_for_missing_file(self, manager):
        """Test asking for a descriptor of a missing file gives None."""
        assert await manager.get_file_descriptor("/missing") is None
