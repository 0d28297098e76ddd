from nsbridge.files.cache import MemoryFileListCache


class TestMemoryFileListCache:
    def test_miss_returns_none(self):
        """Test an uncached listing gives None."""
        assert MemoryFileListCache().get("/", 1) is None

    def test_keyed_by_path_and_server(self):
        """Test listings are keyed by both path and server id."""
        # Arrange
        cache = MemoryFileListCache()

        # Act
        cache.put("/", 1, [{"fileName": "a"}])

        # Assert
        assert cache.get("/", 1) == [{"fileName": "a"}]
        assert cache.get("/", 2) is None

    def test_returned_list_is_a_copy(self):
        """Test callers cannot mutate a cached listing."""
        cache = MemoryFileListCache()
        cache.put("/", 1, [{"fileName": "a"}])

        cache.get("/", 1).clear()

        assert len(cache.get("/", 1)) == 1

    def test_clear(self):
        """Test clearing drops every listing."""
        cache = MemoryFileListCache()
        cache.put("/", 1, [])

        cache.clear()

        assert len(cache) == 0
        assert cache.get("/", 1) is None
