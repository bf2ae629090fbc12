"""Tests for the SQLite-backed local fallback store."""

import pytest

from cloudvars.events import STORAGE, EventSource
from cloudvars.storage import LocalFallbackStore, StoreChange, StoreWatcher, to_store_text


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "store.db"


@pytest.fixture
def store(db_path):
    """Create a file-backed store for testing."""
    store = LocalFallbackStore(db_path)
    store.connect()
    yield store
    store.close()


@pytest.fixture
def other_store(db_path):
    """A second store on the same file, standing in for another process."""
    store = LocalFallbackStore(db_path)
    store.connect()
    yield store
    store.close()


class TestStoreText:
    """Tests for value stringification."""

    @pytest.mark.parametrize(
        "value,expected",
        [(5, "5"), (5.0, "5"), (2.5, "2.5"), ("hello", "hello"), (True, "true"), (0, "0"), ("", "")],
    )
    def test_to_store_text(self, value, expected):
        assert to_store_text(value) == expected


class TestLocalFallbackStore:
    """Tests for basic key/value operations."""

    def test_connect_creates_tables(self, store):
        """Test that connect() creates the kv and change log tables."""
        tables = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        table_names = [t[0] for t in tables]

        assert "kv" in table_names
        assert "kv_changes" in table_names

    def test_set_uses_namespaced_key(self, store):
        """Test values are stored under the prefixed key as strings."""
        stored = store.set("foo", 5)

        assert stored == "5"
        row = store._conn.execute("SELECT key, value FROM kv").fetchone()
        assert row["key"] == "[s3] foo"
        assert row["value"] == "5"
        assert store.get("foo") == "5"

    def test_get_missing_returns_none(self, store):
        assert store.get("missing") is None

    def test_set_overwrites(self, store):
        """Test last write wins."""
        store.set("foo", 1)
        store.set("foo", 2)

        assert store.get("foo") == "2"

    def test_remove(self, store):
        store.set("foo", 1)
        store.remove("foo")

        assert store.get("foo") is None

    def test_rename_moves_value(self, store):
        """Test rename deletes the old key and writes the new one."""
        store.set("a", "value-a")

        moved = store.rename("a", "b")

        assert moved == "value-a"
        assert store.get("a") is None
        assert store.get("b") == "value-a"

    def test_rename_missing_writes_nothing(self, store):
        """Test renaming an unset variable leaves the new name unset."""
        assert store.rename("ghost", "b") is None
        assert store.get("b") is None

    def test_custom_prefix(self, db_path):
        """Test stores with different prefixes do not see each other."""
        first = LocalFallbackStore(db_path, prefix="[one] ")
        second = LocalFallbackStore(db_path, prefix="[two] ")
        try:
            first.set("x", 1)
            second.set("x", 2)

            assert first.get("x") == "1"
            assert second.get("x") == "2"
            assert first.items() == {"x": "1"}
        finally:
            first.close()
            second.close()

    def test_items_lists_namespace_only(self, store):
        """Test items() strips the prefix and ignores foreign keys."""
        store.set("b", 2)
        store.set("a", 1)
        store._conn.execute("INSERT INTO kv (key, value) VALUES ('unrelated', 'x')")
        store._conn.commit()

        assert store.items() == {"a": "1", "b": "2"}

    def test_memory_database(self):
        """Test an in-memory store works for a single process."""
        store = LocalFallbackStore(":memory:")
        store.connect()
        store.set("x", 1)

        assert store.get("x") == "1"
        store.close()


class TestChangeNotifications:
    """Tests for cross-process change reporting."""

    def test_other_process_sees_changes(self, store, other_store):
        """Test writes from one store show up as changes in the other."""
        store.set("foo", 5)
        store.rename("foo", "bar")

        changes = other_store.poll_changes()

        assert changes == [
            StoreChange("foo", "5"),
            StoreChange("foo", None),
            StoreChange("bar", "5"),
        ]

    def test_own_writes_are_not_reported(self, store):
        """Test a store never notifies itself."""
        store.set("foo", 5)

        assert store.poll_changes() == []

    def test_changes_reported_once(self, store, other_store):
        store.set("foo", 5)

        assert len(other_store.poll_changes()) == 1
        assert other_store.poll_changes() == []

    def test_history_before_connect_is_not_replayed(self, db_path, store):
        """Test a late joiner only sees changes made after it connected."""
        store.set("old", 1)

        late = LocalFallbackStore(db_path)
        late.connect()
        try:
            store.set("new", 2)
            assert late.poll_changes() == [StoreChange("new", "2")]
        finally:
            late.close()

    def test_change_log_stays_bounded_during_session(self, store, other_store, monkeypatch):
        """Test the change log is trimmed as writes happen, not only on connect."""
        monkeypatch.setattr("cloudvars.storage.local_store.CHANGE_LOG_RETENTION", 10)

        for i in range(50):
            store.set("x", i)

        count = store._conn.execute("SELECT COUNT(*) FROM kv_changes").fetchone()[0]
        assert count <= 10
        assert other_store.poll_changes()[-1] == StoreChange("x", "49")

    def test_foreign_keys_are_not_reported(self, store, other_store):
        """Test only namespaced keys produce changes."""
        other = LocalFallbackStore(store.db_path, prefix="[other] ")
        try:
            other.set("x", 1)
        finally:
            other.close()

        assert store.poll_changes() == []


class TestStoreWatcher:
    """Tests for the polling watcher."""

    def test_poll_once_emits_storage_events(self, store, other_store):
        """Test each change becomes a storage event."""
        events = EventSource()
        received = []
        events.on(STORAGE, received.append)
        watcher = StoreWatcher(store, events)

        other_store.set("foo", "bar")

        assert watcher.poll_once() == 1
        assert received == [StoreChange("foo", "bar")]

    @pytest.mark.asyncio
    async def test_start_stop(self, store):
        """Test the background task starts and stops cleanly."""
        watcher = StoreWatcher(store, EventSource(), interval_seconds=0.01)

        await watcher.start()
        assert watcher.running

        await watcher.stop()
        assert not watcher.running
