"""
Tail query service tests - bootstrap, tail paging, cursor monotonicity and
caller errors.
"""

import pytest
from datetime import timezone
from unittest.mock import MagicMock

from livetail.core.codec import FixedKey, compare_keys, decode_cursor, encode_cursor
from livetail.core.errors import InvalidCursor, UnsupportedCategory
from livetail.core.store import IEventStore, InMemoryEventStore, SQLiteEventStore
from livetail.core.tail import TailService

CATEGORIES = {"infrastructure": "infrastructure_events", "business": "business_events"}


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def service(store):
    return TailService(store, CATEGORIES, default_page_size=200, max_page_size=1000)


def seed(store, n, category="infrastructure", collection="infrastructure_events"):
    return [store.append(collection, category, {"n": i, "type": "incident"}) for i in range(n)]


class TestBootstrap:
    """Starting cursor resolution."""

    def test_empty_collection(self, service):
        result = service.bootstrap("infrastructure")
        assert result.cursor is None
        assert result.empty is True

    def test_newest_key_without_backlog(self, service, store):
        events = seed(store, 3)
        result = service.bootstrap("infrastructure")
        assert result.empty is False
        assert result.cursor == encode_cursor(events[-1].key)

    def test_unknown_category(self, service):
        with pytest.raises(UnsupportedCategory):
            service.bootstrap("unknown")


class TestTail:
    """Cursor based tail queries."""

    def test_new_write_after_bootstrap(self, service, store):
        """Keys k1<k2<k3 at bootstrap; k4 written; tail returns exactly k4."""
        seed(store, 3)
        cursor = service.bootstrap("infrastructure").cursor

        k4 = store.append("infrastructure_events", "infrastructure", {"n": 3})
        result = service.tail("infrastructure", cursor)

        assert [e.key for e in result.items] == [k4.key]
        assert result.next_cursor == encode_cursor(k4.key)
        assert result.count == 1

    def test_idempotent_re_tail(self, service, store):
        seed(store, 2)
        cursor = service.bootstrap("infrastructure").cursor
        store.append("infrastructure_events", "infrastructure", {})

        first = service.tail("infrastructure", cursor)
        second = service.tail("infrastructure", first.next_cursor)
        third = service.tail("infrastructure", first.next_cursor)

        assert first.count == 1
        assert second.items == () and third.items == ()
        assert second.next_cursor == first.next_cursor == third.next_cursor

    def test_empty_batch_echoes_request_cursor(self, service, store):
        seed(store, 1)
        cursor = service.bootstrap("infrastructure").cursor
        assert service.tail("infrastructure", cursor).next_cursor == cursor

    def test_no_cursor_returns_bootstrap_cursor_and_no_items(self, service, store):
        events = seed(store, 4)
        result = service.tail("infrastructure", None)
        assert result.items == ()
        assert result.count == 0
        assert result.next_cursor == encode_cursor(events[-1].key)

    def test_no_cursor_on_empty_collection(self, service):
        result = service.tail("infrastructure")
        assert result.items == ()
        assert result.next_cursor is None

    def test_monotonic_cursors_across_pages(self, service, store):
        seed(store, 1)
        cursor = service.bootstrap("infrastructure").cursor
        seed(store, 25)

        seen = []
        cursors = [decode_cursor(cursor)]
        while True:
            result = service.tail("infrastructure", cursor, limit=7)
            cursors.append(decode_cursor(result.next_cursor))
            if not result.items:
                assert cursors[-1] == cursors[-2]
                break
            assert compare_keys(cursors[-1], cursors[-2]) > 0
            seen.extend(result.items)
            cursor = result.next_cursor

        keys = [e.key for e in seen]
        assert len(keys) == 25
        assert all(compare_keys(a, b) < 0 for a, b in zip(keys, keys[1:]))

    def test_limit_clamped_to_ceiling(self, store):
        service = TailService(store, CATEGORIES, default_page_size=5, max_page_size=10)
        seed(store, 1)
        cursor = service.bootstrap("infrastructure").cursor
        seed(store, 30)

        assert service.tail("infrastructure", cursor, limit=1000).count == 10
        assert service.tail("infrastructure", cursor, limit=3).count == 3
        assert service.tail("infrastructure", cursor, limit=None).count == 5
        assert service.tail("infrastructure", cursor, limit=0).count == 5

    def test_server_time_is_utc(self, service):
        result = service.tail("infrastructure")
        assert result.server_time.tzinfo == timezone.utc

    def test_categories_are_isolated(self, service, store):
        seed(store, 1, "business", "business_events")
        assert service.bootstrap("infrastructure").empty is True
        assert service.bootstrap("business").empty is False


class TestTailErrors:
    """Caller errors are rejected before or instead of storage reads."""

    def test_malformed_cursor(self, service, store):
        seed(store, 1)
        with pytest.raises(InvalidCursor):
            service.tail("infrastructure", "not-a-key")

    def test_unknown_category_never_touches_storage(self):
        store = MagicMock(spec=IEventStore)
        service = TailService(store, CATEGORIES)

        with pytest.raises(UnsupportedCategory):
            service.tail("unknown", "65f1a2b3c4d5e6f708192a3b")
        with pytest.raises(UnsupportedCategory):
            service.bootstrap("unknown")
        with pytest.raises(UnsupportedCategory):
            service.stats("unknown")

        assert store.method_calls == []

    def test_category_map_is_frozen(self, service):
        with pytest.raises(TypeError):
            service.categories["new"] = "new_events"

    def test_category_map_copied_at_construction(self, store):
        mapping = dict(CATEGORIES)
        service = TailService(store, mapping)
        mapping["late"] = "late_events"
        with pytest.raises(UnsupportedCategory):
            service.bootstrap("late")

    def test_invalid_page_sizes(self, store):
        with pytest.raises(ValueError):
            TailService(store, CATEGORIES, max_page_size=0)


class TestStats:
    """Diagnostic collection view."""

    def test_stats(self, service, store):
        events = seed(store, 3)
        stats = service.stats("infrastructure")
        assert stats.collection == "infrastructure_events"
        assert stats.count == 3
        assert stats.newest == events[-1].id
        assert stats.oldest == events[0].id


class TestWithSQLite:
    """Same protocol over the SQLite store with fixed-width keys."""

    def test_bootstrap_then_tail(self, tmp_path):
        store = SQLiteEventStore(CATEGORIES.values(), db_path=str(tmp_path / "t.db"))
        service = TailService(store, CATEGORIES)
        for i in range(3):
            store.append("business_events", "business", {"n": i})

        cursor = service.bootstrap("business").cursor
        assert isinstance(decode_cursor(cursor), FixedKey)

        new = store.append("business_events", "business", {"n": 3})
        result = service.tail("business", cursor)
        assert [e.fields["n"] for e in result.items] == [3]
        assert result.next_cursor == new.id
