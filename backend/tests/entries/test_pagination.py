"""Keyset pagination: ordering, cursor stability, reply windows."""

import pytest

from threadline.entries.pagination import (
    InvalidCursorError,
    PaginationEngine,
    decode_cursor,
    encode_cursor,
)
from tests.fixtures import (
    at,
    make_entry_created_envelope,
    make_entry_deleted_envelope,
    record,
    seed_topic,
)


@pytest.fixture
async def engine(db):
    return PaginationEngine(db, reply_window=10)


@pytest.fixture
async def topic_id(event_store, projector):
    return await seed_topic(event_store, projector)


async def add_roots(event_store, projector, topic_id, count, start=0):
    events = [
        make_entry_created_envelope(topic_id, entry_id=f"r{i:02d}", timestamp=at(i))
        for i in range(start, start + count)
    ]
    await record(event_store, projector, *events)
    return [e.payload["entry_id"] for e in events]


async def add_replies(event_store, projector, topic_id, root_id, count):
    events = [
        make_entry_created_envelope(
            topic_id,
            entry_id=f"{root_id}-re{i:02d}",
            parent_id=root_id,
            root_entry_id=root_id,
            timestamp=at(100 + i),
        )
        for i in range(count)
    ]
    await record(event_store, projector, *events)
    return [e.payload["entry_id"] for e in events]


def ids(page):
    return [item["entry_id"] for item in page.items]


class TestCursorCodec:
    def test_encode_decode(self):
        cursor = encode_cursor("2024-01-01T00:00:01.000000+00:00", "r01")
        assert decode_cursor(cursor, 2) == ["2024-01-01T00:00:01.000000+00:00", "r01"]

    @pytest.mark.parametrize("cursor", ["not base64!!", encode_cursor("only-one"), "e30="])
    def test_malformed_cursor(self, cursor):
        with pytest.raises(InvalidCursorError):
            decode_cursor(cursor, 2)


class TestRootEntries:
    async def test_newest_first(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 3)
        page = await engine.root_entries([topic_id], None, 10)
        assert ids(page) == ["r02", "r01", "r00"]
        assert page.next_cursor is None

    async def test_replies_are_not_roots(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        await add_replies(event_store, projector, topic_id, "r00", 2)
        page = await engine.root_entries([topic_id], None, 10)
        assert ids(page) == ["r00"]

    async def test_walks_all_pages(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 7)
        seen, cursor = [], None
        while True:
            page = await engine.root_entries([topic_id], cursor, 3)
            seen.extend(ids(page))
            cursor = page.next_cursor
            if cursor is None:
                break
        assert seen == [f"r{i:02d}" for i in reversed(range(7))]

    async def test_exact_page_has_no_cursor(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 3)
        page = await engine.root_entries([topic_id], None, 3)
        assert len(page.items) == 3
        assert page.next_cursor is None

    async def test_cursor_stable_under_new_entries(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 4)
        first = await engine.root_entries([topic_id], None, 2)
        assert ids(first) == ["r03", "r02"]

        await add_roots(event_store, projector, topic_id, 2, start=10)
        second = await engine.root_entries([topic_id], first.next_cursor, 2)
        assert ids(second) == ["r01", "r00"]

    async def test_same_timestamp_breaks_ties_by_id(self, engine, event_store, projector, topic_id):
        events = [
            make_entry_created_envelope(topic_id, entry_id=eid, timestamp=at(5))
            for eid in ("x1", "x3", "x2")
        ]
        await record(event_store, projector, *events)
        first = await engine.root_entries([topic_id], None, 2)
        second = await engine.root_entries([topic_id], first.next_cursor, 2)
        assert ids(first) + ids(second) == ["x3", "x2", "x1"]

    async def test_deleted_roots_excluded(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 3)
        await record(event_store, projector, make_entry_deleted_envelope(topic_id, "r01"))
        page = await engine.root_entries([topic_id], None, 10)
        assert ids(page) == ["r02", "r00"]

    async def test_spans_visible_topics(self, engine, event_store, projector, topic_id):
        other = await seed_topic(event_store, projector)
        await record(
            event_store, projector,
            make_entry_created_envelope(topic_id, entry_id="a", timestamp=at(1)),
            make_entry_created_envelope(other, entry_id="b", timestamp=at(2)),
        )
        assert ids(await engine.root_entries([topic_id, other], None, 10)) == ["b", "a"]
        assert ids(await engine.root_entries([topic_id], None, 10)) == ["a"]


class TestReplies:
    async def test_flattened_thread_newest_first(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        await add_replies(event_store, projector, topic_id, "r00", 2)
        nested = make_entry_created_envelope(
            topic_id, entry_id="deep", parent_id="r00-re00", root_entry_id="r00", timestamp=at(500),
        )
        await record(event_store, projector, nested)

        page = await engine.replies("r00", None, 10)
        assert ids(page) == ["deep", "r00-re01", "r00-re00"]

    async def test_paginates(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        await add_replies(event_store, projector, topic_id, "r00", 5)
        first = await engine.replies("r00", None, 3)
        second = await engine.replies("r00", first.next_cursor, 3)
        assert len(first.items) == 3
        assert len(second.items) == 2
        assert second.next_cursor is None


class TestRecentReplies:
    async def test_window_truncates_with_flag(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        reply_ids = await add_replies(event_store, projector, topic_id, "r00", 12)

        window = (await engine.recent_replies(["r00"]))["r00"]
        assert len(window.replies) == 10
        assert window.has_more is True
        assert [r["entry_id"] for r in window.replies] == list(reversed(reply_ids))[:10]

    async def test_exactly_window_size(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        await add_replies(event_store, projector, topic_id, "r00", 10)
        window = (await engine.recent_replies(["r00"]))["r00"]
        assert len(window.replies) == 10
        assert window.has_more is False

    async def test_root_without_replies(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 1)
        window = (await engine.recent_replies(["r00"]))["r00"]
        assert window.replies == []
        assert window.has_more is False

    async def test_custom_window(self, db, event_store, projector, topic_id):
        engine = PaginationEngine(db, reply_window=2)
        await add_roots(event_store, projector, topic_id, 1)
        await add_replies(event_store, projector, topic_id, "r00", 3)
        window = (await engine.recent_replies(["r00"]))["r00"]
        assert len(window.replies) == 2
        assert window.has_more is True


class TestEntriesById:
    async def test_oldest_first_with_deleted(self, engine, event_store, projector, topic_id):
        await add_roots(event_store, projector, topic_id, 4)
        await record(event_store, projector, make_entry_deleted_envelope(topic_id, "r02"))

        page = await engine.entries_by_id([topic_id], ["r03", "r02", "r00"], None, 10)
        assert ids(page) == ["r00", "r02", "r03"]
        assert page.items[1]["deleted"] == 1

    async def test_creation_order_not_id_order(self, engine, event_store, projector, topic_id):
        await record(
            event_store, projector,
            make_entry_created_envelope(topic_id, entry_id="zz", timestamp=at(1)),
            make_entry_created_envelope(topic_id, entry_id="aa", timestamp=at(2)),
        )
        page = await engine.entries_by_id([topic_id], ["aa", "zz"], None, 10)
        assert ids(page) == ["zz", "aa"]

    async def test_paginates_in_creation_order(self, engine, event_store, projector, topic_id):
        all_ids = await add_roots(event_store, projector, topic_id, 5)
        first = await engine.entries_by_id([topic_id], all_ids, None, 2)
        second = await engine.entries_by_id([topic_id], all_ids, first.next_cursor, 2)
        third = await engine.entries_by_id([topic_id], all_ids, second.next_cursor, 2)
        assert ids(first) + ids(second) + ids(third) == all_ids
        assert third.next_cursor is None

    async def test_empty_request(self, engine, topic_id):
        page = await engine.entries_by_id([topic_id], [], None, 10)
        assert page.items == []
        assert page.next_cursor is None
