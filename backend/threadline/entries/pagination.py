"""Keyset pagination over entries.

Cursors carry the (created_at, entry_id) of the last item served, never an
offset, so entries inserted after a page was issued cannot shift later
pages. Entries are read straight from the projected table; this path does
not touch the view cache.
"""

import base64
import json
from dataclasses import dataclass, field

from threadline.db.connection import Database


def encode_cursor(*key: str) -> str:
    """Encode a sort key into an opaque cursor string."""
    return base64.urlsafe_b64encode(json.dumps(list(key)).encode()).decode()


def decode_cursor(cursor: str, width: int) -> list[str]:
    """Decode a cursor back into its sort key. Raises InvalidCursorError."""
    try:
        key = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    except (ValueError, TypeError) as e:
        raise InvalidCursorError(cursor) from e
    if not isinstance(key, list) or len(key) != width or not all(isinstance(k, str) for k in key):
        raise InvalidCursorError(cursor)
    return key


@dataclass
class Page:
    items: list[dict]
    next_cursor: str | None = None


@dataclass
class ReplyWindow:
    """The most recent replies of one root entry, newest first."""

    replies: list[dict] = field(default_factory=list)
    has_more: bool = False


class PaginationEngine:
    def __init__(self, db: Database, reply_window: int = 10) -> None:
        self._db = db
        self._reply_window = reply_window

    async def root_entries(
        self, topic_ids: list[str], cursor: str | None, page_size: int
    ) -> Page:
        """Live top-level entries across topic_ids, newest first."""
        marks = ", ".join("?" for _ in topic_ids)
        return await self._newest_first_page(
            f"topic_id IN ({marks}) AND parent_id IS NULL",
            tuple(topic_ids),
            cursor,
            page_size,
        )

    async def replies(self, root_entry_id: str, cursor: str | None, page_size: int) -> Page:
        """Live replies anywhere below a root entry, newest first."""
        return await self._newest_first_page(
            "root_entry_id = ?", (root_entry_id,), cursor, page_size,
        )

    async def recent_replies(self, root_entry_ids: list[str]) -> dict[str, ReplyWindow]:
        """Bounded reply window for each root: newest replies plus a truncation flag."""
        windows: dict[str, ReplyWindow] = {}
        for root_id in root_entry_ids:
            rows = await self._db.fetchall(
                "SELECT * FROM entries WHERE root_entry_id = ? AND deleted = 0 "
                "ORDER BY created_at DESC, entry_id DESC LIMIT ?",
                (root_id, self._reply_window + 1),
            )
            replies = [dict(r) for r in rows]
            windows[root_id] = ReplyWindow(
                replies=replies[: self._reply_window],
                has_more=len(replies) > self._reply_window,
            )
        return windows

    async def entries_by_id(
        self,
        topic_ids: list[str],
        entry_ids: list[str],
        cursor: str | None,
        page_size: int,
    ) -> Page:
        """Requested entries (deleted included), oldest first.

        Entry ids are random, so creation order stands in for id order.
        """
        if not topic_ids or not entry_ids:
            return Page(items=[])
        topic_marks = ", ".join("?" for _ in topic_ids)
        entry_marks = ", ".join("?" for _ in entry_ids)
        sql = (
            f"SELECT * FROM entries WHERE topic_id IN ({topic_marks}) "
            f"AND entry_id IN ({entry_marks})"
        )
        params: tuple = (*topic_ids, *entry_ids)
        if cursor is not None:
            created_at, entry_id = decode_cursor(cursor, 2)
            sql += " AND (created_at, entry_id) > (?, ?)"
            params += (created_at, entry_id)
        sql += " ORDER BY created_at, entry_id LIMIT ?"
        rows = [dict(r) for r in await self._db.fetchall(sql, params + (page_size + 1,))]

        items = rows[:page_size]
        next_cursor = None
        if len(rows) > page_size:
            last = items[-1]
            next_cursor = encode_cursor(last["created_at"], last["entry_id"])
        return Page(items=items, next_cursor=next_cursor)

    async def _newest_first_page(
        self, where: str, params: tuple, cursor: str | None, page_size: int
    ) -> Page:
        sql = f"SELECT * FROM entries WHERE {where} AND deleted = 0"
        if cursor is not None:
            created_at, entry_id = decode_cursor(cursor, 2)
            sql += " AND (created_at, entry_id) < (?, ?)"
            params += (created_at, entry_id)
        sql += " ORDER BY created_at DESC, entry_id DESC LIMIT ?"
        rows = [dict(r) for r in await self._db.fetchall(sql, params + (page_size + 1,))]

        items = rows[:page_size]
        next_cursor = None
        if len(rows) > page_size:
            last = items[-1]
            next_cursor = encode_cursor(last["created_at"], last["entry_id"])
        return Page(items=items, next_cursor=next_cursor)


class InvalidCursorError(Exception):
    def __init__(self, cursor: str) -> None:
        self.cursor = cursor
        super().__init__(f"Invalid cursor: {cursor}")
