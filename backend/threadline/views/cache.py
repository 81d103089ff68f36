"""Materialized view cache: one serialized threaded view per topic.

Reads never wait on a build. A miss (no view yet, or a stale one) answers
Pending and schedules a rebuild; concurrent misses for the same topic share
the single in-flight rebuild. Staleness is tracked with two counters on the
row: ``version`` is bumped by every invalidation, ``built_version`` records
the version a build started from. A build that raced a write is therefore
stale the moment it lands, and the next get() rebuilds again.
"""

import asyncio
import heapq
import json
import logging
from dataclasses import dataclass

from threadline.db.connection import Database
from threadline.events.projector import StateProjector
from threadline.utils.json import compact_dumps, parse_json_list
from threadline.utils.time import format_timestamp, utc_now
from threadline.views.builder import RootFragment, SerializedView, ViewBuilder, join_fragments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializedView:
    topic_id: str
    structure: str
    root_fragments: list[RootFragment]
    entry_ids: list[str]
    participant_ids: list[str]
    generation: int
    built_at: str


@dataclass(frozen=True)
class Ready:
    view: MaterializedView


@dataclass(frozen=True)
class Pending:
    topic_id: str


ViewResult = Ready | Pending


class ViewCache:
    """Owns the materialized_views table and the per-topic rebuild tasks."""

    def __init__(
        self,
        db: Database,
        projector: StateProjector,
        builder: ViewBuilder | None = None,
    ) -> None:
        self._db = db
        self._projector = projector
        self._builder = builder or ViewBuilder()
        self._in_flight: dict[str, asyncio.Task] = {}

    async def get(self, topic_id: str) -> ViewResult:
        """Current view if built and fresh; otherwise Pending plus a scheduled rebuild."""
        row = await self._db.fetchone(
            "SELECT * FROM materialized_views WHERE topic_id = ?", (topic_id,)
        )
        if row is not None and row["structure"] is not None and row["built_version"] == row["version"]:
            return Ready(self._view_from_row(row))
        self.schedule_rebuild(topic_id)
        return Pending(topic_id)

    async def get_many(self, topic_ids: list[str]) -> list[MaterializedView] | Pending:
        """Views for several topics, or the first Pending.

        Every topic is asked, so all missing views get scheduled in one pass.
        """
        results = [await self.get(topic_id) for topic_id in topic_ids]
        for result in results:
            if isinstance(result, Pending):
                return result
        return [result.view for result in results]

    async def invalidate(self, topic_id: str) -> None:
        """Mark the topic's view stale. The rebuild happens on the next get()."""
        await self._db.execute(
            """
            INSERT INTO materialized_views (topic_id, version) VALUES (?, 1)
            ON CONFLICT(topic_id) DO UPDATE SET version = version + 1
            """,
            (topic_id,),
        )

    def schedule_rebuild(self, topic_id: str) -> asyncio.Task:
        """Start a rebuild unless one is already running for this topic."""
        task = self._in_flight.get(topic_id)
        if task is not None and not task.done():
            logger.debug("Rebuild already in flight for topic %s", topic_id)
            return task

        task = asyncio.create_task(self._rebuild(topic_id))
        self._in_flight[topic_id] = task

        def _release(done: asyncio.Task) -> None:
            if self._in_flight.get(topic_id) is done:
                del self._in_flight[topic_id]

        task.add_done_callback(_release)
        return task

    def in_flight(self, topic_id: str) -> asyncio.Task | None:
        return self._in_flight.get(topic_id)

    async def wait_for_rebuild(self, topic_id: str) -> None:
        """Wait for the topic's in-flight rebuild, if any."""
        task = self._in_flight.get(topic_id)
        if task is not None:
            await task

    async def close(self) -> None:
        """Let running rebuilds finish; used on shutdown."""
        tasks = list(self._in_flight.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _rebuild(self, topic_id: str) -> None:
        try:
            source_version = await self._source_version(topic_id)
            logger.debug("Rebuilding view for topic %s at version %d", topic_id, source_version)
            entries = await self._projector.get_entries(topic_id)
            view = await asyncio.to_thread(self._builder.build, entries)
            await self._store(topic_id, view, source_version)
        except Exception:
            # Prior generation stays in place; the next get() retries.
            logger.exception("View rebuild failed for topic %s", topic_id)
            return

        logger.debug(
            "Rebuilt view for topic %s: %d entries, %d participants",
            topic_id, len(view.entry_ids), len(view.participant_ids),
        )

    async def _source_version(self, topic_id: str) -> int:
        # Must be read before the entries snapshot.
        await self._db.execute(
            "INSERT OR IGNORE INTO materialized_views (topic_id, version) VALUES (?, 0)",
            (topic_id,),
        )
        row = await self._db.fetchone(
            "SELECT version FROM materialized_views WHERE topic_id = ?", (topic_id,)
        )
        return row["version"] if row is not None else 0

    async def _store(self, topic_id: str, view: SerializedView, source_version: int) -> None:
        await self._db.execute(
            """
            UPDATE materialized_views
            SET structure = ?, root_fragments = ?, entry_ids = ?, participant_ids = ?,
                generation = generation + 1, built_version = ?, built_at = ?
            WHERE topic_id = ?
            """,
            (
                view.structure,
                json.dumps([[f.created_at, f.entry_id, f.fragment] for f in view.root_fragments]),
                compact_dumps(view.entry_ids),
                compact_dumps(view.participant_ids),
                source_version,
                format_timestamp(utc_now()),
                topic_id,
            ),
        )

    @staticmethod
    def _view_from_row(row) -> MaterializedView:
        return MaterializedView(
            topic_id=row["topic_id"],
            structure=row["structure"],
            root_fragments=[
                RootFragment(created_at=c, entry_id=e, fragment=f)
                for c, e, f in parse_json_list(row["root_fragments"])
            ],
            entry_ids=parse_json_list(row["entry_ids"]),
            participant_ids=parse_json_list(row["participant_ids"]),
            generation=row["generation"],
            built_at=row["built_at"],
        )


def merge_views(views: list[MaterializedView]) -> str:
    """Combine several topics' views into one newest-first array.

    A single view is returned verbatim; otherwise the already-serialized
    root threads are interleaved by their ordering key.
    """
    if len(views) == 1:
        return views[0].structure
    merged = heapq.merge(
        *(v.root_fragments for v in views),
        key=lambda f: f.sort_key,
        reverse=True,
    )
    return join_fragments(f.fragment for f in merged)
