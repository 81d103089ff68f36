"""Threaded view construction.

Entries arrive as a flat list of projected rows linked by parent_id. The
builder indexes them by id and groups children by parent. Traversal and
serialization both run off explicit stacks, so thread depth is unbounded.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from threadline.utils.json import compact_dumps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RootFragment:
    """One serialized top-level thread plus the key it is ordered by."""

    created_at: str
    entry_id: str
    fragment: str

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.created_at, self.entry_id)


@dataclass
class SerializedView:
    """Output of a build: the JSON array text and its decorations."""

    structure: str
    root_fragments: list[RootFragment] = field(default_factory=list)
    entry_ids: list[str] = field(default_factory=list)
    participant_ids: list[str] = field(default_factory=list)


class ViewBuilder:
    """Builds the full threaded view of a topic's entries."""

    def build(self, entries: list[dict]) -> SerializedView:
        """Build and serialize the tree for a flat list of entry rows.

        Roots are ordered newest-first; replies under a node oldest-first.
        Orphans (parent missing from the input) are promoted to roots.
        Raises DataCorruptionError on duplicate ids or parent cycles.
        """
        by_id: dict[str, dict] = {}
        for row in entries:
            entry_id = row["entry_id"]
            if entry_id in by_id:
                raise DataCorruptionError(f"Duplicate entry id in snapshot: {entry_id}")
            by_id[entry_id] = row

        children: dict[str, list[str]] = defaultdict(list)
        roots: list[str] = []
        for entry_id, row in by_id.items():
            parent_id = row.get("parent_id")
            if parent_id is None:
                roots.append(entry_id)
            elif parent_id == entry_id:
                raise DataCorruptionError(f"Entry is its own parent: {entry_id}")
            elif parent_id not in by_id:
                logger.warning("Entry %s has unknown parent %s, treating as root", entry_id, parent_id)
                roots.append(entry_id)
            else:
                children[parent_id].append(entry_id)

        roots.sort(key=lambda i: _order_key(by_id[i]), reverse=True)
        for siblings in children.values():
            siblings.sort(key=lambda i: _order_key(by_id[i]))

        order = self._preorder(roots, children)
        if len(order) != len(by_id):
            unreached = sorted(set(by_id) - set(order))
            raise DataCorruptionError(f"Parent cycle among entries: {unreached}")

        root_fragments = [
            RootFragment(
                created_at=by_id[r]["created_at"],
                entry_id=r,
                fragment=_serialize_thread(r, by_id, children),
            )
            for r in roots
        ]

        participant_ids: list[str] = []
        seen_participants: set[str] = set()
        live_ids: list[str] = []
        for entry_id in order:
            row = by_id[entry_id]
            if row.get("deleted"):
                continue
            live_ids.append(entry_id)
            if row["user_id"] not in seen_participants:
                seen_participants.add(row["user_id"])
                participant_ids.append(row["user_id"])

        return SerializedView(
            structure=join_fragments(f.fragment for f in root_fragments),
            root_fragments=root_fragments,
            entry_ids=live_ids,
            participant_ids=participant_ids,
        )

    @staticmethod
    def _preorder(roots: list[str], children: dict[str, list[str]]) -> list[str]:
        order: list[str] = []
        stack = list(reversed(roots))
        while stack:
            entry_id = stack.pop()
            order.append(entry_id)
            stack.extend(reversed(children.get(entry_id, [])))
        return order


def join_fragments(fragments) -> str:
    """Wrap already-serialized nodes into a JSON array without re-parsing them."""
    return "[" + ",".join(fragments) + "]"


def _order_key(row: dict) -> tuple[str, str]:
    return (row["created_at"], row["entry_id"])


def _serialize_thread(root_id: str, by_id: dict[str, dict], children: dict[str, list[str]]) -> str:
    """Serialize one thread with an explicit stack of pending nodes and literal text."""
    parts: list[str] = []
    stack: list[tuple[str, str]] = [("node", root_id)]
    while stack:
        kind, value = stack.pop()
        if kind == "text":
            parts.append(value)
            continue

        head = compact_dumps(_node_fields(by_id[value]))
        kids = children.get(value)
        if not kids:
            parts.append(head)
            continue

        parts.append(head[:-1] + ',"replies":[')
        pending: list[tuple[str, str]] = []
        for i, child in enumerate(kids):
            if i:
                pending.append(("text", ","))
            pending.append(("node", child))
        stack.append(("text", "]}"))
        stack.extend(reversed(pending))
    return "".join(parts)


def _node_fields(row: dict) -> dict:
    if row.get("deleted"):
        return {"id": row["entry_id"], "parent_id": row.get("parent_id"), "deleted": True}
    return {
        "id": row["entry_id"],
        "user_id": row["user_id"],
        "parent_id": row.get("parent_id"),
        "message": row["message"],
    }


class DataCorruptionError(Exception):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Corrupt entry structure: {detail}")
