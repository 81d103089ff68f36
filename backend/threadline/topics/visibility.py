"""Which topics' entries a viewer sees when reading a topic.

A group-split assignment topic fans out into child topics, one per group.
A viewer sees the parent plus the children whose group they can read.
"""

import logging
from typing import Protocol

from threadline.db.connection import Database
from threadline.events.projector import StateProjector

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    """Permission checks consumed by the discussion services."""

    async def can_read_topic(self, topic: dict, user_id: str) -> bool: ...

    async def can_read_group(self, group_id: str, user_id: str) -> bool: ...

    async def can_modify_entry(self, entry: dict, user_id: str) -> bool: ...


class MembershipAuthorizer:
    """Default authorizer backed by the group_memberships table.

    Topics without a group are readable by everyone; group topics only by
    members. Entries can be changed by their author.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def can_read_topic(self, topic: dict, user_id: str) -> bool:
        group_id = topic.get("group_id")
        if group_id is None:
            return True
        return await self.can_read_group(group_id, user_id)

    async def can_read_group(self, group_id: str, user_id: str) -> bool:
        row = await self._db.fetchone(
            "SELECT 1 FROM group_memberships WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
        return row is not None

    async def can_modify_entry(self, entry: dict, user_id: str) -> bool:
        return entry["user_id"] == user_id

    async def add_member(self, group_id: str, user_id: str) -> None:
        await self._db.execute(
            "INSERT OR IGNORE INTO group_memberships (group_id, user_id) VALUES (?, ?)",
            (group_id, user_id),
        )


class VisibilityResolver:
    def __init__(self, projector: StateProjector, authorizer: Authorizer) -> None:
        self._projector = projector
        self._authorizer = authorizer

    async def visible_topics(self, topic: dict, user_id: str) -> list[str]:
        """Topic ids whose entries the viewer sees, the topic itself first.

        Never fails on account of a child: if children cannot be listed or a
        membership check errors, the affected children are left out.
        """
        topic_id = topic["topic_id"]
        if not topic.get("group_assignment"):
            return [topic_id]

        try:
            children = await self._projector.get_child_topics(topic_id)
        except Exception:
            logger.warning("Could not list child topics of %s", topic_id, exc_info=True)
            return [topic_id]

        visible = [topic_id]
        for child in children:
            group_id = child.get("group_id")
            if group_id is None:
                continue
            try:
                allowed = await self._authorizer.can_read_group(group_id, user_id)
            except Exception:
                logger.warning(
                    "Membership check failed for group %s (topic %s)",
                    group_id, child["topic_id"], exc_info=True,
                )
                continue
            if allowed:
                visible.append(child["topic_id"])
        return visible
