"""Canonical data structures and event types for Threadline.

Entries and topics live on the write side as events; the EventEnvelope
wraps each payload with metadata. Projected rows are read back as dicts.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ReadState = Literal["read", "unread"]

# ---------------------------------------------------------------------------
# Canonical data structures
# ---------------------------------------------------------------------------


class AttachmentInfo(BaseModel):
    attachment_id: str
    filename: str
    display_name: str
    content_type: str
    size: int
    url: str


class Participant(BaseModel):
    id: str
    display_name: str
    avatar_url: str | None = None


# ---------------------------------------------------------------------------
# Event payloads: one per event type
# ---------------------------------------------------------------------------


class TopicCreatedPayload(BaseModel):
    title: str
    message: str = ""
    user_id: str
    require_initial_post: bool = False
    group_assignment: bool = False
    parent_topic_id: str | None = None
    group_id: str | None = None


class EntryCreatedPayload(BaseModel):
    entry_id: str
    parent_id: str | None = None
    root_entry_id: str | None = None
    user_id: str
    message: str


class EntryEditedPayload(BaseModel):
    entry_id: str
    editor_id: str
    old_message: str
    new_message: str


class EntryDeletedPayload(BaseModel):
    entry_id: str
    deleted_by: str | None = None


class EntryAttachmentChangedPayload(BaseModel):
    entry_id: str
    attachment: AttachmentInfo | None = None


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "TopicCreated": TopicCreatedPayload,
    "EntryCreated": EntryCreatedPayload,
    "EntryEdited": EntryEditedPayload,
    "EntryDeleted": EntryDeletedPayload,
    "EntryAttachmentChanged": EntryAttachmentChangedPayload,
}

# Event types that change what a topic's threaded view contains.
VIEW_CHANGING_EVENTS = frozenset(
    {"EntryCreated", "EntryEdited", "EntryDeleted", "EntryAttachmentChanged"}
)


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class EventEnvelope(BaseModel):
    """Wraps every event with metadata. Stored in the events table."""

    event_id: str
    topic_id: str
    timestamp: datetime
    user_id: str | None = None
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence_num: int | None = None  # assigned by DB on insert

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
