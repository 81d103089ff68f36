"""Request and response schemas for entry endpoints.

Optional fields are "present only if set": routes serialize these models
with response_model_exclude_none.
"""

from dataclasses import dataclass

from pydantic import BaseModel

from threadline.models import AttachmentInfo, Participant, ReadState


@dataclass
class AttachmentUpload:
    filename: str
    content_type: str
    data: bytes


class EditEntryRequest(BaseModel):
    message: str


class EntrySummary(BaseModel):
    id: str
    parent_id: str | None = None
    user_id: str | None = None
    editor_id: str | None = None
    user_name: str | None = None
    message: str | None = None
    read_state: ReadState = "unread"
    created_at: str
    updated_at: str
    deleted: bool | None = None
    attachment: AttachmentInfo | None = None
    recent_replies: list["EntrySummary"] | None = None
    has_more_replies: bool | None = None
    attachment_error: str | None = None


class EntryPage(BaseModel):
    items: list[EntrySummary]
    next_cursor: str | None = None


@dataclass
class DiscussionView:
    """A composed view: decorations plus the serialized tree, kept as text."""

    unread_entries: list[str]
    participants: list[Participant]
    structure: str
