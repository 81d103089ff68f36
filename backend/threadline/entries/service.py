"""Discussion service: entry writes, threaded views, listings and read marks.

Every read path resolves the viewer's visible topic set first, so entries of
group subtopics the viewer cannot read never leak into views or pages.
"""

import logging
from uuid import uuid4

from threadline.attachments.store import AttachmentStorageError, AttachmentStore, QuotaExceededError
from threadline.entries.pagination import Page, PaginationEngine, ReplyWindow
from threadline.entries.schemas import (
    AttachmentUpload,
    DiscussionView,
    EntryPage,
    EntrySummary,
)
from threadline.errors import (
    EntryModificationDeniedError,
    EntryNotFoundError,
    EntryValidationError,
    InitialPostRequiredError,
    TopicAccessDeniedError,
    TopicNotFoundError,
)
from threadline.events.projector import StateProjector
from threadline.events.store import EventStore
from threadline.models import (
    AttachmentInfo,
    EntryAttachmentChangedPayload,
    EntryCreatedPayload,
    EntryDeletedPayload,
    EntryEditedPayload,
    VIEW_CHANGING_EVENTS,
    EventEnvelope,
    ReadState,
)
from threadline.participants.directory import ParticipantDirectory
from threadline.readstate.tracker import ReadStateTracker
from threadline.topics.visibility import Authorizer, VisibilityResolver
from threadline.utils.json import parse_json_or_none
from threadline.utils.time import utc_now
from threadline.views.cache import Pending, ViewCache, merge_views

logger = logging.getLogger(__name__)


class DiscussionService:
    """Coordinates the event store, view cache, read state and pagination."""

    def __init__(
        self,
        store: EventStore,
        projector: StateProjector,
        views: ViewCache,
        tracker: ReadStateTracker,
        pagination: PaginationEngine,
        resolver: VisibilityResolver,
        authorizer: Authorizer,
        directory: ParticipantDirectory,
        attachments: AttachmentStore,
        *,
        default_page_size: int = 10,
        max_page_size: int = 50,
    ) -> None:
        self._store = store
        self._projector = projector
        self._views = views
        self._tracker = tracker
        self._pagination = pagination
        self._resolver = resolver
        self._authorizer = authorizer
        self._directory = directory
        self._attachments = attachments
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # -- Views --

    async def get_view(self, topic_id: str, user_id: str) -> DiscussionView | Pending:
        """The threaded view across visible topics, or Pending while any is rebuilding."""
        _, visible = await self._open_topic(topic_id, user_id)

        views = await self._views.get_many(visible)
        if isinstance(views, Pending):
            return views

        entry_ids = [eid for view in views for eid in view.entry_ids]
        unread = await self._tracker.unread_entries(visible, user_id, entry_ids)

        participant_ids = list(dict.fromkeys(pid for view in views for pid in view.participant_ids))
        participants = await self._directory.resolve(participant_ids)

        return DiscussionView(
            unread_entries=[eid for eid in entry_ids if eid in unread],
            participants=participants,
            structure=merge_views(views),
        )

    # -- Listings --

    async def list_root_entries(
        self, topic_id: str, user_id: str, cursor: str | None, page_size: int | None
    ) -> EntryPage:
        _, visible = await self._open_topic(topic_id, user_id)
        page = await self._pagination.root_entries(visible, cursor, self._clamp(page_size))
        windows = await self._pagination.recent_replies([r["entry_id"] for r in page.items])
        return await self._page_response(page, visible, user_id, windows)

    async def list_replies(
        self,
        topic_id: str,
        entry_id: str,
        user_id: str,
        cursor: str | None,
        page_size: int | None,
    ) -> EntryPage:
        _, visible = await self._open_topic(topic_id, user_id)
        root = await self._visible_entry(entry_id, visible)
        if root["parent_id"] is not None:
            raise EntryNotFoundError(entry_id)
        page = await self._pagination.replies(entry_id, cursor, self._clamp(page_size))
        return await self._page_response(page, visible, user_id)

    async def entry_list(
        self,
        topic_id: str,
        user_id: str,
        entry_ids: list[str],
        cursor: str | None,
        page_size: int | None,
    ) -> EntryPage:
        """Entries by id, oldest first, deleted ones flagged. No reply windows.

        Every requested id must exist in a visible topic.
        """
        _, visible = await self._open_topic(topic_id, user_id)
        requested = list(dict.fromkeys(entry_ids))
        found = await self._projector.existing_entry_ids(visible, requested)
        for entry_id in requested:
            if entry_id not in found:
                raise EntryNotFoundError(entry_id)
        page = await self._pagination.entries_by_id(
            visible, requested, cursor, self._clamp(page_size)
        )
        return await self._page_response(page, visible, user_id)

    # -- Writes --

    async def add_entry(
        self,
        topic_id: str,
        user_id: str,
        message: str,
        attachment: AttachmentUpload | None = None,
    ) -> EntrySummary:
        """Post a top-level entry. Exempt from the initial-post policy."""
        topic, visible = await self._open_topic(topic_id, user_id, require_post=False)
        return await self._create_entry(topic["topic_id"], visible, user_id, message, attachment)

    async def add_reply(
        self,
        topic_id: str,
        parent_id: str,
        user_id: str,
        message: str,
        attachment: AttachmentUpload | None = None,
    ) -> EntrySummary:
        """Reply to a live entry; the reply joins the parent's (sub)topic."""
        _, visible = await self._open_topic(topic_id, user_id)
        parent = await self._visible_entry(parent_id, visible)
        return await self._create_entry(
            parent["topic_id"], visible, user_id, message, attachment, parent=parent,
        )

    async def edit_entry(
        self, topic_id: str, entry_id: str, user_id: str, message: str
    ) -> EntrySummary:
        _, visible = await self._open_topic(topic_id, user_id)
        entry = await self._visible_entry(entry_id, visible)
        if not await self._authorizer.can_modify_entry(entry, user_id):
            raise EntryModificationDeniedError(entry_id, user_id)
        message = _validate_message(message)

        payload = EntryEditedPayload(
            entry_id=entry_id,
            editor_id=user_id,
            old_message=entry["message"],
            new_message=message,
        )
        await self._emit(entry["topic_id"], user_id, "EntryEdited", payload.model_dump())

        updated = await self._projector.get_entry(entry_id)
        assert updated is not None
        return (await self._summaries([updated], visible, user_id))[0]

    async def delete_entry(self, topic_id: str, entry_id: str, user_id: str) -> None:
        """Soft-delete: the entry stays in the thread as a placeholder."""
        _, visible = await self._open_topic(topic_id, user_id)
        entry = await self._visible_entry(entry_id, visible)
        if not await self._authorizer.can_modify_entry(entry, user_id):
            raise EntryModificationDeniedError(entry_id, user_id)
        payload = EntryDeletedPayload(entry_id=entry_id, deleted_by=user_id)
        await self._emit(entry["topic_id"], user_id, "EntryDeleted", payload.model_dump())

    # -- Read state --

    async def mark_topic(self, topic_id: str, user_id: str, state: ReadState) -> None:
        """Topic initial-post marker only. Exempt from the initial-post policy."""
        await self._open_topic(topic_id, user_id, require_post=False)
        await self._tracker.mark_topic_initial_post(topic_id, user_id, state)

    async def mark_all(self, topic_id: str, user_id: str, state: ReadState) -> None:
        await self._open_topic(topic_id, user_id)
        await self._tracker.mark_topic_all(topic_id, user_id, state)

    async def mark_entry(
        self, topic_id: str, entry_id: str, user_id: str, state: ReadState
    ) -> None:
        _, visible = await self._open_topic(topic_id, user_id)
        await self._visible_entry(entry_id, visible, allow_deleted=True)
        await self._tracker.mark_entry(entry_id, user_id, state)

    # -- Internals --

    async def _open_topic(
        self, topic_id: str, user_id: str, *, require_post: bool = True
    ) -> tuple[dict, list[str]]:
        """Load the topic, check access and policy, resolve visible topics."""
        topic = await self._projector.get_topic(topic_id)
        if topic is None:
            raise TopicNotFoundError(topic_id)
        if not await self._authorizer.can_read_topic(topic, user_id):
            raise TopicAccessDeniedError(topic_id, user_id)

        visible = await self._resolver.visible_topics(topic, user_id)
        if (
            require_post
            and topic["require_initial_post"]
            and topic["user_id"] != user_id
            and not await self._projector.has_posted(visible, user_id)
        ):
            raise InitialPostRequiredError(topic_id)
        return topic, visible

    async def _visible_entry(
        self, entry_id: str, visible: list[str], *, allow_deleted: bool = False
    ) -> dict:
        entry = await self._projector.get_entry(entry_id)
        if entry is None or entry["topic_id"] not in visible:
            raise EntryNotFoundError(entry_id)
        if entry["deleted"] and not allow_deleted:
            raise EntryNotFoundError(entry_id)
        return entry

    async def _create_entry(
        self,
        topic_id: str,
        visible: list[str],
        user_id: str,
        message: str,
        attachment: AttachmentUpload | None,
        parent: dict | None = None,
    ) -> EntrySummary:
        message = _validate_message(message)
        if attachment is not None and not attachment.data:
            attachment = None
        if attachment is not None:
            try:
                await self._attachments.check_quota(user_id, len(attachment.data))
            except QuotaExceededError as e:
                raise EntryValidationError({"attachment": [str(e)]}) from e

        entry_id = str(uuid4())
        root_entry_id = None
        if parent is not None:
            root_entry_id = parent["root_entry_id"] or parent["entry_id"]
        payload = EntryCreatedPayload(
            entry_id=entry_id,
            parent_id=parent["entry_id"] if parent is not None else None,
            root_entry_id=root_entry_id,
            user_id=user_id,
            message=message,
        )
        await self._emit(topic_id, user_id, "EntryCreated", payload.model_dump())

        attachment_error = None
        if attachment is not None:
            attachment_error = await self._attach(topic_id, entry_id, user_id, attachment)

        row = await self._projector.get_entry(entry_id)
        assert row is not None
        summary = (await self._summaries([row], visible, user_id))[0]
        summary.attachment_error = attachment_error
        return summary

    async def _attach(
        self, topic_id: str, entry_id: str, user_id: str, upload: AttachmentUpload
    ) -> str | None:
        """Store the file and link it. Failure is reported, the entry stays."""
        try:
            info = await self._attachments.save(
                topic_id, user_id, upload.filename, upload.content_type, upload.data,
            )
        except AttachmentStorageError as e:
            logger.warning("Entry %s saved without its attachment: %s", entry_id, e)
            return str(e)
        payload = EntryAttachmentChangedPayload(entry_id=entry_id, attachment=info)
        await self._emit(topic_id, user_id, "EntryAttachmentChanged", payload.model_dump())
        return None

    async def _emit(self, topic_id: str, user_id: str, event_type: str, payload: dict) -> None:
        """Append and project; view-changing events mark the topic's view stale."""
        event = EventEnvelope(
            event_id=str(uuid4()),
            topic_id=topic_id,
            timestamp=utc_now(),
            user_id=user_id,
            event_type=event_type,
            payload=payload,
        )
        await self._store.append(event)
        await self._projector.project([event])
        if event_type in VIEW_CHANGING_EVENTS:
            await self._views.invalidate(topic_id)

    def _clamp(self, page_size: int | None) -> int:
        if page_size is None:
            return self._default_page_size
        return max(1, min(page_size, self._max_page_size))

    async def _page_response(
        self,
        page: Page,
        visible: list[str],
        user_id: str,
        windows: dict[str, ReplyWindow] | None = None,
    ) -> EntryPage:
        return EntryPage(
            items=await self._summaries(page.items, visible, user_id, windows),
            next_cursor=page.next_cursor,
        )

    async def _summaries(
        self,
        rows: list[dict],
        visible: list[str],
        user_id: str,
        windows: dict[str, ReplyWindow] | None = None,
    ) -> list[EntrySummary]:
        """Decorate entry rows with read state and author names."""
        all_rows = list(rows)
        if windows:
            for window in windows.values():
                all_rows.extend(window.replies)

        read = await self._tracker.read_entries(
            visible, user_id, [r["entry_id"] for r in all_rows]
        )
        names = await self._directory.display_names(
            [r["user_id"] for r in all_rows if not r["deleted"]]
        )

        summaries = []
        for row in rows:
            summary = _summary_from_row(row, read, names)
            window = windows.get(row["entry_id"]) if windows else None
            if window is not None and window.replies:
                summary.recent_replies = [_summary_from_row(r, read, names) for r in window.replies]
                summary.has_more_replies = window.has_more
            summaries.append(summary)
        return summaries


def _validate_message(message: str | None) -> str:
    if message is None or not message.strip():
        raise EntryValidationError({"message": ["can't be blank"]})
    return message


def _summary_from_row(row: dict, read: set[str], names: dict[str, str]) -> EntrySummary:
    read_state: ReadState = "read" if row["entry_id"] in read else "unread"
    if row["deleted"]:
        return EntrySummary(
            id=row["entry_id"],
            parent_id=row["parent_id"],
            read_state=read_state,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted=True,
        )

    editor_id = row.get("editor_id")
    attachment = parse_json_or_none(row.get("attachment"))
    return EntrySummary(
        id=row["entry_id"],
        parent_id=row["parent_id"],
        user_id=row["user_id"],
        editor_id=editor_id if editor_id and editor_id != row["user_id"] else None,
        user_name=names.get(row["user_id"]),
        message=row["message"],
        read_state=read_state,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        attachment=AttachmentInfo.model_validate(attachment) if attachment else None,
    )
