"""Attachment storage with a per-user quota."""

import logging
import sqlite3
from uuid import uuid4

from threadline.db.connection import Database
from threadline.models import AttachmentInfo
from threadline.utils.time import format_timestamp, utc_now

logger = logging.getLogger(__name__)

# Files up to this size are never checked against the quota.
QUOTA_EXEMPT_BYTES = 1024


class AttachmentStore:
    def __init__(self, db: Database, quota_bytes: int) -> None:
        self._db = db
        self._quota_bytes = quota_bytes

    async def used_bytes(self, user_id: str) -> int:
        row = await self._db.fetchone(
            "SELECT COALESCE(SUM(size), 0) AS used FROM attachments WHERE user_id = ?",
            (user_id,),
        )
        return row["used"] if row is not None else 0

    async def check_quota(self, user_id: str, size: int) -> None:
        """Raise QuotaExceededError if storing size more bytes would pass the quota."""
        if size <= QUOTA_EXEMPT_BYTES:
            return
        used = await self.used_bytes(user_id)
        if used + size > self._quota_bytes:
            raise QuotaExceededError(user_id, used, size, self._quota_bytes)

    async def save(
        self,
        topic_id: str,
        user_id: str,
        filename: str,
        content_type: str,
        data: bytes,
    ) -> AttachmentInfo:
        attachment_id = str(uuid4())
        try:
            await self._db.execute(
                """
                INSERT INTO attachments
                    (attachment_id, topic_id, user_id, filename, content_type, size, data, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attachment_id, topic_id, user_id, filename, content_type,
                    len(data), data, format_timestamp(utc_now()),
                ),
            )
        except sqlite3.Error as e:
            raise AttachmentStorageError(filename, str(e)) from e
        return AttachmentInfo(
            attachment_id=attachment_id,
            filename=filename,
            display_name=filename,
            content_type=content_type,
            size=len(data),
            url=f"/api/attachments/{attachment_id}",
        )

    async def get(self, attachment_id: str) -> dict | None:
        row = await self._db.fetchone(
            "SELECT * FROM attachments WHERE attachment_id = ?", (attachment_id,)
        )
        return dict(row) if row is not None else None


class QuotaExceededError(Exception):
    def __init__(self, user_id: str, used: int, size: int, quota: int) -> None:
        self.user_id = user_id
        self.used = used
        self.size = size
        self.quota = quota
        super().__init__(f"Attachment quota exceeded: {used} + {size} > {quota} bytes")


class AttachmentStorageError(Exception):
    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not store attachment {filename}: {reason}")
