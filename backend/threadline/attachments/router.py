"""Attachment download route."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from threadline.attachments.store import AttachmentStore

router = APIRouter(prefix="/api/attachments", tags=["attachments"])


def get_attachment_store() -> AttachmentStore:
    """Dependency placeholder: overridden at startup."""
    raise RuntimeError("AttachmentStore not configured")


@router.get("/{attachment_id}")
async def download_attachment(
    attachment_id: str,
    store: AttachmentStore = Depends(get_attachment_store),
) -> Response:
    row = await store.get(attachment_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Attachment not found: {attachment_id}")
    return Response(
        content=row["data"],
        media_type=row["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{row["filename"]}"'},
    )
