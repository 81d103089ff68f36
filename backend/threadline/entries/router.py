"""FastAPI routes for discussion views, entries, replies and read marks."""

import json

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response

from threadline.entries.pagination import InvalidCursorError
from threadline.entries.schemas import AttachmentUpload, EditEntryRequest, EntryPage, EntrySummary
from threadline.entries.service import DiscussionService
from threadline.errors import (
    EntryModificationDeniedError,
    EntryNotFoundError,
    EntryValidationError,
    InitialPostRequiredError,
    TopicAccessDeniedError,
    TopicNotFoundError,
)
from threadline.views.cache import Pending

router = APIRouter(prefix="/api/topics", tags=["entries"])


def get_discussion_service() -> DiscussionService:
    """Dependency placeholder: replaced at app startup."""
    raise RuntimeError("DiscussionService not initialized")


def get_retry_after() -> int:
    """Seconds a client should wait after a not-ready view. Overridden at startup."""
    return 2


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, (TopicNotFoundError, EntryNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InitialPostRequiredError):
        return HTTPException(status_code=403, detail="require_initial_post")
    if isinstance(e, (TopicAccessDeniedError, EntryModificationDeniedError)):
        return HTTPException(status_code=403, detail="forbidden")
    return HTTPException(status_code=400, detail=str(e))


_DOMAIN_ERRORS = (
    TopicNotFoundError,
    EntryNotFoundError,
    InitialPostRequiredError,
    TopicAccessDeniedError,
    EntryModificationDeniedError,
    InvalidCursorError,
)


def _validation_response(e: EntryValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"errors": e.fields})


async def _upload(attachment: UploadFile | None) -> AttachmentUpload | None:
    if attachment is None:
        return None
    return AttachmentUpload(
        filename=attachment.filename or "attachment",
        content_type=attachment.content_type or "application/octet-stream",
        data=await attachment.read(),
    )


@router.get("/{topic_id}/view")
async def get_view(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
    retry_after: int = Depends(get_retry_after),
) -> Response:
    try:
        result = await service.get_view(topic_id, user_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)

    if isinstance(result, Pending):
        return Response(status_code=503, headers={"Retry-After": str(retry_after)})

    participants = [p.model_dump() for p in result.participants]
    # The view structure is stored pre-serialized and embedded as-is.
    body = (
        f'{{"unread_entries": {json.dumps(result.unread_entries)}, '
        f'"participants": {json.dumps(participants)}, '
        f'"view": {result.structure}}}'
    )
    return Response(content=body, media_type="application/json")


@router.get("/{topic_id}/entries", response_model_exclude_none=True)
async def list_entries(
    topic_id: str,
    cursor: str | None = Query(None),
    per_page: int | None = Query(None, ge=1),
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> EntryPage:
    try:
        return await service.list_root_entries(topic_id, user_id, cursor, per_page)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.post(
    "/{topic_id}/entries",
    status_code=status.HTTP_201_CREATED,
    response_model=EntrySummary,
    response_model_exclude_none=True,
)
async def add_entry(
    topic_id: str,
    message: str = Form(""),
    attachment: UploadFile | None = File(None),
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
):
    try:
        return await service.add_entry(topic_id, user_id, message, await _upload(attachment))
    except EntryValidationError as e:
        return _validation_response(e)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.get("/{topic_id}/entry_list", response_model_exclude_none=True)
async def entry_list(
    topic_id: str,
    ids: list[str] | None = Query(None, alias="ids[]"),
    cursor: str | None = Query(None),
    per_page: int | None = Query(None, ge=1),
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> EntryPage:
    try:
        return await service.entry_list(topic_id, user_id, ids or [], cursor, per_page)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.put(
    "/{topic_id}/entries/{entry_id}",
    response_model=EntrySummary,
    response_model_exclude_none=True,
)
async def edit_entry(
    topic_id: str,
    entry_id: str,
    request: EditEntryRequest,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
):
    try:
        return await service.edit_entry(topic_id, entry_id, user_id, request.message)
    except EntryValidationError as e:
        return _validation_response(e)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.delete("/{topic_id}/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    topic_id: str,
    entry_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.delete_entry(topic_id, entry_id, user_id)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.get("/{topic_id}/entries/{entry_id}/replies", response_model_exclude_none=True)
async def list_replies(
    topic_id: str,
    entry_id: str,
    cursor: str | None = Query(None),
    per_page: int | None = Query(None, ge=1),
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> EntryPage:
    try:
        return await service.list_replies(topic_id, entry_id, user_id, cursor, per_page)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.post(
    "/{topic_id}/entries/{entry_id}/replies",
    status_code=status.HTTP_201_CREATED,
    response_model=EntrySummary,
    response_model_exclude_none=True,
)
async def add_reply(
    topic_id: str,
    entry_id: str,
    message: str = Form(""),
    attachment: UploadFile | None = File(None),
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
):
    try:
        return await service.add_reply(
            topic_id, entry_id, user_id, message, await _upload(attachment)
        )
    except EntryValidationError as e:
        return _validation_response(e)
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


# -- Read state --


@router.put("/{topic_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_topic_read(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_topic(topic_id, user_id, "read")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.delete("/{topic_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_topic_unread(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_topic(topic_id, user_id, "unread")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.put("/{topic_id}/read_all", status_code=status.HTTP_204_NO_CONTENT)
async def mark_all_read(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_all(topic_id, user_id, "read")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.delete("/{topic_id}/read_all", status_code=status.HTTP_204_NO_CONTENT)
async def mark_all_unread(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_all(topic_id, user_id, "unread")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.put("/{topic_id}/entries/{entry_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_entry_read(
    topic_id: str,
    entry_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_entry(topic_id, entry_id, user_id, "read")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)


@router.delete("/{topic_id}/entries/{entry_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_entry_unread(
    topic_id: str,
    entry_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: DiscussionService = Depends(get_discussion_service),
) -> None:
    try:
        await service.mark_entry(topic_id, entry_id, user_id, "unread")
    except _DOMAIN_ERRORS as e:
        raise _to_http(e)
