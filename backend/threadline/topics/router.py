"""FastAPI routes for creating and reading topics."""

from fastapi import APIRouter, Depends, Header, HTTPException, status

from threadline.errors import TopicAccessDeniedError, TopicNotFoundError
from threadline.topics.schemas import CreateTopicRequest, TopicResponse
from threadline.topics.service import InvalidSubtopicError, TopicService

router = APIRouter(prefix="/api/topics", tags=["topics"])


def get_topic_service() -> TopicService:
    """Dependency placeholder: replaced at app startup."""
    raise RuntimeError("TopicService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_topic(
    request: CreateTopicRequest,
    user_id: str = Header(alias="X-User-Id"),
    service: TopicService = Depends(get_topic_service),
) -> TopicResponse:
    try:
        return await service.create_topic(request, user_id)
    except TopicNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidSubtopicError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{topic_id}")
async def get_topic(
    topic_id: str,
    user_id: str = Header(alias="X-User-Id"),
    service: TopicService = Depends(get_topic_service),
) -> TopicResponse:
    try:
        return await service.get_topic(topic_id, user_id)
    except TopicNotFoundError:
        raise HTTPException(status_code=404, detail=f"Topic not found: {topic_id}")
    except TopicAccessDeniedError:
        raise HTTPException(status_code=403, detail="forbidden")
