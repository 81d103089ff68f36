"""Topic service: creating topics and reading them back per viewer."""

from uuid import uuid4

from threadline.errors import TopicAccessDeniedError, TopicNotFoundError
from threadline.events.projector import StateProjector
from threadline.events.store import EventStore
from threadline.models import EventEnvelope, TopicCreatedPayload
from threadline.readstate.tracker import ReadStateTracker
from threadline.topics.schemas import CreateTopicRequest, TopicResponse
from threadline.topics.visibility import Authorizer, VisibilityResolver
from threadline.utils.time import utc_now


class TopicService:
    def __init__(
        self,
        store: EventStore,
        projector: StateProjector,
        authorizer: Authorizer,
        resolver: VisibilityResolver,
        tracker: ReadStateTracker,
    ) -> None:
        self._store = store
        self._projector = projector
        self._authorizer = authorizer
        self._resolver = resolver
        self._tracker = tracker

    async def create_topic(self, request: CreateTopicRequest, user_id: str) -> TopicResponse:
        """Create a topic, or a group subtopic when parent_topic_id is given."""
        if request.parent_topic_id is not None:
            parent = await self._projector.get_topic(request.parent_topic_id)
            if parent is None:
                raise TopicNotFoundError(request.parent_topic_id)
            if request.group_id is None:
                raise InvalidSubtopicError("group_id is required for a subtopic")
            if not parent["group_assignment"]:
                raise InvalidSubtopicError(
                    f"Topic {request.parent_topic_id} is not a group assignment topic"
                )

        topic_id = str(uuid4())
        payload = TopicCreatedPayload(
            title=request.title,
            message=request.message,
            user_id=user_id,
            require_initial_post=request.require_initial_post,
            group_assignment=request.group_assignment,
            parent_topic_id=request.parent_topic_id,
            group_id=request.group_id,
        )
        event = EventEnvelope(
            event_id=str(uuid4()),
            topic_id=topic_id,
            timestamp=utc_now(),
            user_id=user_id,
            event_type="TopicCreated",
            payload=payload.model_dump(),
        )
        await self._store.append(event)
        await self._projector.project([event])

        topic = await self._projector.get_topic(topic_id)
        assert topic is not None
        return await self._response(topic, user_id)

    async def get_topic(self, topic_id: str, user_id: str) -> TopicResponse:
        topic = await self._projector.get_topic(topic_id)
        if topic is None:
            raise TopicNotFoundError(topic_id)
        if not await self._authorizer.can_read_topic(topic, user_id):
            raise TopicAccessDeniedError(topic_id, user_id)
        return await self._response(topic, user_id)

    async def _response(self, topic: dict, user_id: str) -> TopicResponse:
        topic_id = topic["topic_id"]
        visible = await self._resolver.visible_topics(topic, user_id)
        return TopicResponse(
            topic_id=topic_id,
            title=topic["title"],
            message=topic["message"],
            user_id=topic["user_id"],
            require_initial_post=bool(topic["require_initial_post"]),
            group_assignment=bool(topic["group_assignment"]),
            parent_topic_id=topic["parent_topic_id"],
            group_id=topic["group_id"],
            created_at=topic["created_at"],
            updated_at=topic["updated_at"],
            read_state=await self._tracker.topic_read_state(topic_id, user_id),
            unread_count=await self._tracker.unread_count(visible, user_id),
            visible_topic_ids=visible,
        )


class InvalidSubtopicError(Exception):
    pass
