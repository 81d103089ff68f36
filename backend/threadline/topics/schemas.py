"""Request and response schemas for topic endpoints."""

from pydantic import BaseModel, Field

from threadline.models import ReadState


class CreateTopicRequest(BaseModel):
    title: str = Field(min_length=1)
    message: str = ""
    require_initial_post: bool = False
    group_assignment: bool = False
    parent_topic_id: str | None = None
    group_id: str | None = None


class TopicResponse(BaseModel):
    topic_id: str
    title: str
    message: str
    user_id: str
    require_initial_post: bool = False
    group_assignment: bool = False
    parent_topic_id: str | None = None
    group_id: str | None = None
    created_at: str
    updated_at: str
    read_state: ReadState = "unread"
    unread_count: int = 0
    visible_topic_ids: list[str] = Field(default_factory=list)
