"""Exceptions shared across components. Routers map them to HTTP statuses."""


class TopicNotFoundError(Exception):
    def __init__(self, topic_id: str) -> None:
        self.topic_id = topic_id
        super().__init__(f"Topic not found: {topic_id}")


class EntryNotFoundError(Exception):
    def __init__(self, entry_id: str) -> None:
        self.entry_id = entry_id
        super().__init__(f"Entry not found: {entry_id}")


class TopicAccessDeniedError(Exception):
    def __init__(self, topic_id: str, user_id: str) -> None:
        self.topic_id = topic_id
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot read topic {topic_id}")


class InitialPostRequiredError(Exception):
    def __init__(self, topic_id: str) -> None:
        self.topic_id = topic_id
        super().__init__(f"An initial post is required in topic {topic_id}")


class EntryValidationError(Exception):
    def __init__(self, fields: dict[str, list[str]]) -> None:
        self.fields = fields
        super().__init__(f"Invalid entry: {fields}")


class EntryModificationDeniedError(Exception):
    def __init__(self, entry_id: str, user_id: str) -> None:
        self.entry_id = entry_id
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot modify entry {entry_id}")
