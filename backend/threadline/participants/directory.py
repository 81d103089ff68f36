"""Display-name and avatar lookup for participant ids."""

from threadline.db.connection import Database
from threadline.models import Participant


class ParticipantDirectory:
    """Resolves user ids against the users table. Unknown ids are skipped."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def resolve(self, user_ids: list[str]) -> list[Participant]:
        """Participants for user_ids, in the order given."""
        if not user_ids:
            return []
        marks = ", ".join("?" for _ in user_ids)
        rows = await self._db.fetchall(
            f"SELECT * FROM users WHERE user_id IN ({marks})", tuple(user_ids)
        )
        by_id = {r["user_id"]: r for r in rows}
        return [
            Participant(
                id=uid,
                display_name=by_id[uid]["display_name"],
                avatar_url=by_id[uid]["avatar_url"],
            )
            for uid in user_ids
            if uid in by_id
        ]

    async def display_names(self, user_ids: list[str]) -> dict[str, str]:
        return {p.id: p.display_name for p in await self.resolve(list(dict.fromkeys(user_ids)))}

    async def upsert_user(self, user_id: str, display_name: str, avatar_url: str | None = None) -> None:
        await self._db.execute(
            """
            INSERT INTO users (user_id, display_name, avatar_url) VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                display_name = excluded.display_name,
                avatar_url = excluded.avatar_url
            """,
            (user_id, display_name, avatar_url),
        )
