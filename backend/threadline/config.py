"""Runtime configuration read from the environment (and backend/.env)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    db_path: str = "threadline.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    default_page_size: int = 10
    max_page_size: int = 50
    reply_window: int = 10
    attachment_quota_bytes: int = 50 * 1024 * 1024
    retry_after_seconds: int = 2

    @classmethod
    def from_env(cls, load_file: bool = True) -> "Settings":
        """Build settings from THREADLINE_* variables. Unset ones keep defaults."""
        if load_file:
            load_dotenv(_ENV_FILE)

        values: dict = {}
        if os.environ.get("THREADLINE_DB_PATH"):
            values["db_path"] = os.environ["THREADLINE_DB_PATH"]
        if os.environ.get("THREADLINE_CORS_ORIGINS"):
            values["cors_origins"] = [
                o.strip() for o in os.environ["THREADLINE_CORS_ORIGINS"].split(",") if o.strip()
            ]

        int_fields = {
            "THREADLINE_DEFAULT_PAGE_SIZE": "default_page_size",
            "THREADLINE_MAX_PAGE_SIZE": "max_page_size",
            "THREADLINE_REPLY_WINDOW": "reply_window",
            "THREADLINE_ATTACHMENT_QUOTA_BYTES": "attachment_quota_bytes",
            "THREADLINE_RETRY_AFTER_SECONDS": "retry_after_seconds",
        }
        for env_name, field_name in int_fields.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = int(raw)

        return cls.model_validate(values)
