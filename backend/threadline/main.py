"""Threadline FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from threadline.attachments.router import get_attachment_store
from threadline.attachments.router import router as attachments_router
from threadline.attachments.store import AttachmentStore
from threadline.config import Settings
from threadline.db.connection import Database
from threadline.entries.pagination import PaginationEngine
from threadline.entries.router import get_discussion_service, get_retry_after
from threadline.entries.router import router as entries_router
from threadline.entries.service import DiscussionService
from threadline.events.projector import StateProjector
from threadline.events.store import EventStore
from threadline.participants.directory import ParticipantDirectory
from threadline.readstate.tracker import ReadStateTracker
from threadline.topics.router import get_topic_service
from threadline.topics.router import router as topics_router
from threadline.topics.service import TopicService
from threadline.topics.visibility import MembershipAuthorizer, VisibilityResolver
from threadline.views.cache import ViewCache

VERSION = "0.1.0"

# Environment only; backend/.env is loaded when the app starts.
settings = Settings.from_env(load_file=False)


@dataclass
class Services:
    topics: TopicService
    discussions: DiscussionService
    views: ViewCache
    tracker: ReadStateTracker
    authorizer: MembershipAuthorizer
    directory: ParticipantDirectory
    attachments: AttachmentStore


def build_services(db: Database, settings: Settings) -> Services:
    """Wire every component against one database."""
    store = EventStore(db)
    projector = StateProjector(db)
    authorizer = MembershipAuthorizer(db)
    resolver = VisibilityResolver(projector, authorizer)
    tracker = ReadStateTracker(db, projector)
    views = ViewCache(db, projector)
    directory = ParticipantDirectory(db)
    attachments = AttachmentStore(db, quota_bytes=settings.attachment_quota_bytes)

    discussions = DiscussionService(
        store,
        projector,
        views,
        tracker,
        PaginationEngine(db, reply_window=settings.reply_window),
        resolver,
        authorizer,
        directory,
        attachments,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    return Services(
        topics=TopicService(store, projector, authorizer, resolver, tracker),
        discussions=discussions,
        views=views,
        tracker=tracker,
        authorizer=authorizer,
        directory=directory,
        attachments=attachments,
    )


def install_services(app: FastAPI, services: Services, settings: Settings) -> None:
    app.dependency_overrides[get_topic_service] = lambda: services.topics
    app.dependency_overrides[get_discussion_service] = lambda: services.discussions
    app.dependency_overrides[get_attachment_store] = lambda: services.attachments
    app.dependency_overrides[get_retry_after] = lambda: settings.retry_after_seconds


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    runtime = Settings.from_env()
    db = await Database.connect(runtime.db_path)
    services = build_services(db, runtime)
    install_services(app, services, runtime)

    app.state.db = db
    app.state.settings = runtime
    yield

    await services.views.close()
    await db.close()


app = FastAPI(
    title="Threadline",
    description="Threaded discussions with cached views and per-user read tracking",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(topics_router)
app.include_router(entries_router)
app.include_router(attachments_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": VERSION}
