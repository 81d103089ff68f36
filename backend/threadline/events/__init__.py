"""Event sourcing: append-only event store and state projection."""

from threadline.events.projector import StateProjector
from threadline.events.store import EventStore

__all__ = ["EventStore", "StateProjector"]
