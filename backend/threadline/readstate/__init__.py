"""Read/unread tracking per user."""

from threadline.readstate.tracker import ReadStateTracker

__all__ = ["ReadStateTracker"]
