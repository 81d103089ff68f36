"""Threaded materialized views: construction and per-topic caching."""

from threadline.views.builder import DataCorruptionError, SerializedView, ViewBuilder
from threadline.views.cache import MaterializedView, Pending, Ready, ViewCache, merge_views

__all__ = [
    "DataCorruptionError",
    "MaterializedView",
    "Pending",
    "Ready",
    "SerializedView",
    "ViewBuilder",
    "ViewCache",
    "merge_views",
]
