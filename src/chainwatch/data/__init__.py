"""Caching and file output."""

from chainwatch.data.cache import ResultCache
from chainwatch.data.snapshot_writer import SnapshotWriter

__all__ = ["ResultCache", "SnapshotWriter"]
