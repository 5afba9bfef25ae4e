"""Domain port definitions for adapters."""

from __future__ import annotations

from .sources import BatchFetchingSource, RecordKey, SourceAdapter, WriteAck

__all__ = ["BatchFetchingSource", "RecordKey", "SourceAdapter", "WriteAck"]
