"""Public interface for the SQLAlchemy table adapter."""

from __future__ import annotations

from .source import SqlTableSource, build_sql_source, reflect_table

__all__ = ["SqlTableSource", "build_sql_source", "reflect_table"]
