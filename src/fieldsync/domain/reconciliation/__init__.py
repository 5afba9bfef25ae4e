"""Field-level, last-writer-wins reconciliation of one record across sources.

Flow for one key:
1) the planner fetches snapshots from every source concurrently
2) the reconciler picks a winner per canonical field
3) the executor writes the winner to every source holding a different value
4) the report enumerates values, writes and failures per field
"""

from __future__ import annotations

from .engine import RecordSyncEngine
from .executor import SyncExecutor, WriteOutcome
from .plan import CallFailure, PlannedWrite, ReconciliationResult, SyncPlan
from .planner import SyncPlanner
from .reconcile import FieldResolution, Reconciler, reconcile_field
from .report import Failure, FieldOutcome, FieldReport, SyncReport, build_report

__all__ = [
    "CallFailure",
    "Failure",
    "FieldOutcome",
    "FieldReport",
    "FieldResolution",
    "PlannedWrite",
    "Reconciler",
    "ReconciliationResult",
    "RecordSyncEngine",
    "SyncExecutor",
    "SyncPlan",
    "SyncPlanner",
    "SyncReport",
    "WriteOutcome",
    "build_report",
    "reconcile_field",
]
