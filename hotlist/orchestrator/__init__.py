"""
Hotlist Orchestrator Module
===========================

Orchestration layer for the Hotlist pipelines.

Components:
    - StatsReconciliationPipeline: Queue consumer and promotion logic
    - MaintenanceSweeps: Deadline, queue coverage and visibility sweeps
    - HotlistService: Facade used by the CLI, scheduler and API
    - ReconciliationWorker: Serial polling worker
    - HotlistScheduler: Interval scheduling
    - CLI: Command-line interface

Usage:
    from hotlist.orchestrator import build_service

    service = build_service(get_settings())
    result = service.run_reconciliation()
"""

from .reconciliation import StatsReconciliationPipeline
from .sweeps import MaintenanceSweeps
from .service import HotlistService, build_service
from .worker import ReconciliationWorker, WorkerStats
from .scheduler import HotlistScheduler, RunHistory

__all__ = [
    # Pipelines
    "StatsReconciliationPipeline",
    "MaintenanceSweeps",
    # Service
    "HotlistService",
    "build_service",
    # Runners
    "ReconciliationWorker",
    "WorkerStats",
    "HotlistScheduler",
    "RunHistory",
]
