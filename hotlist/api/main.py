"""
Hotlist FastAPI Application
===========================

Thin HTTP command surface over HotlistService.

Endpoints:
    POST /api/discover            - Run ingestion now
    POST /api/reconcile           - Process one queue batch now
    POST /api/sweeps/deadlines    - Archive expired entities now
    POST /api/sweeps/queue        - Queue active entities without a message
    GET  /api/entities/{key}      - Entity with history and promotion
    GET  /api/entities?state=     - List entities by state
    GET  /api/health              - Health check

Usage:
    uvicorn hotlist.api.main:app --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request

from ..data.config import get_settings
from ..db import StorageError
from ..orchestrator.logging_config import setup_from_config
from ..orchestrator.service import HotlistService, build_service
from .models import (
    DiscoverRequest,
    EntityDetail,
    EntityListResponse,
    EntityStateEnum,
    HealthResponse,
    IngestionSummary,
    ReconcileRequest,
    ReconciliationSummary,
    SweepSummary,
)

logger = logging.getLogger(__name__)


def _service(request: Request) -> HotlistService:
    return request.app.state.service


def create_app(service: Optional[HotlistService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built service (tests). When None, one is built from
            settings at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_service = service is None
        if owns_service:
            settings = get_settings()
            setup_from_config(settings.logging)
            app.state.service = build_service(settings)
        else:
            app.state.service = service
        logger.info("Hotlist API started")

        yield

        if owns_service:
            app.state.service.close()
        logger.info("Hotlist API stopped")

    app = FastAPI(
        title="Hotlist API",
        description="Entity discovery, monitoring and promotion",
        version="1.0.0",
        lifespan=lifespan,
    )

    # ========================================================================
    # TRIGGERS
    # ========================================================================

    @app.post("/api/discover", response_model=IngestionSummary)
    def discover(request: Request, body: Optional[DiscoverRequest] = None):
        """Run one ingestion cycle."""
        try:
            result = _service(request).run_ingestion(filters=body.filters if body else None)
        except StorageError as e:
            logger.error(f"Ingestion failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return result.get_summary()

    @app.post("/api/reconcile", response_model=ReconciliationSummary)
    def reconcile(request: Request, body: Optional[ReconcileRequest] = None):
        """Process one batch from the work queue."""
        try:
            result = _service(request).run_reconciliation(batch_size=body.batch_size if body else None)
        except StorageError as e:
            logger.error(f"Reconciliation failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return result.get_summary()

    @app.post("/api/sweeps/deadlines", response_model=SweepSummary)
    def sweep_deadlines(request: Request):
        try:
            return _service(request).run_deadline_sweep().get_summary()
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.post("/api/sweeps/queue", response_model=SweepSummary)
    def sweep_queue(request: Request):
        try:
            return _service(request).run_queue_sweep().get_summary()
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))

    # ========================================================================
    # QUERIES
    # ========================================================================

    @app.get("/api/entities/{identity_key}", response_model=EntityDetail)
    def get_entity(request: Request, identity_key: str):
        try:
            entity = _service(request).get_entity(identity_key)
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        if entity is None:
            raise HTTPException(status_code=404, detail=f"Entity {identity_key} not found")
        return entity

    @app.get("/api/entities", response_model=EntityListResponse)
    def list_entities(
        request: Request,
        state: Optional[EntityStateEnum] = Query(None, description="Filter by lifecycle state"),
        limit: int = Query(100, ge=1, le=1000, description="Maximum entities"),
    ):
        try:
            entities = _service(request).list_entities(state=state.value if state else None, limit=limit)
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"count": len(entities), "entities": entities}

    @app.get("/api/health", response_model=HealthResponse)
    def health_check(request: Request):
        """Store connectivity, entity counts and queue depths."""
        return _service(request).health_check()

    return app


app = create_app()
