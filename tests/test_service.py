"""
Tests for the service facade, wired to the in-memory stores.
"""

from unittest.mock import MagicMock, patch

import pytest

from hotlist.data.config import (
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    SchedulerConfig,
    Settings,
)
from hotlist.data.data_models import CandidateRecord
from hotlist.db import StorageError
from hotlist.lifecycle.entity_store import EntityStore, InMemoryEntityStore
from hotlist.lifecycle.postgres_store import PostgresEntityStore
from hotlist.orchestrator.service import HotlistService, build_service
from hotlist.queue.messages import ReconcilePayload
from hotlist.queue.work_queue import InMemoryWorkQueue

from factories import (
    insert_entity,
    make_entity,
    make_lifecycle_config,
    make_market_data_config,
    make_queue_config,
    make_stats,
)


def _settings():
    return Settings(
        market_data=make_market_data_config(),
        database=DatabaseConfig(password="pw"),
        queue=make_queue_config(),
        lifecycle=make_lifecycle_config(),
        notifications=NotificationConfig(bot_token="", channel_id="", enabled=False),
        scheduler=SchedulerConfig(),
        logging=LoggingConfig(level="INFO", log_file=None, json_logs=False),
    )


@pytest.fixture
def service(client, entity_store, work_queue, queue_config, lifecycle_config, clock):
    return HotlistService(client, entity_store, work_queue, queue_config, lifecycle_config,
                          clock=clock, sleep=MagicMock())


class TestTriggers:
    """End-to-end runs through the facade."""

    def test_discover_then_reconcile(self, service, client):
        client.search.return_value = [
            CandidateRecord(identity_key="NEW", valuation=500000.0, liquidity=50000.0,
                            buy_volume=0.0, sell_volume=0.0),
        ]
        client.get_stats.return_value = make_stats()

        ingestion = service.run_ingestion()
        reconciliation = service.run_reconciliation()

        assert ingestion.queued == 1
        assert reconciliation.promoted == 1
        assert service.get_entity("NEW")["state"] == "promoted"

    def test_filters_passed_through(self, service, client):
        client.search.return_value = []

        service.run_ingestion(filters="?minLiquidity=5")

        client.search.assert_called_once_with("?minLiquidity=5")

    def test_sweeps(self, service, entity_store, work_queue):
        insert_entity(entity_store, make_entity("A"))

        assert service.run_queue_sweep().affected == 1
        assert service.run_deadline_sweep().affected == 0
        assert service.run_visibility_sweep().affected == 0
        assert work_queue.count("test_queue") == 1


class TestQueries:
    """Tests for read-side operations."""

    def test_get_entity_includes_history(self, service, entity_store):
        insert_entity(entity_store, make_entity("A"))

        data = service.get_entity("A")

        assert data["identity_key"] == "A"
        assert data["promotion"] is None
        assert len(data["history"]) == 1
        assert "history" not in service.get_entity("A", include_history=False)

    def test_get_missing_entity(self, service):
        assert service.get_entity("NOPE") is None

    def test_list_entities_by_state(self, service, entity_store):
        insert_entity(entity_store, make_entity("A"))

        assert [e["identity_key"] for e in service.list_entities("ACTIVE")] == ["A"]
        assert service.list_entities("archived") == []

    def test_list_entities_unknown_state(self, service):
        with pytest.raises(ValueError):
            service.list_entities("deleted")

    def test_list_dead_letters(self, service, work_queue):
        work_queue.dead_letter("test_queue", ReconcilePayload.new("A").to_json_dict())

        letters = service.list_dead_letters()

        assert letters[0]["queue_name"] == "test_queue_dlq"
        assert letters[0]["payload"]["identity_key"] == "A"


class TestHealth:
    """Tests for the non-raising health check."""

    def test_healthy(self, service, entity_store):
        insert_entity(entity_store, make_entity("A"))

        health = service.health_check()

        assert health["status"] == "healthy"
        assert health["entities"]["active"] == 1
        assert health["queue"] == {"name": "test_queue", "depth": 0, "dead_letters": 0}
        assert health["market_data"]["status"] == "healthy"

    def test_storage_failure_reported(self, client, work_queue, queue_config, lifecycle_config):
        store = MagicMock(spec=EntityStore)
        store.count_by_state.side_effect = StorageError("connection refused")
        database = MagicMock()
        database.check_health.return_value = {"status": "unhealthy", "error": "connection refused"}
        service = HotlistService(client, store, work_queue, queue_config, lifecycle_config, database=database)

        health = service.health_check()

        assert health["status"] == "unhealthy"
        assert health["database"]["status"] == "unhealthy"
        assert health["error"] == "connection refused"

    def test_close(self, service, client):
        service.close()

        client.close.assert_called_once()


class TestBuildService:
    """Tests for wiring from settings."""

    def test_in_memory(self):
        service = build_service(_settings(), in_memory=True)

        assert isinstance(service.entity_store, InMemoryEntityStore)
        assert isinstance(service.work_queue, InMemoryWorkQueue)
        assert service.database is None

    @patch("hotlist.orchestrator.service.Database")
    def test_postgres(self, mock_database):
        service = build_service(_settings())

        assert isinstance(service.entity_store, PostgresEntityStore)
        assert service.database is mock_database.return_value
        mock_database.assert_called_once()
