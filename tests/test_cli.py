"""
Tests for the orchestrator CLI.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from hotlist.data.data_models import IngestionResult, ReconciliationResult, SweepResult
from hotlist.db import StorageError
from hotlist.orchestrator import cli
from hotlist.orchestrator.service import HotlistService

from factories import T0, make_entity, make_stats


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch.object(cli, "setup_logging"), patch.object(cli, "setup_from_config"):
        yield


@pytest.fixture
def service():
    mock = MagicMock(spec=HotlistService)
    with patch.object(cli, "get_settings"), patch.object(cli, "build_service", return_value=mock):
        yield mock


class TestCli:
    """Tests for command dispatch and exit codes."""

    def test_no_command(self):
        assert cli.main([]) == 1

    def test_discover_json(self, service, capsys):
        result = IngestionResult(run_id="r1", started_at=T0, completed_at=T0, admitted=2, queued=2)
        service.run_ingestion.return_value = result

        assert cli.main(["discover", "--filters", "?x=1", "--json"]) == 0

        service.run_ingestion.assert_called_once_with(filters="?x=1")
        service.close.assert_called_once()
        assert json.loads(capsys.readouterr().out)["admitted"] == 2

    def test_discover_search_failure_exit_code(self, service):
        result = IngestionResult(run_id="r1", started_at=T0)
        result.add_error("search", "MarketDataAPIError", "HTTP 502")
        service.run_ingestion.return_value = result

        assert cli.main(["discover"]) == 1

    def test_reconcile_storage_error(self, service, capsys):
        service.run_reconciliation.side_effect = StorageError("connection refused")

        assert cli.main(["reconcile", "--batch-size", "5"]) == 1

        service.run_reconciliation.assert_called_once_with(batch_size=5)
        service.close.assert_called_once()
        assert "Reconciliation aborted" in capsys.readouterr().out

    def test_reconcile_table(self, service, capsys):
        service.run_reconciliation.return_value = ReconciliationResult(
            run_id="r2", started_at=T0, total=3, succeeded=2, failed=1, promoted=1,
        )

        assert cli.main(["reconcile"]) == 0

        out = capsys.readouterr().out
        assert "RECONCILIATION RUN" in out
        assert "Promoted" in out

    def test_in_memory_flag(self, service):
        service.run_deadline_sweep.return_value = SweepResult(sweep="deadline", started_at=T0)

        with patch.object(cli, "build_service", return_value=service) as mock_build:
            cli.main(["--in-memory", "sweep-deadlines"])

        assert mock_build.call_args[1]["in_memory"] is True

    def test_sweep_lists_keys(self, service, capsys):
        service.run_queue_sweep.return_value = SweepResult(
            sweep="queue", started_at=T0, examined=2, affected=1, keys=["A"],
        )

        assert cli.main(["sweep-queue"]) == 0
        assert "  - A" in capsys.readouterr().out

    def test_entity_not_found(self, service):
        service.get_entity.return_value = None

        assert cli.main(["entity", "NOPE"]) == 1

    def test_entity(self, service, capsys):
        data = make_entity("A").to_dict()
        data.update(promotion=None, history=[{}])
        service.get_entity.return_value = data

        assert cli.main(["entity", "A"]) == 0
        assert "ENTITY: A" in capsys.readouterr().out

    def test_list_empty(self, service, capsys):
        service.list_entities.return_value = []

        assert cli.main(["list", "--state", "promoted"]) == 0

        service.list_entities.assert_called_once_with(state="promoted", limit=50)
        assert "No entities found" in capsys.readouterr().out

    def test_dead_letters(self, service, capsys):
        service.list_dead_letters.return_value = [{
            "payload": {"identity_key": "A", "attempt_count": 5, "last_error": "Rate limit exceeded",
                        "failed_at": T0.isoformat()},
        }]

        assert cli.main(["dead-letters"]) == 0
        assert "A after 5 attempts: Rate limit exceeded" in capsys.readouterr().out

    def test_init_db_missing_schema(self, capsys):
        with patch.object(cli, "get_settings"), patch.object(cli, "Database") as mock_db:
            mock_db.return_value.apply_schema.side_effect = FileNotFoundError("schema.sql")

            assert cli.main(["init-db"]) == 1

        mock_db.return_value.close.assert_called_once()
        assert "Schema setup failed" in capsys.readouterr().out

    def test_health_unhealthy(self, service):
        service.health_check.return_value = {"status": "unhealthy", "error": "connection refused"}

        assert cli.main(["health"]) == 1


class TestValidateCommand:
    """Tests for the offline validation dry run."""

    def test_valid_file(self, tmp_path, capsys):
        path = tmp_path / "stats.json"
        path.write_text(json.dumps(make_stats()))

        with patch.object(cli, "get_settings") as mock_settings:
            assert cli.main(["validate", "KEY1", "--file", str(path)]) == 0
            mock_settings.assert_not_called()

        assert "✓ KEY1: valid" in capsys.readouterr().out

    def test_invalid_file_json_output(self, tmp_path, capsys):
        raw = make_stats()
        del raw["marketCapUsd"]
        path = tmp_path / "stats.json"
        path.write_text(json.dumps(raw))

        assert cli.main(["validate", "KEY1", "--file", str(path), "--json"]) == 1
        assert json.loads(capsys.readouterr().out)["is_valid"] is False

    def test_unreadable_file(self, tmp_path):
        assert cli.main(["validate", "KEY1", "--file", str(tmp_path / "missing.json")]) == 1
