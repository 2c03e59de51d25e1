"""
Hotlist Orchestrator CLI
========================

Command-line interface for the Hotlist pipelines.

Commands:
    discover          - Run one ingestion cycle
    reconcile         - Process one batch from the work queue
    sweep-deadlines   - Archive entities past their monitoring deadline
    sweep-queue       - Queue every active entity that has no pending message
    sweep-visibility  - Release messages left checked out by crashed workers
    worker            - Run the serial reconciliation worker
    schedule          - Run every job on its interval (blocking)
    entity            - Show one entity with history and promotion
    list              - List entities by state
    dead-letters      - Show dead-lettered messages
    validate          - Dry-run stats validation for one entity
    init-db           - Apply hotlist/schema.sql
    health            - Check stores and client health

Usage:
    python -m hotlist.orchestrator.cli discover
    python -m hotlist.orchestrator.cli reconcile --batch-size 10 --json
    python -m hotlist.orchestrator.cli list --state promoted
    python -m hotlist.orchestrator.cli validate <KEY> --file stats.json
    python -m hotlist.orchestrator.cli worker --max-iterations 100
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from ..data.config import get_settings
from ..data.market_data_client import MarketDataAPIError, MarketDataClient
from ..data.validation import validate_stats
from ..db import Database, StorageError
from .logging_config import setup_from_config, setup_logging
from .scheduler import HotlistScheduler
from .service import HotlistService, build_service
from .worker import ReconciliationWorker


def _build(args) -> HotlistService:
    return build_service(get_settings(), in_memory=args.in_memory)


def _print_summary(title: str, summary: Dict[str, Any], fields: List[str], as_json: bool):
    if as_json:
        print(json.dumps(summary, indent=2, default=str))
        return
    print("=" * 60)
    print(title)
    print("=" * 60)
    for name in fields:
        print(f"{name.replace('_', ' ').capitalize():20} {summary.get(name)}")
    errors = summary.get("errors") or []
    if errors:
        print()
        print(f"Errors ({len(errors)}):")
        for error in errors[:10]:
            print(f"  - {error['identity_key']}: {error['error_type']}: {error['message']}")


def cmd_discover(args):
    """Run one ingestion cycle."""
    service = _build(args)
    try:
        result = service.run_ingestion(filters=args.filters)
    except StorageError as e:
        print(f"ERROR: Ingestion aborted: {e}")
        return 1
    finally:
        service.close()

    summary = result.get_summary()
    _print_summary(
        "INGESTION RUN", summary,
        ["run_id", "discovered", "already_tracked", "rejected", "admitted", "queued", "enqueue_failures"],
        args.json,
    )
    if not args.json and args.verbose:
        for rejection in summary["rejections"]:
            print(f"  rejected {rejection['identity_key']}: {rejection['reason']}")
    search_failed = any(error["identity_key"] == "search" for error in result.errors)
    return 1 if search_failed else 0


def cmd_reconcile(args):
    """Process one queue batch."""
    service = _build(args)
    try:
        result = service.run_reconciliation(batch_size=args.batch_size)
    except StorageError as e:
        print(f"ERROR: Reconciliation aborted: {e}")
        return 1
    finally:
        service.close()

    _print_summary(
        "RECONCILIATION RUN", result.get_summary(),
        ["run_id", "total", "success", "failure", "promoted", "skipped", "retried", "dead_lettered"],
        args.json,
    )
    return 0


def _run_sweep(args, title: str, method: str):
    service = _build(args)
    try:
        result = getattr(service, method)()
    except StorageError as e:
        print(f"ERROR: Sweep failed: {e}")
        return 1
    finally:
        service.close()

    summary = result.get_summary()
    _print_summary(title, summary, ["sweep", "examined", "affected"], args.json)
    if not args.json and summary["keys"]:
        for key in summary["keys"]:
            print(f"  - {key}")
    return 0


def cmd_sweep_deadlines(args):
    """Archive expired entities."""
    return _run_sweep(args, "DEADLINE SWEEP", "run_deadline_sweep")


def cmd_sweep_queue(args):
    """Queue active entities with no pending message."""
    return _run_sweep(args, "QUEUE COVERAGE SWEEP", "run_queue_sweep")


def cmd_sweep_visibility(args):
    """Release stale checkouts."""
    return _run_sweep(args, "VISIBILITY SWEEP", "run_visibility_sweep")


def cmd_worker(args):
    """Run the serial worker until interrupted or max iterations."""
    settings = get_settings()
    service = build_service(settings, in_memory=args.in_memory)
    worker = ReconciliationWorker(
        service.reconciliation,
        message_delay=settings.queue.message_delay,
        idle_delay=settings.queue.idle_delay,
    )
    worker.install_signal_handlers()
    try:
        stats = worker.run(max_iterations=args.max_iterations)
    finally:
        service.close()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
    else:
        print(f"Worker finished: {stats.processed} processed, {stats.promoted} promoted, "
              f"{stats.failed} failed in {stats.iterations} iterations")
    return 0


def cmd_schedule(args):
    """Run the scheduler in blocking mode."""
    settings = get_settings()
    service = build_service(settings, in_memory=args.in_memory)
    scheduler = HotlistScheduler(service, settings.scheduler)
    try:
        scheduler.start(blocking=True)
    finally:
        service.close()
    return 0


def cmd_entity(args):
    """Show one entity."""
    service = _build(args)
    try:
        entity = service.get_entity(args.key)
    finally:
        service.close()

    if entity is None:
        print(f"Entity {args.key} not found")
        return 1

    if args.json:
        print(json.dumps(entity, indent=2, default=str))
        return 0

    print("=" * 60)
    print(f"ENTITY: {entity['identity_key']}")
    print("=" * 60)
    print(f"Name:               {entity['name'] or '-'} ({entity['symbol'] or '-'})")
    print(f"State:              {entity['state']}")
    print(f"Start valuation:    ${entity['start_valuation']:,.0f}")
    print(f"Current valuation:  ${entity['current_valuation']:,.0f}")
    print(f"Liquidity:          ${entity['current_liquidity']:,.0f}")
    print(f"Cumulative buys:    ${entity['cumulative_buy_volume']:,.0f}")
    print(f"Cumulative net:     ${entity['cumulative_net_volume']:,.0f}")
    print(f"Deadline:           {entity['monitoring_deadline']}")
    print(f"History records:    {len(entity.get('history', []))}")
    if entity["promotion"]:
        print(f"Promoted at:        {entity['promotion']['promoted_at']}")
    return 0


def cmd_list(args):
    """List entities by state."""
    service = _build(args)
    try:
        entities = service.list_entities(state=args.state, limit=args.limit)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        service.close()

    if args.json:
        print(json.dumps(entities, indent=2, default=str))
        return 0

    if not entities:
        print("No entities found")
        return 0

    for i, entity in enumerate(entities, 1):
        label = entity["symbol"] or entity["name"] or ""
        print(f"{i:3}. {entity['identity_key']} {label}")
        print(f"     {entity['state']} | ${entity['current_valuation']:,.0f} "
              f"(start ${entity['start_valuation']:,.0f}) | deadline {entity['monitoring_deadline']}")
    print(f"\nTotal: {len(entities)} entities")
    return 0


def cmd_dead_letters(args):
    """Show dead-lettered messages."""
    service = _build(args)
    try:
        messages = service.list_dead_letters(limit=args.limit)
    finally:
        service.close()

    if args.json:
        print(json.dumps(messages, indent=2, default=str))
        return 0

    if not messages:
        print("Dead-letter queue is empty")
        return 0

    for message in messages:
        payload = message["payload"]
        print(f"- {payload.get('identity_key')} after {payload.get('attempt_count')} attempts: "
              f"{payload.get('last_error')} (failed {payload.get('failed_at')})")
    print(f"\nTotal: {len(messages)} dead letters")
    return 0


def _load_stats_file(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path) as f:
        return json.load(f)


def cmd_validate(args):
    """Validate a stats payload without writing anything."""
    if args.file:
        try:
            raw = _load_stats_file(args.file)
        except (OSError, ValueError) as e:
            print(f"ERROR: Cannot read stats from {args.file}: {e}")
            return 1
    else:
        client = MarketDataClient(get_settings().market_data)
        try:
            raw = client.get_stats(args.key)
        except MarketDataAPIError as e:
            print(f"ERROR: Stats fetch failed: {e}")
            return 1
        finally:
            client.close()

    report = validate_stats(raw, args.key)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.is_valid else 1

    status_icon = "✓" if report.is_valid else "✗"
    print(f"{status_icon} {args.key}: {'valid' if report.is_valid else 'INVALID'}")
    print(f"  Valuation: ${report.valuation:,.2f}")
    print(f"  Liquidity: ${report.liquidity:,.2f}")
    print(f"  Volume ({report.window or 'none'}): buys ${report.buy_volume:,.2f}, "
          f"sells ${report.sell_volume:,.2f}, net ${report.net_volume:,.2f}")
    for error in report.errors:
        print(f"  error: {error}")
    for warning in report.warnings:
        print(f"  warning: {warning}")
    return 0 if report.is_valid else 1


def cmd_init_db(args):
    """Apply the schema."""
    database = Database(get_settings().database)
    try:
        database.apply_schema()
    except (StorageError, OSError) as e:
        print(f"ERROR: Schema setup failed: {e}")
        return 1
    finally:
        database.close()
    print("Schema applied")
    return 0


def cmd_health(args):
    """Check stores and client health."""
    service = _build(args)
    try:
        health = service.health_check()
    finally:
        service.close()

    healthy = health["status"] == "healthy"
    if args.json:
        print(json.dumps(health, indent=2, default=str))
        return 0 if healthy else 1

    print("=" * 60)
    print("HOTLIST HEALTH CHECK")
    print("=" * 60)
    print(f"Overall Status: {'✓ HEALTHY' if healthy else '✗ UNHEALTHY'}")
    if "database" in health:
        print(f"Database: {health['database']['status']}")
    if "entities" in health:
        print("Entities: " + ", ".join(f"{k}={v}" for k, v in health["entities"].items()))
    if "queue" in health:
        queue = health["queue"]
        print(f"Queue {queue['name']}: depth={queue['depth']}, dead letters={queue['dead_letters']}")
    if "error" in health:
        print(f"Error: {health['error']}")
    return 0 if healthy else 1


def _add_json(parser):
    parser.add_argument("--json", action="store_true", help="Output as JSON")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotlist",
        description="Hotlist pipeline orchestrator CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Use process-local stores instead of PostgreSQL (dry run)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    discover = subparsers.add_parser("discover", help="Run one ingestion cycle")
    discover.add_argument("--filters", help="Search query string override")
    _add_json(discover)

    reconcile = subparsers.add_parser("reconcile", help="Process one batch from the work queue")
    reconcile.add_argument("--batch-size", type=int, help="Messages to dequeue (default: QUEUE_BATCH_SIZE)")
    _add_json(reconcile)

    for name, help_text in (
        ("sweep-deadlines", "Archive entities past their monitoring deadline"),
        ("sweep-queue", "Queue every active entity without a pending message"),
        ("sweep-visibility", "Release messages left checked out by crashed workers"),
    ):
        _add_json(subparsers.add_parser(name, help=help_text))

    worker = subparsers.add_parser("worker", help="Run the serial reconciliation worker")
    worker.add_argument("--max-iterations", type=int, help="Stop after this many iterations")
    _add_json(worker)

    subparsers.add_parser("schedule", help="Run every job on its interval (blocking)")

    entity = subparsers.add_parser("entity", help="Show one entity")
    entity.add_argument("key", help="Identity key")
    _add_json(entity)

    list_parser = subparsers.add_parser("list", help="List entities")
    list_parser.add_argument("--state", choices=["active", "promoted", "archived"], help="Filter by state")
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum entities (default: 50)")
    _add_json(list_parser)

    dead_letters = subparsers.add_parser("dead-letters", help="Show dead-lettered messages")
    dead_letters.add_argument("--limit", type=int, default=50, help="Maximum messages (default: 50)")
    _add_json(dead_letters)

    validate = subparsers.add_parser("validate", help="Dry-run stats validation")
    validate.add_argument("key", help="Identity key")
    validate.add_argument("--file", help="Stats JSON file ('-' for stdin) instead of calling the API")
    _add_json(validate)

    subparsers.add_parser("init-db", help="Apply hotlist/schema.sql")

    health = subparsers.add_parser("health", help="Check stores and client health")
    _add_json(health)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command in ("worker", "schedule"):
        setup_from_config(get_settings().logging, verbose=args.verbose)
    else:
        setup_logging(level="DEBUG" if args.verbose else "INFO")

    commands = {
        "discover": cmd_discover,
        "reconcile": cmd_reconcile,
        "sweep-deadlines": cmd_sweep_deadlines,
        "sweep-queue": cmd_sweep_queue,
        "sweep-visibility": cmd_sweep_visibility,
        "worker": cmd_worker,
        "schedule": cmd_schedule,
        "entity": cmd_entity,
        "list": cmd_list,
        "dead-letters": cmd_dead_letters,
        "validate": cmd_validate,
        "init-db": cmd_init_db,
        "health": cmd_health,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
