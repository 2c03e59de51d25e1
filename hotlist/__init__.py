"""
Hotlist
=======

Discovers newly listed assets from a market-data feed, monitors each one
for a fixed window, and promotes those that meet the growth, buy
pressure, net flow and liquidity criteria.

Packages:
    - data: configuration, API client, validation, ingestion
    - scoring: promotion rules
    - queue: durable work queue with retry and dead-lettering
    - lifecycle: entity state machine and stores
    - orchestrator: reconciliation, sweeps, worker, scheduler, CLI
    - notifications: promotion alerts
    - api: HTTP surface
"""

__version__ = "1.0.0"
