"""
Hotlist Structured Logging Configuration
========================================

Root logger setup shared by the CLI, the scheduler and the API.

Two output formats:
- JSON lines (production / log aggregation), one object per record
- Human-readable columns (development)

Pipelines attach their structured context with `extra=`:

    logger.info("Admitted ...", extra={"run_id": run_id, "identity_key": key})

and JSONFormatter lifts the known keys (STRUCTURED_FIELDS) into the
output object. Per-logger levels come from LOG_MODULE_LEVELS, e.g.
"hotlist.queue=DEBUG,apscheduler=INFO".

Usage:
    from hotlist.orchestrator.logging_config import setup_from_config

    setup_from_config(settings.logging, verbose=args.verbose)
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Dict, Optional

from ..data.config import LoggingConfig

STRUCTURED_FIELDS = ("run_id", "stage", "identity_key", "message_id", "attempt", "queue")

# Libraries that log every request or job tick at INFO
NOISY_LOGGERS = ("urllib3", "apscheduler", "httpx")

TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)-36s | %(message)s"


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Output format:
        {"ts": "2026-...", "level": "INFO", "logger": "hotlist.data...", "msg": "...", "identity_key": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in STRUCTURED_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def parse_module_levels(spec: Optional[str]) -> Dict[str, str]:
    """
    Parse "logger=LEVEL,logger=LEVEL" into a dict.

    Raises:
        ValueError: On an entry without '=' or with an unknown level
    """
    levels: Dict[str, str] = {}
    for item in (spec or "").split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, level = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid module level entry: {item!r}")
        level = level.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level for {name.strip()}: {level!r}")
        levels[name.strip()] = level
    return levels


def build_formatter(json_output: bool) -> logging.Formatter:
    if json_output:
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def build_file_handler(path: str, max_bytes: int, backup_count: int) -> logging.Handler:
    """Size-rotated file handler; creates the parent directory."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    module_levels: Optional[Dict[str, str]] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
):
    """
    Replace the root handlers with a stderr handler and an optional rotating file.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Emit JSON lines instead of text
        log_file: Also write to this file, rotated at max_bytes
        module_levels: Per-logger overrides, applied after the noisy-library defaults
    """
    root = logging.getLogger()
    root.setLevel(_level(level))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = build_formatter(json_output)
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(build_file_handler(log_file, max_bytes, backup_count))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, module_level in (module_levels or {}).items():
        logging.getLogger(name).setLevel(_level(module_level))

    root.debug(f"Logging configured: level={level} json={json_output} file={log_file or 'none'}")


def setup_from_config(config: LoggingConfig, verbose: bool = False):
    """setup_logging driven by LoggingConfig; verbose forces DEBUG."""
    setup_logging(
        level="DEBUG" if verbose else config.level,
        json_output=config.json_logs,
        log_file=config.log_file,
        module_levels=parse_module_levels(config.module_levels),
    )
