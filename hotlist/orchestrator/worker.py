"""
Serial reconciliation worker.

Processes one message per iteration with a fixed delay between messages,
so outbound calls stay under the market-data rate limit without any
coordination between workers. Sleeps idle_delay when the queue is empty.

The loop checks a stop Event between iterations and can be bounded with
max_iterations, so it never runs as an unbounded while-true.
"""

import logging
import signal
from dataclasses import dataclass, field
from threading import Event
from typing import Any, Dict, Optional

from ..data.data_models import utc_now
from ..db import StorageError
from .reconciliation import StatsReconciliationPipeline

logger = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    """Counters for one worker session."""
    iterations: int = 0
    processed: int = 0
    promoted: int = 0
    failed: int = 0
    idle_polls: int = 0
    storage_errors: int = 0
    started_at: Any = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterations": self.iterations,
            "processed": self.processed,
            "promoted": self.promoted,
            "failed": self.failed,
            "idle_polls": self.idle_polls,
            "storage_errors": self.storage_errors,
            "started_at": self.started_at.isoformat(),
        }


class ReconciliationWorker:
    """Bounded, cancellable polling loop around the reconciliation pipeline."""

    def __init__(
        self,
        pipeline: StatsReconciliationPipeline,
        message_delay: float = 1.1,
        idle_delay: float = 5.0,
        stop_event: Optional[Event] = None,
    ):
        self.pipeline = pipeline
        self.message_delay = message_delay
        self.idle_delay = idle_delay
        self.stop_event = stop_event or Event()
        self.stats = WorkerStats()

    def stop(self):
        self.stop_event.set()

    def run_once(self) -> int:
        """
        One iteration: process at most one message.

        Returns the number of messages processed (0 or 1).
        """
        result = self.pipeline.run(batch_size=1)
        self.stats.processed += result.total
        self.stats.promoted += result.promoted
        self.stats.failed += result.failed
        return result.total

    def run(self, max_iterations: Optional[int] = None) -> WorkerStats:
        """
        Loop until stopped or max_iterations is reached.

        Storage errors are logged and followed by an idle wait; the
        messages involved reappear after their visibility timeout.
        """
        logger.info(
            f"Worker started on {self.pipeline.queue_name}: "
            f"message_delay={self.message_delay}s, idle_delay={self.idle_delay}s"
        )

        while not self.stop_event.is_set():
            if max_iterations is not None and self.stats.iterations >= max_iterations:
                break
            self.stats.iterations += 1

            try:
                handled = self.run_once()
            except StorageError as e:
                self.stats.storage_errors += 1
                logger.error(f"Worker iteration failed: {e}")
                self.stop_event.wait(self.idle_delay)
                continue

            if handled:
                self.stop_event.wait(self.message_delay)
            else:
                self.stats.idle_polls += 1
                self.stop_event.wait(self.idle_delay)

        logger.info(f"Worker stopped: {self.stats.to_dict()}")
        return self.stats

    def install_signal_handlers(self):
        """Stop cleanly on SIGINT/SIGTERM."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping worker...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)
