# ==============================================================================
# Shared Batch Processor with Ingest Instrumentation
# ==============================================================================
"""
Shared batch handling for every tracking transport (Kafka consumer, JSONL
replay).

Events are applied one at a time through Tracker.track(); a batch is only a
unit of instrumentation and offset commits. Each event ends in one of:

- accepted: applied (new_sessions counts the ones that opened a session)
- invalid:  InvalidEventError, logged at WARNING and dropped
- failed:   StoreUnavailableError, logged by the tracker and dropped

A failed event never stops the batch: ingestion has no retry queue, so the
remaining events are still worth recording.

BatchProcessor provides:
- Per-batch INFO log with counts and timing
- Periodic throughput summary (configurable interval, default 30s)
- Final summary on shutdown
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sitestats.core.errors import InvalidEventError, StoreUnavailableError
from sitestats.core.tracker import Tracker

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome counts for one batch."""

    accepted: int = 0
    new_sessions: int = 0
    invalid: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.invalid + self.failed

    def add(self, other: "BatchResult") -> None:
        self.accepted += other.accepted
        self.new_sessions += other.new_sessions
        self.invalid += other.invalid
        self.failed += other.failed


class BatchProcessor:
    """
    Applies batches of raw tracking payloads and tracks ingest stats.

    This is a composition object: each transport instantiates one and
    delegates batches to it. Offsets, reconnects and shutdown remain the
    transport's concern.
    """

    def __init__(
        self,
        tracker: Tracker,
        summary_interval_seconds: float = 30.0,
        on_summary: Callable[[], None] | None = None,
        log: logging.Logger | None = None,
    ):
        """
        Initialize the batch processor.

        Args:
            tracker: Tracker that applies each event
            summary_interval_seconds: How often to log throughput summaries
            on_summary: Optional callback invoked during periodic summaries
                        (e.g., for consumer lag logging from the caller)
            log: Optional logger override. Defaults to this module's logger.
        """
        self._tracker = tracker
        self._summary_interval = summary_interval_seconds
        self._on_summary = on_summary
        self._log = log or logger

        self.totals = BatchResult()
        self._total_batches = 0
        self._cum_ms = 0.0
        self._start_time = time.monotonic()

        self._period = BatchResult()
        self._period_batches = 0
        self._period_ms = 0.0
        self._last_summary_time = time.monotonic()

    def process_batch(self, payloads: Iterable) -> BatchResult:
        """
        Apply every payload in the batch.

        Args:
            payloads: Decoded JSON payloads; anything that is not a dict
                      counts as invalid

        Returns:
            Outcome counts for this batch
        """
        result = BatchResult()
        t0 = time.monotonic()

        for payload in payloads:
            try:
                tracked = self._tracker.track(payload)
            except InvalidEventError as e:
                result.invalid += 1
                self._log.warning("Dropping invalid event: %s", e)
            except StoreUnavailableError:
                result.failed += 1
            else:
                result.accepted += 1
                if tracked.new_session:
                    result.new_sessions += 1

        if result.total == 0:
            return result

        batch_ms = (time.monotonic() - t0) * 1000
        self._log.info(
            "Batch: %s events (%d new sessions, %d invalid, %d failed) | total=%.*fms",
            f"{result.total:,}",
            result.new_sessions,
            result.invalid,
            result.failed,
            _precision(batch_ms),
            batch_ms,
        )

        self.totals.add(result)
        self._total_batches += 1
        self._cum_ms += batch_ms

        self._period.add(result)
        self._period_batches += 1
        self._period_ms += batch_ms

        now = time.monotonic()
        if now - self._last_summary_time >= self._summary_interval:
            self._log_summary(now)

        return result

    def record_invalid(self, count: int = 1) -> None:
        """Count payloads the transport could not decode at all."""
        self.totals.invalid += count
        self._period.invalid += count

    def _log_summary(self, now: float) -> None:
        """Log periodic throughput summary and reset period counters."""
        elapsed = now - self._last_summary_time
        if elapsed <= 0 or self._period_batches == 0:
            return

        events_per_sec = self._period.total / elapsed
        avg_batch_ms = self._period_ms / self._period_batches
        self._log.info(
            "Throughput (%.1fs): %s events/sec | batches=%d | avg_batch=%.*fms | "
            "invalid=%d failed=%d",
            elapsed,
            f"{events_per_sec:,.0f}",
            self._period_batches,
            _precision(avg_batch_ms),
            avg_batch_ms,
            self._period.invalid,
            self._period.failed,
        )

        if self._on_summary:
            try:
                self._on_summary()
            except Exception as e:
                self._log.debug("on_summary callback error: %s", e)

        self._period = BatchResult()
        self._period_batches = 0
        self._period_ms = 0.0
        self._last_summary_time = now

    def log_final_summary(self) -> None:
        """
        Log final summary on shutdown.

        Should be called from each transport's finally block.
        """
        total_elapsed = time.monotonic() - self._start_time
        if self._total_batches == 0:
            self._log.info("Final: no batches processed (%.1fs elapsed)", total_elapsed)
            return

        overall_eps = self.totals.total / total_elapsed if total_elapsed > 0 else 0
        avg_batch_ms = self._cum_ms / self._total_batches
        self._log.info(
            "Final: %s events (%s accepted, %s new sessions, %d invalid, %d failed) "
            "in %d batches over %.1fs (%s events/sec) | avg_batch=%.*fms",
            f"{self.totals.total:,}",
            f"{self.totals.accepted:,}",
            f"{self.totals.new_sessions:,}",
            self.totals.invalid,
            self.totals.failed,
            self._total_batches,
            total_elapsed,
            f"{overall_eps:,.0f}",
            _precision(avg_batch_ms),
            avg_batch_ms,
        )


def _precision(ms: float) -> int:
    """Return decimal precision for millisecond values.

    >= 10ms  → 0 decimals (e.g., 85ms)
    >= 1ms   → 1 decimal  (e.g., 3.2ms)
    < 1ms    → 2 decimals (e.g., 0.45ms)
    """
    if ms >= 10:
        return 0
    elif ms >= 1:
        return 1
    else:
        return 2
