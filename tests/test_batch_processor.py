# ==============================================================================
# Tests for BatchProcessor (batch_processor.py)
# ==============================================================================
"""
Tests for the BatchProcessor class: per-event outcome counting, periodic
summaries and the final summary.
"""

import logging
from unittest.mock import MagicMock

import pytest

from sitestats.consumers.batch_processor import BatchProcessor, BatchResult, _precision
from sitestats.core.errors import InvalidEventError, StoreUnavailableError
from sitestats.core.models import TrackResult

# ==============================================================================
# Helpers
# ==============================================================================


def _make_processor(summary_interval: float = 30.0, on_summary=None, outcomes=None) -> BatchProcessor:
    """Create a BatchProcessor around a mock tracker.

    `outcomes` is the tracker.track side_effect: TrackResults or exceptions.
    """
    tracker = MagicMock()
    if outcomes is not None:
        tracker.track.side_effect = outcomes
    else:
        tracker.track.return_value = TrackResult(visitor_id="v1", session_id=1)
    return BatchProcessor(tracker, summary_interval_seconds=summary_interval, on_summary=on_summary)


def _ok(new_session: bool = False) -> TrackResult:
    return TrackResult(visitor_id="v1", session_id=1, new_session=new_session)


# ==============================================================================
# _precision helper
# ==============================================================================


class TestPrecision:
    """Tests for the _precision helper function."""

    def test_large_values_zero_decimals(self):
        assert _precision(10.0) == 0
        assert _precision(85.3) == 0

    def test_medium_values_one_decimal(self):
        assert _precision(1.0) == 1
        assert _precision(3.2) == 1

    def test_small_values_two_decimals(self):
        assert _precision(0.5) == 2
        assert _precision(0.01) == 2


# ==============================================================================
# BatchResult
# ==============================================================================


class TestBatchResult:
    """Tests for the BatchResult counters."""

    def test_total_excludes_new_sessions(self):
        result = BatchResult(accepted=3, new_sessions=2, invalid=1, failed=1)
        assert result.total == 5

    def test_add(self):
        result = BatchResult(accepted=1)
        result.add(BatchResult(accepted=2, new_sessions=1, invalid=3, failed=4))
        assert result == BatchResult(accepted=3, new_sessions=1, invalid=3, failed=4)


# ==============================================================================
# process_batch
# ==============================================================================


class TestProcessBatch:
    """Tests for per-event outcome handling."""

    def test_counts_each_outcome(self):
        processor = _make_processor(
            outcomes=[
                _ok(new_session=True),
                _ok(),
                InvalidEventError("no visitorId"),
                StoreUnavailableError("down"),
            ]
        )
        result = processor.process_batch([{}, {}, {}, {}])
        assert result == BatchResult(accepted=2, new_sessions=1, invalid=1, failed=1)
        assert processor.totals == result

    def test_failure_does_not_stop_batch(self):
        processor = _make_processor(outcomes=[StoreUnavailableError("down"), _ok()])
        result = processor.process_batch([{}, {}])
        assert result.failed == 1
        assert result.accepted == 1

    def test_empty_batch_not_counted(self):
        processor = _make_processor()
        assert processor.process_batch([]).total == 0
        assert processor._total_batches == 0

    def test_invalid_logged_as_warning(self, caplog):
        processor = _make_processor(outcomes=[InvalidEventError("Unknown eventType: 'click'")])
        with caplog.at_level(logging.WARNING):
            processor.process_batch([{}])
        assert "Unknown eventType" in caplog.text

    def test_totals_accumulate_across_batches(self):
        processor = _make_processor()
        processor.process_batch([{}, {}])
        processor.process_batch([{}])
        assert processor.totals.accepted == 3
        assert processor._total_batches == 2

    def test_record_invalid(self):
        processor = _make_processor()
        processor.record_invalid(2)
        assert processor.totals.invalid == 2


# ==============================================================================
# Summaries
# ==============================================================================


class TestSummaries:
    """Tests for periodic and final summary logging."""

    def test_periodic_summary_calls_callback(self):
        callback = MagicMock()
        processor = _make_processor(summary_interval=0.0, on_summary=callback)
        processor._last_summary_time -= 1.0
        processor.process_batch([{}])
        callback.assert_called_once()
        assert processor._period_batches == 0

    def test_callback_error_swallowed(self):
        callback = MagicMock(side_effect=RuntimeError("lag read failed"))
        processor = _make_processor(summary_interval=0.0, on_summary=callback)
        processor._last_summary_time -= 1.0
        processor.process_batch([{}])
        callback.assert_called_once()

    def test_no_summary_before_interval(self):
        callback = MagicMock()
        processor = _make_processor(summary_interval=3600, on_summary=callback)
        processor.process_batch([{}])
        callback.assert_not_called()

    @pytest.mark.parametrize("batches", [0, 2])
    def test_final_summary(self, caplog, batches):
        processor = _make_processor()
        for _ in range(batches):
            processor.process_batch([{}])
        with caplog.at_level(logging.INFO):
            processor.log_final_summary()
        expected = "no batches processed" if batches == 0 else "in 2 batches"
        assert expected in caplog.text
