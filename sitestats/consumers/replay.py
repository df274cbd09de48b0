# ==============================================================================
# JSON Lines Replay
# ==============================================================================
"""
Replays tracking events from a JSON Lines file (one payload per line).

Used to backfill from collector logs and to exercise the pipeline locally
without Kafka. Lines that are blank are skipped; lines that are not valid
JSON count as invalid and are dropped like any other bad event.
"""

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from sitestats.consumers.batch_processor import BatchProcessor, BatchResult

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


def read_payloads(stream: IO[str], on_invalid=None) -> Iterator[dict]:
    """
    Yield decoded payloads from a JSON Lines stream.

    Args:
        stream: Text stream of JSON Lines
        on_invalid: Optional callback(line_number, error) for undecodable lines
    """
    for line_number, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Line %d: invalid JSON: %s", line_number, e)
            if on_invalid:
                on_invalid(line_number, e)


def replay_stream(
    stream: IO[str],
    processor: BatchProcessor,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> BatchResult:
    """
    Apply every event in a JSON Lines stream, in file order.

    Returns:
        Totals across the whole stream (including undecodable lines)
    """
    result = BatchResult()
    undecodable = 0

    def _count_invalid(line_number, error):
        nonlocal undecodable
        undecodable += 1

    batch: list = []
    for payload in read_payloads(stream, on_invalid=_count_invalid):
        batch.append(payload)
        if len(batch) >= batch_size:
            result.add(processor.process_batch(batch))
            batch = []
    if batch:
        result.add(processor.process_batch(batch))

    if undecodable:
        processor.record_invalid(undecodable)
        result.invalid += undecodable
    return result


def replay_file(
    path: Path,
    processor: BatchProcessor,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> BatchResult:
    """Replay a JSON Lines file. See replay_stream."""
    logger.info("Replaying tracking events from %s", path)
    with open(path, encoding="utf-8") as stream:
        result = replay_stream(stream, processor, batch_size)
    processor.log_final_summary()
    return result
