# ==============================================================================
# Tracking Transports
# ==============================================================================
"""
Transports that feed tracking events into the Tracker.

- tracking_consumer.py: Kafka (confluent-kafka) consumer runner
- replay.py: JSON Lines file replay
- batch_processor.py: shared batch handling and ingest stats
"""

from sitestats.consumers.batch_processor import BatchProcessor, BatchResult

__all__ = [
    "BatchProcessor",
    "BatchResult",
]
