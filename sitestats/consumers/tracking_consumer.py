# ==============================================================================
# Confluent Kafka Tracking Consumer
# ==============================================================================
"""
Consumes tracking events from Kafka and applies them through the Tracker.

Uses:
- confluent-kafka for Kafka consumption with manual offset commits
- BatchProcessor for per-event outcome counting and throughput logs
- The configured AnalyticsStore and VisitorLocks (see sitestats.factory)

Offsets are committed after every batch. Events that failed (invalid or
store unavailable) are still committed: ingestion is best-effort and a
poisoned message must not stall the partition.

Run multiple instances in the same consumer group with
TRACKING_LOCK_BACKEND=valkey so one visitor's events are serialized across
processes.
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException

from sitestats.base.runner import BaseRunner
from sitestats.base.locks import VisitorLocks
from sitestats.base.store import AnalyticsStore
from sitestats.consumers.batch_processor import BatchProcessor
from sitestats.core.tracker import Tracker
from sitestats.utils.config import KafkaSettings, Settings, get_settings
from sitestats.utils.paths import get_project_root

logger = logging.getLogger(__name__)


def build_consumer_config(
    kafka_settings: KafkaSettings, group_id: str, auto_offset_reset: str
) -> dict:
    """
    Build confluent-kafka consumer configuration.

    Args:
        kafka_settings: KafkaSettings instance
        group_id: Consumer group ID
        auto_offset_reset: Offset reset policy ('earliest', 'latest')

    Returns:
        Dict with confluent-kafka consumer configuration
    """
    config = {
        "bootstrap.servers": kafka_settings.bootstrap_servers,
        "group.id": group_id,
        "auto.offset.reset": auto_offset_reset,
        "enable.auto.commit": False,  # Manual commit after each batch
        # Session management
        "session.timeout.ms": 45000,
        "heartbeat.interval.ms": 15000,
        "max.poll.interval.ms": 300000,
    }

    if kafka_settings.security_protocol == "SSL":
        project_root = get_project_root()
        config["security.protocol"] = "SSL"

        if kafka_settings.ssl_ca_file:
            ca_path = project_root / kafka_settings.ssl_ca_file
            if ca_path.exists():
                config["ssl.ca.location"] = str(ca_path)

        if kafka_settings.ssl_cert_file:
            cert_path = project_root / kafka_settings.ssl_cert_file
            if cert_path.exists():
                config["ssl.certificate.location"] = str(cert_path)

        if kafka_settings.ssl_key_file:
            key_path = project_root / kafka_settings.ssl_key_file
            if key_path.exists():
                config["ssl.key.location"] = str(key_path)
    else:
        config["security.protocol"] = "PLAINTEXT"

    return config


def decode_messages(messages: list) -> tuple[list[Any], int]:
    """
    Decode Kafka message values as JSON.

    Returns:
        Tuple of (decoded payloads, count of undecodable messages).
        Messages carrying a Kafka error are skipped and not counted.
    """
    payloads = []
    undecodable = 0
    for msg in messages:
        error = msg.error()
        if error:
            if error.code() != KafkaError._PARTITION_EOF:
                logger.error("Consumer error: %s", error)
            continue
        try:
            payloads.append(json.loads(msg.value().decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError, AttributeError) as e:
            logger.warning("Failed to decode message: %s", e)
            undecodable += 1
    return payloads, undecodable


class TrackingConsumerRunner(BaseRunner):
    """Long-running Kafka -> Tracker loop."""

    def __init__(
        self,
        tracker: Tracker,
        store: AnalyticsStore,
        locks: VisitorLocks,
        settings: Optional[Settings] = None,
        consumer_factory: Optional[Callable[[dict], Any]] = None,
    ):
        """
        Initialize the runner.

        Args:
            tracker: Tracker wired to `store` and `locks`
            store: Analytics store, closed on shutdown
            locks: Visitor locks, closed on shutdown
            settings: Application settings. If None, uses get_settings().
            consumer_factory: Builds the Kafka consumer from its config
                              (defaults to confluent_kafka.Consumer)
        """
        self._settings = settings or get_settings()
        super().__init__(self._settings.log_level)
        self._tracker = tracker
        self._store = store
        self._locks = locks
        self._consumer_factory = consumer_factory or Consumer
        self._consumer = None
        self._assigned: set[tuple[str, int]] = set()
        self.processor = BatchProcessor(tracker, on_summary=self._log_consumer_lag, log=logger)

    def _on_assign(self, consumer, partitions) -> None:
        self._assigned = {(p.topic, p.partition) for p in partitions}
        logger.info(
            "Assigned %d partitions: %s",
            len(partitions),
            [f"{p.topic}-{p.partition}" for p in partitions],
        )

    def _on_revoke(self, consumer, partitions) -> None:
        self._assigned -= {(p.topic, p.partition) for p in partitions}
        logger.info("Revoked %d partitions", len(partitions))

    def _log_consumer_lag(self) -> None:
        """Log consumer lag for all assigned partitions."""
        if not self._assigned or self._consumer is None:
            return
        from confluent_kafka import TopicPartition

        parts = []
        total_lag = 0
        for topic_name, part_idx in sorted(self._assigned):
            tp = TopicPartition(topic_name, part_idx)
            try:
                _, high = self._consumer.get_watermark_offsets(tp, timeout=5.0)
                pos = self._consumer.position([tp])
            except KafkaException as e:
                logger.debug("Could not read lag for %s-%d: %s", topic_name, part_idx, e)
                parts.append(f"p{part_idx}=?")
                continue
            if pos and pos[0].offset >= 0:
                lag = max(0, high - pos[0].offset)
                parts.append(f"p{part_idx}={lag:,}")
                total_lag += lag
            else:
                parts.append(f"p{part_idx}=?")
        logger.info("Consumer lag: %s | total=%s", " ".join(parts), f"{total_lag:,}")

    def _run(self) -> None:
        consumer_settings = self._settings.consumer
        topic = self._settings.kafka.events_topic

        config = build_consumer_config(
            self._settings.kafka,
            consumer_settings.group_id,
            consumer_settings.auto_offset_reset,
        )
        self._consumer = self._consumer_factory(config)
        self._consumer.subscribe([topic], on_assign=self._on_assign, on_revoke=self._on_revoke)

        logger.info("Starting tracking consumer (confluent-kafka)...")
        logger.info("Consumer group: %s", consumer_settings.group_id)
        logger.info("Topic: %s", topic)

        while not self.shutdown_requested:
            t_poll = time.monotonic()
            messages = self._consumer.consume(
                num_messages=consumer_settings.batch_size,
                timeout=consumer_settings.poll_timeout_ms / 1000.0,
            )
            if not messages:
                continue
            logger.debug(
                "Poll: %.0fms (%d messages)", (time.monotonic() - t_poll) * 1000, len(messages)
            )

            payloads, undecodable = decode_messages(messages)
            if undecodable:
                self.processor.record_invalid(undecodable)
            if payloads:
                self.processor.process_batch(payloads)

            self._consumer.commit(asynchronous=False)

    def _cleanup(self) -> None:
        self.processor.log_final_summary()
        if self._consumer is not None:
            self._consumer.close()
        self._locks.close()
        self._store.close()
