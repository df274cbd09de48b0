# ==============================================================================
# Consumer Commands
# ==============================================================================
"""
Runs the Kafka tracking consumer in the foreground.

Run one process per partition in the same consumer group to scale out;
use TRACKING_LOCK_BACKEND=valkey when more than one process is running.
"""

from sitestats.cli.shared import fail
from sitestats.utils.config import get_settings


def consumer_run() -> None:
    """Consume tracking events from Kafka until interrupted.

    Examples:
        sitestats consumer run
        TRACKING_LOCK_BACKEND=valkey sitestats consumer run
    """
    from sitestats.consumers.tracking_consumer import TrackingConsumerRunner
    from sitestats.factory import build_tracker, get_store, get_visitor_locks

    settings = get_settings()
    try:
        store = get_store(settings)
    except Exception as e:
        fail(f"Analytics store unreachable: {e}")

    locks = get_visitor_locks(settings)
    runner = TrackingConsumerRunner(build_tracker(store, locks, settings), store, locks, settings)
    runner.run()
