# ==============================================================================
# Base Runner Abstract Class
# ==============================================================================
"""
Base runner for long-running loops (tracking consumer, session reaper).

Provides signal handling, logging setup, interruptible waits and shutdown
coordination. Concrete runners implement _run().
"""

import logging
import signal
import threading
from abc import ABC, abstractmethod
from typing import final

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class BaseRunner(ABC):
    """Base runner with common lifecycle management."""

    def __init__(self, log_level: str = "INFO"):
        self._log_level = log_level
        self._shutdown = threading.Event()

    @final
    def run(self) -> None:
        """Main entry point with signal handling."""
        self._setup_signal_handlers()
        self._setup_logging()

        try:
            self._run()
        except KeyboardInterrupt:
            logger.info("Runner interrupted by keyboard")
        finally:
            self._cleanup()
            logger.info("%s shutdown complete.", type(self).__name__)

    @abstractmethod
    def _run(self) -> None:
        """Loop until shutdown_requested becomes True."""
        ...

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_signal(self, signum, frame) -> None:
        logger.info("Received signal %d, requesting shutdown...", signum)
        self.request_shutdown()

    def _setup_logging(self) -> None:
        logging.basicConfig(level=self._log_level.upper(), format=LOG_FORMAT)

    def _cleanup(self) -> None:
        """Cleanup resources. Optional override."""
        pass

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the current iteration."""
        self._shutdown.set()

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on shutdown.

        Returns:
            True if shutdown was requested during the wait
        """
        return self._shutdown.wait(seconds)

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown.is_set()
