"""Graceful shutdown utilities for the long-running tiering worker."""

import logging
import signal
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class ShutdownState:
    shutdown_requested: bool = False
    shutdown_start_time: Optional[float] = None
    cycle_in_progress: bool = False
    current_cycle: Optional[str] = None
    cycle_start_time: Optional[float] = None


class GracefulShutdown:
    """Turns SIGINT/SIGTERM into a cooperative stop flag.

    Cycles poll ``should_stop()`` between records, so a signal truncates the
    running cycle instead of interrupting a record mid-transition.
    """

    SIGNAL_NAMES = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._stop = threading.Event()
        self.shutdown_start_time: Optional[float] = None
        self.cycle_in_progress: bool = False
        self.current_cycle: Optional[str] = None
        self.cycle_start_time: Optional[float] = None
        self.logger = logger or logging.getLogger(__name__)

    def install_signal_handlers(self) -> None:
        for signum in self.SIGNAL_NAMES:
            signal.signal(signum, lambda num, frame: self.request_shutdown(num))

    def request_shutdown(self, signal_num: int) -> None:
        timestamp = datetime.now(timezone.utc)
        self.shutdown_start_time = time.time()
        self._stop.set()

        signal_name = self.SIGNAL_NAMES.get(signal_num, f"Signal {signal_num}")
        self.logger.info(
            f"Shutdown requested: signal={signal_name} ({signal_num}), "
            f"timestamp={timestamp.isoformat()}"
        )

        if self.cycle_in_progress and self.current_cycle is not None:
            elapsed = time.time() - self.cycle_start_time if self.cycle_start_time else 0
            self.logger.info(
                f"Cycle {self.current_cycle} in progress during shutdown, "
                f"elapsed={elapsed:.1f}s; stopping after the current record"
            )

    @property
    def shutdown_requested(self) -> bool:
        return self._stop.is_set()

    def should_stop(self) -> bool:
        return self._stop.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if shutdown was requested meanwhile."""
        return self._stop.wait(seconds)

    def mark_cycle_start(self, cycle: str) -> None:
        self.cycle_in_progress = True
        self.current_cycle = cycle
        self.cycle_start_time = time.time()
        self.logger.debug(f"Cycle {cycle} started")

    def mark_cycle_end(self, cycle: str) -> None:
        if self.current_cycle == cycle:
            elapsed = time.time() - self.cycle_start_time if self.cycle_start_time else 0
            self.logger.debug(f"Cycle {cycle} completed in {elapsed:.2f}s")

        self.cycle_in_progress = False
        self.current_cycle = None
        self.cycle_start_time = None

    def get_state(self) -> ShutdownState:
        return ShutdownState(
            shutdown_requested=self.shutdown_requested,
            shutdown_start_time=self.shutdown_start_time,
            cycle_in_progress=self.cycle_in_progress,
            current_cycle=self.current_cycle,
            cycle_start_time=self.cycle_start_time,
        )
