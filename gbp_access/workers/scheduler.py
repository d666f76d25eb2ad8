"""
Timer-driven background jobs.

A PeriodicJob runs run_once() after an initial delay and then every
interval_seconds until stop() is called. Runs never raise out of the
loop; failures are logged and the next run is scheduled as usual.
stop() prevents further runs but does not cancel one in flight.
"""

import asyncio
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """Base class for interval jobs with explicit start/stop."""

    name = "periodic_job"

    def __init__(self, interval_seconds: float, initial_delay_seconds: float = 0.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> Any:
        raise NotImplementedError

    @property
    def is_running(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._stop_event is not None
            and not self._stop_event.is_set()
        )

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            logger.warning("Job already running", extra={"job": self.name})
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(
            "Job started",
            extra={
                "job": self.name,
                "interval_seconds": self.interval_seconds,
                "initial_delay_seconds": self.initial_delay_seconds,
            },
        )

    def stop(self) -> None:
        """Stop scheduling further runs."""
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Job stop requested", extra={"job": self.name})

    async def wait_stopped(self) -> None:
        """Wait for the loop (and any in-flight run) to finish."""
        if self._task is not None:
            await self._task

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_safely(self) -> Any:
        try:
            return await self.run_once()
        except Exception:
            logger.exception("Job run failed", extra={"job": self.name})
            return None

    async def _loop(self) -> None:
        if self.initial_delay_seconds > 0 and await self._wait_for_stop(self.initial_delay_seconds):
            return

        while not self._stop_event.is_set():
            await self.run_safely()
            if await self._wait_for_stop(self.interval_seconds):
                break

        logger.info("Job stopped", extra={"job": self.name})
