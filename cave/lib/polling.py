"""Fixed-interval sampling loop shared by the agent's services."""
import asyncio
import contextlib
import signal
from abc import ABC, abstractmethod

from cave.lib.config import get_settings
from cave.logging import get_logger


class PollingService[T](ABC):
    """Runs poll → audit → report once per interval until asked to stop.

    A cycle that raises is logged and the next one still runs on schedule.
    cleanup() always runs, including when initialize() fails part way, so
    implementations must tolerate releasing resources they never acquired.
    """

    def __init__(self, name: str, interval_sec: float | None = None) -> None:
        self.name = name
        self.interval_sec = interval_sec or get_settings().telemetry.interval_sec
        self._stop = asyncio.Event()
        self._logger = get_logger(f"polling.{name}")

    @abstractmethod
    async def initialize(self) -> None:
        """Acquire hardware and connect transports."""

    @abstractmethod
    async def cleanup(self) -> None:
        """Release whatever initialize() acquired."""

    @abstractmethod
    async def poll(self) -> T | None:
        """Take a sample, or return None to skip this cycle."""

    @abstractmethod
    async def audit(self, reading: T) -> bool:
        """Return False to discard a sample instead of reporting it."""

    @abstractmethod
    async def report(self, reading: T) -> None:
        """Deliver an audited sample."""

    def on_cycle_error(self, error: Exception) -> None:
        self._logger.error("%s cycle failed: %s", self.name, error)

    def request_shutdown(self) -> None:
        """Stop after the current cycle, cutting any pending sleep short."""
        self._stop.set()

    async def _cycle(self) -> None:
        reading = await self.poll()
        if reading is not None and await self.audit(reading):
            await self.report(reading)

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await self.initialize()
            self._logger.info(
                "%s started, sampling every %.1fs", self.name, self.interval_sec
            )
            while not self._stop.is_set():
                started = loop.time()
                try:
                    await self._cycle()
                except Exception as e:
                    self.on_cycle_error(e)

                # Intervals are measured from the start of each cycle
                remaining = self.interval_sec - (loop.time() - started)
                if remaining > 0:
                    with contextlib.suppress(TimeoutError):
                        await asyncio.wait_for(self._stop.wait(), remaining)
        finally:
            self._logger.info("Releasing resources...")
            await self.cleanup()
            self._logger.info("%s stopped", self.name)

    def _on_signal(self, signum: int) -> None:
        self._logger.info(
            "Received %s, finishing current cycle", signal.Signals(signum).name
        )
        self.request_shutdown()

    async def _serve(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, self._on_signal, signum)
        await self._run_loop()

    def run(self) -> None:
        """Run until SIGTERM or SIGINT, then clean up."""
        asyncio.run(self._serve())
