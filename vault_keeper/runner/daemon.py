from __future__ import annotations

import asyncio
import signal
import time
from pathlib import Path

from loguru import logger

from vault_keeper import __version__
from vault_keeper.core.keeper.controller import RebalanceController, TickReport


class KeeperDaemon:
    """Runs controller ticks on a fixed interval until told to stop.

    Stopping sets the controller's shutdown event, which the sequencer checks
    before each step, so an in-flight plan finishes its current step and goes
    no further.
    """

    def __init__(
        self,
        controller: RebalanceController,
        *,
        tick_seconds: float | None = None,
        log_file: str | Path | None = None,
        log_level: str = "INFO",
        max_ticks: int | None = None,
    ) -> None:
        self._controller = controller
        self._tick_seconds = float(
            tick_seconds if tick_seconds is not None else controller.config.tick_seconds
        )
        if self._tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._log_file = Path(log_file).expanduser() if log_file else None
        self._log_level = str(log_level).upper()
        self._max_ticks = max_ticks

        self._shutdown = controller.shutdown
        self._log_sink_id: int | None = None
        self.ticks = 0
        self.last_report: TickReport | None = None

    @property
    def shutdown(self) -> asyncio.Event:
        return self._shutdown

    async def start(self) -> None:
        if self._log_file is not None:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            self._log_sink_id = logger.add(
                str(self._log_file),
                level=self._log_level,
                rotation="10 MB",
                retention="7 days",
            )

        logger.info(
            f"Keeper daemon v{__version__} watching vault "
            f"{self._controller.config.vault_id} every {self._tick_seconds}s"
        )
        self._install_signal_handlers()
        try:
            await self._loop()
        finally:
            self._shutdown.set()
            self._remove_signal_handlers()
            await self._controller.gateways.close()
            if self._log_sink_id is not None:
                logger.remove(self._log_sink_id)
                self._log_sink_id = None
            logger.info(f"Keeper daemon stopped after {self.ticks} tick(s)")

    def stop(self) -> None:
        self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info(f"Received signal {sig.name}; shutting down")
            self.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _handle, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not on the main thread, or a platform without signal support.
                continue

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                continue

    async def _loop(self) -> None:
        while not self._shutdown.is_set():
            tick_started = time.monotonic()
            try:
                await self.tick()
            except Exception as exc:  # noqa: BLE001
                logger.exception(f"Keeper tick error: {exc}")

            if self._max_ticks is not None and self.ticks >= self._max_ticks:
                break

            elapsed = time.monotonic() - tick_started
            sleep_s = max(0.0, self._tick_seconds - elapsed)
            try:
                await asyncio.wait_for(self._shutdown.wait(), sleep_s)
            except TimeoutError:
                pass

    async def tick(self) -> TickReport:
        self.ticks += 1
        self.last_report = await self._controller.tick()
        return self.last_report
