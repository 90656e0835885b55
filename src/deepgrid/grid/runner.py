"""Scheduling harnesses around ReconciliationDriver.

GridLoop: free-running loop, one cycle then sleep, until stopped.
GridService: supervised start/stop/status with a periodic timer and a live
cycle feed. One service per (account, instrument); instances are
independent of each other.

Both call the same ``ReconciliationDriver.tick()`` and rely on its
in-flight guard.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Union

from ..gateway.base import ExchangeGateway
from .engine import ReconciliationDriver
from .types import CycleSummary, GridConfig, Phase, ServiceStatus, Strategy

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 1000
DEFAULT_INTERVAL_MS = 5000


def _clamp_interval(interval_ms: int) -> float:
    """Interval in seconds, never below the floor."""
    return max(MIN_INTERVAL_MS, int(interval_ms)) / 1000.0


class GridLoop:
    """Free-running harness: tick, sleep ``interval_ms``, repeat.

    Usage:
        loop = GridLoop(driver, interval_ms=5000)
        loop.run()            # blocks until loop.stop() or Ctrl+C
    """

    def __init__(
        self,
        driver: ReconciliationDriver,
        interval_ms: int = DEFAULT_INTERVAL_MS,
    ) -> None:
        self.driver = driver
        self.interval = _clamp_interval(interval_ms)
        self._stop = asyncio.Event()
        self.cycles = 0

    def stop(self) -> None:
        self._stop.set()

    async def run_async(self, max_cycles: Optional[int] = None) -> int:
        """Run cycles until stopped (or ``max_cycles`` reached).

        Returns the number of cycles run. A ``stop()`` issued before the
        loop starts is honoured; the loop can be run again afterwards.
        """
        while not self._stop.is_set():
            try:
                await self.driver.tick()
            except Exception:
                # a bad cycle must never end the loop
                logger.exception("%s: tick raised", self.driver.instrument)
            self.cycles += 1
            if max_cycles is not None and self.cycles >= max_cycles:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        self._stop.clear()
        self.driver.reset()
        return self.cycles

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Blocking wrapper around run_async()."""
        return asyncio.run(self.run_async(max_cycles=max_cycles))


class GridService:
    """Supervised harness with an explicit control surface.

    Args:
        gateway: ExchangeGateway shared by every run of this service.
        account: Account / balance manager key.
        instrument: Pool / market key.

    Events (register with ``on``): 'cycle' (CycleSummary), 'start'
    (GridConfig), 'stop' (no args).
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        account: str,
        instrument: str,
    ) -> None:
        self.gateway = gateway
        self.account = account
        self.instrument = instrument

        self._driver: Optional[ReconciliationDriver] = None
        self._timer: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._interval = _clamp_interval(DEFAULT_INTERVAL_MS)
        self._running = False
        self._lock = asyncio.Lock()
        self._last_error: Optional[str] = None
        self._last_summary: Optional[CycleSummary] = None

        self._callbacks: Dict[str, List[Callable]] = {
            "cycle": [],
            "start": [],
            "stop": [],
        }
        self._subscribers: Set[asyncio.Queue] = set()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable) -> "GridService":
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        return self

    def _emit(self, event: str, *args) -> None:
        for cb in self._callbacks.get(event, []):
            try:
                cb(*args)
            except Exception:
                logger.exception("%s: %r callback raised", self.instrument, event)

    async def subscribe(self) -> AsyncIterator[CycleSummary]:
        """Yield one CycleSummary per completed cycle, until cancelled."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    def _on_cycle(self, summary: CycleSummary) -> None:
        self._last_summary = summary
        self._last_error = summary.error
        for queue in self._subscribers:
            queue.put_nowait(summary)
        self._emit("cycle", summary)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(
        self,
        config: GridConfig,
        strategy: Union[Strategy, str] = Strategy.ANCHORED,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        dry_run: bool = False,
    ) -> None:
        """Start the periodic timer and run the first cycle immediately.

        Idempotent for the same config and strategy. A different config
        stops the current run first. Raises ConfigurationError /
        GeometryError (and GatewayReadError if book params cannot be read)
        without starting anything. Concurrent start/stop calls are
        serialized.
        """
        strategy = Strategy(strategy)
        async with self._lock:
            if (
                self._running
                and self._driver is not None
                and self._driver.config == config
                and self._driver.strategy == strategy
            ):
                return
            if self._running:
                await self._halt()
            await self._launch(config, strategy, interval_ms, dry_run)

    async def _launch(
        self,
        config: GridConfig,
        strategy: Strategy,
        interval_ms: int,
        dry_run: bool,
    ) -> None:
        driver = ReconciliationDriver(
            self.gateway,
            self.account,
            self.instrument,
            config,
            strategy=strategy,
            dry_run=dry_run,
        )
        await driver.preflight()
        driver.on("cycle", self._on_cycle)

        self._driver = driver
        self._interval = _clamp_interval(interval_ms)
        self._last_error = None
        self._running = True
        self._timer = asyncio.create_task(self._timer_loop())

        logger.info(
            "%s: grid started strategy=%s range=[%s, %s] levels=%d",
            self.instrument, strategy.value,
            config.min_price, config.max_price, config.level_count,
        )
        self._emit("start", config)

    async def stop(self) -> None:
        """Halt scheduling. A cycle already in flight finishes first."""
        async with self._lock:
            await self._halt()

    async def _halt(self) -> None:
        was_running = self._running
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        if self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.shield(self._cycle_task)
        self._cycle_task = None

        if self._driver is not None:
            self._driver.reset()
        if was_running:
            logger.info("%s: grid stopped", self.instrument)
            self._emit("stop")

    def status(self) -> ServiceStatus:
        driver = self._driver
        return ServiceStatus(
            running=self._running,
            last_error=self._last_error,
            last_cycle_summary=self._last_summary,
            phase=driver.phase.value if driver and self._running else Phase.STOPPED.value,
            strategy=driver.strategy.value if driver else None,
            config=driver.config if driver else None,
        )

    async def tick(self) -> Optional[CycleSummary]:
        """Run exactly one cycle now, subject to the in-flight guard.

        Returns None when the service is not running or a cycle is already
        in flight. The cycle is tracked like a timer-fired one, so ``stop()``
        waits for it.
        """
        if self._driver is None or not self._running:
            return None
        if self._cycle_task is not None and not self._cycle_task.done():
            return None
        self._cycle_task = asyncio.create_task(self._driver.tick())
        return await asyncio.shield(self._cycle_task)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def _timer_loop(self) -> None:
        while True:
            self._fire()
            await asyncio.sleep(self._interval)

    def _fire(self) -> None:
        """One timer tick. Skipped, not queued, while a cycle is running."""
        if self._driver is None or not self._running:
            return
        if self._driver.in_flight or (
            self._cycle_task is not None and not self._cycle_task.done()
        ):
            logger.debug("%s: previous cycle in flight, tick skipped", self.instrument)
            return
        self._cycle_task = asyncio.create_task(self._driver.tick())
