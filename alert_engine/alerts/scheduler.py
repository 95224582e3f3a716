"""
Periodic, single-flight evaluation scheduler.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

from alert_engine.utils.logger import get_logger


class EvaluationScheduler:
    """
    Drives periodic evaluation on the running event loop.

    A tick starts a new evaluation only if the previous one has finished;
    otherwise the tick is skipped. Stopping cancels the ticker but never an
    evaluation already in flight.
    """

    def __init__(self, evaluate: Callable[[Any], Awaitable[Any]],
                 get_context: Callable[[], Any], interval_ms: float,
                 on_skip: Optional[Callable[[], None]] = None):
        """
        Initialize scheduler.

        Args:
            evaluate: Coroutine function taking an EvaluationContext
            get_context: Returns the context for a tick (may be a coroutine function)
            interval_ms: Tick interval in milliseconds
            on_skip: Called whenever a tick is skipped
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval_ms}")

        self.logger = get_logger(self.__class__.__name__)
        self.evaluate = evaluate
        self.get_context = get_context
        self.interval = interval_ms / 1000.0
        self.on_skip = on_skip

        self.skipped_ticks = 0
        self.completed_runs = 0
        self._ticker: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        """
        Start ticking on the running event loop.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        if self.running:
            return

        loop = asyncio.get_running_loop()
        self._ticker = loop.create_task(self._tick_loop(), name="alert-evaluator")
        self.logger.info(f"Started auto evaluation (interval: {self.interval:.3f}s)")

    def stop(self) -> None:
        """Stop scheduling future evaluations"""
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
            self.logger.info("Stopped auto evaluation")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

    def tick(self) -> Optional[asyncio.Task]:
        """
        Start one evaluation unless the previous one is still running.

        Returns:
            The started task, or None if the tick was skipped
        """
        if self.in_flight:
            self.skipped_ticks += 1
            self.logger.warning("Previous evaluation still running, skipping tick")
            if self.on_skip:
                self.on_skip()
            return None

        self._in_flight = asyncio.get_running_loop().create_task(self._run_once())
        return self._in_flight

    async def _run_once(self) -> None:
        try:
            context = self.get_context()
            if inspect.isawaitable(context):
                context = await context
            await self.evaluate(context)
            self.completed_runs += 1
        except Exception as e:
            self.logger.error(f"Error in alert evaluator loop: {e}", exc_info=True)
