"""
Fan-out of execution events to log layers.

Every log layer receives every event. Loggers are delivered to concurrently
and independently: one logger raising or hanging never keeps the others
from receiving the event, and never fails the execution cycle. Failures
are reported through the diagnostics channel (the `errors` list, the
optional `on_error` callback and a warning on the module logger).

In "async" mode delivery to non-blocking loggers runs in background tasks
so the cycle does not wait on slow sinks; flush() waits for them. Each
logger still receives events in the order they were dispatched: its
background deliveries form a chain, one event after the other.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Iterable
from typing import Literal

from yugent.config.logging import get_logger
from yugent.errors import LogError
from yugent.layers import LogLayer
from yugent.models import LogEvent

logger = get_logger(__name__)


class LoggerDispatch:
    """
    Delivers LogEvents to a fixed set of log layers.

    Args:
        loggers: Log layers to deliver to
        mode: "sync" awaits every logger in dispatch(); "async" awaits only
              loggers marked blocking and schedules the rest in the background
        timeout: Seconds a single logger may take per event
        on_error: Called with a LogError whenever a logger fails
        max_errors: How many recent LogErrors to keep in `errors`
    """

    def __init__(
        self,
        loggers: Iterable[LogLayer] = (),
        *,
        mode: Literal["sync", "async"] = "async",
        timeout: float = 10.0,
        on_error: Callable[[LogError], None] | None = None,
        max_errors: int = 100,
    ):
        if mode not in ("sync", "async"):
            raise ValueError(f"Unknown logger mode: {mode!r}")
        self._loggers = list(loggers)
        self._mode = mode
        self._timeout = timeout
        self._on_error = on_error
        self._pending: set[asyncio.Task] = set()
        self._tails: dict[str, asyncio.Task] = {}
        self.errors: deque[LogError] = deque(maxlen=max_errors)

    @property
    def loggers(self) -> list[LogLayer]:
        return list(self._loggers)

    @property
    def pending(self) -> int:
        """Number of background deliveries not finished yet."""
        return len(self._pending)

    async def dispatch(self, event: LogEvent) -> None:
        """Deliver `event` to every logger. Never raises for logger failures."""
        if not self._loggers:
            return

        if self._mode == "sync":
            waited = self._loggers
        else:
            waited = [layer for layer in self._loggers if layer.blocking]
            for layer in self._loggers:
                if not layer.blocking:
                    self._schedule(layer, event)

        if waited:
            await asyncio.gather(*(self._deliver(layer, event) for layer in waited))

    async def flush(self) -> None:
        """Wait until all background deliveries have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def aclose(self) -> None:
        await self.flush()

    def _schedule(self, layer: LogLayer, event: LogEvent) -> None:
        # Each logger's background deliveries are chained so it sees events in order
        previous = self._tails.get(layer.id)
        task = asyncio.create_task(self._deliver_after(previous, layer, event))
        self._tails[layer.id] = task
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if self._tails.get(layer.id) is finished:
                del self._tails[layer.id]

        task.add_done_callback(_done)

    async def _deliver_after(self, previous: asyncio.Task | None, layer: LogLayer, event: LogEvent) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        await self._deliver(layer, event)

    async def _deliver(self, layer: LogLayer, event: LogEvent) -> None:
        try:
            await asyncio.wait_for(layer.execute(event), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            self._report(
                LogError(
                    f"Logger '{layer.id}' timed out after {self._timeout}s",
                    logger_id=layer.id,
                    cause=e,
                )
            )
        except LogError as e:
            if e.logger_id is None:
                e.logger_id = layer.id
            self._report(e)
        except Exception as e:
            self._report(
                LogError(f"Logger '{layer.id}' failed: {e}", logger_id=layer.id, cause=e)
            )

    def _report(self, error: LogError) -> None:
        logger.warning(f"Log layer failure ({error.logger_id}): {error.message}")
        self.errors.append(error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("on_error callback raised")
