"""
Local log layer that writes events to a Python logger.
"""

import logging

from yugent.config.logging import EVENTS_LOGGER, get_logger
from yugent.layers import LogLayer
from yugent.models import LogEvent, LogEventKind

_LEVELS = {
    LogEventKind.TOOL_ERROR: logging.WARNING,
    LogEventKind.FAILED: logging.ERROR,
}


class ConsoleLogger(LogLayer):
    """
    Writes one line per event to the "yugent.events" logger.

    Combined with setup_logging() this gives coloured console output and the
    optional log file.
    """

    def __init__(
        self,
        id: str = "console",
        *,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
        blocking: bool = False,
    ):
        super().__init__(id, connector="local", blocking=blocking)
        self._logger = logger or get_logger(EVENTS_LOGGER)
        self._level = level

    async def execute(self, event: LogEvent) -> None:
        level = max(self._level, _LEVELS.get(event.kind, self._level))
        self._logger.log(
            level,
            f"[{event.conversation_id}/{event.cycle_id}] {event.kind.value}: {event.content}",
        )
