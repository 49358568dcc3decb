"""
Logging Layer.

Log layers receive execution events (cycle started, tool calls, final
answer, failures). LoggerDispatch fans events out and isolates failures.
"""

from yugent.loggers.console import ConsoleLogger
from yugent.loggers.dispatch import LoggerDispatch
from yugent.loggers.webhook import WebhookLogger

__all__ = ["ConsoleLogger", "LoggerDispatch", "WebhookLogger"]
