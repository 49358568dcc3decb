"""
Error taxonomy for the yugent pipeline.

Every error raised by the SDK derives from YugentError and carries the
pipeline stage it came from, so callers of Pipeline.execute() can tell
whether the LLM, a tool, or the pipeline itself failed:

    YugentError
    ├── ProviderError          LLM backend unreachable / rejected the call
    │   └── LLMTimeoutError    LLM call exceeded llm_timeout_ms
    ├── ParseError             LLM reply could not be interpreted
    ├── UnknownToolError       tool call names an unregistered tool
    ├── InvalidParamsError     tool call params fail the tool's input model
    ├── ToolExecutionError     tool handler raised / returned bad output
    │   └── ToolTimeoutError   tool handler exceeded tool_timeout_ms
    ├── LogError               a log layer failed (never reaches the caller)
    ├── MaxToolIterationsExceeded
    ├── BusyError              conversation already has a cycle in flight
    ├── DuplicateIdError       layer / tool id registered twice
    ├── NotFoundError          store lookup found nothing
    └── CycleCancelledError    caller signalled cancellation
"""

from __future__ import annotations


class YugentError(Exception):
    """Base class for all yugent errors."""

    default_stage: str | None = None

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.cause = cause


class ProviderError(YugentError):
    """The LLM backend was unreachable or rejected the request."""

    default_stage = "llm"


class LLMTimeoutError(ProviderError):
    """The LLM layer did not answer within the configured timeout."""


class ParseError(YugentError):
    """The LLM response was malformed (e.g. tool arguments are not JSON)."""

    default_stage = "llm"


class UnknownToolError(YugentError):
    default_stage = "tool"

    def __init__(self, tool_id: str, **kwargs):
        super().__init__(f"Unknown tool: '{tool_id}'", **kwargs)
        self.tool_id = tool_id


class InvalidParamsError(YugentError):
    default_stage = "tool"

    def __init__(self, tool_id: str, detail: str, **kwargs):
        super().__init__(f"Invalid parameters for tool '{tool_id}': {detail}", **kwargs)
        self.tool_id = tool_id
        self.detail = detail


class ToolExecutionError(YugentError):
    """A tool handler failed or produced output that does not match its schema."""

    default_stage = "tool"

    def __init__(self, message: str, *, tool_id: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tool_id = tool_id


class ToolTimeoutError(ToolExecutionError):
    """A tool handler exceeded tool_timeout_ms."""


class LogError(YugentError):
    """
    A log layer failed to handle an event.

    Log errors are isolated per logger by LoggerDispatch and only surface
    through its diagnostics channel.
    """

    default_stage = "log"

    def __init__(self, message: str, *, logger_id: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.logger_id = logger_id


class MaxToolIterationsExceeded(YugentError):
    default_stage = "pipeline"

    def __init__(self, limit: int, **kwargs):
        super().__init__(
            f"LLM requested tools more than {limit} times in one cycle", **kwargs
        )
        self.limit = limit


class BusyError(YugentError):
    """Another execution cycle is already running on this conversation."""

    default_stage = "pipeline"


class DuplicateIdError(YugentError):
    default_stage = "pipeline"

    def __init__(self, layer_id: str, **kwargs):
        super().__init__(f"Duplicate layer id: '{layer_id}'", **kwargs)
        self.layer_id = layer_id


class NotFoundError(YugentError, LookupError):
    default_stage = "pipeline"


class CycleCancelledError(YugentError):
    """The caller's cancellation signal fired while the cycle was awaiting a layer."""

    default_stage = "pipeline"
