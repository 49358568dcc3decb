"""
Tool registry and invoker.

Resolves a ToolCallRequest to a registered ToolLayer, validates its
parameters, runs the handler under a timeout and wraps the outcome in a
tool Message.

Lookup and validation failures raise (UnknownToolError, InvalidParamsError):
they mean the LLM asked for something that cannot be run at all. Handler
failures do not raise. A tool that throws, times out, or returns output
that does not match its output model produces an error tool Message, and
the orchestrator decides whether the LLM gets to see it.
"""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import BaseModel, ValidationError

from yugent.config.logging import get_logger
from yugent.errors import DuplicateIdError, InvalidParamsError, UnknownToolError
from yugent.layers import ToolLayer
from yugent.models import Message, Role, ToolCallRequest, ToolFailure

logger = get_logger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def consume_result(task: asyncio.Future) -> None:
    """Done-callback for abandoned tasks so their exceptions are not reported as unretrieved."""
    if not task.cancelled():
        task.exception()


class ToolRegistry:
    """
    Holds the tool layers of a pipeline, keyed by id.

    Args:
        default_timeout: Seconds a handler may run when invoke() is not given
                         an explicit timeout. Must be finite.
    """

    def __init__(self, default_timeout: float = DEFAULT_TOOL_TIMEOUT):
        if default_timeout is None or default_timeout <= 0:
            raise ValueError("Tool timeout must be a positive number of seconds")
        self._tools: dict[str, ToolLayer] = {}
        self._default_timeout = default_timeout

    def register(self, tool: ToolLayer) -> None:
        """
        Register a tool layer.

        Raises:
            DuplicateIdError: If a tool with the same id is already registered.
                              The existing registration is kept.
        """
        if tool.id in self._tools:
            raise DuplicateIdError(tool.id)
        self._tools[tool.id] = tool
        logger.debug(f"Registered tool: {tool.id}")

    def get(self, tool_id: str) -> ToolLayer:
        try:
            return self._tools[tool_id]
        except KeyError:
            raise UnknownToolError(tool_id) from None

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def ids(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        """Schemas of all registered tools, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    def validate(self, request: ToolCallRequest) -> tuple[ToolLayer, BaseModel]:
        """
        Resolve the tool and validate the request params against its input model.

        Raises:
            UnknownToolError: No tool with request.tool_id
            InvalidParamsError: Params are missing a field or have the wrong type
        """
        tool = self.get(request.tool_id)
        try:
            params = tool.input_model.model_validate(request.params)
        except ValidationError as e:
            raise InvalidParamsError(tool.id, _format_validation_error(e), cause=e) from e
        return tool, params

    async def invoke(self, request: ToolCallRequest, timeout: float | None = None) -> Message:
        """
        Run the tool named by `request` and wrap the outcome as a tool Message.

        Args:
            request: Tool call emitted by the LLM
            timeout: Seconds the handler may run (defaults to the registry's timeout)

        Returns:
            Message with role=tool and tool_call_id=request.id. On handler
            failure the message has `error` set and describes the failure.

        Raises:
            UnknownToolError: No tool with request.tool_id
            InvalidParamsError: Params do not match the tool's input model
        """
        tool, params = self.validate(request)
        timeout = timeout or self._default_timeout

        # A timed-out handler is cancelled and abandoned, never awaited
        task = asyncio.ensure_future(tool.execute(params))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(consume_result)
            raise

        if task not in done:
            task.cancel()
            task.add_done_callback(consume_result)
            logger.warning(f"Tool '{tool.id}' timed out after {timeout}s")
            return self._failure(
                request, "timeout", f"Tool '{tool.id}' timed out after {timeout}s"
            )

        try:
            raw = task.result()
        except Exception as e:
            logger.warning(f"Tool '{tool.id}' failed: {e}")
            return self._failure(request, "execution", f"Tool '{tool.id}' failed: {e}")

        try:
            content = self._normalize_output(tool, raw)
        except ValidationError as e:
            detail = _format_validation_error(e)
            logger.warning(f"Tool '{tool.id}' returned non-conforming output: {detail}")
            return self._failure(
                request, "output", f"Tool '{tool.id}' returned invalid output: {detail}"
            )

        return Message(role=Role.TOOL, tool_call_id=request.id, content=content)

    @staticmethod
    def _normalize_output(tool: ToolLayer, raw: Any) -> Any:
        if tool.output_model is not None:
            if not isinstance(raw, tool.output_model):
                raw = tool.output_model.model_validate(raw)
        if isinstance(raw, BaseModel):
            return raw.model_dump(mode="json")
        if raw is None or isinstance(raw, (str, dict, list)):
            return raw
        return str(raw)

    @staticmethod
    def _failure(request: ToolCallRequest, kind: str, detail: str) -> Message:
        return Message(
            role=Role.TOOL,
            tool_call_id=request.id,
            content=f"Error: {detail}",
            error=ToolFailure(kind=kind, detail=detail),
        )
