"""
Layer base classes.

A pipeline is built from layers, and every layer plays exactly one role:

    LLMLayer  (role=llm)   drives the conversation: history in, reply out
    ToolLayer (role=tool)  executes a tool call requested by the LLM
    LogLayer  (role=log)   receives execution events, side effects only

The set of roles is closed. The pipeline sorts layers by their `role` tag
at construction time, so a layer can never be treated as two things at
once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict

from yugent.models import LogEvent, Message, ToolCallRequest


class LayerRole(str, Enum):
    LLM = "llm"
    TOOL = "tool"
    LOG = "log"


LLMReply = Union[Message, ToolCallRequest, list[ToolCallRequest]]


class NoParams(BaseModel):
    """Input model for tools that take no arguments."""

    model_config = ConfigDict(extra="forbid")


class Layer(ABC):
    """
    Common base for all layers.

    Layers that hold external resources (HTTP clients, subprocesses) acquire
    them in initialize() and release them in shutdown(). Both are no-ops by
    default. Layers can be used as async context managers.

    Args:
        id: Identifier, unique within a pipeline
    """

    role: ClassVar[LayerRole]

    def __init__(self, id: str):
        if not id:
            raise ValueError("Layer id cannot be empty")
        self.id = id

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class LLMLayer(Layer):
    """
    The conversation driver.

    send() receives a read-only snapshot of the history and returns either
    a plain assistant Message or one or more ToolCallRequests.
    """

    role = LayerRole.LLM

    @abstractmethod
    async def send(
        self,
        history: Sequence[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMReply:
        """
        Send the conversation to the model.

        Args:
            history: Full conversation so far, oldest first
            tools: Tool definitions (name, description, input_schema) the
                   model may call, or None when no tools are registered

        Returns:
            A Message with role=assistant, a ToolCallRequest, or a list of them

        Raises:
            ProviderError: Backend unreachable, auth failure, rate limit...
            ParseError: Backend reply could not be interpreted
        """


class ToolLayer(Layer):
    """
    A tool the LLM can call.

    Parameters are validated against `input_model` before execute() is
    called, so execute() always receives an instance of it. When
    `output_model` is set, the return value must validate against it.

    Args:
        id: Tool name exposed to the LLM
        description: What the tool does, shown to the LLM
        input_model: Pydantic model describing the accepted parameters
        output_model: Optional pydantic model the output must conform to
    """

    role = LayerRole.TOOL

    def __init__(
        self,
        id: str,
        *,
        description: str = "",
        input_model: type[BaseModel] | None = None,
        output_model: type[BaseModel] | None = None,
    ):
        super().__init__(id)
        self.description = description
        self.input_model = input_model or NoParams
        self.output_model = output_model

    @abstractmethod
    async def execute(self, params: BaseModel) -> Any:
        """Run the tool. Any exception counts as a tool failure."""

    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()

    def definition(self) -> dict[str, Any]:
        """
        Tool schema in the flat format used by the registry.

        Example:
            {
                "name": "get_weather",
                "description": "Current weather for a city",
                "input_schema": {
                    "type": "object",
                    "properties": {"city": {"type": "string"}},
                    "required": ["city"]
                }
            }
        """
        return {
            "name": self.id,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


class LogLayer(Layer):
    """
    A sink for execution events.

    Args:
        id: Logger identifier
        connector: Transport kind, "local" (console, file) or "http" (webhook)
        blocking: If True the pipeline waits for this logger even when
                  logger dispatch runs in async mode
    """

    role = LayerRole.LOG

    def __init__(
        self,
        id: str,
        *,
        connector: Literal["local", "http"] = "local",
        blocking: bool = False,
    ):
        super().__init__(id)
        self.connector = connector
        self.blocking = blocking

    @abstractmethod
    async def execute(self, event: LogEvent) -> None:
        """Handle one event. Raise (preferably LogError) on failure."""
