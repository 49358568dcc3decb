"""
Data structures shared by the pipeline, the layers and the loggers.

- Role: who authored a Message (human, assistant, tool)
- ToolCallRequest: an LLM's request to run a named tool
- ToolFailure: why a tool call produced an error message
- Message: one entry in the conversation history
- LogEvent: what log layers receive
- CycleState: states of one execution cycle
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class Role(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """
    A tool call emitted by the LLM layer.

    `id` should be the provider's tool-call id so the result can be matched
    to the request on the next LLM round. A random id is generated when the
    provider does not supply one.
    """

    id: str = Field(default_factory=lambda: new_id("call"), description="Tool call id")
    tool_id: str = Field(min_length=1, description="Id of the registered tool to run")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")

    model_config = ConfigDict(frozen=True)


class ToolFailure(BaseModel):
    """Attached to a tool Message when the tool call did not succeed."""

    kind: Literal["execution", "timeout", "output"]
    detail: str

    model_config = ConfigDict(frozen=True)


class Message(BaseModel):
    """
    One conversation turn.

    Messages are frozen: once appended to a MessageStore they are never
    modified.

    - human / plain assistant messages carry `content`
    - an assistant message that asked for a tool carries `tool_call`
    - a tool message carries `tool_call_id` and the tool's output as `content`,
      plus `error` when the tool failed
    """

    role: Role
    content: str | dict[str, Any] | list[Any] | None = None
    tool_call: ToolCallRequest | None = None
    tool_call_id: str | None = None
    error: ToolFailure | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(frozen=True)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def text(self) -> str:
        """Content rendered as text (structured payloads are shown as their repr)."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return str(self.content)

    @classmethod
    def human(cls, content: str) -> "Message":
        return cls(role=Role.HUMAN, content=content)

    @classmethod
    def assistant(cls, content: str | None = None, tool_call: ToolCallRequest | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_call=tool_call)


class LogEventKind(str, Enum):
    CYCLE_STARTED = "cycle_started"
    TOOL_REQUESTED = "tool_requested"
    TOOL_RESULT = "tool_result"
    TOOL_ERROR = "tool_error"
    COMPLETED = "completed"
    FAILED = "failed"


class LogEvent(BaseModel):
    """An execution event delivered to every log layer."""

    kind: LogEventKind
    cycle_id: str
    conversation_id: str
    content: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(frozen=True)


class CycleState(str, Enum):
    IDLE = "idle"
    AWAITING_LLM = "awaiting_llm"
    TOOL_REQUESTED = "tool_requested"
    AWAITING_TOOL = "awaiting_tool"
    DONE = "done"
    FAILED = "failed"
