"""
yugent - compose LLM, tool and logger layers into an agent pipeline.

    pipeline = Pipeline([LiteLLMLayer(settings.llm), weather_tool, ConsoleLogger()])
    conversation = pipeline.conversation()
    reply = await pipeline.execute(conversation, "What is the weather in Paris?")
"""

from yugent.errors import (
    BusyError,
    CycleCancelledError,
    DuplicateIdError,
    InvalidParamsError,
    LLMTimeoutError,
    LogError,
    MaxToolIterationsExceeded,
    NotFoundError,
    ParseError,
    ProviderError,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownToolError,
    YugentError,
)
from yugent.layers import Layer, LayerRole, LLMLayer, LogLayer, ToolLayer
from yugent.models import LogEvent, LogEventKind, Message, Role, ToolCallRequest
from yugent.pipeline import Conversation, MessageStore, Pipeline

__version__ = "0.1.0"

__all__ = [
    "Pipeline",
    "Conversation",
    "MessageStore",
    "Layer",
    "LayerRole",
    "LLMLayer",
    "ToolLayer",
    "LogLayer",
    "Message",
    "Role",
    "ToolCallRequest",
    "LogEvent",
    "LogEventKind",
    "YugentError",
    "ProviderError",
    "LLMTimeoutError",
    "ParseError",
    "UnknownToolError",
    "InvalidParamsError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "LogError",
    "MaxToolIterationsExceeded",
    "BusyError",
    "DuplicateIdError",
    "NotFoundError",
    "CycleCancelledError",
]
