"""
Pipeline Orchestration Layer.

Owns the conversation history and drives execution cycles:

    Pipeline.execute(conversation, "human text")
                        ↓
    LLM layer  ←→  ToolRegistry (bounded tool loop)
                        ↓
    final assistant Message  →  LoggerDispatch  →  log layers

A Conversation is created and held by the caller; there is no global
"current conversation". Each conversation runs at most one cycle at a time.
"""

from yugent.pipeline.orchestrator import Conversation, ExecutionCycle, Pipeline
from yugent.pipeline.store import MessageStore

__all__ = [
    "Pipeline",
    "Conversation",
    "ExecutionCycle",
    "MessageStore",
]
