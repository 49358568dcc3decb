"""
LiteLLM-backed driver layer.

Translates the pipeline's provider-neutral history into the OpenAI chat
format LiteLLM expects, makes one completion call, and translates the reply
back into a Message or ToolCallRequest(s):

    history (Message...)  →  [{"role": "user", ...}, {"role": "tool", ...}]
                                            ↓
                                  LiteLLM acompletion()
                                            ↓
                         Message(role=assistant) | ToolCallRequest(s)

Design decisions:
- Uses LiteLLM for provider abstraction; users can swap between OpenAI,
  Anthropic, local models (Ollama), etc. by changing a config string.
- The layer makes exactly one API call per send(). The tool-use loop lives
  in the orchestrator, which owns the conversation and its limits.
- An assistant message that requested a tool is replayed with its
  tool_calls entry so the provider can pair it with the following tool
  message by tool_call_id.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from litellm import acompletion
from pydantic import BaseModel

from yugent.config.logging import get_logger
from yugent.config.settings import LLMSettings
from yugent.errors import ParseError, ProviderError
from yugent.layers import LLMLayer, LLMReply
from yugent.models import Message, Role, ToolCallRequest

logger = get_logger(__name__)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def _content_as_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content)


def to_openai_messages(history: Sequence[Message], system_prompt: str | None = None) -> list[dict[str, Any]]:
    """Convert pipeline messages to OpenAI chat-format dicts."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for message in history:
        if message.role == Role.HUMAN:
            messages.append({"role": "user", "content": _content_as_text(message.content)})
        elif message.role == Role.ASSISTANT and message.tool_call is not None:
            call = message.tool_call
            messages.append({
                "role": "assistant",
                "content": message.content if isinstance(message.content, str) else None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.tool_id,
                            "arguments": json.dumps(call.params),
                        },
                    }
                ],
            })
        elif message.role == Role.ASSISTANT:
            messages.append({"role": "assistant", "content": _content_as_text(message.content)})
        else:
            messages.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": _content_as_text(message.content),
            })
    return messages


def to_openai_tools(definitions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Wrap registry tool definitions in the OpenAI tool format:
        {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
        for tool in definitions
    ]


class LiteLLMLayer(LLMLayer):
    """
    LLM driver that talks to any LiteLLM-supported provider.

    Args:
        settings: LLM configuration (model, temperature, max_tokens, api_key)
        system_prompt: Optional system message prepended to every request
        id: Layer id
    """

    def __init__(
        self,
        settings: LLMSettings,
        system_prompt: str | None = None,
        id: str = "llm",
    ):
        super().__init__(id)
        self._settings = settings
        self._system_prompt = system_prompt
        self.last_usage: TokenUsage | None = None
        self.last_model: str | None = None

    async def send(
        self,
        history: Sequence[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMReply:
        """
        Make one completion call.

        Raises:
            ProviderError: If the API key is missing or the LLM API call fails
            ParseError: If the reply has no choices or tool arguments are not JSON
        """
        # Fail before the provider call when no key is configured
        if not self._settings.api_key:
            raise ProviderError("API key not configured. Set LLM_API_KEY in your environment.")

        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": to_openai_messages(history, self._system_prompt),
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "api_key": self._settings.api_key,
        }
        if tools:
            call_kwargs["tools"] = to_openai_tools(tools)

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise ProviderError(f"LLM API call failed: {e}", cause=e) from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            self.last_usage = TokenUsage(
                prompt_tokens=usage.prompt_tokens or 0,
                completion_tokens=usage.completion_tokens or 0,
            )
        self.last_model = getattr(response, "model", None)

        if not response.choices:
            raise ParseError("LLM response contained no choices")
        assistant_message = response.choices[0].message

        if assistant_message.tool_calls:
            requests = [self._parse_tool_call(call) for call in assistant_message.tool_calls]
            return requests[0] if len(requests) == 1 else requests

        return Message(role=Role.ASSISTANT, content=assistant_message.content or "")

    @staticmethod
    def _parse_tool_call(tool_call: Any) -> ToolCallRequest:
        name = tool_call.function.name
        raw_arguments = tool_call.function.arguments or "{}"
        try:
            arguments = json.loads(raw_arguments)
        except (TypeError, json.JSONDecodeError) as e:
            raise ParseError(
                f"Tool call '{name}' has malformed arguments: {raw_arguments!r}", cause=e
            ) from e
        if not isinstance(arguments, dict):
            raise ParseError(f"Tool call '{name}' arguments must be a JSON object")

        if tool_call.id:
            return ToolCallRequest(id=tool_call.id, tool_id=name, params=arguments)
        return ToolCallRequest(tool_id=name, params=arguments)
