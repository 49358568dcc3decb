"""
LLM Driver Layer.

LLM layers turn the conversation history into the model's next move: a
plain assistant message or a tool call. LiteLLMLayer covers any provider
LiteLLM supports (OpenAI, Anthropic, Ollama...) through a model string.
"""

from yugent.llm.litellm_layer import LiteLLMLayer, TokenUsage

__all__ = ["LiteLLMLayer", "TokenUsage"]
