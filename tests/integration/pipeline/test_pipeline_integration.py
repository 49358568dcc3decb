"""
Integration tests for a fully composed pipeline.

Everything is real (LiteLLM driver, tool registry, function tools,
console and webhook loggers) except the LiteLLM API call and the webhook's
HTTP transport. These catch wiring bugs between layers: tool schemas that
the driver cannot format, tool results that lose their call id, events
that never reach a logger.
"""

import json
import logging
from unittest.mock import MagicMock, patch

import httpx
import pytest
from pydantic import BaseModel, Field

from yugent.config.settings import LLMSettings, PipelineSettings, Settings, WebhookSettings
from yugent.errors import MaxToolIterationsExceeded
from yugent.llm.litellm_layer import LiteLLMLayer
from yugent.loggers.console import ConsoleLogger
from yugent.loggers.webhook import WebhookLogger
from yugent.models import Role
from yugent.pipeline import Pipeline
from yugent.tools.function import function_tool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_text_response(text: str) -> MagicMock:
    choice = MagicMock()
    choice.message.content = text
    choice.message.tool_calls = None

    response = MagicMock()
    response.choices = [choice]
    response.model = "openai/gpt-4o-mini"
    response.usage.prompt_tokens = 200
    response.usage.completion_tokens = 40
    return response


def _make_tool_call_response(tool_name: str, arguments: dict, call_id: str) -> MagicMock:
    tool_call = MagicMock()
    tool_call.id = call_id
    tool_call.function.name = tool_name
    tool_call.function.arguments = json.dumps(arguments)

    choice = MagicMock()
    choice.message.content = None
    choice.message.tool_calls = [tool_call]

    response = MagicMock()
    response.choices = [choice]
    response.model = "openai/gpt-4o-mini"
    response.usage.prompt_tokens = 150
    response.usage.completion_tokens = 20
    return response


class WeatherQuery(BaseModel):
    city: str = Field(description="City name")


@function_tool(id="get_weather", input_model=WeatherQuery)
async def get_weather(query: WeatherQuery) -> dict:
    """Current temperature for a city."""
    return {"city": query.city, "temperature": "16.7 C"}


WEBHOOK_URL = "https://hooks.example.com/yugent"


@pytest.fixture
def webhook_requests():
    return []


@pytest.fixture
def webhook_client(webhook_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(json.loads(request.content))
        return httpx.Response(204)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def pipeline(webhook_client):
    llm = LiteLLMLayer(LLMSettings(api_key="test-key"), system_prompt="You report the weather.")
    loggers = [
        ConsoleLogger(),
        WebhookLogger(url=WEBHOOK_URL, client=webhook_client, blocking=True),
    ]
    return Pipeline([llm, get_weather, *loggers], PipelineSettings(logger_mode="sync"))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestWeatherRoundTrip:
    @pytest.mark.asyncio
    async def test_full_cycle(self, pipeline, webhook_client, webhook_requests, caplog):
        responses = [
            _make_tool_call_response("get_weather", {"city": "X"}, "call_weather"),
            _make_text_response("It is 16.7°C in X"),
        ]
        conversation = pipeline.conversation()

        with caplog.at_level(logging.INFO, logger="yugent.events"), \
                patch("yugent.llm.litellm_layer.acompletion", side_effect=responses) as mock_call:
            async with pipeline:
                reply = await pipeline.execute(conversation, "What is the weather in X?")
            await webhook_client.aclose()

        assert reply.content == "It is 16.7°C in X"
        assert [m.role for m in conversation.history()] == [
            Role.HUMAN, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT,
        ]

        # First call advertised the tool in OpenAI format
        first_kwargs = mock_call.call_args_list[0].kwargs
        assert first_kwargs["tools"][0]["function"]["name"] == "get_weather"
        assert first_kwargs["tools"][0]["function"]["description"] == "Current temperature for a city."
        assert "city" in first_kwargs["tools"][0]["function"]["parameters"]["properties"]

        # Second call carried the tool exchange back to the model
        second_messages = mock_call.call_args_list[1].kwargs["messages"]
        assert second_messages[0]["role"] == "system"
        assert second_messages[-2]["tool_calls"][0]["id"] == "call_weather"
        assert second_messages[-1]["role"] == "tool"
        assert second_messages[-1]["tool_call_id"] == "call_weather"
        assert json.loads(second_messages[-1]["content"])["temperature"] == "16.7 C"

        # Both loggers saw the final message exactly once
        completed = [r for r in webhook_requests if r["content"] == "It is 16.7°C in X"]
        assert len(completed) == 1
        assert completed[0]["kind"] == "completed"
        console_lines = [r.message for r in caplog.records if "It is 16.7°C in X" in r.message]
        assert len(console_lines) == 1

    @pytest.mark.asyncio
    async def test_runaway_loop_leaves_history_untouched(self, pipeline, webhook_client, webhook_requests):
        responses = [
            _make_tool_call_response("get_weather", {"city": "X"}, f"call_{i}") for i in range(10)
        ]
        conversation = pipeline.conversation()

        with patch("yugent.llm.litellm_layer.acompletion", side_effect=responses):
            with pytest.raises(MaxToolIterationsExceeded):
                await pipeline.execute(conversation, "Keep checking")
        await webhook_client.aclose()

        assert len(conversation.store) == 0
        assert webhook_requests[-1]["kind"] == "failed"


class TestFromSettings:
    def test_default_loggers(self):
        settings = Settings(
            llm=LLMSettings(api_key="test-key"),
            webhook=WebhookSettings(url=WEBHOOK_URL),
        )

        pipeline = Pipeline.from_settings(settings, tools=[get_weather])

        assert isinstance(pipeline.driver, LiteLLMLayer)
        assert pipeline.registry.ids == ["get_weather"]
        logger_types = [type(layer) for layer in pipeline.dispatch.loggers]
        assert logger_types == [ConsoleLogger, WebhookLogger]

    def test_no_webhook_without_url(self):
        settings = Settings(llm=LLMSettings(api_key="test-key"), webhook=WebhookSettings(url=""))

        pipeline = Pipeline.from_settings(settings)

        assert [type(layer) for layer in pipeline.dispatch.loggers] == [ConsoleLogger]
