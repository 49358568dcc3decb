"""
Unit tests for ToolRegistry: registration, validation, execution and
failure wrapping.
"""

import asyncio

import pytest
from pydantic import BaseModel

from yugent.errors import DuplicateIdError, InvalidParamsError, UnknownToolError
from yugent.models import Role, ToolCallRequest
from yugent.tools.function import FunctionTool
from yugent.tools.registry import ToolRegistry


class WeatherQuery(BaseModel):
    city: str


class WeatherReport(BaseModel):
    temperature: str


async def _weather(query: WeatherQuery) -> dict:
    return {"temperature": "16.7 C"}


@pytest.fixture
def weather_tool():
    return FunctionTool(
        "get_weather",
        _weather,
        input_model=WeatherQuery,
        output_model=WeatherReport,
        description="Current temperature for a city",
    )


@pytest.fixture
def registry(weather_tool):
    registry = ToolRegistry(default_timeout=1.0)
    registry.register(weather_tool)
    return registry


class TestRegistration:
    def test_register_and_lookup(self, registry, weather_tool):
        assert "get_weather" in registry
        assert registry.get("get_weather") is weather_tool
        assert registry.ids == ["get_weather"]

    def test_duplicate_id_raises_and_keeps_first(self, registry, weather_tool):
        impostor = FunctionTool("get_weather", lambda q: "nope", input_model=WeatherQuery)

        with pytest.raises(DuplicateIdError):
            registry.register(impostor)

        assert registry.get("get_weather") is weather_tool
        assert len(registry) == 1

    def test_get_unknown_raises(self, registry):
        with pytest.raises(UnknownToolError):
            registry.get("nope")

    def test_definitions_use_input_model_schema(self, registry):
        definitions = registry.definitions()

        assert len(definitions) == 1
        definition = definitions[0]
        assert definition["name"] == "get_weather"
        assert definition["description"] == "Current temperature for a city"
        assert definition["input_schema"]["properties"]["city"]["type"] == "string"
        assert definition["input_schema"]["required"] == ["city"]

    def test_timeout_must_be_finite_and_positive(self):
        with pytest.raises(ValueError):
            ToolRegistry(default_timeout=0)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_success_wraps_result_as_tool_message(self, registry):
        request = ToolCallRequest(id="call_1", tool_id="get_weather", params={"city": "X"})

        message = await registry.invoke(request)

        assert message.role == Role.TOOL
        assert message.tool_call_id == "call_1"
        assert message.content == {"temperature": "16.7 C"}
        assert message.error is None

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self, registry):
        with pytest.raises(UnknownToolError, match="get_stock_price"):
            await registry.invoke(ToolCallRequest(tool_id="get_stock_price"))

    @pytest.mark.asyncio
    async def test_missing_required_param_raises_invalid_params(self, registry):
        with pytest.raises(InvalidParamsError, match="city"):
            await registry.invoke(ToolCallRequest(tool_id="get_weather", params={}))

    @pytest.mark.asyncio
    async def test_wrong_param_type_raises_invalid_params(self, registry):
        with pytest.raises(InvalidParamsError):
            await registry.invoke(ToolCallRequest(tool_id="get_weather", params={"city": ["X", "Y"]}))

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_message(self, registry):
        def explode(query):
            raise RuntimeError("weather service down")

        registry.register(FunctionTool("broken", explode, input_model=WeatherQuery))

        message = await registry.invoke(ToolCallRequest(id="call_2", tool_id="broken", params={"city": "X"}))

        assert message.role == Role.TOOL
        assert message.tool_call_id == "call_2"
        assert message.error.kind == "execution"
        assert "weather service down" in message.content

    @pytest.mark.asyncio
    async def test_slow_handler_times_out(self, registry):
        async def slow(query):
            await asyncio.sleep(10)

        registry.register(FunctionTool("slow", slow, input_model=WeatherQuery))

        loop = asyncio.get_running_loop()
        started = loop.time()
        message = await registry.invoke(
            ToolCallRequest(tool_id="slow", params={"city": "X"}), timeout=0.05
        )

        assert message.error.kind == "timeout"
        assert "timed out" in message.content
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_handler_resisting_cancellation_is_abandoned(self, registry):
        release = asyncio.Event()
        cleaned_up = asyncio.Event()

        async def stubborn(query):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await release.wait()
                cleaned_up.set()
                raise

        registry.register(FunctionTool("stubborn", stubborn, input_model=WeatherQuery))

        loop = asyncio.get_running_loop()
        started = loop.time()
        message = await registry.invoke(
            ToolCallRequest(tool_id="stubborn", params={"city": "X"}), timeout=0.05
        )

        assert message.error.kind == "timeout"
        assert loop.time() - started < 1
        assert not cleaned_up.is_set()

        release.set()
        await asyncio.wait_for(cleaned_up.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_default_timeout_applies(self):
        async def slow(query):
            await asyncio.sleep(10)

        registry = ToolRegistry(default_timeout=0.05)
        registry.register(FunctionTool("slow", slow, input_model=WeatherQuery))

        message = await registry.invoke(ToolCallRequest(tool_id="slow", params={"city": "X"}))

        assert message.error.kind == "timeout"

    @pytest.mark.asyncio
    async def test_non_conforming_output_becomes_error_message(self, registry):
        async def bad_output(query):
            return {"temp": 16.7}

        registry.register(
            FunctionTool("bad", bad_output, input_model=WeatherQuery, output_model=WeatherReport)
        )

        message = await registry.invoke(ToolCallRequest(tool_id="bad", params={"city": "X"}))

        assert message.error.kind == "output"
        assert "temperature" in message.content

    @pytest.mark.asyncio
    async def test_pydantic_output_is_dumped(self, registry):
        async def report(query):
            return WeatherReport(temperature="3 C")

        registry.register(FunctionTool("report", report, input_model=WeatherQuery))

        message = await registry.invoke(ToolCallRequest(tool_id="report", params={"city": "Oslo"}))

        assert message.content == {"temperature": "3 C"}

    @pytest.mark.asyncio
    async def test_scalar_output_is_stringified(self, registry):
        registry.register(FunctionTool("answer", lambda q: 42))

        message = await registry.invoke(ToolCallRequest(tool_id="answer"))

        assert message.content == "42"
