"""
Tools backed by plain Python callables.

    class WeatherQuery(BaseModel):
        city: str

    @function_tool("get_weather", input_model=WeatherQuery,
                   description="Current temperature for a city")
    async def get_weather(query: WeatherQuery) -> dict:
        ...

The decorated name is a FunctionTool layer ready to pass to a Pipeline.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from yugent.layers import ToolLayer


class FunctionTool(ToolLayer):
    """
    Wrap a callable as a tool layer.

    The callable receives the validated input model instance. Coroutine
    functions are awaited; regular functions run in a worker thread so a
    slow one cannot stall the event loop or dodge the tool timeout.
    """

    def __init__(
        self,
        id: str,
        func: Callable[[Any], Any],
        *,
        input_model: type[BaseModel] | None = None,
        output_model: type[BaseModel] | None = None,
        description: str | None = None,
    ):
        super().__init__(
            id,
            description=description if description is not None else inspect.getdoc(func) or "",
            input_model=input_model,
            output_model=output_model,
        )
        self._func = func

    async def execute(self, params: BaseModel) -> Any:
        if inspect.iscoroutinefunction(self._func):
            return await self._func(params)
        return await asyncio.to_thread(self._func, params)


def function_tool(
    id: str,
    *,
    input_model: type[BaseModel] | None = None,
    output_model: type[BaseModel] | None = None,
    description: str | None = None,
) -> Callable[[Callable[[Any], Any]], FunctionTool]:
    """Decorator form of FunctionTool."""

    def decorator(func: Callable[[Any], Any]) -> FunctionTool:
        return FunctionTool(
            id,
            func,
            input_model=input_model,
            output_model=output_model,
            description=description,
        )

    return decorator
