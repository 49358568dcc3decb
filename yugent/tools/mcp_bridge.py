"""
MCP tool bridge.

Exposes the tools of an MCP server as tool layers. The server runs as a
subprocess and is spoken to via JSON-RPC over stdio:

    async with MCPToolServer("node", ["dist/index.js"]) as server:
        tools = await server.tools()
        pipeline = Pipeline([llm, *tools, console])
        ...
"""

from __future__ import annotations

from typing import Any, Optional

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from pydantic import BaseModel, ConfigDict, Field, create_model

from yugent.config.logging import get_logger
from yugent.config.settings import ToolSettings
from yugent.layers import ToolLayer

logger = get_logger(__name__)

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def model_from_schema(name: str, schema: dict[str, Any]) -> type[BaseModel]:
    """
    Build a pydantic model from a JSON object schema.

    Only top-level properties are typed (required-ness and primitive type);
    nested structure is accepted as-is. Property names are kept as aliases so
    names that are not valid Python identifiers still work.
    """
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    fields: dict[str, Any] = {}
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        json_type = prop_schema.get("type") if isinstance(prop_schema, dict) else None
        py_type = _JSON_TYPES.get(json_type, Any) if isinstance(json_type, str) else Any
        description = prop_schema.get("description") if isinstance(prop_schema, dict) else None
        if prop_name in required:
            fields[f"field_{index}"] = (py_type, Field(..., alias=prop_name, description=description))
        else:
            fields[f"field_{index}"] = (
                Optional[py_type],
                Field(None, alias=prop_name, description=description),
            )

    return create_model(
        f"{name}_params",
        __config__=ConfigDict(extra="allow", populate_by_name=True),
        **fields,
    )


class MCPTool(ToolLayer):
    """One tool of an MCP server, usable as a pipeline tool layer."""

    def __init__(self, server: MCPToolServer, name: str, description: str, input_schema: dict[str, Any]):
        super().__init__(
            name,
            description=description or "",
            input_model=model_from_schema(name, input_schema),
        )
        self._server = server
        self._input_schema = input_schema

    def input_schema(self) -> dict[str, Any]:
        return self._input_schema

    async def execute(self, params: BaseModel) -> str:
        arguments = params.model_dump(by_alias=True, exclude_none=True)
        result = await self._server.call(self.id, arguments)
        return result["text"]


class MCPToolServer:
    """
    Connection to an MCP server subprocess.

    Args:
        command: Executable that starts the server (e.g. "node", "uvx")
        args: Arguments passed to the command
        env: Extra environment for the subprocess
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
    ):
        if not command:
            raise ValueError("MCP server command not specified")
        self._command = command
        self._args = list(args or [])
        self._env = env
        self._initialized = False
        self._session = None
        self._stdio_context = None
        self._session_context = None

    @classmethod
    def from_settings(cls, settings: ToolSettings) -> "MCPToolServer":
        """Build from TOOL_MCP_COMMAND / TOOL_MCP_ARGS."""
        if not settings.mcp_command:
            raise ValueError("MCP server command not specified. Set TOOL_MCP_COMMAND.")
        return cls(settings.mcp_command, settings.mcp_args)

    async def initialize(self) -> None:
        """Start the server subprocess and perform the MCP handshake."""
        server_params = StdioServerParameters(
            command=self._command,
            args=self._args,
            env=self._env,
        )

        self._stdio_context = stdio_client(server_params)
        read_stream, write_stream = await self._stdio_context.__aenter__()

        self._session_context = ClientSession(read_stream, write_stream)
        self._session = await self._session_context.__aenter__()

        await self._session.initialize()

        self._initialized = True
        logger.info(f"MCP server started: {self._command} {' '.join(self._args)}")

    async def shutdown(self) -> None:
        """Close the session and terminate the subprocess."""
        if not self._initialized:
            return

        if self._session_context is not None:
            await self._session_context.__aexit__(None, None, None)
            self._session_context = None
            self._session = None

        if self._stdio_context is not None:
            await self._stdio_context.__aexit__(None, None, None)
            self._stdio_context = None

        self._initialized = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, *_args):
        await self.shutdown()
        return None

    async def call(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Call a tool on the server.

        Raises:
            RuntimeError: If the server is not initialized or reports a tool error
        """
        if not self._initialized:
            raise RuntimeError("MCP server not initialized")

        result = await self._session.call_tool(tool_name, arguments)

        # MCP returns content as a list of content blocks
        text_parts = [content.text for content in result.content if hasattr(content, "text")]
        text = " ".join(text_parts)

        if getattr(result, "isError", False):
            raise RuntimeError(text or f"MCP tool '{tool_name}' reported an error")

        return {"text": text}

    async def list_tools(self) -> list[dict[str, Any]]:
        """List tool schemas (name, description, input_schema) from the server."""
        if not self._initialized:
            raise RuntimeError("MCP server not initialized")

        result = await self._session.list_tools()
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.inputSchema,
            }
            for tool in result.tools
        ]

    async def tools(self) -> list[MCPTool]:
        """Wrap every server tool as a tool layer."""
        return [
            MCPTool(self, schema["name"], schema["description"], schema["input_schema"])
            for schema in await self.list_tools()
        ]
