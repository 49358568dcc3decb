"""
SDK settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
Every section can be built directly in code (PipelineSettings(max_tool_iterations=3))
or loaded from the environment / a .env file via load_settings().
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM API configuration."""

    model: str = Field(
        default="openai/gpt-4o-mini",
        description="LiteLLM model string, e.g. 'openai/gpt-4o', "
                    "'anthropic/claude-3-5-sonnet-20241022', 'ollama/llama3'. The provider "
                    "prefix tells LiteLLM which API to route the request to.",
    )
    max_tokens: int = Field(default=1024, description="Maximum tokens in response")
    temperature: float = Field(default=0.3, description="Sampling temperature")
    api_key: str = Field(default="", description="API key for the model's provider")

    model_config = SettingsConfigDict(env_prefix="LLM_")


class PipelineSettings(BaseSettings):
    """Execution cycle limits and logger behaviour."""

    max_tool_iterations: int = Field(
        default=5,
        ge=1,
        description="Maximum consecutive tool-requesting LLM replies in one cycle",
    )
    tool_timeout_ms: int = Field(
        default=30_000, gt=0, description="Timeout for a single tool handler call"
    )
    llm_timeout_ms: int = Field(
        default=60_000, gt=0, description="Timeout for a single LLM layer call"
    )
    logger_mode: Literal["sync", "async"] = Field(
        default="async",
        description="'async' delivers log events off the critical path (loggers marked "
                    "blocking are still awaited); 'sync' awaits every logger.",
    )
    logger_timeout_ms: int = Field(
        default=10_000, gt=0, description="Timeout for a single log layer call"
    )
    recover_tool_errors: bool = Field(
        default=True,
        description="Send tool failures back to the LLM as an error turn instead of "
                    "aborting the cycle",
    )
    concurrency: Literal["reject", "queue"] = Field(
        default="reject",
        description="What a second execute() on a busy conversation does: raise "
                    "BusyError ('reject') or wait its turn ('queue')",
    )

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    @property
    def tool_timeout(self) -> float:
        return self.tool_timeout_ms / 1000

    @property
    def llm_timeout(self) -> float:
        return self.llm_timeout_ms / 1000

    @property
    def logger_timeout(self) -> float:
        return self.logger_timeout_ms / 1000


class WebhookSettings(BaseSettings):
    """HTTP logger configuration."""

    url: str = Field(default="", description="Webhook URL events are POSTed to")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Request timeout")
    max_retries: int = Field(
        default=1,
        ge=0,
        le=1,
        description="Retries after a failed request (0 or 1, never unbounded)",
    )

    model_config = SettingsConfigDict(env_prefix="WEBHOOK_")


class ToolSettings(BaseSettings):
    """External tool configuration."""

    mcp_command: str | None = Field(
        default=None,
        description="Command that starts an MCP stdio server, e.g. 'node'. "
                    "If set, the server's tools can be registered as tool layers.",
    )
    mcp_args: list[str] = Field(
        default_factory=list,
        description="Arguments for mcp_command. Set via TOOL_MCP_ARGS='[\"dist/index.js\"]'",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class Settings(BaseSettings):
    """Top-level settings."""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Cached settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
