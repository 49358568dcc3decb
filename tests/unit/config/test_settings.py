"""
Unit tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from yugent.config.settings import (
    LLMSettings,
    PipelineSettings,
    Settings,
    ToolSettings,
    WebhookSettings,
    load_settings,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "LLM_MODEL",
        "LLM_API_KEY",
        "PIPELINE_MAX_TOOL_ITERATIONS",
        "PIPELINE_LOGGER_MODE",
        "PIPELINE_TOOL_TIMEOUT_MS",
        "WEBHOOK_URL",
        "WEBHOOK_MAX_RETRIES",
        "TOOL_MCP_COMMAND",
        "TOOL_MCP_ARGS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestPipelineSettings:
    def test_defaults(self, clean_env):
        settings = PipelineSettings()
        assert settings.max_tool_iterations == 5
        assert settings.logger_mode == "async"
        assert settings.recover_tool_errors is True
        assert settings.concurrency == "reject"

    def test_timeouts_in_seconds(self, clean_env):
        settings = PipelineSettings(tool_timeout_ms=1500, llm_timeout_ms=250, logger_timeout_ms=100)
        assert settings.tool_timeout == 1.5
        assert settings.llm_timeout == 0.25
        assert settings.logger_timeout == 0.1

    def test_env_prefix(self, clean_env):
        clean_env.setenv("PIPELINE_MAX_TOOL_ITERATIONS", "2")
        clean_env.setenv("PIPELINE_LOGGER_MODE", "sync")
        settings = PipelineSettings()
        assert settings.max_tool_iterations == 2
        assert settings.logger_mode == "sync"

    def test_iteration_limit_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            PipelineSettings(max_tool_iterations=0)

    def test_timeouts_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            PipelineSettings(tool_timeout_ms=0)

    def test_unknown_logger_mode_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            PipelineSettings(logger_mode="whenever")


class TestSectionSettings:
    def test_llm_env_prefix(self, clean_env):
        clean_env.setenv("LLM_MODEL", "anthropic/claude-3-5-sonnet-20241022")
        clean_env.setenv("LLM_API_KEY", "sk-test")
        settings = LLMSettings()
        assert settings.model == "anthropic/claude-3-5-sonnet-20241022"
        assert settings.api_key == "sk-test"

    def test_webhook_retries_bounded(self, clean_env):
        assert WebhookSettings().max_retries == 1
        with pytest.raises(ValidationError):
            WebhookSettings(max_retries=2)

    def test_webhook_from_env(self, clean_env):
        clean_env.setenv("WEBHOOK_URL", "https://example.com/hook")
        clean_env.setenv("WEBHOOK_MAX_RETRIES", "0")
        settings = WebhookSettings()
        assert settings.url == "https://example.com/hook"
        assert settings.max_retries == 0

    def test_mcp_args_parsed_from_json(self, clean_env):
        clean_env.setenv("TOOL_MCP_COMMAND", "node")
        clean_env.setenv("TOOL_MCP_ARGS", '["dist/index.js"]')
        settings = ToolSettings()
        assert settings.mcp_command == "node"
        assert settings.mcp_args == ["dist/index.js"]


class TestSettings:
    def test_nested_defaults(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        settings = Settings()
        assert settings.log_level == "INFO"
        assert settings.pipeline.max_tool_iterations == 5
        assert settings.webhook.url == ""

    def test_load_from_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "test.env"
        env_file.write_text("LOG_LEVEL=DEBUG\n")

        settings = load_settings(env_file)

        assert settings.log_level == "DEBUG"
