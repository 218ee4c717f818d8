"""Pytest fixtures and config."""

import pytest

_PROVIDER_ENV = (
    "OPENAI_API_KEY",
    "LLM_API_KEY",
    "OPENAI_API_URL",
    "OPENAI_MODEL",
    "OPENAI_SYSTEM_PROMPT",
    "OPENAI_CONNECT_TIMEOUT",
    "OPENAI_READ_TIMEOUT",
    "RELAY_DEFAULT_TEMPERATURE",
    "RELAY_DEFAULT_SOPHISTICATION",
    "RELAY_BLOCKED_PATTERN",
    "RELAY_MAX_EXCHANGE_SECONDS",
    "CLOUDAI_CONFIG",
    "CLOUDAI_URL",
    "CLOUDAI_TIMEOUT",
    "SERVER_HOST",
    "SERVER_PORT",
    "SERVER_CORS_ORIGIN",
    "DEV_PROXY_PORT",
    "LOG_LEVEL",
    "LOG_JSON",
)


@pytest.fixture(autouse=True)
def env_cleanup(monkeypatch):
    """Avoid picking up real provider credentials or overrides in tests."""
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    yield

