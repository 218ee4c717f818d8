"""Load configuration from YAML and environment variables. No hardcoded secrets."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config lives next to this module
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_BLOCKED_PATTERN = (
    r"(exploit|ddos|malware|phishing|password cracking|unauthorized access|bypass)"
)


# Plain env overrides applied on top of YAML; values are coerced by the section models
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "OPENAI_API_URL": ("provider", "api_url"),
    "OPENAI_MODEL": ("provider", "model"),
    "OPENAI_SYSTEM_PROMPT": ("provider", "system_prompt"),
    "OPENAI_CONNECT_TIMEOUT": ("provider", "connect_timeout"),
    "OPENAI_READ_TIMEOUT": ("provider", "read_timeout"),
    "RELAY_DEFAULT_TEMPERATURE": ("relay", "default_temperature"),
    "RELAY_DEFAULT_SOPHISTICATION": ("relay", "default_sophistication"),
    "RELAY_BLOCKED_PATTERN": ("relay", "blocked_pattern"),
    "RELAY_MAX_EXCHANGE_SECONDS": ("relay", "max_exchange_seconds"),
    "SERVER_HOST": ("server", "host"),
    "SERVER_CORS_ORIGIN": ("server", "cors_origin"),
    "CLOUDAI_TIMEOUT": ("client", "timeout"),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPENAI_", extra="ignore")
    api_key: str = ""
    api_url: str = DEFAULT_API_URL
    model: str = "gpt-4o"
    system_prompt: str = (
        "You are CloudAi, a helpful assistant. Follow safety policies and refuse to "
        "provide instructions that enable illegal activity."
    )
    connect_timeout: float = 10.0
    read_timeout: float = 60.0


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RELAY_", extra="ignore")
    default_temperature: float = 0.2
    default_sophistication: str = "very-high"
    blocked_pattern: str = DEFAULT_BLOCKED_PATTERN
    max_exchange_seconds: float = 300.0


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SERVER_", extra="ignore")
    host: str = "127.0.0.1"
    port: int = 3001
    cors_origin: str = "*"


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CLOUDAI_", extra="ignore")
    base_url: str = "http://localhost:3001"
    timeout: float = 300.0


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")
    level: str = "INFO"
    json_format: bool = True


class Config(BaseSettings):
    """Application config: YAML + env. Secrets from env only."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        if config_path is None:
            config_path = os.getenv("CLOUDAI_CONFIG") or None
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        yaml_data = _deep_merge(_load_yaml(_DEFAULT_CONFIG_PATH), _load_yaml(path))
        api_key = os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY")
        if api_key:
            yaml_data.setdefault("provider", {})["api_key"] = api_key
        for env_name, (section, field) in _ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                yaml_data.setdefault(section, {})[field] = value
        port = os.getenv("SERVER_PORT") or os.getenv("DEV_PROXY_PORT")
        if port:
            yaml_data.setdefault("server", {})["port"] = int(port)
        client_url = os.getenv("CLOUDAI_URL")
        if client_url:
            yaml_data.setdefault("client", {})["base_url"] = client_url
        level = os.getenv("LOG_LEVEL")
        if level:
            yaml_data.setdefault("logging", {})["level"] = level
        log_json = os.getenv("LOG_JSON")
        if log_json:
            yaml_data.setdefault("logging", {})["json_format"] = log_json.lower() in ("1", "true", "yes")
        return cls(**yaml_data)


def get_config(config_path: str | Path | None = None) -> Config:
    return Config.load(config_path)
