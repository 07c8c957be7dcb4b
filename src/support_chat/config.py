"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from support_chat.core.types import UserRole

DEFAULT_SYSTEM_PROMPT = """You are a helpful customer support assistant for Smart Tech Analytics, a company that provides advanced technology solutions and analytics services.

Our company specializes in:
- Data analytics and business intelligence
- Cloud computing solutions
- AI and machine learning services
- Digital transformation consulting
- Custom software development

You should be friendly, professional, and knowledgeable about our services. Help customers with:
- Product information and features
- Technical support questions
- Pricing and plan comparisons
- Account setup and troubleshooting
- General inquiries about our technology solutions

The customer's name is {user_name} and their email is {user_email}. Always maintain a helpful and solution-oriented tone."""


class AIConfig(BaseModel):
    backend: Literal["anthropic", "openai"] = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 500
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 0  # a failed completion surfaces to the caller
    timeout: int = 30


class OpenAIConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 0
    timeout: int = 30


class ChatConfig(BaseModel):
    function_name: str = "chat-support"
    max_message_length: int = 2000
    upstream_timeout: float = 30.0
    staff_notification: bool = True


class RateLimitConfig(BaseModel):
    window_seconds: int = 60
    max_requests: int = 20


class ReaperConfig(BaseModel):
    enabled: bool = True
    interval_minutes: int = 5
    timezone: str = "UTC"


class NotificationConfig(BaseModel):
    enabled: bool = False
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    use_tls: bool = True
    from_address: str = "Smart Tech Analytics <no-reply@smarttechanalytics.com>"
    staff_addresses: list[str] = Field(default_factory=list)
    timeout: int = 20


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    trust_forwarded: bool = False
    cron_secret: Optional[str] = None
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class AccessConfig(BaseModel):
    """Roles granted by e-mail address. Unlisted addresses chat as guests."""

    roles: dict[str, UserRole] = Field(default_factory=dict)


class StorageConfig(BaseModel):
    db_path: str = "./data/support_chat.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = False
    data_dir: str = "./data"
    ai: AIConfig = Field(default_factory=AIConfig)
    anthropic: Optional[AnthropicConfig] = None
    openai: Optional[OpenAIConfig] = None
    chat: ChatConfig = Field(default_factory=ChatConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other values, resolve it first
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
