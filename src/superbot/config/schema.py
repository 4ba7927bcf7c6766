"""
Typed settings for superbot.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderConfig(BaseModel):
    """
    OpenAI-compatible LLM provider configuration.

    Works with OpenAI, OpenRouter, LiteLLM and other compatible endpoints.
    """

    api_key: str = ""
    api_base: str = "https://openrouter.ai/api/v1"
    model: str = "anthropic/claude-sonnet-4-20250514"
    # Tried left to right when the primary model times out
    fallback_models: list[str] = Field(default_factory=list)
    timeout_s: float = 120.0


class AgentConfig(BaseModel):
    """Agent loop limits."""

    max_iterations: int = Field(default=20, ge=1)
    memory_window: int = Field(default=50, ge=0)
    subagent_max_iterations: int = Field(default=15, ge=1)


class ExecConfig(BaseModel):
    """Shell tool safety limits."""

    timeout: int = Field(default=60, ge=1)
    restrict_to_workspace: bool = False


class WebConfig(BaseModel):
    """Web tool configuration."""

    brave_api_key: str = ""


class TelegramConfig(BaseModel):
    """Telegram channel configuration."""

    enabled: bool = False
    token: str = ""
    allow_from: list[str] = Field(default_factory=list)


class WhatsAppConfig(BaseModel):
    """WhatsApp channel configuration (Node bridge over WebSocket)."""

    enabled: bool = False
    bridge_url: str = "ws://localhost:3001"
    allow_from: list[str] = Field(default_factory=list)


class ChannelConfigs(BaseModel):
    """All channel configurations."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)


class HeartbeatConfig(BaseModel):
    """Heartbeat service configuration."""

    enabled: bool = True
    interval_s: int = Field(default=30 * 60, ge=1)


class GatewayConfig(BaseModel):
    """Health endpoint bind address."""

    host: str = "0.0.0.0"
    port: int = 8080


class Config(BaseSettings):
    """
    Root configuration.

    Loads from ~/.superbot/config.json and environment variables
    with SUPERBOT_ prefix.
    """

    workspace: Path = Field(default=Path("~/.superbot/workspace"))
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    exec: ExecConfig = Field(default_factory=ExecConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    channels: ChannelConfigs = Field(default_factory=ChannelConfigs)
    heartbeat: HeartbeatConfig = Field(default_factory=HeartbeatConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)

    model_config = SettingsConfigDict(
        env_prefix="SUPERBOT_",
        env_nested_delimiter="__",
    )

    @field_validator("workspace")
    @classmethod
    def expand_workspace(cls, v: str) -> Path:
        """Expand ~ in workspace path."""
        return Path(v).expanduser().resolve()
