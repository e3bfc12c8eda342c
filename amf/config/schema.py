"""Configuration schema for amf."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from amf.utils.helpers import get_data_path


class TmuxConfig(BaseModel):
    """tmux integration."""

    session_prefix: str = "amf-"
    command_timeout_s: float = 10.0


class AgentConfig(BaseModel):
    """Coding-agent CLI launched in agent windows."""

    command: str = "claude"
    check_on_start: bool = True


class UIConfig(BaseModel):
    """Dashboard behaviour."""

    view_tick_ms: int = 50
    idle_tick_ms: int = 250
    show_usage: bool = True


class UsageConfig(BaseModel):
    """Background usage telemetry."""

    enabled: bool = True
    claude_home: str = "~/.claude"
    endpoint: str = "https://api.anthropic.com/api/oauth/usage"
    interval_s: float = 60.0
    stats_interval_s: float = 30.0
    request_timeout_s: float = 10.0

    @property
    def claude_home_path(self) -> Path:
        return Path(self.claude_home).expanduser()


class Config(BaseSettings):
    """Root configuration for amf."""

    tmux: TmuxConfig = Field(default_factory=TmuxConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    store_path: str = ""
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="AMF_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "TRACE"}:
            raise ValueError("log_level must be one of TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized

    @property
    def store_file(self) -> Path:
        """Project store location (``projects.json`` in the data dir unless overridden)."""
        if self.store_path.strip():
            return Path(self.store_path).expanduser()
        return get_data_path() / "projects.json"

    @property
    def log_file(self) -> Path:
        return get_data_path() / "logs" / "amf.log"
