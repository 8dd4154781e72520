"""
Configuration settings - Infrastructure component for managing application configuration.
Uses Pydantic for validation and environment variable loading.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeSettings(BaseSettings):
    """Local runtime (Ollama) configuration."""

    model_config = SettingsConfigDict(
        env_prefix='LOCAL_AI_',
        env_file='.env',
        extra='ignore',
        case_sensitive=False,
    )

    host: str = 'http://127.0.0.1:11434'
    version: str = '0.16.2'
    data_dir: Path = Field(default_factory=lambda: Path.home() / '.local-ai')

    # Timeouts (seconds)
    health_timeout_s: float = 3.0
    list_timeout_s: float = 5.0
    connect_timeout_s: float = 5.0
    pull_timeout_s: float = 600.0
    chat_timeout_s: float = 300.0

    # Startup readiness polling
    startup_attempts: int = 30
    startup_interval_s: float = 1.0

    @field_validator('host')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    @field_validator('pull_timeout_s')
    @classmethod
    def validate_pull_timeout(cls, v: float) -> float:
        """Model pulls are slow; never allow less than ten minutes."""
        return max(v, 600.0)

    @field_validator('startup_attempts')
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        return max(1, v)

    @field_validator('data_dir', mode='before')
    @classmethod
    def expand_data_dir(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class ChatSettings(BaseSettings):
    """Chat session configuration."""

    model_config = SettingsConfigDict(
        env_prefix='LOCAL_AI_',
        env_file='.env',
        extra='ignore',
        case_sensitive=False,
    )

    model: str = 'llama3.2:1b'
    context_budget: int = 24000
    label_length: int = 30

    @field_validator('context_budget')
    @classmethod
    def validate_budget(cls, v: int) -> int:
        if v < 1:
            raise ValueError('context_budget must be positive')
        return v

    @field_validator('label_length')
    @classmethod
    def validate_label_length(cls, v: int) -> int:
        return max(1, v)


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix='LOCAL_AI_',
        env_file='.env',
        extra='ignore',
        case_sensitive=False,
    )

    # Sub-configurations
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)

    # Logging
    log_level: str = 'INFO'

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            return 'INFO'
        return v.upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            'runtime': self.runtime.model_dump(mode='json'),
            'chat': self.chat.model_dump(mode='json'),
            'log_level': self.log_level,
        }


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Reload settings from environment (for testing)."""
    global _settings
    _settings = AppSettings()
    return _settings
