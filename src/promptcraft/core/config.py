"""Configuration management for promptcraft.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMPTCRAFT_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMPTCRAFT_* prefix)
2. .env file in the project root
3. Default values defined in PromptcraftConfig

Example .env file:
    PROMPTCRAFT_DEFAULT_PROVIDER=anthropic
    PROMPTCRAFT_DEFAULT_MODEL=claude-sonnet-4-5
    PROMPTCRAFT_ANTHROPIC_API_KEY=sk-ant-...
    PROMPTCRAFT_DATA_DIR=data

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from promptcraft.core.config import config

    print(config.default_provider)
    print(config.history_path)

Persistence Files
-----------------
All JSON documents live under ``data_dir``:
- templates_file: saved template overrides (the template document store)
- history_file: the prompt lineage sequence
- legacy_history_file: pre-lineage flat history, read once for migration
- presets_file: saved facet presets
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PromptcraftConfig(BaseSettings):
    """Main configuration for promptcraft.

    Values are loaded from environment variables with the PROMPTCRAFT_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Provider Settings:
        default_provider : str
            Provider used when no template tier names one
        default_model : str
            Model used when no template tier names one
        request_timeout : float
            Seconds before a provider call is abandoned by httpx
        max_tokens : int
            Completion token ceiling sent to providers
        temperature : float
            Sampling temperature sent to providers

    Credentials and Endpoints:
        <provider>_api_key : str | None
            Optional API key per provider (never logged)
        <provider>_base_url : str
            API root per provider

    Paths:
        data_dir : Path
            Directory holding every JSON document

    Server Settings:
        server_host, server_port, log_level

    Notes
    -----
    - data_dir is created automatically if it doesn't exist
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTCRAFT_",
        case_sensitive=False,
    )

    # Provider defaults
    default_provider: str = Field(
        default="openai",
        description="Provider used when no template tier specifies one",
    )
    default_model: str = Field(
        default="gpt-4o",
        description="Model used when no template tier specifies one",
    )
    request_timeout: float = Field(
        default=60.0,
        description="Provider request timeout in seconds",
        ge=1.0,
        le=600.0,
    )
    max_tokens: int = Field(default=500, ge=1, le=32000)
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)

    # Credentials (all optional; a provider may reject a missing key)
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    gemini_api_key: str | None = None
    mistral_api_key: str | None = None

    # Endpoints
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    anthropic_base_url: str = Field(default="https://api.anthropic.com/v1")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    mistral_base_url: str = Field(default="https://api.mistral.ai/v1")
    local_base_url: str = Field(
        default="http://127.0.0.1:11434",
        description="Ollama-compatible local endpoint",
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for templates, history and presets JSON files",
    )
    templates_file: str = Field(default="templates.json")
    history_file: str = Field(default="prompt_history.json")
    legacy_history_file: str = Field(default="generation_history.json")
    presets_file: str = Field(default="presets.json")

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7870,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def templates_path(self) -> Path:
        """Location of the template document store."""
        return self.data_dir / self.templates_file

    @property
    def history_path(self) -> Path:
        """Location of the lineage sequence document."""
        return self.data_dir / self.history_file

    @property
    def legacy_history_path(self) -> Path:
        """Location of the pre-lineage history document."""
        return self.data_dir / self.legacy_history_file

    @property
    def presets_path(self) -> Path:
        """Location of the preset collection document."""
        return self.data_dir / self.presets_file

    def api_key_for(self, provider: str) -> str | None:
        """Return the configured credential for a provider, if any."""
        return getattr(self, f"{provider}_api_key", None)

    def base_url_for(self, provider: str) -> str:
        """Return the configured API root for a provider."""
        return getattr(self, f"{provider}_base_url")


# Global configuration instance
# Loads values from environment variables (PROMPTCRAFT_* prefix) and .env file.
config = PromptcraftConfig()
