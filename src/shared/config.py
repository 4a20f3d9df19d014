"""Configuration management for the Mealie assistant.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once at startup and passed into each client
constructor explicitly.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. You know that today is {today}"


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai", description="LLM provider: openai, azure_openai, mock")
    model: str = Field(default="gpt-4o", description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: Optional[str] = Field(default=None, description="API base URL")
    api_version: Optional[str] = Field(default="2024-02-15-preview", description="API version")
    deployment_name: Optional[str] = Field(default=None, description="Azure deployment name")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=4096, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore"
    )


class ToolHostSettings(BaseSettings):
    """Tool host child process configuration."""
    command: str = Field(default="mealie-mcp-server", description="Executable to spawn")
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment for the child process"
    )
    connect_attempts: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="TOOL_HOST_",
        env_file=".env",
        extra="ignore"
    )


class OrchestratorSettings(BaseSettings):
    """Orchestrator configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Conversation
    max_tool_iterations: int = Field(default=5, gt=0)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore"
    )


class MealieSettings(BaseSettings):
    """Mealie API configuration, read by the tool host process."""
    api_key: Optional[str] = Field(default=None, description="Mealie API token")
    base_url: str = Field(default="http://localhost:9000/api", description="API root, including /api")
    list_id: Optional[str] = Field(default=None, description="Shopping list the tools operate on")
    page_size: Optional[int] = Field(default=None, gt=0, description="perPage; server default when unset")
    timeout_seconds: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MEALIE_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    tool_host: ToolHostSettings = Field(default_factory=ToolHostSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    mealie: MealieSettings = Field(default_factory=MealieSettings)

    model_config = SettingsConfigDict(
        env_prefix="MEALIE_ASSISTANT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Each section is built with its YAML values as overrides, so keys
        the file leaves out still come from the environment.
        """
        data = load_yaml_config(path)
        sections = {
            name: section_class(**(data.pop(name, None) or {}))
            for name, section_class in SECTIONS.items()
        }
        return cls(**data, **sections)


SECTIONS: dict[str, type[BaseSettings]] = {
    "llm": LLMSettings,
    "tool_host": ToolHostSettings,
    "orchestrator": OrchestratorSettings,
    "mealie": MealieSettings,
}


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings(config_path: Optional[str] = None) -> Settings:
    """Get cached application settings."""
    config_path = config_path or os.environ.get(
        "MEALIE_ASSISTANT_CONFIG", "config/settings.yaml"
    )
    return Settings.from_yaml(config_path)
