"""Agent configuration.

The loop itself never reads the environment; this is the boundary that
turns environment variables and an optional ``.env`` into constructor
arguments (see ``Agent.from_settings``).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .prompts import DEFAULT_SYSTEM_PROMPT

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)


class AgentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENT_LOOP_", env_file=str(ENV_FILE), extra="ignore")

    host: str = "0.0.0.0"
    port: int = 7002
    log_level: str = "INFO"

    agent_name: str = "default"
    model: str = "gpt-4o-mini"
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "AGENT_LOOP_OPENAI_API_KEY"),
    )
    base_url: str | None = None
    temperature: float = 0.2
    openai_timeout_s: float = 20.0

    max_iterations: int = Field(default=10, ge=1)
    backend_max_retries: int = Field(default=2, ge=0)
    system_prompt: str | None = DEFAULT_SYSTEM_PROMPT

    tool_server_url: str | None = None
    request_timeout_s: float = 10.0

    mock_llm: bool = False
    record_enabled: bool = True
    store_root: str = "."


@lru_cache(maxsize=1)
def get_settings() -> AgentSettings:
    return AgentSettings()
