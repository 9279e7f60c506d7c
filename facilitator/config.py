"""Environment-driven settings.

Every value can be overridden through an environment variable, e.g.:

    OLLAMA_URL=http://gpu-box:11434 OLLAMA_MODEL=llama3.1:8b
    SERPAPI_KEY=...            # enables the paid search backend
"""
from __future__ import annotations
import os
from typing import Optional
from pydantic import BaseModel, Field

VERIFY_EMOJI = "\U0001F9FE"  # 🧾

DEFAULT_INTERVENTION_LEVEL = "balanced"
DEFAULT_SUMMARY_FREQUENCY = 15


class Settings(BaseModel):
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "gemma3:1b"
    ollama_timeout: float = Field(default=120.0, gt=0)
    ollama_health_timeout: float = Field(default=5.0, gt=0)
    serpapi_key: Optional[str] = None
    search_timeout: float = Field(default=10.0, gt=0)
    verify_emoji: str = VERIFY_EMOJI
    log_level: str = "INFO"


def load_settings() -> Settings:
    env = os.environ
    return Settings(
        ollama_url=env.get("OLLAMA_URL", "http://localhost:11434").rstrip("/"),
        ollama_model=env.get("OLLAMA_MODEL", "gemma3:1b"),
        ollama_timeout=float(env.get("OLLAMA_TIMEOUT", "120")),
        ollama_health_timeout=float(env.get("OLLAMA_HEALTH_TIMEOUT", "5")),
        serpapi_key=env.get("SERPAPI_KEY") or None,
        search_timeout=float(env.get("SEARCH_TIMEOUT", "10")),
        verify_emoji=env.get("FACILITATOR_VERIFY_EMOJI", VERIFY_EMOJI),
        log_level=env.get("FACILITATOR_LOG_LEVEL", "INFO"),
    )
