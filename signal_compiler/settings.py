# signal_compiler/settings.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Signal compiler settings, read from SIGNAL_COMPILER_* env vars or .env."""

    # Application Settings
    app_name: str = "Signal Compiler - Executive Agent Harness"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # API Settings
    host: str = "0.0.0.0"
    port: int = 3000

    # LLM Provider Configuration
    llm_provider: str = Field(
        default="gemini",
        description="Inference gateway to use: 'gemini' or 'replay'",
    )
    gemini_api_key: str = Field(default="", description="Gemini API key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model name")
    gemini_temperature: float = 0.1
    replay_path: Optional[str] = Field(
        default=None,
        description="Recorded raw model response served by the replay gateway",
    )

    # Packs and storage
    packs_file: str = "packs.yaml"
    search_roots: List[str] = Field(
        default_factory=lambda: ["demo-artifacts", ".."],
        description="Directories searched in order for pack documents",
    )
    runs_dir: str = "runs"
    default_pack: str = "agrinova_w04_2026"

    # Inference deadline (seconds): min(max, base + per_mb * payload_mb)
    inference_timeout_base_s: float = 60.0
    inference_timeout_per_mb_s: float = 10.0
    inference_timeout_max_s: float = 180.0

    # 1 = no retries. Values above 1 retry transport errors only.
    inference_max_attempts: int = Field(default=1, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="SIGNAL_COMPILER_",
        env_file=str(Path.cwd() / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
