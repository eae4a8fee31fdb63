"""
Application settings

Managed with pydantic-settings. Every field can be set through an
environment variable prefixed with ``SANDBOX_RUNNER_`` or a ``.env`` file.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SANDBOX_RUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============== Server ==============
    app_name: str = Field(default="Sandbox Runner")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # ============== Container engine ==============
    docker_url: Optional[str] = Field(
        default=None,
        description="Docker endpoint; None lets aiodocker use DOCKER_HOST or the local socket",
    )
    volume_prefix: str = Field(default="sandbox-runner", min_length=1)

    # ============== Execution ==============
    default_timeout: int = Field(default=30, ge=1, le=3600)
    max_timeout: int = Field(default=3600, ge=1)
    project_timeout: int = Field(default=300, ge=1)
    host_timeout_grace: float = Field(default=10.0, ge=0)

    # ============== Config cache ==============
    cache_dir: Path = Field(default=Path.home() / ".cache" / "sandbox-runner" / "container-configs")
    memory_cache_size: int = Field(default=100, ge=1)

    # ============== Project analysis ==============
    analysis_cache_ttl_seconds: float = Field(default=300.0, ge=0)

    # ============== Project tool ==============
    agents_file: Optional[Path] = Field(default=None, description="JSON list of agents and their projects")
    work_dir: Path = Field(default_factory=Path.cwd, description="Default project and experience anchor")
    allowed_roots: List[Path] = Field(
        default_factory=list,
        description="Extra directories projects may live under; work_dir is always allowed",
    )

    # ============== LLM proposer ==============
    llm_base_url: str = Field(default="https://api.openai.com/v1")
    llm_model: Optional[str] = Field(default=None, description="Unset disables the proposer")
    llm_api_key: Optional[str] = Field(default=None)
    llm_timeout: float = Field(default=60.0, gt=0)
    llm_max_code_chars: int = Field(default=2000, ge=1)

    # ============== Logging ==============
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text")  # json, text

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = {"json", "text"}
        if v not in allowed:
            raise ValueError(f"log_format must be one of {allowed}")
        return v

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_model)


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
