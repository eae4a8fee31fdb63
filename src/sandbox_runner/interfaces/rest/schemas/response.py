"""
REST API response schemas.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from sandbox_runner import __version__


class ErrorResponse(BaseModel):
    error: str
    message: str
    detail: Optional[Any] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = __version__
    uptime: float
    engine_available: bool


class ExecutionResponse(BaseModel):
    """Result of a snippet execution."""

    success: bool
    outcome: str
    output: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    model_name: Optional[str] = None
    container_config: Optional[Dict[str, Any]] = None
    cached: bool = False
    execution_time: float = Field(..., description="Milliseconds")


class LanguagesResponse(BaseModel):
    languages: List[str]


class CacheStatsResponse(BaseModel):
    memory_size: int
    disk_size: int
    cache_dir: str


class RunProjectResponse(BaseModel):
    """Result of a project tool call."""

    experience_id: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    success: bool = False
    status: Optional[str] = None
    hint: Optional[str] = None
    timed_out: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    setup_warnings: List[str] = Field(default_factory=list)
    detected_requirements: Optional[Dict[str, Any]] = None
