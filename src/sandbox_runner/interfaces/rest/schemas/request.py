"""
REST API request schemas.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sandbox_runner.domain.value_objects import ExecutionRequest


class ExecuteCodeRequest(BaseModel):
    """Execute a code snippet."""

    code: str = Field(..., max_length=1024 * 1024, description="Source code to execute")
    language: str = Field(..., min_length=1, max_length=64, description="Language name")
    timeout: int = Field(30, ge=1, le=3600, description="Execution timeout in seconds")
    model_name: Optional[str] = Field(None, max_length=256, description="Label copied to the result")
    use_ai_config: bool = Field(False, description="Ask the LLM for a container configuration")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "code": "import requests\nprint(requests.__version__)",
                    "language": "python",
                    "timeout": 60,
                },
                {
                    "code": "console.log(1 + 1)",
                    "language": "js",
                },
            ]
        }
    )

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("language must not be blank")
        return v

    def to_domain(self) -> ExecutionRequest:
        return ExecutionRequest(
            code=self.code,
            language=self.language,
            timeout=self.timeout,
            model_name=self.model_name,
            use_ai_config=self.use_ai_config,
        )


class RunProjectRequest(BaseModel):
    """Run a command in a project experience."""

    command: str = Field("", max_length=64 * 1024, description="Bash command line")
    agent_id: Optional[str] = Field(None, description="Agent id or name; defaults to the work dir")
    experience_id: Optional[str] = Field(None, description="Experience to use; generated when omitted")
    action: Literal["new", "continue", "commit", "discard"] = Field("continue")
    env: Dict[str, str] = Field(default_factory=dict, description="Extra environment variables")
    timeout: Optional[int] = Field(None, ge=1, le=3600, description="Command timeout in seconds")
