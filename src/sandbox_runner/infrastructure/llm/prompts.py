"""
Prompt templates for container configuration proposals.
"""

CONTAINER_CONFIG_PROMPT = """You are an expert DevOps engineer. Given a code snippet and its language, provide the optimal Docker container configuration to execute it.

## Code Language
{language}

## Code to Execute
The code will be saved as {code_path}.
```{language}
{code}
```

## Required Packages (detected)
{detected_packages}

## Instructions
Analyze the code and provide a JSON configuration with:
1. The best base image (prefer Alpine variants for size)
2. Setup commands to install dependencies (if needed)
3. The exact command to execute the code, as an argv array
4. Any cache volumes for package managers

## Response Format (JSON only)
{{
  "baseImage": "string - Docker image name with tag",
  "setupCommands": ["array of shell commands to run before code execution"],
  "runCommand": ["array of command and arguments to execute the code"],
  "cacheVolumes": [
    {{"name": "volume-name", "mountPath": "/path/to/cache"}}
  ],
  "reasoning": "brief explanation of choices"
}}

## Example for Python with pandas:
{{
  "baseImage": "python:3.11-alpine",
  "setupCommands": ["pip install --no-cache-dir pandas"],
  "runCommand": ["python", "/app/code.py"],
  "cacheVolumes": [{{"name": "pip-cache", "mountPath": "/root/.cache/pip"}}],
  "reasoning": "Alpine for a smaller image. pandas requires pip install."
}}

Respond with ONLY the JSON configuration, no additional text."""


def render_container_config_prompt(
    code: str,
    language: str,
    code_path: str,
    detected_packages: list,
    max_code_chars: int = 2000,
) -> str:
    """Fill the container configuration prompt; ``code`` is truncated to ``max_code_chars``."""
    return CONTAINER_CONFIG_PROMPT.format(
        language=language,
        code_path=code_path,
        code=code[:max_code_chars],
        detected_packages=", ".join(detected_packages) if detected_packages else "none detected",
    )
