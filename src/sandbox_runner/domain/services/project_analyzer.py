"""
Project Requirements Detector

Static, read-only inspection of a project directory: project type from
marker files, tools used by its scripts, environment variable NAMES it
expects, and skill repositories it references. The result drives the
container built for project-mode commands.
"""

import re
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

from sandbox_runner.domain.services.skill_provisioner import (
    detect_skill_requirements,
    normalize_git_url,
)
from sandbox_runner.domain.value_objects import (
    CacheVolumeConfig,
    ContainerConfig,
    ProjectRequirements,
)
WORKSPACE_DIR = "/workspace"
SHARED_VOLUME = CacheVolumeConfig(name="run-project-shared", mount_path="/shared")

# Checked in order; the first project type with a present marker wins.
PROJECT_TYPE_MARKERS: List[Tuple[str, List[str]]] = [
    ("npm", ["package.json", "pnpm-lock.yaml", "yarn.lock"]),
    ("pip", ["requirements.txt", "setup.py", "pyproject.toml", "Pipfile"]),
    ("cargo", ["Cargo.toml"]),
    ("go", ["go.mod", "go.sum"]),
    ("maven", ["pom.xml"]),
    ("gradle", ["build.gradle", "build.gradle.kts", "settings.gradle"]),
]

SHELL_MARKERS = ["run.sh", "setup.sh", "Makefile", "makefile"]
ROOT_SCRIPTS = ["run.sh", "setup.sh", "start.sh", "build.sh", "deploy.sh"]
DOTENV_FILES = [".env", ".env.example", ".env.local"]

PROJECT_BASE_IMAGES: Dict[str, str] = {
    "npm": "node:20",
    "pip": "python:3.11",
    "cargo": "rust:1.75",
    "go": "golang:1.21",
    "maven": "maven:3.9-eclipse-temurin-17",
    "gradle": "gradle:8.5-jdk17",
    "shell": "ubuntu:22.04",
    "unknown": "ubuntu:22.04",
}

PROJECT_SETUP_COMMANDS: Dict[str, List[str]] = {
    "npm": ["npm install"],
    "pip": ["pip install -r requirements.txt || pip install -e . || true"],
    "cargo": ["cargo fetch"],
    "go": ["go mod download"],
    "maven": ["mvn dependency:resolve"],
    "gradle": ["gradle dependencies"],
}

PROJECT_CACHE_VOLUMES: Dict[str, List[CacheVolumeConfig]] = {
    "npm": [CacheVolumeConfig(name="npm-cache", mount_path="/root/.npm")],
    "pip": [CacheVolumeConfig(name="pip-cache", mount_path="/root/.cache/pip")],
    "cargo": [
        CacheVolumeConfig(name="cargo-registry", mount_path="/usr/local/cargo/registry"),
        CacheVolumeConfig(name="cargo-target", mount_path="/workspace/target"),
    ],
    "go": [
        CacheVolumeConfig(name="go-mod-cache", mount_path="/go/pkg/mod"),
        CacheVolumeConfig(name="go-build-cache", mount_path="/root/.cache/go-build"),
    ],
    "maven": [CacheVolumeConfig(name="maven-repo", mount_path="/root/.m2/repository")],
    "gradle": [CacheVolumeConfig(name="gradle-cache", mount_path="/root/.gradle")],
}

LOCKFILE_CACHE_VOLUMES: Dict[str, CacheVolumeConfig] = {
    "package-lock.json": CacheVolumeConfig(name="npm-cache", mount_path="/root/.npm"),
    "yarn.lock": CacheVolumeConfig(name="yarn-cache", mount_path="/usr/local/share/.cache/yarn"),
    "pnpm-lock.yaml": CacheVolumeConfig(name="pnpm-store", mount_path="/root/.local/share/pnpm/store"),
    "Pipfile.lock": CacheVolumeConfig(name="pip-cache", mount_path="/root/.cache/pip"),
    "poetry.lock": CacheVolumeConfig(name="poetry-cache", mount_path="/root/.cache/pypoetry"),
    "Cargo.lock": CacheVolumeConfig(name="cargo-registry", mount_path="/usr/local/cargo/registry"),
    "go.sum": CacheVolumeConfig(name="go-mod-cache", mount_path="/go/pkg/mod"),
    "Gemfile.lock": CacheVolumeConfig(name="gem-cache", mount_path="/usr/local/bundle"),
    "composer.lock": CacheVolumeConfig(name="composer-cache", mount_path="/root/.composer/cache"),
}

APT_CACHE_VOLUME = CacheVolumeConfig(name="apt-cache", mount_path="/var/cache/apt")


@dataclass(frozen=True)
class ToolPattern:
    """A command that, when seen in a script, implies packages or env vars."""

    tool: str
    pattern: "re.Pattern"
    apt_packages: List[str] = field(default_factory=list)
    npm_global_packages: List[str] = field(default_factory=list)
    env_vars: List[str] = field(default_factory=list)


TOOL_PATTERNS: List[ToolPattern] = [
    ToolPattern("imagemagick", re.compile(r"\b(magick|convert)\b"), apt_packages=["imagemagick"]),
    ToolPattern(
        "claude-cli",
        re.compile(r"\bclaude\s+(?:--model|-p|--print)\b"),
        npm_global_packages=["@anthropic-ai/claude-code"],
        env_vars=["ANTHROPIC_API_KEY"],
    ),
    # Node comes from the base image.
    ToolPattern("npx", re.compile(r"\bnpx\s+")),
    ToolPattern("jq", re.compile(r"\bjq\b"), apt_packages=["jq"]),
    ToolPattern("curl", re.compile(r"\bcurl\b"), apt_packages=["curl"]),
    ToolPattern("wget", re.compile(r"\bwget\b"), apt_packages=["wget"]),
    ToolPattern("git", re.compile(r"\bgit\b"), apt_packages=["git"]),
    ToolPattern("python", re.compile(r"\bpython3?\b"), apt_packages=["python3"]),
    ToolPattern("ffmpeg", re.compile(r"\bffmpeg\b"), apt_packages=["ffmpeg"]),
    ToolPattern("sqlite3", re.compile(r"\bsqlite3\b"), apt_packages=["sqlite3"]),
]

_ENV_NAME = re.compile(r"\b([A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+)\b")
_SCRIPT_ENV_REF = re.compile(r"\$\{?([A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+)")
_DOTENV_NAME = re.compile(r"^[A-Z][A-Z0-9_]*$")
_SECRET_SUFFIXES = ("_KEY", "_TOKEN", "_SECRET", "_URL")
_SECRET_PREFIXES = (
    "ANTHROPIC_", "OPENAI_", "GOOGLE_", "GEMINI_", "GITHUB_", "TAVILY_", "AWS_",
)


def is_secret_like(name: str) -> bool:
    """True for names that look like API keys, tokens, secrets or service URLs."""
    return name.endswith(_SECRET_SUFFIXES) or name.startswith(_SECRET_PREFIXES)


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def detect_project_type(project_path: Path) -> str:
    for project_type, markers in PROJECT_TYPE_MARKERS:
        if any((project_path / marker).exists() for marker in markers):
            return project_type
    if any((project_path / marker).exists() for marker in SHELL_MARKERS):
        return "shell"
    bin_dir = project_path / "bin"
    if bin_dir.is_dir() and any(bin_dir.iterdir()):
        return "shell"
    return "unknown"


def collect_script_contents(project_path: Path) -> List[str]:
    """Read ``bin/*``, the well-known root scripts and CLAUDE.md."""
    contents = []
    bin_dir = project_path / "bin"
    if bin_dir.is_dir():
        for entry in sorted(bin_dir.iterdir()):
            if entry.is_file():
                text = _read_text(entry)
                if text is not None:
                    contents.append(text)
    for name in ROOT_SCRIPTS + ["CLAUDE.md"]:
        text = _read_text(project_path / name)
        if text is not None:
            contents.append(text)
    return contents


def parse_claude_md_env_vars(project_path: Path) -> List[str]:
    text = _read_text(project_path / "CLAUDE.md")
    if text is None:
        return []
    return _unique(m.group(1) for m in _ENV_NAME.finditer(text) if is_secret_like(m.group(1)))


def parse_script_env_vars(script_contents: List[str]) -> List[str]:
    """Secret-like ``$NAME`` / ``${NAME}`` references in scripts."""
    names = []
    for text in script_contents:
        names.extend(m.group(1) for m in _SCRIPT_ENV_REF.finditer(text) if is_secret_like(m.group(1)))
    return _unique(names)


def parse_dotenv_names(project_path: Path) -> List[str]:
    """Variable names from ``.env`` style files. Values are never read into the result."""
    names = []
    for filename in DOTENV_FILES:
        text = _read_text(project_path / filename)
        if text is None:
            continue
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            name = line.split("=", 1)[0].strip().removeprefix("export ").strip()
            if _DOTENV_NAME.match(name):
                names.append(name)
    return _unique(names)


def _unique(items) -> List:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def _merge_volumes(*groups: List[CacheVolumeConfig]) -> List[CacheVolumeConfig]:
    merged: Dict[str, CacheVolumeConfig] = {}
    for group in groups:
        for volume in group:
            merged.setdefault(volume.name, volume)
    return list(merged.values())


def build_setup_commands(
    base_image: str,
    apt_packages: List[str],
    npm_global_packages: List[str],
    project_type: str,
) -> List[str]:
    commands = []
    if apt_packages:
        joined = " ".join(apt_packages)
        if "alpine" in base_image:
            commands.append(f"apk add --no-cache {joined}")
        else:
            commands.append(
                f"apt-get update -qq && apt-get install -y -qq {joined} && rm -rf /var/lib/apt/lists/*"
            )
    if npm_global_packages:
        commands.append(f"npm install -g {' '.join(npm_global_packages)}")
    commands.extend(PROJECT_SETUP_COMMANDS.get(project_type, []))
    return commands


def analyze_project(project_path: Union[str, Path], home: Optional[str] = None) -> ProjectRequirements:
    """
    Inspect ``project_path`` and infer its run-time requirements.

    Never writes to the project directory.
    """
    project_path = Path(project_path)
    project_type = detect_project_type(project_path)
    scripts = collect_script_contents(project_path)

    detected_tools: List[str] = []
    apt_packages: List[str] = []
    npm_globals: List[str] = []
    env_var_names: List[str] = []

    for tool in TOOL_PATTERNS:
        if any(tool.pattern.search(text) for text in scripts):
            detected_tools.append(tool.tool)
            apt_packages.extend(tool.apt_packages)
            npm_globals.extend(tool.npm_global_packages)
            env_var_names.extend(tool.env_vars)

    skills = detect_skill_requirements(scripts, home=home)
    apt_packages.extend(skills.apt_packages)

    env_var_names.extend(parse_claude_md_env_vars(project_path))
    env_var_names.extend(parse_script_env_vars(scripts))
    env_var_names.extend(parse_dotenv_names(project_path))

    base_image = PROJECT_BASE_IMAGES.get(project_type, PROJECT_BASE_IMAGES["unknown"])
    if project_type != "npm" and ("npx" in detected_tools or "claude-cli" in detected_tools):
        base_image = "node:20"

    apt_packages = _unique(apt_packages)
    npm_globals = _unique(npm_globals)

    lockfile_volumes = [
        volume for lockfile, volume in LOCKFILE_CACHE_VOLUMES.items()
        if (project_path / lockfile).is_file()
    ]
    cache_volumes = _merge_volumes(
        PROJECT_CACHE_VOLUMES.get(project_type, []),
        lockfile_volumes,
        [APT_CACHE_VOLUME] if apt_packages else [],
    )

    return ProjectRequirements(
        project_type=project_type,
        base_image=base_image,
        detected_tools=detected_tools,
        env_var_names=_unique(env_var_names),
        apt_packages=apt_packages,
        npm_global_packages=npm_globals,
        setup_commands=build_setup_commands(base_image, apt_packages, npm_globals, project_type),
        cache_volumes=cache_volumes,
        skill_repos=_unique(skills.skill_repos),
    )


class ProjectRequirementsDetector:
    """
    Project analysis with a per-path TTL cache.

    Args:
        cache_ttl_seconds: How long a result is reused; 0 disables caching
        home: Home directory used to match expanded plugin paths
    """

    def __init__(self, cache_ttl_seconds: float = 300.0, home: Optional[str] = None):
        self.cache_ttl_seconds = cache_ttl_seconds
        self.home = home
        self._cache: Dict[str, Tuple[float, ProjectRequirements]] = {}

    def detect(self, project_path: Union[str, Path]) -> ProjectRequirements:
        key = str(Path(project_path).resolve())
        cached = self._cache.get(key)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl_seconds:
            return cached[1]

        requirements = analyze_project(key, home=self.home)
        self._cache[key] = (time.monotonic(), requirements)
        return requirements

    def clear_cache(self) -> None:
        self._cache.clear()


def build_project_container_config(
    requirements: ProjectRequirements,
    environment: Optional[Mapping[str, str]] = None,
) -> ContainerConfig:
    """
    Build the container used for project-mode commands.

    Requirement setup runs first, then each skill repository is cloned
    and its own setup commands run inside the clone.
    """
    setup = list(requirements.setup_commands)
    for skill in requirements.skill_repos:
        path = shlex.quote(skill.container_path)
        setup.append(f"git clone --depth 1 {shlex.quote(normalize_git_url(skill.git_repo))} {path}")
        setup.extend(f"cd {path} && {command}" for command in skill.setup_commands)

    return ContainerConfig(
        base_image=requirements.base_image,
        workdir=WORKSPACE_DIR,
        cache_volumes=_merge_volumes(requirements.cache_volumes, [SHARED_VOLUME]),
        environment=dict(environment or {}),
        setup_commands=setup,
        run_command=["bash"],
    )
