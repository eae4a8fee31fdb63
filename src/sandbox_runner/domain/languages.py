"""
Language Registry

Static container templates, file extensions and import detection for the
languages that do not need an LLM to build a container. Everything here is
pure; "unknown language" is the only failure signal.
"""

import hashlib
import re
from typing import Dict, List, Optional

from sandbox_runner.domain.value_objects import CacheVolumeConfig, ContainerConfig

CODE_DIR = "/app"

_NPM_CACHE = CacheVolumeConfig(name="npm-cache", mount_path="/root/.npm")

KNOWN_LANGUAGE_CONFIGS: Dict[str, ContainerConfig] = {
    "typescript": ContainerConfig(
        base_image="node:20-alpine",
        setup_commands=["npm install -g tsx"],
        run_command=["npx", "tsx", "/app/code.ts"],
        cache_volumes=[_NPM_CACHE],
    ),
    "javascript": ContainerConfig(
        base_image="node:20-alpine",
        run_command=["node", "/app/code.js"],
        cache_volumes=[_NPM_CACHE],
    ),
    "python": ContainerConfig(
        base_image="python:3.11-alpine",
        run_command=["python", "/app/code.py"],
        cache_volumes=[CacheVolumeConfig(name="pip-cache", mount_path="/root/.cache/pip")],
    ),
    "ruby": ContainerConfig(
        base_image="ruby:3.2-alpine",
        run_command=["ruby", "/app/code.rb"],
        cache_volumes=[CacheVolumeConfig(name="gem-cache", mount_path="/root/.gem")],
    ),
    "go": ContainerConfig(
        base_image="golang:1.21-alpine",
        run_command=["go", "run", "/app/code.go"],
        cache_volumes=[CacheVolumeConfig(name="go-cache", mount_path="/go/pkg/mod")],
    ),
    "rust": ContainerConfig(
        base_image="rust:1.75-alpine",
        setup_commands=["rustc /app/code.rs -o /app/code"],
        run_command=["/app/code"],
        cache_volumes=[
            CacheVolumeConfig(name="cargo-cache", mount_path="/usr/local/cargo/registry")
        ],
    ),
    # Single-file source launch; the public class name does not need to match.
    "java": ContainerConfig(
        base_image="eclipse-temurin:17-alpine",
        run_command=["java", "/app/code.java"],
    ),
    "php": ContainerConfig(
        base_image="php:8.2-alpine",
        run_command=["php", "/app/code.php"],
    ),
    "perl": ContainerConfig(
        base_image="perl:5.42",
        run_command=["perl", "/app/code.pl"],
    ),
    "bash": ContainerConfig(
        base_image="bash:latest",
        run_command=["bash", "/app/code.sh"],
    ),
    "swift": ContainerConfig(
        base_image="swift:5.9-focal",
        run_command=["swift", "/app/code.swift"],
    ),
}

LANGUAGE_EXTENSIONS: Dict[str, str] = {
    "typescript": ".ts",
    "javascript": ".js",
    "python": ".py",
    "ruby": ".rb",
    "go": ".go",
    "rust": ".rs",
    "java": ".java",
    "php": ".php",
    "perl": ".pl",
    "bash": ".sh",
    "swift": ".swift",
}

LANGUAGE_ALIASES: Dict[str, str] = {
    "py": "python",
    "python3": "python",
    "ts": "typescript",
    "js": "javascript",
    "node": "javascript",
    "nodejs": "javascript",
    "sh": "bash",
    "shell": "bash",
    "golang": "go",
    "rb": "ruby",
    "rs": "rust",
}

_JS_IMPORT_PATTERNS = [
    re.compile(r"""import\s+(?:[^'"]*?\s+from\s+)?['"]([^'"./][^'"]*)['"]"""),
    re.compile(r"""require\(\s*['"]([^'"./][^'"]*)['"]\s*\)"""),
]

PACKAGE_PATTERNS: Dict[str, List[re.Pattern]] = {
    "python": [
        re.compile(r"^\s*import\s+(\w+)", re.MULTILINE),
        re.compile(r"^\s*from\s+(\w+)(?:\.\w+)*\s+import", re.MULTILINE),
    ],
    "typescript": _JS_IMPORT_PATTERNS,
    "javascript": _JS_IMPORT_PATTERNS,
    "ruby": [
        re.compile(r"""^\s*require\s+['"]([^'"]+)['"]""", re.MULTILINE),
        re.compile(r"""^\s*gem\s+['"]([^'"]+)['"]""", re.MULTILINE),
    ],
    "go": [
        re.compile(r"""import\s+["']([^"']+)["']"""),
        re.compile(r"""import\s+\(\s*["']([^"']+)["']"""),
    ],
}

_NODE_BUILTINS = frozenset({
    "fs", "path", "os", "crypto", "util", "events", "stream", "http", "https",
    "url", "querystring", "buffer", "assert", "child_process", "cluster",
    "dgram", "dns", "domain", "net", "readline", "repl", "string_decoder",
    "tls", "tty", "v8", "vm", "zlib", "process", "console", "module",
    "perf_hooks", "worker_threads", "timers",
})

STDLIB_MODULES: Dict[str, frozenset] = {
    "python": frozenset({
        "os", "sys", "json", "math", "random", "datetime", "time", "re",
        "collections", "itertools", "functools", "pathlib", "typing",
        "dataclasses", "unittest", "argparse", "logging", "subprocess",
        "threading", "multiprocessing", "socket", "http", "urllib", "hashlib",
        "base64", "copy", "io", "string", "struct", "pickle", "csv", "xml",
        "html", "email", "calendar", "textwrap", "difflib", "pprint",
        "traceback", "gc", "inspect", "dis", "timeit", "profile", "abc",
        "contextlib", "decimal", "fractions", "statistics", "secrets", "uuid",
        "tempfile", "shutil", "glob", "fnmatch", "linecache", "tokenize",
        "codecs", "locale", "gettext", "operator", "weakref", "types", "array",
        "bisect", "heapq", "queue", "enum", "graphlib", "select", "selectors",
        "asyncio", "signal", "mmap", "ctypes", "sqlite3", "zlib", "gzip",
        "zipfile", "tarfile", "unicodedata", "platform", "getpass", "__future__",
    }),
    "typescript": _NODE_BUILTINS,
    "javascript": _NODE_BUILTINS,
    "ruby": frozenset({
        "json", "set", "date", "time", "securerandom", "digest", "fileutils",
        "open3", "optparse", "pp", "stringio", "tempfile", "yaml", "csv",
        "net/http", "uri", "benchmark", "logger", "pathname", "socket",
    }),
}


def normalize_language(language: str) -> str:
    """Lower-case ``language`` and map common aliases (``py``, ``ts``, ...)."""
    name = language.strip().lower()
    return LANGUAGE_ALIASES.get(name, name)


def extension_for(language: str) -> str:
    """
    Get the source file extension for a language.

    Unknown languages map to ``"." + language``.
    """
    language = normalize_language(language)
    return LANGUAGE_EXTENSIONS.get(language, f".{language}")


def code_path_for(language: str) -> str:
    """Path the code is written to inside the container."""
    return f"{CODE_DIR}/code{extension_for(language)}"


def known_languages() -> List[str]:
    return list(KNOWN_LANGUAGE_CONFIGS)


def is_known_language(language: str) -> bool:
    return normalize_language(language) in KNOWN_LANGUAGE_CONFIGS


def static_config(language: str) -> Optional[ContainerConfig]:
    """
    Get the static container template for a language.

    Returns:
        A fresh ContainerConfig, or None for languages without a template
    """
    config = KNOWN_LANGUAGE_CONFIGS.get(normalize_language(language))
    if config is None:
        return None
    return config.model_copy(deep=True)


def _base_package(name: str, language: str) -> str:
    if language == "go":
        return name
    if name.startswith("@"):
        return "/".join(name.split("/")[:2])
    return name.split("/")[0]


def detect_packages(code: str, language: str) -> List[str]:
    """
    Detect third-party packages imported by ``code``.

    Standard-library modules, relative imports and ``@types/`` packages are
    ignored. Go imports without a dot in the first path element are
    standard library.

    Returns:
        Sorted, de-duplicated package names
    """
    language = normalize_language(language)
    patterns = PACKAGE_PATTERNS.get(language)
    if not patterns:
        return []

    stdlib = STDLIB_MODULES.get(language, frozenset())
    packages = set()
    for pattern in patterns:
        for match in pattern.finditer(code):
            raw = match.group(1)
            if language in ("typescript", "javascript") and raw.startswith("node:"):
                continue
            pkg = _base_package(raw, language)
            if not pkg or pkg.startswith(".") or pkg.startswith("@types/"):
                continue
            if pkg in stdlib or raw in stdlib:
                continue
            if language == "go" and "." not in pkg.split("/")[0]:
                continue
            packages.add(pkg)
    return sorted(packages)


def package_install_command(language: str, packages: List[str]) -> Optional[str]:
    """
    Build the shell command that installs ``packages`` for a language.

    Returns:
        The command, or None when there is nothing to install or the
        language has no installer
    """
    if not packages:
        return None
    language = normalize_language(language)
    joined = " ".join(packages)
    if language == "python":
        return f"pip install --no-cache-dir {joined}"
    if language in ("typescript", "javascript"):
        return f"cd {CODE_DIR} && npm install {joined}"
    if language == "ruby":
        return f"gem install {joined}"
    if language == "go":
        return f"cd {CODE_DIR} && go mod init sandbox >/dev/null 2>&1; go get {joined}"
    return None


def _normalize_code(code: str) -> str:
    lines = []
    for line in code.replace("\r\n", "\n").split("\n"):
        line = re.sub(r"[ \t]+", " ", line.rstrip())
        if line:
            lines.append(line)
    return "\n".join(lines)


def code_signature(code: str, language: str) -> str:
    """
    Content-derived signature used in config cache keys.

    For languages with import detection the signature is the sorted set of
    third-party packages, so edits that keep the same dependencies share a
    config. Other languages hash the code after dropping blank lines,
    trailing whitespace and repeated spaces.
    """
    language = normalize_language(language)
    if language in PACKAGE_PATTERNS:
        return "pkgs:" + ",".join(detect_packages(code, language))
    digest = hashlib.sha256(_normalize_code(code).encode("utf-8")).hexdigest()
    return f"sha:{digest}"
