"""
Domain layer dependency tests.
"""
import ast
from pathlib import Path

import pytest

import sandbox_runner.domain

DOMAIN_DIR = Path(sandbox_runner.domain.__file__).parent
FORBIDDEN = ("sandbox_runner.infrastructure", "sandbox_runner.application", "sandbox_runner.interfaces")


def imported_modules(path: Path):
    tree = ast.parse(path.read_text(encoding="utf-8"))
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            yield from (alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            yield node.module


@pytest.mark.parametrize(
    "path",
    sorted(DOMAIN_DIR.rglob("*.py")),
    ids=lambda p: str(p.relative_to(DOMAIN_DIR)),
)
def test_domain_module_imports_no_outer_layer(path):
    outer = [m for m in imported_modules(path) if m.startswith(FORBIDDEN)]

    assert outer == []
