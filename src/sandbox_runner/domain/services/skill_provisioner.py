"""
Skill provisioning

Finds plugin/skill references in project scripts and maps them to git
repositories that are cloned into the container before a project command
runs. Nothing from the host's plugin directory is mounted.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sandbox_runner.domain.value_objects import SkillRepo

KNOWN_SKILLS: Dict[str, SkillRepo] = {
    "chrome-driver": SkillRepo(
        name="chrome-driver",
        git_repo="The-Focus-AI/chrome-driver",
        container_path="/opt/chrome-driver",
        apt_packages=["chromium", "perl", "libwww-perl", "libjson-perl"],
    ),
    "nano-banana": SkillRepo(
        name="nano-banana",
        git_repo="The-Focus-AI/nano-banana-cli",
        container_path="/opt/nano-banana",
    ),
}

_PLUGIN_CACHE_SUFFIX = "/.claude/plugins/cache/"
_TILDE_PLUGIN_REF = re.compile(r"~/\.claude/plugins/cache/([^/\s]+)/([^/\s]+)/")


@dataclass
class SkillRequirements:
    """Container requirements contributed by detected skills."""

    apt_packages: List[str] = field(default_factory=list)
    skill_repos: List[SkillRepo] = field(default_factory=list)


def _plugin_refs(text: str, home: str) -> List[tuple]:
    refs = [(m.start(), m.group(1), m.group(2)) for m in _TILDE_PLUGIN_REF.finditer(text)]
    expanded = re.compile(re.escape(home.rstrip("/") + _PLUGIN_CACHE_SUFFIX) + r"([^/\s]+)/([^/\s]+)/")
    refs.extend((m.start(), m.group(1), m.group(2)) for m in expanded.finditer(text))
    refs.sort()
    return [(marketplace, plugin) for _, marketplace, plugin in refs]


def detect_skill_requirements(
    script_contents: Iterable[str],
    home: Optional[str] = None,
) -> SkillRequirements:
    """
    Detect ``~/.claude/plugins/cache/<marketplace>/<plugin>/`` references.

    Both the tilde form and the expanded home directory form are matched.
    Known plugins use their entry in KNOWN_SKILLS; unknown plugins guess
    ``<marketplace>/<plugin>`` as the repository.
    """
    home = home if home is not None else str(Path.home())
    combined = "\n".join(script_contents)

    requirements = SkillRequirements()
    seen = set()
    for marketplace, plugin in _plugin_refs(combined, home):
        if plugin in seen:
            continue
        seen.add(plugin)

        known = KNOWN_SKILLS.get(plugin)
        if known is not None:
            for pkg in known.apt_packages:
                if pkg not in requirements.apt_packages:
                    requirements.apt_packages.append(pkg)
            requirements.skill_repos.append(known)
        else:
            requirements.skill_repos.append(
                SkillRepo(
                    name=plugin,
                    git_repo=f"{marketplace}/{plugin}",
                    container_path=f"/opt/{plugin}",
                )
            )
    return requirements


def resolve_skill_repo(name_or_repo: str) -> SkillRepo:
    """
    Resolve an agent-declared skill to a SkillRepo.

    A known skill name returns its table entry; anything else is treated as
    a repository (``owner/repo`` or URL) cloned to ``/opt/<repo name>``.
    """
    known = KNOWN_SKILLS.get(name_or_repo)
    if known is not None:
        return known
    name = name_or_repo.rstrip("/").split("/")[-1]
    name = name.removesuffix(".git") or name_or_repo
    return SkillRepo(name=name, git_repo=name_or_repo, container_path=f"/opt/{name}")


_OWNER_REPO = re.compile(r"^[^/\s]+/[^/\s]+$")


def normalize_git_url(repo: str) -> str:
    """Expand ``owner/repo`` to a GitHub HTTPS URL; URLs are returned unchanged."""
    repo = repo.strip()
    if repo.startswith(("http://", "https://", "git@")):
        return repo
    if _OWNER_REPO.match(repo):
        return f"https://github.com/{repo}"
    return repo
