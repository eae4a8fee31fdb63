"""
Experience Service

An experience is an isolated on-disk copy of a project directory that
keeps its state between container commands, like a working branch. It is
started from a source directory, continued any number of times, and
finally committed back onto the source or discarded.

Experiences live in a sibling of the work directory
(``<parent>/<work dir name>-sandbox-experiences``), never inside it, so a
recursive copy of the work directory cannot include itself. Committed and
discarded ids leave a tombstone under ``.closed/`` and cannot be reused.
"""

import json
import os
import re
import secrets
import string
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from sandbox_runner.domain.value_objects import (
    EXPERIENCE_METADATA_FILE,
    ExperienceMetadata,
    ExperienceStatus,
)
from sandbox_runner.infrastructure.filesystem import copy_tree, mirror_tree, remove_tree
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import (
    ExperienceClosedError,
    ExperienceExistsError,
    ExperienceNotFoundError,
    FilesystemError,
    InvalidExperienceIdError,
)

logger = get_logger(__name__)

PathLike = Union[str, Path]

EXPERIENCES_SUFFIX = "-sandbox-experiences"
CLOSED_DIR = ".closed"
COPY_EXCLUDES = (".git", "node_modules", ".sandbox-experiences")
EXPERIENCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_experience_id() -> str:
    """Generate ``experience-<epoch ms>-<7 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"experience-{int(time.time() * 1000)}-{suffix}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExperienceService:
    """
    Manages experience directories.

    A single writer per experience id is assumed; callers serialize
    operations on the same id.
    """

    def __init__(self, suffix: str = EXPERIENCES_SUFFIX):
        self.suffix = suffix

    # ============== Paths ==============

    def base_dir(self, work_dir: PathLike) -> Path:
        work_dir = Path(work_dir).resolve()
        name = work_dir.name or "workspace"
        return work_dir.parent / f"{name}{self.suffix}"

    def experience_dir(self, work_dir: PathLike, experience_id: str) -> Path:
        self.validate_id(experience_id)
        return self.base_dir(work_dir) / experience_id

    def _metadata_path(self, work_dir: PathLike, experience_id: str) -> Path:
        return self.experience_dir(work_dir, experience_id) / EXPERIENCE_METADATA_FILE

    def _tombstone_path(self, work_dir: PathLike, experience_id: str) -> Path:
        return self.base_dir(work_dir) / CLOSED_DIR / f"{experience_id}.json"

    @staticmethod
    def validate_id(experience_id: str) -> None:
        """
        Raises:
            InvalidExperienceIdError: If the id is not a single safe path component
        """
        if not isinstance(experience_id, str) or not EXPERIENCE_ID_PATTERN.match(experience_id):
            raise InvalidExperienceIdError(
                f"Experience id {experience_id!r} must match {EXPERIENCE_ID_PATTERN.pattern}"
            )

    # ============== Metadata ==============

    def experience_exists(self, work_dir: PathLike, experience_id: str) -> bool:
        return self._metadata_path(work_dir, experience_id).is_file()

    def load_experience(self, work_dir: PathLike, experience_id: str) -> Optional[ExperienceMetadata]:
        """
        Load metadata, or None when the experience does not exist.

        Raises:
            FilesystemError: If the metadata file exists but is unreadable
        """
        path = self._metadata_path(work_dir, experience_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FilesystemError(f"Cannot read experience metadata: {e}") from e
        try:
            return ExperienceMetadata.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise FilesystemError(
                f"Corrupt experience metadata for {experience_id}: {e}",
                details={"path": str(path)},
            ) from e

    def _save_metadata(self, work_dir: PathLike, metadata: ExperienceMetadata) -> None:
        path = self._metadata_path(work_dir, metadata.experience_id)
        _write_json_atomic(path, metadata.to_dict())

    def closed_status(self, work_dir: PathLike, experience_id: str) -> Optional[ExperienceStatus]:
        """Terminal status recorded for ``experience_id``, if any."""
        path = self._tombstone_path(work_dir, experience_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return ExperienceStatus(data["status"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Unreadable experience tombstone", path=str(path), error=str(e))
            return ExperienceStatus.DISCARDED

    def _close(self, work_dir: PathLike, experience_id: str, status: ExperienceStatus) -> None:
        _write_json_atomic(
            self._tombstone_path(work_dir, experience_id),
            {"experienceId": experience_id, "status": status.value, "closedAt": _now().isoformat()},
        )

    def _ensure_open(self, work_dir: PathLike, experience_id: str) -> None:
        status = self.closed_status(work_dir, experience_id)
        if status is not None:
            raise ExperienceClosedError(f"Experience {experience_id} was already {status.value}")

    # ============== Lifecycle ==============

    def start_experience(
        self,
        work_dir: PathLike,
        experience_id: str,
        source_path: PathLike,
        agent_id: Optional[str] = None,
    ) -> ExperienceMetadata:
        """
        Create an experience as a copy of ``source_path``.

        ``.git``, ``node_modules`` and experience directories are not copied.

        Raises:
            ExperienceExistsError: If the id is live
            ExperienceClosedError: If the id was committed or discarded
            FilesystemError: If the source is missing or the copy fails
        """
        self.validate_id(experience_id)
        source = Path(source_path).resolve()
        if not source.is_dir():
            raise FilesystemError(f"Source path is not a directory: {source}")
        self._ensure_open(work_dir, experience_id)
        if self.experience_exists(work_dir, experience_id):
            raise ExperienceExistsError(f"Experience {experience_id} already exists")

        target = self.experience_dir(work_dir, experience_id)
        if target.exists():
            logger.warning("Removing stale experience directory", experience_id=experience_id)
            remove_tree(target)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            copy_tree(source, target, exclude=COPY_EXCLUDES, exclude_suffixes=(self.suffix,))
            now = _now()
            metadata = ExperienceMetadata(
                experience_id=experience_id,
                source_path=str(source),
                created=now,
                last_used=now,
                agent_id=agent_id,
            )
            self._save_metadata(work_dir, metadata)
        except OSError as e:
            remove_tree(target)
            raise FilesystemError(
                f"Failed to create experience {experience_id}: {e}",
                details={"source_path": str(source)},
            ) from e

        logger.info(
            "Experience started",
            experience_id=experience_id,
            source_path=str(source),
            agent_id=agent_id,
        )
        return metadata

    def continue_experience(self, work_dir: PathLike, experience_id: str) -> ExperienceMetadata:
        """
        Refresh ``last_used`` on an active experience.

        Raises:
            ExperienceNotFoundError: If the experience does not exist
            ExperienceClosedError: If it was committed or discarded
        """
        self._ensure_open(work_dir, experience_id)
        metadata = self.load_experience(work_dir, experience_id)
        if metadata is None:
            raise ExperienceNotFoundError(f"Experience {experience_id} does not exist")
        metadata.last_used = _now()
        self._save_metadata(work_dir, metadata)
        logger.debug("Experience continued", experience_id=experience_id)
        return metadata

    def commit_experience(self, work_dir: PathLike, experience_id: str) -> ExperienceMetadata:
        """
        Copy the experience back onto its source, then delete it.

        Files deleted inside the experience are NOT deleted from the
        source. If the copy fails the experience is left intact.

        Raises:
            ExperienceNotFoundError: If the experience does not exist
            FilesystemError: If copying or deleting fails
        """
        self._ensure_open(work_dir, experience_id)
        metadata = self.load_experience(work_dir, experience_id)
        if metadata is None:
            raise ExperienceNotFoundError(f"Experience {experience_id} does not exist")

        experience_dir = self.experience_dir(work_dir, experience_id)
        try:
            copy_tree(experience_dir, metadata.source_path, exclude=(EXPERIENCE_METADATA_FILE,))
        except OSError as e:
            logger.error("Experience commit copy failed", experience_id=experience_id, error=str(e))
            raise FilesystemError(
                f"Failed to commit experience {experience_id}: {e}",
                details={"source_path": metadata.source_path},
            ) from e

        try:
            remove_tree(experience_dir)
        except OSError as e:
            raise FilesystemError(f"Committed experience {experience_id} but could not remove it: {e}") from e
        self._close(work_dir, experience_id, ExperienceStatus.COMMITTED)

        logger.info("Experience committed", experience_id=experience_id, source_path=metadata.source_path)
        return metadata

    def discard_experience(self, work_dir: PathLike, experience_id: str) -> None:
        """Delete the experience without touching its source; a missing directory is fine."""
        self.validate_id(experience_id)
        try:
            removed = remove_tree(self.experience_dir(work_dir, experience_id))
        except OSError as e:
            raise FilesystemError(f"Failed to discard experience {experience_id}: {e}") from e
        self._close(work_dir, experience_id, ExperienceStatus.DISCARDED)
        logger.info("Experience discarded", experience_id=experience_id, removed=removed)

    def apply_workspace_export(self, work_dir: PathLike, experience_id: str, export_dir: PathLike) -> None:
        """
        Replace the experience contents with a workspace exported from a
        container. The metadata file and excluded directories are kept.
        """
        experience_dir = self.experience_dir(work_dir, experience_id)
        try:
            mirror_tree(export_dir, experience_dir, preserve=(EXPERIENCE_METADATA_FILE, *COPY_EXCLUDES))
        except OSError as e:
            raise FilesystemError(f"Failed to update experience {experience_id}: {e}") from e
        logger.debug("Experience updated from workspace export", experience_id=experience_id)


def _write_json_atomic(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
