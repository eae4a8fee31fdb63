"""
Two-tier container configuration cache

A bounded in-memory LRU in front of a directory of JSON files, one file per
cache key. Disk entries outlive the process; memory entries do not.
"""

import asyncio
import hashlib
import json
import os
import tempfile
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from sandbox_runner.domain.value_objects import CacheStats, ContainerConfig
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import ConfigurationError

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """
    A cached configuration with bookkeeping.

    Attributes:
        config: The cached container configuration
        language: Normalized language name
        signature: Content signature the key was derived from
        source: Derivation source, ``static`` or ``ai``
        created_at: When the entry was first stored (UTC)
        last_accessed: Most recent hit (UTC)
        hit_count: Number of stores plus hits
    """

    config: ContainerConfig
    language: str
    signature: str
    source: str
    created_at: datetime
    last_accessed: datetime
    hit_count: int = 1

    def to_dict(self) -> dict:
        return {
            "config": self.config.to_dict(),
            "language": self.language,
            "signature": self.signature,
            "source": self.source,
            "createdAt": self.created_at.isoformat(),
            "lastAccessed": self.last_accessed.isoformat(),
            "hitCount": self.hit_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            config=ContainerConfig.from_untrusted(data["config"]),
            language=str(data["language"]),
            signature=str(data.get("signature", "")),
            source=str(data.get("source", "")),
            created_at=datetime.fromisoformat(data["createdAt"]),
            last_accessed=datetime.fromisoformat(data["lastAccessed"]),
            hit_count=int(data.get("hitCount", 1)),
        )


class ContainerConfigCache:
    """
    Memory + disk cache of container configurations keyed by
    ``(language, source, signature)``.
    """

    def __init__(self, cache_dir: Union[str, Path], max_memory_size: int = 100):
        if max_memory_size < 1:
            raise ValueError("max_memory_size must be at least 1")
        self.cache_dir = Path(cache_dir)
        self.max_memory_size = max_memory_size
        self._memory: "OrderedDict[str, CacheEntry]" = OrderedDict()

    @staticmethod
    def key_for(language: str, source: str, signature: str) -> str:
        data = f"{language}|{source}|{signature}"
        return hashlib.sha256(data.encode("utf-8")).hexdigest()[:32]

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get_memory(self, key: str) -> Optional[ContainerConfig]:
        """Look up the memory tier only."""
        entry = self._memory.get(key)
        if entry is None:
            return None
        self._memory.move_to_end(key)
        entry.hit_count += 1
        entry.last_accessed = datetime.now(timezone.utc)
        return entry.config

    def get_disk(self, key: str) -> Optional[ContainerConfig]:
        """Look up the disk tier and promote a hit into memory."""
        entry = self._load(key)
        if entry is None:
            return None
        self._remember(key, entry)
        return entry.config

    def _load(self, key: str) -> Optional[CacheEntry]:
        """
        Read the disk entry for ``key`` and record the hit in its file.

        A file that cannot be parsed or validated is removed and reported as
        a miss.
        """
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read cache file", path=str(path), error=str(e))
            return None

        try:
            entry = CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, ConfigurationError) as e:
            logger.warning("Discarding invalid cache file", path=str(path), error=str(e))
            path.unlink(missing_ok=True)
            return None

        entry.hit_count += 1
        entry.last_accessed = datetime.now(timezone.utc)
        self._write(path, entry)
        return entry

    def get(self, key: str) -> Optional[ContainerConfig]:
        return self.get_memory(key) or self.get_disk(key)

    async def lookup(self, key: str) -> Optional[ContainerConfig]:
        """Like ``get``, with the disk tier read in a worker thread."""
        config = self.get_memory(key)
        if config is not None:
            return config
        entry = await asyncio.to_thread(self._load, key)
        if entry is None:
            return None
        self._remember(key, entry)
        return entry.config

    def _new_entry(self, config: ContainerConfig, language: str, signature: str, source: str) -> CacheEntry:
        now = datetime.now(timezone.utc)
        return CacheEntry(
            config=config,
            language=language,
            signature=signature,
            source=source,
            created_at=now,
            last_accessed=now,
        )

    def set(
        self,
        key: str,
        config: ContainerConfig,
        language: str,
        signature: str,
        source: str,
    ) -> None:
        """Store ``config`` in both tiers."""
        entry = self._new_entry(config, language, signature, source)
        self._remember(key, entry)
        self._write(self._path_for(key), entry)

    async def store(
        self,
        key: str,
        config: ContainerConfig,
        language: str,
        signature: str,
        source: str,
    ) -> None:
        """Like ``set``, with the disk write done in a worker thread."""
        entry = self._new_entry(config, language, signature, source)
        self._remember(key, entry)
        await asyncio.to_thread(self._write, self._path_for(key), entry)

    def _remember(self, key: str, entry: CacheEntry) -> None:
        self._memory[key] = entry
        self._memory.move_to_end(key)
        while len(self._memory) > self.max_memory_size:
            evicted, _ = self._memory.popitem(last=False)
            logger.debug("Evicted config from memory cache", cache_key=evicted)

    def _write(self, path: Path, entry: CacheEntry) -> None:
        # Readers must never see a half-written file.
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Failed to write cache file", path=str(path), error=str(e))

    def clear(self) -> None:
        """Remove every entry from both tiers."""
        self._memory.clear()
        self._clear_disk()

    async def purge(self) -> None:
        """Like ``clear``, with the files removed in a worker thread."""
        self._memory.clear()
        await asyncio.to_thread(self._clear_disk)

    def _clear_disk(self) -> None:
        if not self.cache_dir.is_dir():
            return
        for path in self.cache_dir.glob("*.json"):
            path.unlink(missing_ok=True)
        logger.info("Config cache cleared", cache_dir=str(self.cache_dir))

    def _disk_size(self) -> int:
        if not self.cache_dir.is_dir():
            return 0
        return sum(1 for p in self.cache_dir.glob("*.json") if not p.name.startswith(".tmp-"))

    def stats(self) -> CacheStats:
        return CacheStats(
            memory_size=len(self._memory),
            disk_size=self._disk_size(),
            cache_dir=str(self.cache_dir),
        )

    async def async_stats(self) -> CacheStats:
        disk_size = await asyncio.to_thread(self._disk_size)
        return CacheStats(
            memory_size=len(self._memory),
            disk_size=disk_size,
            cache_dir=str(self.cache_dir),
        )
