"""
Container Config Resolver

Turns a (code, language) pair into a runnable ContainerConfig: memory
cache, then disk cache, then the static language registry or the config
proposer. Concurrent misses on one key share a single derivation.
"""

import asyncio
from typing import Dict, List, Optional

from sandbox_runner.domain import languages
from sandbox_runner.domain.ports import ConfigProposalRequest, IConfigProposer
from sandbox_runner.domain.value_objects import CacheStats, ContainerConfig, ResolvedConfig
from sandbox_runner.infrastructure.cache import ContainerConfigCache
from sandbox_runner.infrastructure.logging import get_logger
from sandbox_runner.shared.errors import ConfigurationError, ProposerError

logger = get_logger(__name__)

SOURCE_STATIC = "static"
SOURCE_AI = "ai"


class ContainerConfigResolver:
    """
    Resolves container configurations.

    Args:
        cache: Two-tier config cache, shared by every call on this resolver
        proposer: Collaborator for languages without a static template;
            None disables AI resolution
    """

    def __init__(self, cache: ContainerConfigCache, proposer: Optional[IConfigProposer] = None):
        self.cache = cache
        self.proposer = proposer
        self._locks: Dict[str, asyncio.Lock] = {}

    def _source_for(self, language: str, use_ai_config: bool) -> str:
        if use_ai_config or not languages.is_known_language(language):
            return SOURCE_AI
        return SOURCE_STATIC

    async def resolve(self, code: str, language: str, use_ai_config: bool = False) -> ResolvedConfig:
        """
        Resolve the container configuration for ``code``.

        Returns:
            ResolvedConfig with ``cached=True`` when a cache tier answered

        Raises:
            ConfigurationError: If no valid configuration can be produced
        """
        language = languages.normalize_language(language)
        if not language:
            raise ConfigurationError("Language must not be empty")

        signature = languages.code_signature(code, language)
        source = self._source_for(language, use_ai_config)
        key = self.cache.key_for(language, source, signature)

        config = await self.cache.lookup(key)
        if config is not None:
            logger.debug("Config cache hit", language=language, source=source, cache_key=key)
            return ResolvedConfig(config=config, cached=True)

        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                # Another caller may have filled the cache while we waited.
                config = await self.cache.lookup(key)
                if config is not None:
                    return ResolvedConfig(config=config, cached=True)

                packages = languages.detect_packages(code, language)
                if source == SOURCE_STATIC:
                    config = self._derive_static(language, packages)
                else:
                    config = await self._derive_with_proposer(code, language, packages)

                await self.cache.store(key, config, language=language, signature=signature, source=source)
                logger.info(
                    "Config resolved",
                    language=language,
                    source=source,
                    base_image=config.base_image,
                    packages=len(packages),
                    cache_key=key,
                )
                return ResolvedConfig(config=config, cached=False)
        finally:
            if not lock.locked() and self._locks.get(key) is lock:
                del self._locks[key]

    def _derive_static(self, language: str, packages: List[str]) -> ContainerConfig:
        config = languages.static_config(language)
        if config is None:
            raise ConfigurationError(f"No static configuration for language '{language}'")
        install = languages.package_install_command(language, packages)
        if install:
            config = config.with_setup_commands([install])
        return config

    async def _derive_with_proposer(
        self,
        code: str,
        language: str,
        packages: List[str],
    ) -> ContainerConfig:
        if self.proposer is None:
            raise ConfigurationError(
                f"No static configuration for language '{language}' and no config proposer is configured",
                details={"language": language},
            )
        request = ConfigProposalRequest(code=code, language=language, detected_packages=packages)
        try:
            proposal = await self.proposer.propose(request)
        except ProposerError as e:
            raise ConfigurationError(
                f"Config proposer failed: {e.message}",
                details={"language": language},
            ) from e
        return ContainerConfig.from_untrusted(proposal)

    async def get_cache_stats(self) -> CacheStats:
        return await self.cache.async_stats()

    async def clear_cache(self) -> None:
        await self.cache.purge()

    def get_supported_languages(self) -> List[str]:
        return languages.known_languages()
