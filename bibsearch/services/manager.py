"""
Bibliography manager.

Coordinates loading of all bibliography providers, merges their sources
into one generation, keeps the fuzzy search index in step with it and
answers scoped queries.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from bibsearch.config.settings import Settings, get_settings
from bibsearch.models import (
    CSL,
    BibliographyCollection,
    BibliographyFile,
    BibliographySourceWithCollections,
    DocumentContext,
)
from bibsearch.providers import (
    BibliographyDataProvider,
    BibliographyDataProviderLocal,
    BibliographyDataProviderZotero,
    LOCAL_PROVIDER_KEY,
)
from bibsearch.services.biblatex import to_biblatex
from bibsearch.services.search_index import BibliographySearchIndex
from bibsearch.services.writability import should_allow_writes


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BibliographyGeneration:
    """One immutable snapshot of the merged sources and their index."""

    generation_id: int
    sources: tuple[BibliographySourceWithCollections, ...] = ()
    index: BibliographySearchIndex = field(default_factory=BibliographySearchIndex)


class BibliographyManager:
    """
    Aggregates sources from all providers and answers queries over them.

    Queries read the current generation only; `load()` builds a new
    generation and publishes it with a single assignment.
    """

    def __init__(
        self,
        providers: Optional[Sequence[BibliographyDataProvider]] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the manager.

        Args:
            providers: Providers in registration order (local file and Zotero if None)
            settings: Application settings (global settings if None)
        """
        self.settings = settings or get_settings()
        if providers is None:
            providers = [
                BibliographyDataProviderLocal(),
                BibliographyDataProviderZotero(self.settings),
            ]
        self._providers: list[BibliographyDataProvider] = list(providers)
        self._generation = BibliographyGeneration(generation_id=0)
        self._writable: Optional[bool] = None
        self._enabled_keys: Optional[tuple[str, ...]] = None
        self._load_errors: dict[str, str] = {}
        self._load_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def generation_id(self) -> int:
        """Id of the current generation (0 before the first change-detecting load)."""
        return self._generation.generation_id

    @property
    def loaded(self) -> bool:
        return self._generation.generation_id > 0

    async def _load_provider(self, provider: BibliographyDataProvider, context: DocumentContext) -> bool:
        load = provider.load(
            context.document_path,
            context.default_resource_dir,
            context.metadata_blocks,
            context.project_bibliographies,
        )
        timeout = self.settings.provider_load_timeout
        if timeout:
            return await asyncio.wait_for(load, timeout=timeout)
        return await load

    async def load(self, context: DocumentContext) -> None:
        """
        Load all providers and rebuild the index if any of them changed.

        Concurrent calls are serialized. A provider that fails or times out
        counts as unchanged and keeps its previous data.

        Args:
            context: Document context (path, resource dir, metadata blocks)
        """
        async with self._load_lock:
            enabled = [provider for provider in self._providers if provider.is_enabled()]
            enabled_keys = tuple(provider.key for provider in enabled)

            results = await asyncio.gather(
                *(self._load_provider(provider, context) for provider in enabled),
                return_exceptions=True,
            )

            changed = enabled_keys != self._enabled_keys
            for provider, result in zip(enabled, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.TimeoutError):
                        message = f"Loading {provider.name} timed out"
                    else:
                        message = f"Unable to load {provider.name}: {result}"
                    logger.error(f"Provider '{provider.key}' failed to load: {result!r}")
                    self._load_errors[provider.key] = message
                    continue
                self._load_errors.pop(provider.key, None)
                changed = changed or bool(result)

            self._writable = should_allow_writes(self.bibliography_files(context))
            self._enabled_keys = enabled_keys

            if not changed:
                logger.debug("No provider changed; keeping generation "
                             f"{self._generation.generation_id}")
                return

            sources: list[BibliographySourceWithCollections] = []
            for provider in enabled:
                sources.extend(provider.items())

            index = BibliographySearchIndex.build(
                sources,
                score_cutoff=self.settings.search_score_cutoff,
            )
            self._generation = BibliographyGeneration(
                generation_id=self._generation.generation_id + 1,
                sources=tuple(sources),
                index=index,
            )
            logger.info(
                f"Bibliography generation {self._generation.generation_id}: "
                f"{len(sources)} sources, writable={self._writable}"
            )

    # ------------------------------------------------------------------
    # Writability
    # ------------------------------------------------------------------

    def is_writable(self) -> bool:
        """Writability as of the last load (False before any load)."""
        return bool(self._writable)

    def bibliography_files(self, context: DocumentContext) -> list[BibliographyFile]:
        """Bibliography files from every provider."""
        files: list[BibliographyFile] = []
        for provider in self._providers:
            files.extend(provider.bibliography_paths(context))
        return files

    def writable_bibliography_files(self, context: DocumentContext) -> list[BibliographyFile]:
        return [bib_file for bib_file in self.bibliography_files(context) if bib_file.writable]

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def providers(self) -> list[BibliographyDataProvider]:
        return list(self._providers)

    def provider(self, provider_key: str) -> Optional[BibliographyDataProvider]:
        return next((p for p in self._providers if p.key == provider_key), None)

    def provider_name(self, provider_key: str) -> Optional[str]:
        provider = self.provider(provider_key)
        return provider.name if provider else None

    def collections(self, provider_key: Optional[str] = None) -> list[BibliographyCollection]:
        """Collections of all enabled providers, or of one provider."""
        collections: list[BibliographyCollection] = []
        for provider in self._providers:
            if provider_key is not None and provider.key != provider_key:
                continue
            if provider.is_enabled():
                collections.extend(provider.collections())
        return collections

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _visible(
        self,
        sources: Sequence[BibliographySourceWithCollections],
    ) -> list[BibliographySourceWithCollections]:
        # Sources that can't be written to the document stay hidden
        if self.is_writable():
            return list(sources)
        return [source for source in sources if source.provider_key == LOCAL_PROVIDER_KEY]

    def all_sources(self) -> list[BibliographySourceWithCollections]:
        """All sources, or only local ones if the bibliography is not writable."""
        return self._visible(self._generation.sources)

    def has_sources(self) -> bool:
        return len(self.all_sources()) > 0

    def local_sources(self) -> list[BibliographySourceWithCollections]:
        return [source for source in self.all_sources() if source.provider_key == LOCAL_PROVIDER_KEY]

    def sources_for_provider(self, provider_key: str) -> list[BibliographySourceWithCollections]:
        return [source for source in self.all_sources() if source.provider_key == provider_key]

    def sources_for_provider_collection(
        self,
        provider_key: str,
        collection_key: str,
    ) -> list[BibliographySourceWithCollections]:
        return [
            source for source in self.sources_for_provider(provider_key)
            if collection_key in source.collection_keys
        ]

    def find_doi_in_local_sources(self, doi: str) -> Optional[BibliographySourceWithCollections]:
        """
        Find a local source by DOI (case-insensitive).

        Only sources already loaded are searched; call load() first.
        """
        wanted = doi.strip().lower()
        return next(
            (s for s in self.local_sources() if s.DOI and s.DOI.strip().lower() == wanted),
            None,
        )

    def find_id_in_local_sources(self, id: str) -> Optional[BibliographySourceWithCollections]:
        """
        Find a local source by id.

        Only sources already loaded are searched; call load() first.
        """
        return next((s for s in self.local_sources() if s.id == id), None)

    def _cap_query(self, query: str) -> str:
        max_length = self.settings.search_max_query_length
        if len(query) > max_length:
            logger.debug(f"Truncating search query to {max_length} characters")
            return query[:max_length]
        return query

    def search_all_sources(self, query: str, limit: int) -> list[BibliographySourceWithCollections]:
        """Fuzzy search over all visible sources."""
        generation = self._generation
        results = generation.index.query(self._cap_query(query), limit)
        return self._visible(results)

    def search_provider(
        self,
        query: str,
        limit: int,
        provider_key: str,
    ) -> list[BibliographySourceWithCollections]:
        return [
            source for source in self.search_all_sources(query, limit)
            if source.provider_key == provider_key
        ]

    def search_provider_collection(
        self,
        query: str,
        limit: int,
        provider_key: str,
        collection_key: str,
    ) -> list[BibliographySourceWithCollections]:
        return [
            source for source in self.search_provider(query, limit, provider_key)
            if collection_key in source.collection_keys
        ]

    def search(
        self,
        query: Optional[str] = None,
        provider_key: Optional[str] = None,
        collection_key: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[BibliographySourceWithCollections]:
        """
        Search or list sources, optionally scoped to a provider and collection.

        Args:
            query: Free text to fuzzy match (lists sources if blank)
            provider_key: Restrict to one provider
            collection_key: Restrict to one collection of that provider
            limit: Maximum number of fuzzy search results

        Returns:
            Matching sources (by relevance when a query is given)
        """
        if limit is None:
            limit = self.settings.search_limit

        if query and query.strip():
            if provider_key and collection_key:
                return self.search_provider_collection(query, limit, provider_key, collection_key)
            elif provider_key:
                return self.search_provider(query, limit, provider_key)
            return self.search_all_sources(query, limit)

        if provider_key and collection_key:
            return self.sources_for_provider_collection(provider_key, collection_key)
        elif provider_key:
            return self.sources_for_provider(provider_key)
        return self.all_sources()

    # ------------------------------------------------------------------
    # Citations
    # ------------------------------------------------------------------

    async def generate_biblatex(
        self,
        id: str,
        csl: CSL,
        provider_key: Optional[str] = None,
    ) -> str:
        """
        BibLaTeX for a source.

        The named provider gets the first chance (e.g. Better BibTeX with
        the user's citation key rules); otherwise the entry is generated
        from the CSL fields.
        """
        provider = self.provider(provider_key) if provider_key else None
        if provider is not None:
            try:
                biblatex = await provider.generate_biblatex(id, csl)
            except Exception as e:
                logger.warning(f"Provider '{provider.key}' failed to generate BibLaTeX for {id}: {e}")
                biblatex = None
            if biblatex:
                return biblatex
        return to_biblatex(id, csl)

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def warning(self) -> Optional[str]:
        """First warning in provider registration order, if any."""
        for provider in self._providers:
            message = provider.warning_message()
            if message:
                return message
        for provider in self._providers:
            if provider.key in self._load_errors:
                return self._load_errors[provider.key]
        return None

    def warning_for_provider(self, provider_key: Optional[str]) -> Optional[str]:
        if not provider_key:
            return None
        provider = self.provider(provider_key)
        if provider is None:
            return None
        return provider.warning_message() or self._load_errors.get(provider_key)

    async def close(self):
        """Close provider connections."""
        for provider in self._providers:
            await provider.close()


# Global manager instance
_manager: Optional[BibliographyManager] = None


def get_manager() -> BibliographyManager:
    """
    Get the global bibliography manager.

    Creates and caches the manager on first call.
    """
    global _manager
    if _manager is None:
        _manager = BibliographyManager()
    return _manager


def reset_manager():
    """Reset the global manager instance (mainly for testing)."""
    global _manager
    _manager = None
