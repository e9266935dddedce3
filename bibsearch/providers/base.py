"""
Bibliography data provider interface.

A provider supplies sources and collections from one origin (bibliography
files referenced by the document, a Zotero library, ...). It owns its own
cache; the manager only reads from it.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence

from bibsearch.models import (
    CSL,
    BibliographyCollection,
    BibliographyFile,
    BibliographySourceWithCollections,
    DocumentContext,
)


class BibliographyDataProvider(ABC):
    """Abstract base class for bibliography data providers."""

    key: str
    name: str

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether this provider should participate at all."""
        pass

    @abstractmethod
    async def load(
        self,
        document_path: Optional[Path],
        default_resource_dir: Path,
        metadata_blocks: list[dict[str, Any]],
        project_bibliographies: Sequence[str] = (),
    ) -> bool:
        """
        Load or refresh the provider's data.

        Args:
            document_path: Path of the edited document, None if unsaved
            default_resource_dir: Fallback directory for relative paths
            metadata_blocks: Parsed metadata blocks of the document
            project_bibliographies: Bibliography files declared by the enclosing project

        Returns:
            True if the provider's data changed since the previous load
        """
        pass

    @abstractmethod
    def collections(self) -> list[BibliographyCollection]:
        """Collections from the last successful load."""
        pass

    @abstractmethod
    def items(self) -> list[BibliographySourceWithCollections]:
        """Sources from the last successful load."""
        pass

    def items_for_collection(self, collection_key: str) -> list[BibliographySourceWithCollections]:
        """Sources belonging to a collection."""
        return [item for item in self.items() if collection_key in item.collection_keys]

    @abstractmethod
    def bibliography_paths(self, context: DocumentContext) -> list[BibliographyFile]:
        """On-disk bibliographies this provider could write to."""
        pass

    async def generate_biblatex(self, id: str, csl: CSL) -> Optional[str]:
        """
        Provider-specific BibLaTeX for a source.

        Returns:
            BibLaTeX text, or None to defer to the generic formatter
        """
        return None

    @abstractmethod
    def warning_message(self) -> Optional[str]:
        """Sticky warning describing the last load problem, if any."""
        pass

    async def close(self):
        """Release any connections held by the provider."""
        pass
