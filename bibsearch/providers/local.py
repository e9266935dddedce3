"""
Provider for bibliography files referenced by the document.

Reads the files named in the document's `bibliography` metadata (and the
enclosing project's bibliographies), plus inline `references` blocks.
BibTeX/BibLaTeX files are parsed with pybtex; CSL-JSON files are read as is.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from pybtex.database import Entry
from pybtex.exceptions import PybtexError
from pydantic import ValidationError

from bibsearch.models import (
    CSL,
    BibliographyCollection,
    BibliographyFile,
    BibliographySourceWithCollections,
    DocumentContext,
)
from bibsearch.providers.base import BibliographyDataProvider
from bibsearch.services.bibtex_import import entry_to_bibtex, entry_to_csl, parse_bibtex_file
from bibsearch.services.writability import is_path_writable


logger = logging.getLogger(__name__)


LOCAL_PROVIDER_KEY = "local"

BIBTEX_SUFFIXES = {".bib", ".bibtex"}
CSL_JSON_SUFFIXES = {".json"}
WRITABLE_SUFFIXES = {".bib", ".json"}


def _bibliography_entries(metadata_blocks: Sequence[dict[str, Any]]) -> list[str]:
    """Values of the `bibliography` key across all metadata blocks."""
    entries = []
    for block in metadata_blocks:
        value = block.get("bibliography") if isinstance(block, dict) else None
        if isinstance(value, str):
            entries.append(value)
        elif isinstance(value, list):
            entries.extend(str(item) for item in value if item)
    return entries


def _resolve(display_path: str, resource_dir: Path) -> Path:
    path = Path(display_path).expanduser()
    if not path.is_absolute():
        path = resource_dir / path
    return path.resolve()


def resolve_bibliography_files(
    resource_dir: Path,
    metadata_blocks: Sequence[dict[str, Any]],
    project_bibliographies: Sequence[str] = (),
) -> list[tuple[str, Path, bool]]:
    """
    Resolve the bibliography files a document refers to.

    Args:
        resource_dir: Directory relative paths are resolved against
        metadata_blocks: Parsed metadata blocks of the document
        project_bibliographies: Files declared by the enclosing project

    Returns:
        (display path, resolved path, is project) tuples, first occurrence wins
    """
    seen: set[Path] = set()
    files = []
    candidates = [(entry, False) for entry in _bibliography_entries(metadata_blocks)]
    candidates += [(entry, True) for entry in project_bibliographies]
    for display_path, is_project in candidates:
        path = _resolve(display_path, resource_dir)
        if path in seen:
            continue
        seen.add(path)
        files.append((display_path, path, is_project))
    return files


class BibliographyDataProviderLocal(BibliographyDataProvider):
    """
    Bibliography files and inline references of the current document.

    Files are only re-read when their modification time or size changes,
    or when the set of referenced files or inline references changes.
    """

    key = LOCAL_PROVIDER_KEY
    name = "Bibliography"

    def __init__(self):
        self._signature: Optional[tuple] = None
        self._sources: list[BibliographySourceWithCollections] = []
        self._entries: dict[str, Entry] = {}
        self._warning: Optional[str] = None

    def is_enabled(self) -> bool:
        return True

    @staticmethod
    def _file_state(path: Path) -> tuple:
        try:
            stat = path.stat()
        except OSError:
            return (str(path), None, None)
        return (str(path), stat.st_mtime_ns, stat.st_size)

    async def load(
        self,
        document_path: Optional[Path],
        default_resource_dir: Path,
        metadata_blocks: list[dict[str, Any]],
        project_bibliographies: Sequence[str] = (),
    ) -> bool:
        resource_dir = document_path.parent if document_path is not None else default_resource_dir
        files = [
            path for _, path, _ in
            resolve_bibliography_files(resource_dir, metadata_blocks, project_bibliographies)
        ]
        inline = [
            reference
            for block in metadata_blocks if isinstance(block, dict)
            for reference in (block.get("references") or [])
            if isinstance(reference, dict)
        ]

        signature = (
            tuple(self._file_state(path) for path in files),
            json.dumps(inline, sort_keys=True, default=str),
        )
        if signature == self._signature:
            logger.debug("Local bibliography unchanged")
            return False

        sources, entries, warnings = await asyncio.to_thread(self._read_sources, files, inline)

        self._signature = signature
        self._sources = sources
        self._entries = entries
        self._warning = "\n".join(warnings) if warnings else None
        logger.info(f"Loaded {len(sources)} sources from {len(files)} local bibliography file(s)")
        return True

    def _read_sources(
        self,
        files: list[Path],
        inline: list[dict[str, Any]],
    ) -> tuple[list[BibliographySourceWithCollections], dict[str, Entry], list[str]]:
        sources: list[BibliographySourceWithCollections] = []
        entries: dict[str, Entry] = {}
        warnings: list[str] = []
        seen_ids: set[str] = set()

        def add(csl: dict[str, Any], entry: Optional[Entry], origin: str):
            source_id = csl.get("id")
            if source_id is None or str(source_id) == "":
                logger.warning(f"Skipping source without id in {origin}")
                return
            source_id = str(source_id)
            if source_id in seen_ids:
                logger.debug(f"Duplicate source '{source_id}' in {origin} ignored")
                return
            try:
                source = BibliographySourceWithCollections.model_validate(
                    {**csl, "id": source_id, "providerKey": LOCAL_PROVIDER_KEY, "collectionKeys": []}
                )
            except ValidationError as e:
                logger.warning(f"Skipping malformed source '{source_id}' in {origin}: {e}")
                return
            seen_ids.add(source_id)
            sources.append(source)
            if entry is not None:
                entries[source_id] = entry

        for path in files:
            if not path.exists():
                warnings.append(f"Bibliography file not found: {path}")
                continue

            suffix = path.suffix.lower()
            try:
                if suffix in BIBTEX_SUFFIXES:
                    data = parse_bibtex_file(path)
                    for key, entry in data.entries.items():
                        add(entry_to_csl(key, entry), entry, str(path))
                elif suffix in CSL_JSON_SUFFIXES:
                    items = json.loads(path.read_text(encoding="utf-8"))
                    if not isinstance(items, list):
                        raise ValueError("CSL-JSON bibliography must be a list of items")
                    for item in items:
                        if isinstance(item, dict):
                            add(item, None, str(path))
                else:
                    warnings.append(f"Unsupported bibliography format: {path}")
            except (OSError, PybtexError, ValueError) as e:
                logger.error(f"Failed to read bibliography {path}: {e}")
                warnings.append(f"Unable to read bibliography file {path}: {e}")

        for reference in inline:
            add(reference, None, "inline references")

        return sources, entries, warnings

    def collections(self) -> list[BibliographyCollection]:
        return []

    def items(self) -> list[BibliographySourceWithCollections]:
        return list(self._sources)

    def items_for_collection(self, collection_key: str) -> list[BibliographySourceWithCollections]:
        return []

    def bibliography_paths(self, context: DocumentContext) -> list[BibliographyFile]:
        files = resolve_bibliography_files(
            context.resource_dir(),
            context.metadata_blocks,
            context.project_bibliographies,
        )
        return [
            BibliographyFile(
                display_path=display_path,
                full_path=str(path),
                is_project=is_project,
                writable=path.suffix.lower() in WRITABLE_SUFFIXES and is_path_writable(path),
            )
            for display_path, path, is_project in files
        ]

    async def generate_biblatex(self, id: str, csl: CSL) -> Optional[str]:
        entry = self._entries.get(id)
        if entry is None:
            return None
        return entry_to_bibtex(id, entry)

    def warning_message(self) -> Optional[str]:
        return self._warning
