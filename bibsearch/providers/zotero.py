"""
Provider for Zotero libraries.

Reads items and collections from the Zotero desktop local API or from
zotero.org. Each library is exposed as a top-level collection, with its
Zotero collections nested beneath it.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError

from bibsearch.config.settings import Settings, get_settings
from bibsearch.models import (
    CSL,
    BibliographyCollection,
    BibliographyFile,
    BibliographySourceWithCollections,
    DocumentContext,
)
from bibsearch.providers.base import BibliographyDataProvider
from bibsearch.zotero.local_api import ZoteroLocalAPI
from bibsearch.zotero.web_api import ZoteroWebClient


logger = logging.getLogger(__name__)


ZOTERO_PROVIDER_KEY = "zotero"

# Item types that are not citable sources
SKIPPED_ITEM_TYPES = {"attachment", "note", "annotation"}

CONNECTION_WARNING = (
    "Unable to connect to Zotero. Please ensure that Zotero is running "
    "and that other applications are allowed to communicate with it."
)
WEB_CONNECTION_WARNING = (
    "Unable to connect to the Zotero web API. Please check your network "
    "connection and Zotero API key."
)

_CITATION_KEY_RE = re.compile(r"^\s*Citation Key\s*:\s*(\S+)\s*$", re.IGNORECASE | re.MULTILINE)

ZoteroClient = Union[ZoteroLocalAPI, ZoteroWebClient]


def library_key(library: dict[str, Any]) -> str:
    """Collection key used for a whole library."""
    if library["type"] == "user":
        return "users/" + str(library["id"])
    return "groups/" + str(library["id"])


def citation_key(item: dict[str, Any]) -> Optional[str]:
    """Citation key of a Zotero item, if Zotero or Better BibTeX assigned one."""
    csljson = item.get("csljson") or {}
    data = item.get("data") or {}
    if csljson.get("citation-key"):
        return str(csljson["citation-key"])
    if data.get("citationKey"):
        return str(data["citationKey"])
    match = _CITATION_KEY_RE.search(data.get("extra") or "")
    if match:
        return match.group(1)
    return None


class BibliographyDataProviderZotero(BibliographyDataProvider):
    """
    Zotero libraries as a bibliography source.

    Libraries are only downloaded again when their Zotero version changes.
    """

    key = ZOTERO_PROVIDER_KEY
    name = "Zotero"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[ZoteroClient] = None):
        """
        Initialize the Zotero provider.

        Args:
            settings: Application settings (global settings if None)
            client: Zotero client to use (created from settings if None)
        """
        self.settings = settings or get_settings()
        self._client = client
        self._versions: Optional[dict[str, int]] = None
        self._collections: list[BibliographyCollection] = []
        self._sources: list[BibliographySourceWithCollections] = []
        self._warning: Optional[str] = None

    @property
    def client(self) -> ZoteroClient:
        if self._client is None:
            if self.settings.zotero_connection_type == "web":
                self._client = ZoteroWebClient(
                    api_key=self.settings.zotero_api_key,
                    user_id=self.settings.zotero_user_id,
                )
            else:
                self._client = ZoteroLocalAPI(self.settings.zotero_api_url)
        return self._client

    def is_enabled(self) -> bool:
        return self.settings.zotero_enabled()

    def _connection_warning(self) -> str:
        if self.settings.zotero_connection_type == "web":
            return WEB_CONNECTION_WARNING
        return CONNECTION_WARNING

    def _select_libraries(self, libraries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        wanted = self.settings.zotero_libraries
        if not wanted:
            return libraries
        selected = [library for library in libraries if library["name"] in wanted]
        if len(selected) < len(libraries):
            logger.debug(f"Using {len(selected)} of {len(libraries)} Zotero libraries")
        return selected

    async def load(
        self,
        document_path: Optional[Path],
        default_resource_dir: Path,
        metadata_blocks: list[dict[str, Any]],
        project_bibliographies: Sequence[str] = (),
    ) -> bool:
        if not self.is_enabled():
            had_data = bool(self._sources or self._collections)
            self._versions = None
            self._sources = []
            self._collections = []
            self._warning = None
            return had_data

        try:
            libraries = self._select_libraries(await self.client.list_libraries())
            versions = {}
            for library in libraries:
                versions[library_key(library)] = await self.client.get_library_version(
                    library["id"], library["type"]
                )
        except ConnectionError as e:
            logger.warning(f"Zotero unavailable: {e}")
            self._warning = self._connection_warning()
            return False

        if versions == self._versions:
            logger.debug("Zotero libraries unchanged")
            self._warning = None
            return False

        collections: list[BibliographyCollection] = []
        sources: list[BibliographySourceWithCollections] = []
        seen_ids: set[str] = set()
        try:
            for library in libraries:
                lib_key = library_key(library)
                raw_collections = await self.client.get_collections(library["id"], library["type"])
                raw_items = await self.client.get_items(library["id"], library["type"])
                collections.extend(self._library_collections(library, raw_collections))
                for item in raw_items:
                    source = self._item_to_source(item, lib_key, seen_ids)
                    if source is not None:
                        seen_ids.add(source.id)
                        sources.append(source)
        except ConnectionError as e:
            logger.warning(f"Zotero load interrupted: {e}")
            self._warning = self._connection_warning()
            return False

        self._versions = versions
        self._collections = collections
        self._sources = sources
        self._warning = None
        logger.info(f"Loaded {len(sources)} sources from {len(libraries)} Zotero libraries")
        return True

    def _library_collections(
        self,
        library: dict[str, Any],
        raw_collections: list[dict[str, Any]],
    ) -> list[BibliographyCollection]:
        lib_key = library_key(library)
        collections = [
            BibliographyCollection(name=library["name"], key=lib_key, provider=ZOTERO_PROVIDER_KEY)
        ]
        known_keys = {
            (raw.get("data") or {}).get("key", raw.get("key")) for raw in raw_collections
        }
        for raw in raw_collections:
            data = raw.get("data") or {}
            key = data.get("key", raw.get("key"))
            if not key:
                continue
            parent = data.get("parentCollection")
            # Top-level (False) and dangling parents hang off the library
            if not isinstance(parent, str) or parent not in known_keys:
                parent = lib_key
            collections.append(
                BibliographyCollection(
                    name=data.get("name") or key,
                    key=key,
                    provider=ZOTERO_PROVIDER_KEY,
                    parent_key=parent,
                )
            )
        return collections

    def _item_to_source(
        self,
        item: dict[str, Any],
        lib_key: str,
        seen_ids: set[str],
    ) -> Optional[BibliographySourceWithCollections]:
        data = item.get("data") or {}
        if data.get("itemType") in SKIPPED_ITEM_TYPES:
            return None

        item_key = item.get("key") or data.get("key")
        csljson = item.get("csljson")
        if not item_key or not isinstance(csljson, dict):
            return None

        source_id = citation_key(item) or item_key
        if source_id in seen_ids:
            source_id = item_key
        if source_id in seen_ids:
            logger.debug(f"Duplicate Zotero item {item_key} in {lib_key} ignored")
            return None

        try:
            return BibliographySourceWithCollections.model_validate({
                **csljson,
                "id": source_id,
                "providerKey": ZOTERO_PROVIDER_KEY,
                "collectionKeys": [lib_key] + list(data.get("collections") or []),
            })
        except ValidationError as e:
            logger.warning(f"Skipping malformed Zotero item {item_key}: {e}")
            return None

    def collections(self) -> list[BibliographyCollection]:
        return list(self._collections)

    def items(self) -> list[BibliographySourceWithCollections]:
        return list(self._sources)

    def bibliography_paths(self, context: DocumentContext) -> list[BibliographyFile]:
        return []

    async def generate_biblatex(self, id: str, csl: CSL) -> Optional[str]:
        """
        BibLaTeX from Better BibTeX, which applies the user's citation key rules.

        Only available with the local connection and when enabled in settings.
        """
        if not self.settings.zotero_use_better_bibtex:
            return None
        if not isinstance(self.client, ZoteroLocalAPI):
            return None
        return await self.client.better_bibtex_export(id)

    async def close(self):
        if self._client is not None:
            await self._client.close()

    def warning_message(self) -> Optional[str]:
        return self._warning
