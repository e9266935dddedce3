"""
Zotero web API client wrapper.

Provides the same interface as ZoteroLocalAPI on top of pyzotero, for
libraries synced to zotero.org. pyzotero is synchronous, so every call
runs in a worker thread.
"""

import asyncio
import logging
from typing import Optional, Any

from pyzotero import zotero


logger = logging.getLogger(__name__)


class ZoteroWebClient:
    """
    Wrapper around pyzotero for zotero.org web API access.

    Requires an API key; the user ID is looked up from the key if not given.
    """

    def __init__(self, api_key: str, user_id: Optional[str] = None):
        """
        Initialize Zotero web client.

        Args:
            api_key: zotero.org API key
            user_id: zotero.org user ID (looked up from the key if None)
        """
        self.api_key = api_key
        self.user_id = user_id
        self._clients: dict[tuple[str, str], zotero.Zotero] = {}
        logger.info("Initialized ZoteroWebClient")

    def _client(self, library_id: str, library_type: str) -> zotero.Zotero:
        cache_key = (library_type, library_id)
        if cache_key not in self._clients:
            self._clients[cache_key] = zotero.Zotero(library_id, library_type, self.api_key)
        return self._clients[cache_key]

    def _resolve_user_id(self) -> str:
        if self.user_id is None:
            info = zotero.Zotero("0", "user", self.api_key).key_info()
            self.user_id = str(info["userID"])
        return self.user_id

    async def close(self):
        """Nothing to release; pyzotero manages its own connections."""
        self._clients.clear()

    async def _run(self, description: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            logger.error(f"Failed to {description}: {e}")
            raise ConnectionError(f"Unable to {description} from zotero.org") from e

    def _list_libraries(self) -> list[dict[str, Any]]:
        user_id = self._resolve_user_id()
        user = self._client(user_id, "user")
        libraries = [{"id": user_id, "name": "My Library", "type": "user"}]
        for group in user.groups():
            libraries.append({
                "id": str(group.get("id", group.get("data", {}).get("id"))),
                "name": group.get("data", {}).get("name", "Unnamed Group"),
                "type": "group",
            })
        return libraries

    async def list_libraries(self) -> list[dict[str, Any]]:
        """
        List the user library and all group libraries.

        Raises:
            ConnectionError: If unable to reach zotero.org
        """
        return await self._run("list libraries", self._list_libraries)

    async def get_library_version(self, library_id: str, library_type: str = "user") -> int:
        """
        Get the current version of a library.

        Raises:
            ConnectionError: If unable to reach zotero.org
        """
        client = self._client(library_id, library_type)
        version = await self._run(f"get version of library {library_id}", client.last_modified_version)
        return int(version or 0)

    async def get_items(self, library_id: str, library_type: str = "user") -> list[dict[str, Any]]:
        """
        Get all items of a library with their CSL-JSON representation.

        Raises:
            ConnectionError: If unable to reach zotero.org
        """
        client = self._client(library_id, library_type)

        def fetch():
            return client.everything(client.items(include="data,csljson"))

        items = await self._run(f"get items from library {library_id}", fetch)
        logger.info(f"Retrieved {len(items)} items from library {library_id}")
        return items

    async def get_collections(self, library_id: str, library_type: str = "user") -> list[dict[str, Any]]:
        """
        Get all collections of a library.

        Raises:
            ConnectionError: If unable to reach zotero.org
        """
        client = self._client(library_id, library_type)

        def fetch():
            return client.everything(client.collections())

        return await self._run(f"get collections from library {library_id}", fetch)
