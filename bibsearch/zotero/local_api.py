"""
Direct interface to Zotero local data API (localhost:23119).

This module provides direct HTTP access to Zotero's local server API,
which doesn't require API keys and provides access to all local libraries.
It also talks to the Better BibTeX JSON-RPC endpoint served on the same port.
"""

import logging
from typing import Optional, Any
import aiohttp

logger = logging.getLogger(__name__)


# Page size for paginated requests
PAGE_SIZE = 100


class ZoteroLocalAPI:
    """
    Client for Zotero's local data server API.

    The local API runs on localhost:23119 when Zotero is running and provides
    access to all libraries, items, and collections without authentication.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize local API client.

        Args:
            base_url: Base URL for Zotero local API. If None, uses ZOTERO_API_URL from settings.
            timeout: Total timeout per request in seconds
        """
        if base_url is None:
            from bibsearch.config.settings import get_settings
            settings = get_settings()
            base_url = settings.zotero_api_url

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        logger.info(f"Initialized ZoteroLocalAPI with base URL: {base_url}")

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        """Close the HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    @staticmethod
    def _library_prefix(library_id: str, library_type: str) -> str:
        # Note: For local API, userID 0 refers to the current user
        if library_type == "user":
            return "/api/users/0"
        return f"/api/groups/{library_id}"

    async def check_connection(self) -> bool:
        """
        Check if Zotero local API is available.

        Returns:
            True if API is accessible, False otherwise
        """
        try:
            await self._ensure_session()
            async with self.session.get(f"{self.base_url}/connector/ping") as response:
                return response.status == 200
        except Exception as e:
            logger.debug(f"Connection check failed: {e}")
            return False

    async def list_libraries(self) -> list[dict[str, Any]]:
        """
        List all available libraries.

        Returns:
            List of library info dictionaries with 'id', 'name' and 'type'

        Raises:
            ConnectionError: If unable to connect to Zotero
        """
        try:
            await self._ensure_session()

            libraries = []

            # Fetch one item to learn the user library's name
            async with self.session.get(
                f"{self.base_url}/api/users/0/items",
                params={"limit": 1}
            ) as response:
                if response.status == 200:
                    data = await response.json()
                    if data and len(data) > 0 and "library" in data[0]:
                        lib_info = data[0]["library"]
                        libraries.append({
                            "id": str(lib_info.get("id", "0")),
                            "name": lib_info.get("name", "My Library"),
                            "type": "user"
                        })
                    else:
                        # Fallback if no items exist yet
                        libraries.append({
                            "id": "0",
                            "name": "My Library",
                            "type": "user"
                        })
                else:
                    error_text = await response.text()
                    logger.error(f"Failed to fetch libraries: {response.status} - {error_text}")
                    raise ConnectionError(f"Zotero API returned {response.status}: {error_text}")

            try:
                async with self.session.get(
                    f"{self.base_url}/api/users/0/groups"
                ) as response:
                    if response.status == 200:
                        groups_data = await response.json()
                        for group in groups_data:
                            libraries.append({
                                "id": str(group.get("data", {}).get("id", group.get("id"))),
                                "name": group.get("data", {}).get("name", "Unnamed Group"),
                                "type": "group"
                            })
                    else:
                        # Groups endpoint may not be available or no groups exist
                        logger.debug(f"Groups endpoint returned {response.status}")
            except aiohttp.ClientError as e:
                # Non-fatal: continue with user library only
                logger.debug(f"Could not fetch groups: {e}")

            return libraries

        except ConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to list libraries: {e}")
            raise ConnectionError(f"Unable to connect to Zotero at {self.base_url}") from e

    async def get_library_version(self, library_id: str, library_type: str = "user") -> int:
        """
        Get the current version of a library.

        Zotero bumps the library version on every modification, so an
        unchanged version means unchanged items and collections.

        Raises:
            ConnectionError: If unable to connect to Zotero
        """
        url = f"{self.base_url}{self._library_prefix(library_id, library_type)}/items"
        try:
            await self._ensure_session()
            async with self.session.get(url, params={"limit": 1, "format": "keys"}) as response:
                if response.status != 200:
                    raise ConnectionError(f"Zotero API returned {response.status} for {url}")
                return int(response.headers.get("Last-Modified-Version", 0))
        except ConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to get library version: {e}")
            raise ConnectionError(f"Unable to get version of library {library_id}") from e

    async def _get_all(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        await self._ensure_session()
        url = f"{self.base_url}{path}"
        params = dict(params, limit=PAGE_SIZE)
        results: list[dict[str, Any]] = []
        start = 0

        while True:
            params["start"] = start
            async with self.session.get(url, params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ConnectionError(f"Zotero API returned {response.status}: {error_text}")
                page = await response.json()

            if not isinstance(page, list):
                break
            results.extend(page)

            # If we got fewer results than the page size, we've reached the end
            if len(page) < PAGE_SIZE:
                break
            start += len(page)

        return results

    async def get_items(self, library_id: str, library_type: str = "user") -> list[dict[str, Any]]:
        """
        Get all items of a library with their CSL-JSON representation.

        Returns:
            Item dictionaries with 'key', 'data' and 'csljson' fields

        Raises:
            ConnectionError: If unable to connect to Zotero
        """
        path = f"{self._library_prefix(library_id, library_type)}/items"
        try:
            items = await self._get_all(path, {"include": "data,csljson"})
        except ConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to get library items: {e}")
            raise ConnectionError(f"Unable to get items from library {library_id}") from e

        logger.info(f"Retrieved {len(items)} items from library {library_id}")
        return items

    async def get_collections(self, library_id: str, library_type: str = "user") -> list[dict[str, Any]]:
        """
        Get all collections of a library.

        Raises:
            ConnectionError: If unable to connect to Zotero
        """
        path = f"{self._library_prefix(library_id, library_type)}/collections"
        try:
            return await self._get_all(path, {})
        except ConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to get collections: {e}")
            raise ConnectionError(f"Unable to get collections from library {library_id}") from e

    async def better_bibtex_export(
        self,
        citekey: str,
        translator: str = "Better BibLaTeX",
        library_id: Optional[int] = None,
    ) -> Optional[str]:
        """
        Export an item through Better BibTeX.

        Args:
            citekey: Better BibTeX citation key of the item
            translator: Better BibTeX translator name
            library_id: Zotero library ID (user library if None)

        Returns:
            Exported text, or None if Better BibTeX is unavailable or the key is unknown
        """
        params: list[Any] = [[citekey], translator]
        if library_id is not None:
            params.append(library_id)
        payload = {"jsonrpc": "2.0", "method": "item.export", "params": params}

        try:
            await self._ensure_session()
            async with self.session.post(
                f"{self.base_url}/better-bibtex/json-rpc",
                json=payload
            ) as response:
                if response.status != 200:
                    logger.debug(f"Better BibTeX returned HTTP {response.status}")
                    return None
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Better BibTeX export failed: {e}")
            return None

        if not isinstance(data, dict) or "error" in data:
            logger.debug(f"Better BibTeX export error for {citekey}: {data}")
            return None

        result = data.get("result")
        # Older Better BibTeX versions answer [status, content type, body]
        if isinstance(result, list) and result:
            result = result[-1]
        if isinstance(result, str) and result.strip():
            return result
        return None
