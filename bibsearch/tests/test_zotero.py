"""
Unit tests for the Zotero clients.

Note: These tests use mocking since they don't require a live Zotero instance.
Integration tests with actual Zotero are marked with `integration`.
"""

import unittest
from unittest.mock import Mock, patch, AsyncMock
import aiohttp
import pytest

from bibsearch.zotero.local_api import PAGE_SIZE, ZoteroLocalAPI
from bibsearch.zotero.web_api import ZoteroWebClient


class TestZoteroLocalAPI(unittest.IsolatedAsyncioTestCase):
    """Test ZoteroLocalAPI class."""

    async def asyncSetUp(self):
        """Set up test fixtures."""
        self.api = ZoteroLocalAPI("http://localhost:23119/")

    async def asyncTearDown(self):
        """Clean up after tests."""
        await self.api.close()

    async def test_init(self):
        """Test API initialization."""
        self.assertEqual(self.api.base_url, "http://localhost:23119")
        self.assertIsNone(self.api.session)

    async def test_ensure_session(self):
        """Test session creation."""
        await self.api._ensure_session()
        self.assertIsNotNone(self.api.session)
        self.assertIsInstance(self.api.session, aiohttp.ClientSession)

    async def test_context_manager(self):
        """Test async context manager."""
        async with ZoteroLocalAPI() as api:
            self.assertIsNotNone(api.session)
        self.assertTrue(api.session.closed)

    async def test_library_prefix(self):
        """Test URL prefixes for user and group libraries."""
        self.assertEqual(ZoteroLocalAPI._library_prefix("12345", "user"), "/api/users/0")
        self.assertEqual(ZoteroLocalAPI._library_prefix("42", "group"), "/api/groups/42")

    @patch("aiohttp.ClientSession.get")
    async def test_check_connection_success(self, mock_get):
        """Test successful connection check."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_get.return_value.__aenter__.return_value = mock_response

        result = await self.api.check_connection()
        self.assertTrue(result)

    @patch("aiohttp.ClientSession.get")
    async def test_check_connection_failure(self, mock_get):
        """Test failed connection check."""
        mock_get.side_effect = Exception("Connection refused")

        result = await self.api.check_connection()
        self.assertFalse(result)

    @patch("aiohttp.ClientSession.get")
    async def test_list_libraries_without_items(self, mock_get):
        """Test listing libraries of an empty user library."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value=[])
        mock_get.return_value.__aenter__.return_value = mock_response

        libraries = await self.api.list_libraries()
        self.assertEqual(libraries, [{"id": "0", "name": "My Library", "type": "user"}])

    @patch("aiohttp.ClientSession.get")
    async def test_list_libraries_with_groups(self, mock_get):
        """Test listing the user library and group libraries."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(side_effect=[
            [{"key": "ABC123", "library": {"id": 7, "name": "Jane's Library"}}],
            [{"id": 42, "data": {"id": 42, "name": "Lab Group"}}],
        ])
        mock_get.return_value.__aenter__.return_value = mock_response

        libraries = await self.api.list_libraries()
        self.assertEqual(libraries, [
            {"id": "7", "name": "Jane's Library", "type": "user"},
            {"id": "42", "name": "Lab Group", "type": "group"},
        ])

    @patch("aiohttp.ClientSession.get")
    async def test_list_libraries_error(self, mock_get):
        """Test that an HTTP error becomes a ConnectionError."""
        mock_response = AsyncMock()
        mock_response.status = 500
        mock_response.text = AsyncMock(return_value="Internal error")
        mock_get.return_value.__aenter__.return_value = mock_response

        with self.assertRaises(ConnectionError):
            await self.api.list_libraries()

    @patch("aiohttp.ClientSession.get")
    async def test_list_libraries_unreachable(self, mock_get):
        """Test that a transport error becomes a ConnectionError."""
        mock_get.side_effect = aiohttp.ClientConnectionError("Connection refused")

        with self.assertRaises(ConnectionError):
            await self.api.list_libraries()

    @patch("aiohttp.ClientSession.get")
    async def test_get_library_version(self, mock_get):
        """Test reading the library version header."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.headers = {"Last-Modified-Version": "1234"}
        mock_get.return_value.__aenter__.return_value = mock_response

        version = await self.api.get_library_version("0", "user")
        self.assertEqual(version, 1234)

        call_args = mock_get.call_args
        self.assertEqual(call_args[0][0], "http://localhost:23119/api/users/0/items")
        self.assertEqual(call_args[1]["params"]["format"], "keys")

    @patch("aiohttp.ClientSession.get")
    async def test_get_library_version_error(self, mock_get):
        """Test version lookup for an unknown library."""
        mock_response = AsyncMock()
        mock_response.status = 404
        mock_get.return_value.__aenter__.return_value = mock_response

        with self.assertRaises(ConnectionError):
            await self.api.get_library_version("99", "group")

    @patch("aiohttp.ClientSession.get")
    async def test_get_items(self, mock_get):
        """Test getting library items with CSL-JSON."""
        mock_items = [
            {"key": "ABC123", "data": {"title": "Test Paper"}, "csljson": {"title": "Test Paper"}},
            {"key": "DEF456", "data": {"title": "Another Paper"}, "csljson": {"title": "Another Paper"}},
        ]

        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value=mock_items)
        mock_get.return_value.__aenter__.return_value = mock_response

        items = await self.api.get_items("0")
        self.assertEqual(len(items), 2)
        self.assertEqual(items[0]["key"], "ABC123")

        call_args = mock_get.call_args
        self.assertEqual(call_args[1]["params"]["include"], "data,csljson")
        self.assertEqual(call_args[1]["params"]["limit"], PAGE_SIZE)

    @patch("aiohttp.ClientSession.get")
    async def test_get_items_with_pagination(self, mock_get):
        """Test that all pages are fetched."""
        first_page = [{"key": f"K{i}"} for i in range(PAGE_SIZE)]
        second_page = [{"key": "LAST"}]

        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(side_effect=[first_page, second_page])
        mock_get.return_value.__aenter__.return_value = mock_response

        items = await self.api.get_items("42", "group")

        self.assertEqual(len(items), PAGE_SIZE + 1)
        self.assertEqual(items[-1]["key"], "LAST")
        self.assertEqual(mock_get.call_count, 2)
        self.assertEqual(mock_get.call_args[0][0], "http://localhost:23119/api/groups/42/items")

    @patch("aiohttp.ClientSession.get")
    async def test_get_items_error(self, mock_get):
        """Test that an HTTP error while paging becomes a ConnectionError."""
        mock_response = AsyncMock()
        mock_response.status = 503
        mock_response.text = AsyncMock(return_value="Unavailable")
        mock_get.return_value.__aenter__.return_value = mock_response

        with self.assertRaises(ConnectionError):
            await self.api.get_items("0")

    @patch("aiohttp.ClientSession.get")
    async def test_get_collections(self, mock_get):
        """Test getting collections."""
        mock_collections = [
            {"key": "COL1", "data": {"key": "COL1", "name": "Papers", "parentCollection": False}},
        ]

        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value=mock_collections)
        mock_get.return_value.__aenter__.return_value = mock_response

        collections = await self.api.get_collections("0")
        self.assertEqual(collections, mock_collections)
        self.assertEqual(mock_get.call_args[0][0], "http://localhost:23119/api/users/0/collections")

    @patch("aiohttp.ClientSession.post")
    async def test_better_bibtex_export(self, mock_post):
        """Test exporting an item through Better BibTeX."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={
            "jsonrpc": "2.0",
            "result": "@article{knuth1984,\n  title = {Literate Programming}\n}\n",
        })
        mock_post.return_value.__aenter__.return_value = mock_response

        result = await self.api.better_bibtex_export("knuth1984")
        self.assertTrue(result.startswith("@article{knuth1984,"))

        payload = mock_post.call_args[1]["json"]
        self.assertEqual(payload["method"], "item.export")
        self.assertEqual(payload["params"], [["knuth1984"], "Better BibLaTeX"])

    @patch("aiohttp.ClientSession.post")
    async def test_better_bibtex_export_legacy_result(self, mock_post):
        """Test the list-shaped result of older Better BibTeX versions."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={
            "jsonrpc": "2.0",
            "result": [200, "text/plain", "@book{k, title = {T}}"],
        })
        mock_post.return_value.__aenter__.return_value = mock_response

        result = await self.api.better_bibtex_export("k")
        self.assertEqual(result, "@book{k, title = {T}}")

    @patch("aiohttp.ClientSession.post")
    async def test_better_bibtex_export_unknown_key(self, mock_post):
        """Test a JSON-RPC error answer."""
        mock_response = AsyncMock()
        mock_response.status = 200
        mock_response.json = AsyncMock(return_value={
            "jsonrpc": "2.0",
            "error": {"code": -32603, "message": "no items found"},
        })
        mock_post.return_value.__aenter__.return_value = mock_response

        self.assertIsNone(await self.api.better_bibtex_export("missing"))

    @patch("aiohttp.ClientSession.post")
    async def test_better_bibtex_not_installed(self, mock_post):
        """Test that a missing Better BibTeX endpoint is not an error."""
        mock_response = AsyncMock()
        mock_response.status = 404
        mock_post.return_value.__aenter__.return_value = mock_response

        self.assertIsNone(await self.api.better_bibtex_export("knuth1984"))

    @patch("aiohttp.ClientSession.post")
    async def test_better_bibtex_unreachable(self, mock_post):
        """Test that transport errors are swallowed for Better BibTeX."""
        mock_post.side_effect = aiohttp.ClientConnectionError("Connection refused")

        self.assertIsNone(await self.api.better_bibtex_export("knuth1984"))


class TestZoteroWebClient(unittest.IsolatedAsyncioTestCase):
    """Test ZoteroWebClient class."""

    @patch("bibsearch.zotero.web_api.zotero.Zotero")
    async def test_list_libraries_resolves_user(self, mock_zotero_class):
        """Test that the user id is looked up from the API key."""
        mock_zot = Mock()
        mock_zot.key_info.return_value = {"userID": 12345}
        mock_zot.groups.return_value = [{"id": 42, "data": {"id": 42, "name": "Lab Group"}}]
        mock_zotero_class.return_value = mock_zot

        client = ZoteroWebClient(api_key="secret")
        libraries = await client.list_libraries()

        self.assertEqual(client.user_id, "12345")
        self.assertEqual(libraries, [
            {"id": "12345", "name": "My Library", "type": "user"},
            {"id": "42", "name": "Lab Group", "type": "group"},
        ])

    @patch("bibsearch.zotero.web_api.zotero.Zotero")
    async def test_get_library_version(self, mock_zotero_class):
        """Test reading the library version."""
        mock_zot = Mock()
        mock_zot.last_modified_version.return_value = 987
        mock_zotero_class.return_value = mock_zot

        client = ZoteroWebClient(api_key="secret", user_id="12345")

        self.assertEqual(await client.get_library_version("12345", "user"), 987)
        mock_zotero_class.assert_called_once_with("12345", "user", "secret")

    @patch("bibsearch.zotero.web_api.zotero.Zotero")
    async def test_get_items(self, mock_zotero_class):
        """Test fetching all items."""
        mock_zot = Mock()
        mock_zot.everything.return_value = [{"key": "ABC123"}]
        mock_zotero_class.return_value = mock_zot

        client = ZoteroWebClient(api_key="secret", user_id="12345")
        items = await client.get_items("12345")

        self.assertEqual(items, [{"key": "ABC123"}])
        mock_zot.items.assert_called_once_with(include="data,csljson")

    @patch("bibsearch.zotero.web_api.zotero.Zotero")
    async def test_errors_become_connection_errors(self, mock_zotero_class):
        """Test that pyzotero failures surface as ConnectionError."""
        mock_zot = Mock()
        mock_zot.everything.side_effect = RuntimeError("HTTP 403")
        mock_zotero_class.return_value = mock_zot

        client = ZoteroWebClient(api_key="secret", user_id="12345")

        with self.assertRaises(ConnectionError):
            await client.get_collections("12345")

    @patch("bibsearch.zotero.web_api.zotero.Zotero")
    async def test_clients_are_cached(self, mock_zotero_class):
        """Test that one pyzotero client is created per library."""
        mock_zotero_class.return_value = Mock(last_modified_version=Mock(return_value=1))

        client = ZoteroWebClient(api_key="secret", user_id="12345")
        await client.get_library_version("12345")
        await client.get_library_version("12345")

        self.assertEqual(mock_zotero_class.call_count, 1)


@pytest.mark.integration
class TestZoteroLocalAPIIntegration(unittest.IsolatedAsyncioTestCase):
    """Read-only checks against a running Zotero."""

    async def test_read_user_library(self):
        """Test listing libraries and reading the user library."""
        async with ZoteroLocalAPI() as api:
            libraries = await api.list_libraries()
            self.assertEqual(libraries[0]["type"], "user")

            version = await api.get_library_version(libraries[0]["id"], "user")
            self.assertGreaterEqual(version, 0)

            items = await api.get_items(libraries[0]["id"], "user")
            self.assertIsInstance(items, list)


if __name__ == "__main__":
    unittest.main()
