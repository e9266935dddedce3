"""
Pytest configuration and shared hooks.

This module provides:
1. Automatic loading of .env.test configuration
2. Custom marker registration
3. Skipping of integration tests when Zotero is not reachable
"""

import asyncio
import os
import sys
import pytest
from pathlib import Path
from dotenv import load_dotenv, dotenv_values

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

# Load test environment configuration
# Priority: environment variables > .env > .env.test
_project_root = Path(__file__).parent.parent.parent
_env_test_path = _project_root / ".env.test"
_env_path = _project_root / ".env"

# Load .env.test first (lowest priority) - don't override existing env vars
if _env_test_path.exists():
    load_dotenv(_env_test_path, override=False)

# Load .env values, but only if not already in environment variables
if _env_path.exists():
    env_values = dotenv_values(_env_path)
    for key, value in env_values.items():
        if key not in os.environ and value is not None:
            os.environ[key] = value


# ============================================================================
# Helper Functions
# ============================================================================

def _zotero_reachable() -> bool:
    """Check whether the Zotero local API answers its ping endpoint."""
    from bibsearch.zotero.local_api import ZoteroLocalAPI

    async def check():
        async with ZoteroLocalAPI(os.environ.get("ZOTERO_API_URL", "http://localhost:23119"), timeout=3) as api:
            return await api.check_connection()

    return asyncio.run(check())


# ============================================================================
# Pytest Hooks
# ============================================================================

def pytest_configure(config):
    """
    Pytest hook called after command line options have been parsed.

    This runs before test collection and setup.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests that require a running Zotero instance"
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def pytest_collection_modifyitems(config, items):
    """
    Pytest hook to modify collected test items.

    If integration tests are selected and Zotero is not reachable, skip them.
    """
    if not any(item.get_closest_marker("integration") for item in items):
        return

    if _zotero_reachable():
        return

    skip_marker = pytest.mark.skip(
        reason="Zotero local API not reachable (start Zotero and enable its HTTP server)"
    )
    for item in items:
        if item.get_closest_marker("integration"):
            item.add_marker(skip_marker)
