"""
Configuration API endpoints.
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import List, Optional

from bibsearch.config.settings import get_settings

router = APIRouter()


class ConfigResponse(BaseModel):
    """Current configuration response."""
    api_version: str
    zotero_connection_type: str
    zotero_api_url: str
    zotero_libraries: Optional[List[str]] = None
    zotero_use_better_bibtex: bool
    search_limit: int
    search_max_query_length: int


@router.get("/config", response_model=ConfigResponse)
async def get_config():
    """
    Get current configuration.

    The Zotero API key is never returned.
    """
    settings = get_settings()

    return ConfigResponse(
        api_version=settings.version,
        zotero_connection_type=settings.zotero_connection_type,
        zotero_api_url=settings.zotero_api_url,
        zotero_libraries=settings.zotero_libraries,
        zotero_use_better_bibtex=settings.zotero_use_better_bibtex,
        search_limit=settings.search_limit,
        search_max_query_length=settings.search_max_query_length,
    )


@router.get("/version")
async def get_version():
    """
    Get backend API version.

    Used by editor clients to check compatibility.
    """
    settings = get_settings()
    return {
        "api_version": settings.version,
        "service": "Bibliography Search API"
    }
