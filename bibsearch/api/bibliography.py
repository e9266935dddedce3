"""
Bibliography API endpoints.
"""

import logging
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
from typing import List, Optional

from bibsearch.models import (
    CSL,
    BibliographyCollection,
    BibliographyFile,
    BibliographySourceWithCollections,
    DocumentContext,
)
from bibsearch.services.manager import get_manager

router = APIRouter()
logger = logging.getLogger(__name__)


class LoadResponse(BaseModel):
    """Result of loading the bibliography for a document."""
    generation_id: int
    writable: bool
    source_count: int
    warning: Optional[str] = None


class ProviderInfo(BaseModel):
    """Bibliography provider information."""
    key: str
    name: str
    enabled: bool
    warning: Optional[str] = None


class BibLaTeXRequest(BaseModel):
    """BibLaTeX generation request."""
    id: str = Field(..., description="Citation key to use for the entry")
    csl: CSL = Field(..., description="Normalized source")
    provider: Optional[str] = Field(None, description="Provider that supplied the source")


class BibLaTeXResponse(BaseModel):
    """Generated BibLaTeX."""
    id: str
    biblatex: str


class WarningResponse(BaseModel):
    """Advisory warning for display."""
    warning: Optional[str] = None


@router.post("/bibliography/load", response_model=LoadResponse)
async def load_bibliography(context: DocumentContext):
    """
    Load (or refresh) the bibliography for a document.

    Args:
        context: Document path, resource directory and metadata blocks.

    Returns:
        Current generation, writability and source count.
    """
    manager = get_manager()
    try:
        await manager.load(context)
    except Exception as e:
        logger.error(f"Failed to load bibliography: {e}")
        raise HTTPException(
            status_code=503,
            detail=f"Failed to load bibliography: {str(e)}"
        )

    return LoadResponse(
        generation_id=manager.generation_id,
        writable=manager.is_writable(),
        source_count=len(manager.all_sources()),
        warning=manager.warning(),
    )


@router.get("/bibliography/sources", response_model=List[BibliographySourceWithCollections])
async def search_sources(
    query: Optional[str] = None,
    provider: Optional[str] = None,
    collection: Optional[str] = None,
    limit: Optional[int] = Query(None, gt=0),
):
    """
    Search or list sources.

    Without a query, lists the sources in scope; with a query, returns
    fuzzy matches by descending relevance.
    """
    return get_manager().search(
        query=query,
        provider_key=provider,
        collection_key=collection,
        limit=limit,
    )


@router.get("/bibliography/collections", response_model=List[BibliographyCollection])
async def list_collections(provider: Optional[str] = None):
    """List collections, optionally for one provider."""
    return get_manager().collections(provider)


@router.post("/bibliography/files", response_model=List[BibliographyFile])
async def list_bibliography_files(context: DocumentContext, writable_only: bool = False):
    """
    List bibliography files the document could be saved to.

    Args:
        context: Document context.
        writable_only: Only return writable files.
    """
    manager = get_manager()
    if writable_only:
        return manager.writable_bibliography_files(context)
    return manager.bibliography_files(context)


@router.get("/bibliography/local", response_model=BibliographySourceWithCollections)
async def find_local_source(doi: Optional[str] = None, id: Optional[str] = None):
    """
    Find a source in the local bibliography by DOI or id.

    Raises:
        HTTPException: If neither parameter is given or nothing matches.
    """
    if not doi and not id:
        raise HTTPException(
            status_code=400,
            detail="Either 'doi' or 'id' must be provided"
        )

    manager = get_manager()
    source = manager.find_doi_in_local_sources(doi) if doi else manager.find_id_in_local_sources(id)
    if source is None:
        raise HTTPException(
            status_code=404,
            detail="Source not found in local bibliography"
        )
    return source


@router.post("/bibliography/biblatex", response_model=BibLaTeXResponse)
async def generate_biblatex(request: BibLaTeXRequest):
    """Generate BibLaTeX for a source."""
    if not request.id.strip():
        raise HTTPException(
            status_code=400,
            detail="Citation key cannot be empty"
        )

    biblatex = await get_manager().generate_biblatex(request.id, request.csl, request.provider)
    return BibLaTeXResponse(id=request.id, biblatex=biblatex)


@router.get("/bibliography/warning", response_model=WarningResponse)
async def get_warning(provider: Optional[str] = None):
    """Current advisory warning, overall or for one provider."""
    manager = get_manager()
    if provider:
        return WarningResponse(warning=manager.warning_for_provider(provider))
    return WarningResponse(warning=manager.warning())


@router.get("/bibliography/providers", response_model=List[ProviderInfo])
async def list_providers():
    """List bibliography providers in registration order."""
    manager = get_manager()
    return [
        ProviderInfo(
            key=provider.key,
            name=provider.name,
            enabled=provider.is_enabled(),
            warning=manager.warning_for_provider(provider.key),
        )
        for provider in manager.providers()
    ]
