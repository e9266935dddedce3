"""Data models for the bibliography service."""

from bibsearch.models.source import (
    CSL,
    CSLName,
    CSLDate,
    BibliographySource,
    BibliographySourceWithCollections,
    BibliographyCollection,
)
from bibsearch.models.context import BibliographyFile, DocumentContext

__all__ = [
    "CSL",
    "CSLName",
    "CSLDate",
    "BibliographySource",
    "BibliographySourceWithCollections",
    "BibliographyCollection",
    "BibliographyFile",
    "DocumentContext",
]
