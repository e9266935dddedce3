"""Bibliography data providers."""

from bibsearch.providers.base import BibliographyDataProvider
from bibsearch.providers.local import BibliographyDataProviderLocal, LOCAL_PROVIDER_KEY
from bibsearch.providers.zotero import BibliographyDataProviderZotero, ZOTERO_PROVIDER_KEY

__all__ = [
    "BibliographyDataProvider",
    "BibliographyDataProviderLocal",
    "BibliographyDataProviderZotero",
    "LOCAL_PROVIDER_KEY",
    "ZOTERO_PROVIDER_KEY",
]
