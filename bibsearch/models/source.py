"""
Data models for bibliographic sources and collections.

Sources are normalized to CSL-JSON field names (hyphenated and upper-case
keys are exposed through aliases) so every provider hands the manager the
same shape.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class CSLName(BaseModel):
    """A CSL name (author, editor, ...)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    family: Optional[str] = None
    given: Optional[str] = None
    literal: Optional[str] = None
    dropping_particle: Optional[str] = Field(None, alias="dropping-particle")
    non_dropping_particle: Optional[str] = Field(None, alias="non-dropping-particle")
    suffix: Optional[str] = None


class CSLDate(BaseModel):
    """A CSL date: date parts, or a literal/raw string."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    date_parts: list[list[Any]] = Field(default_factory=list, alias="date-parts")
    literal: Optional[str] = None
    raw: Optional[str] = None

    def _first_parts(self) -> list[int]:
        if not self.date_parts or not self.date_parts[0]:
            return []
        parts = []
        for value in self.date_parts[0]:
            try:
                parts.append(int(value))
            except (TypeError, ValueError):
                break
        return parts

    def as_text(self) -> Optional[str]:
        """ISO-like YYYY[-MM[-DD]] rendering, falling back to literal/raw."""
        parts = self._first_parts()
        if parts:
            text = f"{parts[0]:04d}"
            for part in parts[1:3]:
                text += f"-{part:02d}"
            return text
        return self.literal or self.raw


class CSL(BaseModel):
    """Normalized citation fields (CSL-JSON)."""

    # CSL-JSON allows numbers for volume, issue, page, ...
    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: Optional[str] = None
    type: str = "article"
    title: Optional[str] = None
    author: list[CSLName] = Field(default_factory=list)
    editor: list[CSLName] = Field(default_factory=list)
    issued: Optional[CSLDate] = None
    container_title: Optional[str] = Field(None, alias="container-title")
    collection_title: Optional[str] = Field(None, alias="collection-title")
    publisher: Optional[str] = None
    publisher_place: Optional[str] = Field(None, alias="publisher-place")
    volume: Optional[str] = None
    issue: Optional[str] = None
    page: Optional[str] = None
    edition: Optional[str] = None
    DOI: Optional[str] = None
    URL: Optional[str] = None
    ISBN: Optional[str] = None
    ISSN: Optional[str] = None
    abstract: Optional[str] = None
    note: Optional[str] = None
    keyword: Optional[str] = None
    language: Optional[str] = None
    citation_key: Optional[str] = Field(None, alias="citation-key")


class BibliographySource(CSL):
    """An individual bibliographic source produced by a provider."""

    id: str = Field(..., description="Identifier, unique within its provider")
    provider_key: str = Field(..., alias="providerKey", description="Key of the originating provider")


class BibliographySourceWithCollections(BibliographySource):
    """A source together with the provider collections it belongs to."""

    collection_keys: list[str] = Field(default_factory=list, alias="collectionKeys")


class BibliographyCollection(BaseModel):
    """A named grouping of sources within one provider."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    key: str
    provider: str
    parent_key: Optional[str] = Field(None, alias="parentKey")
