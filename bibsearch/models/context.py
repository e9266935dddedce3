"""
Data models for the document context and on-disk bibliography files.
"""

from pathlib import Path
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class BibliographyFile(BaseModel):
    """A candidate on-disk bibliography surfaced by a provider."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    display_path: str = Field(..., alias="displayPath", description="Path as written in the document")
    full_path: str = Field(..., alias="fullPath", description="Absolute path")
    is_project: bool = Field(default=False, alias="isProject", description="Declared by the enclosing project")
    writable: bool = Field(default=False, description="Whether the file could be updated")


class DocumentContext(BaseModel):
    """
    Editor-side context handed to the manager on load.

    The metadata blocks are the document's parsed front matter blocks; they
    are passed through to providers untouched.
    """

    document_path: Optional[Path] = Field(None, description="Path of the edited document (None if unsaved)")
    default_resource_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory to resolve relative paths against for unsaved documents"
    )
    metadata_blocks: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Parsed metadata (front matter) blocks of the document"
    )
    project_bibliographies: list[str] = Field(
        default_factory=list,
        description="Bibliography files declared by the enclosing project"
    )

    def resource_dir(self) -> Path:
        """Directory that relative bibliography paths are resolved against."""
        if self.document_path is not None:
            return self.document_path.parent
        return self.default_resource_dir

    class Config:
        json_schema_extra = {
            "example": {
                "document_path": "/home/me/paper/paper.qmd",
                "default_resource_dir": "/home/me",
                "metadata_blocks": [{"title": "Paper", "bibliography": "refs.bib"}],
                "project_bibliographies": [],
            }
        }
