"""
Write permission policy for the aggregated bibliography.
"""

import os
from pathlib import Path
from typing import Iterable

from bibsearch.models import BibliographyFile


def is_path_writable(path: Path) -> bool:
    """
    Whether a bibliography file could be written.

    An existing file must be writable; a missing file can be created if
    its directory is writable.
    """
    if path.exists():
        return path.is_file() and os.access(path, os.W_OK)
    parent = path.parent
    return parent.is_dir() and os.access(parent, os.W_OK)


def should_allow_writes(files: Iterable[BibliographyFile]) -> bool:
    """
    Decide whether sources may be added to the document's bibliography.

    With no bibliography files at all a fresh one can be created, so writes
    are allowed. Otherwise at least one of the files must be writable.
    """
    files = list(files)
    if not files:
        return True
    return any(bib_file.writable for bib_file in files)
