"""
Generic BibLaTeX generation from CSL.

Used whenever a provider has no specialized BibLaTeX output of its own.
Fields that can't be represented are left out rather than failing.
"""

import logging
import re
from typing import Optional

from pybtex.database import BibliographyData, Entry, Person

from bibsearch.models import CSL, CSLName


logger = logging.getLogger(__name__)


CSL_TO_BIBLATEX_TYPE = {
    "article": "article",
    "article-journal": "article",
    "article-magazine": "article",
    "article-newspaper": "article",
    "book": "book",
    "chapter": "incollection",
    "paper-conference": "inproceedings",
    "entry-encyclopedia": "inreference",
    "entry-dictionary": "inreference",
    "thesis": "thesis",
    "report": "report",
    "manuscript": "unpublished",
    "pamphlet": "booklet",
    "webpage": "online",
    "post": "online",
    "post-weblog": "online",
    "patent": "patent",
    "dataset": "dataset",
    "software": "software",
    "legislation": "legislation",
    "legal_case": "jurisdiction",
}

# Characters that end or break a citation key in BibTeX syntax
_KEY_UNSAFE_RE = re.compile(r"[\s,{}()\"#%'=\\~]")


def _balanced(value: str) -> bool:
    depth = 0
    for char in value:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _to_person(name: CSLName) -> Optional[Person]:
    if name.literal:
        if not _balanced(name.literal):
            return None
        return Person(last="{" + name.literal + "}")
    if not name.family and not name.given:
        return None
    parts = [
        name.family or "",
        name.given or "",
        name.non_dropping_particle or "",
        name.dropping_particle or "",
        name.suffix or "",
    ]
    if not all(_balanced(part) for part in parts):
        return None
    return Person(
        first=name.given or "",
        prelast=name.non_dropping_particle or name.dropping_particle or "",
        last=name.family or "",
        lineage=name.suffix or "",
    )


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_biblatex(id: str, csl: CSL) -> str:
    """
    Generate a BibLaTeX entry for a CSL source.

    Args:
        id: Citation key for the entry
        csl: Normalized source

    Returns:
        BibLaTeX text for a single entry
    """
    entry_type = CSL_TO_BIBLATEX_TYPE.get(csl.type, "misc")

    container_field = "journaltitle" if entry_type == "article" else "booktitle"

    candidates = [
        ("title", csl.title),
        (container_field, csl.container_title),
        ("series", csl.collection_title),
        ("date", csl.issued.as_text() if csl.issued else None),
        ("volume", csl.volume),
        ("number", csl.issue),
        ("pages", csl.page.replace("--", "-").replace("-", "--") if csl.page else None),
        ("edition", csl.edition),
        ("publisher", csl.publisher),
        ("location", csl.publisher_place),
        ("doi", csl.DOI),
        ("url", csl.URL),
        ("isbn", csl.ISBN),
        ("issn", csl.ISSN),
        ("abstract", csl.abstract),
        ("note", csl.note),
        ("keywords", csl.keyword),
        ("langid", csl.language),
    ]

    fields = {}
    for field_name, value in candidates:
        text = _text(value)
        if text is None:
            continue
        if not _balanced(text):
            logger.debug(f"Omitting field '{field_name}' of {id}: unbalanced braces")
            continue
        fields[field_name] = text

    persons = {}
    for role, names in (("author", csl.author), ("editor", csl.editor)):
        people = [person for person in (_to_person(name) for name in names) if person]
        if people:
            persons[role] = people

    key = _KEY_UNSAFE_RE.sub("_", id)
    if key != id:
        logger.debug(f"Replaced unsafe characters in citation key {id!r}: {key!r}")

    entry = Entry(entry_type, fields=fields, persons=persons)
    return BibliographyData(entries={key: entry}).to_string("bibtex")
