"""
BibTeX/BibLaTeX reading.

Parses bibliography files with pybtex and converts entries to CSL-JSON
dictionaries so they can be merged with sources from other providers.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional

from pybtex.database import BibliographyData, Entry, Person
from pybtex.database.input import bibtex


logger = logging.getLogger(__name__)


BIBTEX_TO_CSL_TYPE = {
    "article": "article-journal",
    "book": "book",
    "mvbook": "book",
    "booklet": "pamphlet",
    "inbook": "chapter",
    "incollection": "chapter",
    "inproceedings": "paper-conference",
    "conference": "paper-conference",
    "proceedings": "book",
    "manual": "report",
    "techreport": "report",
    "report": "report",
    "mastersthesis": "thesis",
    "phdthesis": "thesis",
    "thesis": "thesis",
    "online": "webpage",
    "electronic": "webpage",
    "www": "webpage",
    "patent": "patent",
    "dataset": "dataset",
    "software": "software",
    "unpublished": "manuscript",
    "misc": "article",
}

# BibTeX field -> CSL field, first match wins
_FIELD_MAP = [
    ("title", "title"),
    ("journaltitle", "container-title"),
    ("journal", "container-title"),
    ("booktitle", "container-title"),
    ("series", "collection-title"),
    ("publisher", "publisher"),
    ("institution", "publisher"),
    ("school", "publisher"),
    ("location", "publisher-place"),
    ("address", "publisher-place"),
    ("volume", "volume"),
    ("number", "issue"),
    ("issue", "issue"),
    ("pages", "page"),
    ("edition", "edition"),
    ("doi", "DOI"),
    ("url", "URL"),
    ("isbn", "ISBN"),
    ("issn", "ISSN"),
    ("abstract", "abstract"),
    ("note", "note"),
    ("keywords", "keyword"),
    ("langid", "language"),
    ("language", "language"),
]

_LATEX_ESCAPE_RE = re.compile(r"\\([&%$#_{}])")
_LATEX_COMMAND_RE = re.compile(r"\\[a-zA-Z]+\s*\{([^{}]*)\}")
_WHITESPACE_RE = re.compile(r"\s+")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def clean_latex(value: str) -> str:
    """Strip grouping braces and simple LaTeX markup from a field value."""
    previous = None
    while previous != value:
        previous = value
        value = _LATEX_COMMAND_RE.sub(r"\1", value)
    value = _LATEX_ESCAPE_RE.sub(lambda match: "\x00" + match.group(1), value)
    value = value.replace("{", "").replace("}", "").replace("~", " ")
    value = value.replace("\x00", "")
    return _WHITESPACE_RE.sub(" ", value).strip()


def parse_bibtex_file(path: Path) -> BibliographyData:
    """
    Parse a BibTeX/BibLaTeX file.

    Raises:
        OSError: If the file can't be read
        PybtexError: If the file is not valid BibTeX
    """
    parser = bibtex.Parser()
    return parser.parse_file(str(path))


def _person_to_csl(person: Person) -> dict[str, str]:
    last = " ".join(person.last_names)
    given = " ".join(person.first_names + person.middle_names)
    # A fully braced single name is a corporate author
    if not given and not person.prelast_names and last.startswith("{") and last.endswith("}"):
        return {"literal": clean_latex(last)}

    name: dict[str, str] = {}
    if last:
        name["family"] = clean_latex(last)
    if given:
        name["given"] = clean_latex(given)
    if person.prelast_names:
        name["non-dropping-particle"] = clean_latex(" ".join(person.prelast_names))
    if person.lineage_names:
        name["suffix"] = clean_latex(" ".join(person.lineage_names))
    return name


def _parse_date(fields) -> Optional[dict[str, Any]]:
    date = fields.get("date")
    if date:
        start = clean_latex(date).split("/")[0]
        parts = []
        for piece in start.split("-"):
            if not piece.isdigit():
                break
            parts.append(int(piece))
        if parts:
            return {"date-parts": [parts]}
        return {"literal": clean_latex(date)}

    year = fields.get("year")
    if not year:
        return None
    year = clean_latex(year)
    if not year.isdigit():
        return {"literal": year}

    parts = [int(year)]
    month = clean_latex(fields.get("month", "")).lower()
    month_number = int(month) if month.isdigit() else _MONTHS.get(month[:3])
    if month_number and 1 <= month_number <= 12:
        parts.append(month_number)
        day = clean_latex(fields.get("day", ""))
        if day.isdigit():
            parts.append(int(day))
    return {"date-parts": [parts]}


def entry_to_csl(key: str, entry: Entry) -> dict[str, Any]:
    """
    Convert a pybtex entry to a CSL-JSON dictionary.

    Args:
        key: Citation key of the entry
        entry: Parsed pybtex entry

    Returns:
        CSL-JSON item with the citation key as its id
    """
    csl: dict[str, Any] = {
        "id": key,
        "citation-key": key,
        "type": BIBTEX_TO_CSL_TYPE.get(entry.type.lower(), "article"),
    }

    for bibtex_field, csl_field in _FIELD_MAP:
        if csl_field in csl:
            continue
        value = entry.fields.get(bibtex_field)
        if value:
            if csl_field in ("DOI", "URL"):
                csl[csl_field] = value.replace("\\_", "_").strip()
            else:
                csl[csl_field] = clean_latex(value)

    if "page" in csl:
        csl["page"] = csl["page"].replace("--", "-")

    issued = _parse_date(entry.fields)
    if issued:
        csl["issued"] = issued

    for role in ("author", "editor"):
        persons = entry.persons.get(role)
        if persons:
            csl[role] = [_person_to_csl(person) for person in persons]

    return csl


def entry_to_bibtex(key: str, entry: Entry) -> str:
    """Serialize a single pybtex entry back to BibTeX text."""
    return BibliographyData(entries={key: entry}).to_string("bibtex")
