"""
Weighted fuzzy search index over bibliographic sources.

Each source contributes values for a fixed set of fields (identifier, author
names, title, issue date, provider). A query is fuzzy-matched against every
field value with rapidfuzz; a source's relevance is the weighted sum of its
best match per field.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from rapidfuzz import fuzz, process, utils

from bibsearch.models import BibliographySourceWithCollections


logger = logging.getLogger(__name__)


DEFAULT_LIMIT = 1000
DEFAULT_SCORE_CUTOFF = 60.0


@dataclass(frozen=True)
class SearchField:
    """An indexed field and its share of the relevance score."""

    name: str
    weight: float
    extract: Callable[[BibliographySourceWithCollections], list[Optional[str]]]


def _author_parts(attribute: str):
    def extract(source: BibliographySourceWithCollections) -> list[Optional[str]]:
        return [getattr(name, attribute) for name in source.author]
    return extract


# Author matching dominates discovery, then the identifier.
# The provider is indexed for filtering only and carries no weight.
SEARCH_FIELDS: tuple[SearchField, ...] = (
    SearchField("id", 0.30, lambda source: [source.id]),
    SearchField("author.family", 0.275, _author_parts("family")),
    SearchField("author.literal", 0.275, _author_parts("literal")),
    SearchField("title", 0.10, lambda source: [source.title]),
    SearchField("author.given", 0.025, _author_parts("given")),
    SearchField("issued", 0.025, lambda source: [source.issued.as_text() if source.issued else None]),
    SearchField("provider", 0.0, lambda source: [source.provider_key]),
)


class _FieldIndex:
    """Normalized values of one field across all sources."""

    def __init__(self, field: SearchField):
        self.field = field
        self.values: list[str] = []
        self.owners: list[int] = []

    def add(self, position: int, source: BibliographySourceWithCollections):
        for value in self.field.extract(source):
            if not value:
                continue
            normalized = utils.default_process(str(value))
            if normalized:
                self.values.append(normalized)
                self.owners.append(position)


class BibliographySearchIndex:
    """
    Immutable fuzzy index over one generation of sources.

    Build a new index whenever the source set changes; an index never
    changes after construction.
    """

    def __init__(
        self,
        fields: Sequence[SearchField] = SEARCH_FIELDS,
        score_cutoff: float = DEFAULT_SCORE_CUTOFF,
    ):
        self.fields = tuple(fields)
        self.score_cutoff = score_cutoff
        self._sources: tuple[BibliographySourceWithCollections, ...] = ()
        self._field_indexes: list[_FieldIndex] = []
        self._built = False

    @classmethod
    def build(
        cls,
        sources: Sequence[BibliographySourceWithCollections],
        fields: Sequence[SearchField] = SEARCH_FIELDS,
        score_cutoff: float = DEFAULT_SCORE_CUTOFF,
    ) -> "BibliographySearchIndex":
        """
        Build an index over a sequence of sources.

        Args:
            sources: Sources in merge order (ties in relevance keep this order)
            fields: Indexed fields and weights
            score_cutoff: Minimum field similarity (0-100) that counts as a match

        Returns:
            A ready-to-query index
        """
        index = cls(fields=fields, score_cutoff=score_cutoff)
        index._sources = tuple(sources)
        index._field_indexes = [_FieldIndex(field) for field in index.fields]
        for position, source in enumerate(index._sources):
            for field_index in index._field_indexes:
                field_index.add(position, source)
        index._built = True
        logger.debug(f"Built search index over {len(index._sources)} sources")
        return index

    def __len__(self) -> int:
        return len(self._sources)

    @property
    def built(self) -> bool:
        return self._built

    def _field_matches(self, field_index: _FieldIndex, needle: str) -> list[tuple[str, float, int]]:
        """
        (value, similarity, value position) of every value reaching the cutoff.

        Values at least as long as the query are matched by their best
        substring; shorter values are compared whole, so a short value
        sharing only an edge character with the query does not match.
        """
        long_values = {}
        short_values = {}
        for position, value in enumerate(field_index.values):
            if len(value) >= len(needle):
                long_values[position] = value
            else:
                short_values[position] = value

        matches = []
        for choices, scorer in ((long_values, fuzz.partial_ratio), (short_values, fuzz.ratio)):
            if not choices:
                continue
            matches.extend(process.extract(
                needle,
                choices,
                scorer=scorer,
                processor=None,
                limit=None,
                score_cutoff=self.score_cutoff,
            ))
        return matches

    def query(self, text: str, limit: int = DEFAULT_LIMIT) -> list[BibliographySourceWithCollections]:
        """
        Fuzzy search the index.

        Args:
            text: Query text (matched case-insensitively)
            limit: Maximum number of results

        Returns:
            Matching sources by descending relevance
        """
        if not self._built or not self._sources or limit <= 0:
            return []

        needle = utils.default_process(text or "")
        if not needle:
            return []

        # Only the best value per (field, source) counts
        scores: dict[int, float] = {}
        for field_index in self._field_indexes:
            if field_index.field.weight <= 0 or not field_index.values:
                continue
            best: dict[int, float] = {}
            for _, similarity, value_position in self._field_matches(field_index, needle):
                owner = field_index.owners[value_position]
                if similarity > best.get(owner, 0.0):
                    best[owner] = similarity
            for owner, similarity in best.items():
                scores[owner] = scores.get(owner, 0.0) + field_index.field.weight * similarity / 100.0

        ranked = sorted(
            ((position, score) for position, score in scores.items() if score > 0),
            key=lambda item: (-item[1], item[0]),
        )
        return [self._sources[position] for position, _ in ranked[:limit]]
