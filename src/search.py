"""Search engine module for tasks."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from src.distance import levenshtein_distance, similarity
from src.highlight import Highlight, highlight_matches
from src.scoring import calculate_relevance_score, matches_query
from src.text import normalize_text, split_words


DEFAULT_FIELDS = ("title", "description")

DEFAULT_FIELD_WEIGHTS: Dict[str, float] = {
    "title": 2.0,        # Title matches are more important
    "description": 1.0,
    "priority": 1.5,
}

MIN_SUGGESTION_SIMILARITY = 0.5


@dataclass
class SearchOptions:
    """Options for a ranked search."""
    fields: Sequence[str] = DEFAULT_FIELDS
    min_score: float = 0.0
    sort_by_relevance: bool = True
    include_highlights: bool = False


@dataclass
class ScoredResult:
    """A record annotated with its relevance for one query."""
    record: Dict[str, Any]
    score: float = 0.0
    matched: bool = False
    highlights: Dict[str, Highlight] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.record.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into the record plus ``_score``/``_matched``/``_highlights``."""
        result = dict(self.record)
        result["_score"] = self.score
        result["_matched"] = self.matched
        result["_highlights"] = {name: h.to_dict() for name, h in self.highlights.items()}
        return result


class SearchEngine(Protocol):
    """Protocol for search engines to allow extensibility."""

    def search(
        self,
        records: Iterable[Mapping[str, Any]],
        query: Optional[str],
        options: Optional[SearchOptions] = None,
    ) -> List[ScoredResult]:
        """Search records based on query.

        Args:
            records: Records to search
            query: Search query string
            options: Fields, score floor, sorting and highlighting

        Returns:
            List of matching records, sorted by relevance when requested
        """
        ...


def _field_text(record: Mapping[str, Any], field_name: str) -> Optional[str]:
    """Return a searchable field value, or None if missing or not text."""
    value = record.get(field_name)
    if isinstance(value, str) and value:
        return value
    return None


def _unscored(records: Iterable[Any]) -> List[ScoredResult]:
    return [ScoredResult(record=dict(r)) for r in records if isinstance(r, Mapping)]


def collect_terms(records: Iterable[Mapping[str, Any]], fields: Sequence[str] = DEFAULT_FIELDS) -> List[str]:
    """Build a suggestion dictionary from the words in the given fields.

    Args:
        records: Records to read
        fields: Fields whose words are collected

    Returns:
        Unique lowercase words, in first-seen order
    """
    seen: Dict[str, None] = {}
    for record in records:
        if not isinstance(record, Mapping):
            continue
        for field_name in fields:
            for word in split_words(_field_text(record, field_name)):
                seen.setdefault(word, None)
    return list(seen)


class TaskSearchEngine:
    """Linear-scan search over an in-memory task collection.

    Matching is a case-insensitive substring test; ranking uses
    :func:`calculate_relevance_score`. Input records are never mutated,
    every result carries its own copy.
    """

    def _score_fields(
        self,
        record: Mapping[str, Any],
        query: str,
        fields: Sequence[str],
        include_highlights: bool,
    ) -> Optional[ScoredResult]:
        """Score one record, keeping the best field score.

        Returns:
            ScoredResult, or None if no field matched
        """
        max_score = 0.0
        matched = False
        highlights: Dict[str, Highlight] = {}

        for field_name in fields:
            value = _field_text(record, field_name)
            if value is None or not matches_query(value, query):
                continue

            matched = True
            max_score = max(max_score, calculate_relevance_score(value, query))

            if include_highlights:
                highlights[field_name] = highlight_matches(value, query)

        if not matched:
            return None

        return ScoredResult(record=dict(record), score=max_score, matched=True, highlights=highlights)

    def search(
        self,
        records: Iterable[Mapping[str, Any]],
        query: Optional[str],
        options: Optional[SearchOptions] = None,
    ) -> List[ScoredResult]:
        """Search records with relevance scoring.

        An empty or whitespace-only query applies no filter: every record
        comes back unscored, in its original order.

        Args:
            records: Records to search
            query: Search query string
            options: Search options (defaults to :class:`SearchOptions`)

        Returns:
            Matching records with scores (and highlights if requested)
        """
        options = options or SearchOptions()

        if not normalize_text(query):
            return _unscored(records)

        results = []
        for record in records:
            if not isinstance(record, Mapping):
                continue
            result = self._score_fields(record, query, options.fields, options.include_highlights)
            # Matching decides inclusion, min_score only trims what matched
            if result is not None and result.score >= options.min_score:
                results.append(result)

        if options.sort_by_relevance:
            results.sort(key=lambda r: r.score, reverse=True)

        return results

    def multi_match(
        self,
        records: Iterable[Mapping[str, Any]],
        query: Optional[str],
        field_weights: Optional[Mapping[str, float]] = None,
    ) -> List[ScoredResult]:
        """Search across weighted fields, summing weighted field scores.

        Args:
            records: Records to search
            query: Search query string
            field_weights: Overrides merged over :data:`DEFAULT_FIELD_WEIGHTS`

        Returns:
            Matching records sorted by weighted score (highest first)
        """
        weights = dict(DEFAULT_FIELD_WEIGHTS)
        if field_weights:
            weights.update(field_weights)

        if not normalize_text(query):
            return _unscored(records)

        results = []
        for record in records:
            if not isinstance(record, Mapping):
                continue

            total_score = 0.0
            matched = False
            for field_name, weight in weights.items():
                value = _field_text(record, field_name)
                if value is None or not matches_query(value, query):
                    continue
                matched = True
                total_score += calculate_relevance_score(value, query) * weight

            if matched:
                results.append(ScoredResult(record=dict(record), score=total_score, matched=True))

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def fuzzy_match(self, text: Optional[str], query: Optional[str], max_distance: int = 2) -> bool:
        """Typo-tolerant match of ``query`` against the words of ``text``.

        Args:
            text: Text to search in
            query: Search query
            max_distance: Maximum edit distance for a word to count

        Returns:
            True on a substring match or a close enough word
        """
        normalized_text = normalize_text(text)
        normalized_query = normalize_text(query)

        if not normalized_text or not normalized_query:
            return False

        if normalized_query in normalized_text:
            return True

        return any(
            levenshtein_distance(word, normalized_query) <= max_distance
            for word in split_words(normalized_text)
        )

    def suggest(
        self,
        query: Optional[str],
        dictionary: Optional[Iterable[str]],
        max_suggestions: int = 5,
    ) -> List[str]:
        """Suggest dictionary terms close to ``query`` ("did you mean?").

        Args:
            query: Search query
            dictionary: Candidate terms
            max_suggestions: Maximum number of terms to return

        Returns:
            Terms sorted by similarity (most similar first)
        """
        normalized_query = normalize_text(query)
        if not normalized_query or not dictionary:
            return []

        scored = []
        for term in dictionary:
            normalized_term = normalize_text(term)
            if not normalized_term:
                continue
            ratio = similarity(normalized_query, normalized_term)
            if ratio > MIN_SUGGESTION_SIMILARITY:
                scored.append((ratio, term))

        scored.sort(key=lambda s: s[0], reverse=True)
        return [term for _, term in scored[:max_suggestions]]
