from __future__ import annotations

from typing import Any

from corpus.types import SEARCH_FIELDS, ChurchFeature, Corpus
from engine.paging import page_window
from engine.types import FilterQuery, Pagination, QueryEngine, QueryResult, QuerySettings


class InMemoryEngine(QueryEngine):
    """
    Scans the whole corpus on every request.

    At tens of thousands of features a full pass over pre-lowered strings is
    cheap enough that no index is kept; every query is re-derived from the same
    immutable corpus, so concurrent requests never share mutable state.
    """

    name = "in_memory"

    def __init__(self, corpus: Corpus, settings: QuerySettings | None = None):
        self.corpus = corpus
        self.settings = settings or QuerySettings()

    def list(self, page: Any, limit: Any, search: str = "") -> QueryResult:
        page, limit = page_window(page, limit, self.settings)
        term = (search or "").lower()
        if term:
            matches = [f for f in self.corpus if matches_search(f, term)]
        else:
            matches = self.corpus.features
        return _window(matches, page, limit)

    def filter(self, query: FilterQuery) -> QueryResult:
        terms = query.terms()
        matches = [f for f in self.corpus if matches_filter(f, terms)]
        return _window(matches, 1, self.settings.filter_window)


def matches_search(feature: ChurchFeature, term: str) -> bool:
    """`term` must already be lower-cased."""
    return any(term in feature.value(k) for k in SEARCH_FIELDS)


def matches_filter(feature: ChurchFeature, terms: dict[str, str]) -> bool:
    return all(t in feature.value(k) for k, t in terms.items())


def _window(matches, page: int, limit: int) -> QueryResult:
    pag = Pagination(current_page=page, limit=limit, total=len(matches))
    return QueryResult(items=tuple(matches[pag.start : pag.stop]), pagination=pag)
