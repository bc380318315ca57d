from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import church
from corpus.load_corpus import load_corpus
from engine.duckdb import DuckDBEngine
from engine.in_memory import InMemoryEngine
from engine.paging import int_param, page_window, parse_int
from engine.types import FilterQuery, QuerySettings
from service.errors import BadInput

ENGINES = {"in_memory": InMemoryEngine, "duckdb": DuckDBEngine}


@pytest.fixture(params=sorted(ENGINES))
def make_engine(request):
    created = []

    def _make(corpus, settings=None):
        eng = ENGINES[request.param](corpus, settings or QuerySettings())
        created.append(eng)
        return eng

    yield _make
    for eng in created:
        close = getattr(eng, "close", None)
        if close is not None:
            close()


@pytest.fixture
def big_corpus(write_geojson):
    feats = [
        church(f"Church {i:03d}", "Kenya" if i % 3 == 0 else "Italy", rite="Latin")
        for i in range(250)
    ]
    return load_corpus([write_geojson("big.json", feats)])


def _titles(result):
    return [f.props["Title"] for f in result.items]


def test_search_scenario(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)

    res = eng.list("1", "10", "kenya")
    assert _titles(res) == ["A Church", "B Shrine"]
    assert res.pagination.as_dict() == {
        "total": 2,
        "totalPages": 1,
        "currentPage": 1,
        "limit": 10,
    }

    body = res.as_dict()
    assert body["churches"][0]["type"] == "Feature"
    assert body["churches"][0]["properties"]["Country"] == "Kenya"

    first = eng.list(1, 2, "")
    assert _titles(first) == ["A Church", "B Shrine"]
    assert first.pagination.total_pages == 2
    assert _titles(eng.list(2, 2, "")) == ["C Basilica"]
    assert _titles(eng.filter(FilterQuery(country="kenya"))) == ["A Church", "B Shrine"]


def test_filter_scenario(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)

    res = eng.filter(FilterQuery(country="italy", type="basilica"))
    assert _titles(res) == ["C Basilica"]
    assert res.pagination.as_dict() == {
        "total": 1,
        "totalPages": 1,
        "currentPage": 1,
        "limit": 1000,
    }

    assert _titles(eng.filter(FilterQuery(country="kenya", type="basilica"))) == []


def test_empty_search_and_empty_filter_match_everything(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)
    assert len(eng.list(None, None).items) == 3
    assert eng.list(None, None).pagination.limit == 100
    assert _titles(eng.filter(FilterQuery())) == ["A Church", "B Shrine", "C Basilica"]


def test_matching_is_case_insensitive_substring(make_engine, write_geojson):
    corpus = load_corpus(
        [write_geojson("m.json", [church("St. Mary's Cathedral", "Kenya"), church("Other")])]
    )
    eng = make_engine(corpus)

    for term in ["MARY", "mary's", "Cathedral", "t. m"]:
        assert _titles(eng.list(1, 10, term)) == ["St. Mary's Cathedral"]
    assert _titles(eng.filter(FilterQuery(title="CATHEDRAL"))) == ["St. Mary's Cathedral"]
    # Leading/trailing whitespace is part of the term.
    assert _titles(eng.list(1, 10, " mary ")) == []


def test_search_looks_at_every_searchable_field(make_engine, write_geojson):
    corpus = load_corpus(
        [
            write_geojson(
                "f.json",
                [
                    church("One", address="Via Roma 1"),
                    church("Two", jurisdiction="Archdiocese of Nairobi"),
                    church("Three", rite="Byzantine"),
                    church("Four", city="Nairobi"),
                ],
            )
        ]
    )
    eng = make_engine(corpus)

    assert _titles(eng.list(1, 10, "roma")) == ["One"]
    assert _titles(eng.list(1, 10, "nairobi")) == ["Two"]
    assert _titles(eng.list(1, 10, "byzantine")) == ["Three"]


def test_pages_partition_the_matches(make_engine, big_corpus):
    eng = make_engine(big_corpus)
    everything = _titles(eng.list(1, 1000, "italy"))
    total = len(everything)
    assert total == sum(1 for i in range(250) if i % 3 != 0)

    limit = 7
    seen = []
    for page in range(1, math.ceil(total / limit) + 1):
        res = eng.list(page, limit, "italy")
        assert res.pagination.total == total
        assert res.pagination.total_pages == math.ceil(total / limit)
        assert len(res.items) <= limit
        seen.extend(_titles(res))
    assert seen == everything


def test_page_beyond_the_end_is_empty(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)
    res = eng.list(5, 2)
    assert res.items == ()
    assert res.pagination.as_dict() == {
        "total": 3,
        "totalPages": 2,
        "currentPage": 5,
        "limit": 2,
    }


def test_bad_paging_falls_back_to_defaults(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)

    res = eng.list("abc", "-4")
    assert res.pagination.current_page == 1
    assert res.pagination.limit == 100

    res = eng.list("2abc", "0")
    assert res.pagination.current_page == 2
    assert res.pagination.limit == 100


def test_oversized_paging_digits_fall_back_to_defaults(make_engine, scenario_corpus):
    eng = make_engine(scenario_corpus)
    huge = "9" * 5000

    res = eng.list(huge, "2")
    assert res.pagination.current_page == 1
    assert _titles(res) == ["A Church", "B Shrine"]

    res = eng.list("1", huge)
    assert res.pagination.limit == 100
    assert len(res.items) == 3

    with pytest.raises(BadInput):
        parse_int(huge)


def test_limit_is_capped(make_engine, big_corpus):
    eng = make_engine(big_corpus, QuerySettings(default_limit=10, max_limit=50))
    res = eng.list(1, 5000)
    assert res.pagination.limit == 50
    assert len(res.items) == 50
    assert len(eng.list(1, None).items) == 10


def test_filter_window_truncates_but_total_counts_everything(make_engine, big_corpus):
    eng = make_engine(big_corpus, QuerySettings(filter_window=20))
    res = eng.filter(FilterQuery(rite="latin"))
    assert len(res.items) == 20
    assert res.pagination.total == 250
    assert res.pagination.total_pages == 13
    assert res.pagination.current_page == 1
    assert _titles(res)[0] == "Church 000"


def test_engines_return_identical_pages(scenario_corpus, big_corpus):
    for corpus in (scenario_corpus, big_corpus):
        mem = InMemoryEngine(corpus)
        db = DuckDBEngine(corpus)
        try:
            for args in [(1, 10, ""), (2, 7, "italy"), (1, 3, "church 01"), (9, 9, "nope")]:
                assert mem.list(*args) == db.list(*args)
            q = FilterQuery(country="ken")
            assert mem.filter(q) == db.filter(q)
        finally:
            db.close()


def test_concurrent_queries(make_engine, big_corpus):
    eng = make_engine(big_corpus)
    expected = _titles(eng.list(2, 25, "kenya"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: _titles(eng.list(2, 25, "kenya")), range(32)))

    assert all(r == expected for r in results)


def test_parse_int_is_prefix_lenient():
    assert parse_int("12") == 12
    assert parse_int(" 3") == 3
    assert parse_int("2abc") == 2
    assert parse_int(-1) == -1
    for bad in ["", "abc", None, True, "x1"]:
        with pytest.raises(BadInput):
            parse_int(bad)


def test_int_param_and_page_window():
    assert int_param("0", 7) == 7
    assert int_param(None, 7) == 7
    assert int_param("9", 7) == 9
    settings = QuerySettings(default_limit=100, max_limit=1000)
    assert page_window(None, None, settings) == (1, 100)
    assert page_window("3", "2000", settings) == (3, 1000)


def test_filter_query_terms():
    q = FilterQuery.from_mapping({"Country": "x", "country": "Kenya", "rite": None, "bogus": "y"})
    assert q.terms() == {"country": "kenya"}
    assert FilterQuery().terms() == {}
