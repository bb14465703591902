from urllib.parse import parse_qsl, urlparse

import pytest

from package_search_api.services.search.models.search import PagedResult, Query, SolrHit
from package_search_api.services.search.result_transformer import ResultTransformer, format_count


def package_hit(**overrides):
    doc = {
        "id": 1,
        "name": "acme/log",
        "package_name": "log",
        "description": "Logging library",
        "type": "library",
        "repository": "https://github.com/acme/log",
        "tags": ["log", "psr-3"],
        "abandoned": 0,
        "replacementPackage": "",
        "downloads": 1234567,
        "favers": 1200,
        "popularity": 6,
        "trendiness": 2.5,
    }
    doc.update(overrides)
    return SolrHit.from_solr(doc)


def virtual_hit(name="psr/log-implementation"):
    return SolrHit.from_solr({
        "id": f"virtual:{name}",
        "name": name,
        "package_name": name.split("/", 1)[-1],
        "description": "",
        "type": "virtual-package",
        "repository": "",
        "abandoned": 0,
        "replacementPackage": "",
        "trendiness": 100,
    })


@pytest.fixture()
def transformer():
    return ResultTransformer("https://packages.example.org/")


def test_format_count_uses_space_separator():
    assert format_count(1234567) == "1 234 567"
    assert format_count(999) == "999"


def test_package_hit_shape(transformer):
    paged = PagedResult(hits=[package_hit()], num_found=1, per_page=15, current_page=1)
    result = transformer.transform(Query(query="log"), paged)

    row = result.hits[0]
    assert row["id"] == 1
    assert row["url"] == "https://packages.example.org/packages/acme/log"
    assert row["objectID"] == "acme/log"
    assert row["language"] == "php"
    assert row["abandoned"] == 0
    assert row["downloads"] == 1234567
    assert row["favers"] == 1200
    assert row["meta"]["downloads_formatted"] == "1 234 567"
    assert row["meta"]["favers_formatted"] == "1 200"
    assert row["_highlightResult"]["name"]["value"] == "acme/log"
    assert row["_highlightResult"]["description"]["matchLevel"] == "full"
    assert "virtual" not in row


def test_virtual_hit_has_no_usage_fields(transformer):
    paged = PagedResult(hits=[virtual_hit()], num_found=1, per_page=15, current_page=1)
    row = transformer.transform(Query(query="log"), paged).hits[0]

    assert row["virtual"] is True
    assert row["id"] == "virtual:psr/log-implementation"
    assert row["url"] == "https://packages.example.org/providers/psr/log-implementation"
    for field in ("downloads", "favers", "meta", "_highlightResult"):
        assert field not in row


def test_abandoned_collapses_to_replacement_or_true(transformer):
    hits = [
        package_hit(id=1, abandoned=1, replacementPackage="vendor/new"),
        package_hit(id=2, name="acme/old", abandoned=1, replacementPackage=""),
    ]
    rows = transformer.transform(Query(query="x"), PagedResult(hits=hits, num_found=2)).hits

    assert rows[0]["abandoned"] == "vendor/new"
    assert rows[1]["abandoned"] is True


def test_facets_count_the_current_page(transformer):
    hits = [
        package_hit(id=1, tags=["log", "psr-3"]),
        package_hit(id=2, name="acme/other", tags=["log"], type="symfony-bundle"),
        virtual_hit(),
    ]
    result = transformer.transform(Query(query="log"), PagedResult(hits=hits, num_found=40))

    assert result.facets == {
        "tags": {"log": 2, "psr-3": 1},
        "type": {"library": 1, "symfony-bundle": 1, "virtual-package": 1},
    }
    assert result.nbHits == 40


def test_next_link_only_when_more_pages(transformer):
    query = Query(query="log", page=0)
    last = transformer.transform(query, PagedResult(hits=[], num_found=15, per_page=15, current_page=1))
    assert last.next is None
    assert "next" not in last.to_response()
    assert last.nbPages == 1

    first = transformer.transform(query, PagedResult(hits=[], num_found=16, per_page=15, current_page=1))
    assert first.nbPages == 2
    link = urlparse(first.next)
    assert link.path == "/search.json"
    assert parse_qsl(link.query) == [("q", "log"), ("page", "2")]


def test_next_link_carries_filters_and_custom_page_size(transformer):
    query = Query(query="log", tags=("cli", "psr"), type="library", per_page=5, page=0,
                  order_bys=(("downloads", "desc"),))
    result = transformer.transform(query, PagedResult(hits=[], num_found=11, per_page=5, current_page=1))

    assert parse_qsl(urlparse(result.next).query) == [
        ("q", "log"),
        ("page", "2"),
        ("tags[]", "cli"),
        ("tags[]", "psr"),
        ("type", "library"),
        ("per_page", "5"),
        ("orderBys[0][sort]", "downloads"),
        ("orderBys[0][order]", "desc"),
    ]


def test_empty_result(transformer):
    result = transformer.transform(Query(query="nothing"), PagedResult(hits=[], num_found=0))
    assert result.hits == []
    assert result.nbPages == 1
    assert result.facets == {"tags": {}, "type": {}}
