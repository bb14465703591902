import json
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from package_search_api.app import app
from package_search_api.services.search.config import Settings, get_settings
from package_search_api.services.search.dependencies import get_search_engine
from package_search_api.services.search.exceptions import SearchEngineUnavailable
from package_search_api.services.search.solr_client import SolrClient
from package_search_api.services.search.result_transformer import ResultTransformer
from package_search_api.services.search.search_engine import PackageSearchEngine


class FakeSolr(SolrClient):
    """SolrClient answering from in-memory documents instead of HTTP."""

    def __init__(self, num_found=1, error=None):
        super().__init__("http://solr:8983/solr", "packages")
        self.num_found = num_found
        self.error = error
        self.selects = []
        self.docs = [{
            "id": "1",
            "name": "monolog/monolog",
            "package_name": "monolog",
            "description": "Sends your logs to files, sockets, inboxes, databases and various web services",
            "type": "library",
            "tags": ["log", "psr-3"],
            "downloads": 1000,
            "favers": 20,
        }]

    def _request(self, method, path, **kwargs):
        if self.error:
            raise self.error
        return {"response": {"numFound": self.num_found, "docs": self.docs}}

    def select(self, select):
        self.selects.append(select)
        return super().select(select)


@pytest.fixture()
def solr():
    return FakeSolr()


@pytest.fixture()
def client(solr):
    settings = Settings(INDEX_NAME="packagist", BASE_URL="https://packages.example.org")
    engine = PackageSearchEngine(solr, ResultTransformer(settings.BASE_URL))
    app.dependency_overrides[get_search_engine] = lambda: engine
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_single_query_search(client, solr):
    response = client.get("/search.json", params={"q": "monolog", "tags[]": ["log"], "type": "library"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, s-maxage=300"
    body = response.json()
    assert body["index"] == "packagist"
    assert body["query"] == "monolog"
    assert body["page"] == 0
    assert body["hitsPerPage"] == 15
    assert body["hits"][0]["id"] == 1
    assert body["hits"][0]["url"] == "https://packages.example.org/packages/monolog/monolog"
    assert body["facets"]["tags"] == {"log": 1, "psr-3": 1}
    assert "next" not in body

    fqs = [value for key, value in solr.selects[0].to_params() if key == "fq"]
    assert fqs == ['type:("library")', 'tags:("log")']


def test_page_is_one_based_and_next_link(client, solr):
    solr.num_found = 100
    body = client.get("/search.json", params={"q": "log", "page": "2", "per_page": "10"}).json()

    assert solr.selects[0].start == 10
    assert body["page"] == 1
    assert body["nbPages"] == 10
    assert body["next"] == "https://packages.example.org/search.json?q=log&page=3&per_page=10"


def test_type_placeholder_is_stripped(client, solr):
    client.get("/search.json", params={"q": "log", "type": "%type%"})
    assert [value for key, value in solr.selects[0].to_params() if key == "fq"] == []


def test_missing_query_is_rejected(client):
    response = client.get("/search.json")
    assert response.status_code == 400
    assert response.json() == {"error": "Missing search query, example: ?q=example"}


def test_tags_alone_are_enough(client):
    assert client.get("/search.json", params={"tags": "log"}).status_code == 200


@pytest.mark.parametrize("per_page", ["0", "101", "abc"])
def test_invalid_per_page_is_rejected(client, per_page):
    response = client.get("/search.json", params={"q": "log", "per_page": per_page})
    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_order_bys_reach_solr(client, solr):
    client.get("/search.json", params={
        "q": "log",
        "orderBys[0][sort]": "downloads",
        "orderBys[0][order]": "desc",
    })
    assert ("sort", "downloads desc") in solr.selects[0].to_params()


def test_unreachable_search_server(client, solr):
    solr.error = SearchEngineUnavailable("connection refused")
    response = client.get("/search.json", params={"q": "log"})

    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "Could not connect to the search server"}


def test_jsonp_callback(client):
    response = client.get("/search.json", params={"q": "log", "callback": "handle"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/javascript")
    assert response.text.startswith("/**/handle(")
    assert response.text.endswith(");")
    payload = json.loads(response.text[len("/**/handle("):-2])
    assert payload["query"] == "log"


def test_invalid_jsonp_callback_is_rejected(client):
    response = client.get("/search.json", params={"q": "log", "callback": "alert(1)"})
    assert response.status_code == 400


@pytest.mark.parametrize("path", ["/search/queries", "/search/1/indexes/*/queries"])
def test_batch_search_echoes_index_and_params(client, solr, path):
    params = urlencode({
        "query": "monolog",
        "hitsPerPage": "5",
        "page": "1",
        "facetFilters": '[["tags:log"]]',
    })
    body = {"requests": [
        {"indexName": "packagist", "params": params},
        {"indexName": "other", "params": "query=psr"},
    ]}

    response = client.post(path, content=json.dumps(body))

    assert response.status_code == 200
    results = response.json()["results"]
    assert [result["index"] for result in results] == ["packagist", "other"]
    assert results[0]["params"] == params
    assert results[0]["page"] == 1
    assert results[0]["hitsPerPage"] == 5
    assert results[1]["hitsPerPage"] == 100
    assert solr.selects[0].start == 5
    assert [value for key, value in solr.selects[0].to_params() if key == "fq"] == ['tags:("log")']


def test_malformed_batch_body_gives_no_results(client):
    response = client.post("/search/queries", content="not json")
    assert response.status_code == 200
    assert response.json() == {"results": []}


def test_batch_search_engine_failure(client, solr):
    solr.error = SearchEngineUnavailable("connection refused")
    body = {"requests": [{"indexName": "packagist", "params": "query=log"}]}

    response = client.post("/search/queries", content=json.dumps(body))

    assert response.status_code == 500
    assert response.json()["message"] == "Could not connect to the search server"


def test_malformed_search_document_gives_json_error(client, solr):
    solr.docs = [{"id": "1"}]
    response = client.get("/search.json", params={"q": "log"})

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"status": "error", "message": "Could not connect to the search server"}


def test_batch_next_link_can_be_followed(client, solr):
    solr.num_found = 1000
    body = {"requests": [{"indexName": "packagist", "params": "query=log&hitsPerPage=200"}]}

    result = client.post("/search/queries", content=json.dumps(body)).json()["results"][0]

    assert result["hitsPerPage"] == 100
    assert solr.selects[0].rows == 100
    next_link = result["next"]
    assert "per_page=100" in next_link
    followed = client.get(next_link.replace("https://packages.example.org", ""))
    assert followed.status_code == 200


def test_batch_search_applies_order_bys(client, solr):
    body = {"requests": [
        {"indexName": "packagist", "params": "query=log"},
        {"indexName": "packagist", "params": "query=cache"},
    ]}
    query_string = urlencode({"orderBys[0][sort]": "favers", "orderBys[0][order]": "desc"})

    client.post(f"/search/queries?{query_string}", content=json.dumps(body))

    for select in solr.selects:
        assert ("sort", "favers desc") in select.to_params()


def test_jsonp_body_escapes_script_sensitive_characters(client, solr):
    description = "</script><b>it's</b> & \u2028done"
    solr.docs = [{"id": "1", "name": "acme/tags", "description": description}]

    response = client.get("/search.json", params={"q": "log", "callback": "handle"})

    body = response.text
    for raw in ("<", ">", "'", "&", "\u2028"):
        assert raw not in body
    assert "\\u003C/script\\u003E" in body
    payload = json.loads(body[len("/**/handle("):-2])
    assert payload["hits"][0]["description"] == description
