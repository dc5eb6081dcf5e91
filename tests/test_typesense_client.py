"""Tests del cliente de Typesense con una sesión aiohttp falsa."""

import asyncio

import aiohttp
import pytest

from faro.exceptions import ConfigurationError, RetrievalError
from faro.search import SearchResult, TypesenseClient, build_search

from helpers.fakes import make_criteria

API_KEY = "scoped-secret-key"


class FakeResponse:
    def __init__(self, status=200, payload=None, reason="OK", json_error=None):
        self.status = status
        self.reason = reason
        self._payload = payload
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.closed = False
        self.calls = []

    def post(self, url, json=None, headers=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


def _hits_payload(ids, found=None):
    return {
        "results": [{
            "found": found if found is not None else len(ids),
            "hits": [
                {"document": {"id": listing_id, "data": {"price_aed": 1}}, "highlights": []}
                for listing_id in ids
            ],
        }]
    }


@pytest.fixture
def query():
    return build_search(make_criteria(), "user_default", per_page=2)


@pytest.mark.asyncio
async def test_search_returns_hits_and_total(query):
    session = FakeSession(FakeResponse(payload=_hits_payload(["a", "b"], found=57)))
    client = TypesenseClient(api_url="https://ts.example/", api_key=API_KEY, session=session)

    result = await client.search(query)

    assert [h.id for h in result.hits] == ["a", "b"]
    assert result.found == 57
    call = session.calls[0]
    assert call["url"] == "https://ts.example/multi_search"
    assert call["headers"]["X-TYPESENSE-API-KEY"] == API_KEY
    assert call["json"] == {"searches": [query.to_dict()]}


@pytest.mark.asyncio
async def test_http_error_is_retrieval_error_without_secrets(query):
    session = FakeSession(FakeResponse(status=401, reason="Unauthorized"))
    client = TypesenseClient(api_url="https://ts.example", api_key=API_KEY, session=session)

    with pytest.raises(RetrievalError) as exc:
        await client.search(query)

    assert exc.value.status_code == 401
    assert API_KEY not in str(exc.value)
    assert query.filter_by not in str(exc.value)


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    aiohttp.ClientConnectionError("connection refused"),
    asyncio.TimeoutError(),
])
async def test_transport_errors(query, error):
    client = TypesenseClient(api_key=API_KEY, session=FakeSession(error=error))

    with pytest.raises(RetrievalError):
        await client.search(query)


@pytest.mark.asyncio
async def test_invalid_json_body(query):
    response = FakeResponse(json_error=ValueError("Expecting value"))
    client = TypesenseClient(api_key=API_KEY, session=FakeSession(response))

    with pytest.raises(RetrievalError):
        await client.search(query)


@pytest.mark.asyncio
async def test_injected_session_is_not_closed():
    session = FakeSession()

    async with TypesenseClient(api_key=API_KEY, session=session):
        pass

    assert not session.closed


def test_missing_key_is_configuration_error(monkeypatch):
    monkeypatch.setattr(
        "faro.search.client.get_settings",
        lambda: type("S", (), {
            "typesense_api_url": "https://ts.example",
            "typesense_scoped_key": None,
            "typesense_timeout_seconds": 30,
        })(),
    )

    with pytest.raises(ConfigurationError):
        TypesenseClient()


class TestSearchResult:
    def test_result_level_error_raises(self):
        with pytest.raises(RetrievalError) as exc:
            SearchResult.from_response({"results": [{"error": "bad filter", "code": 400}]})
        assert exc.value.status_code == 400

    def test_hits_without_id_are_skipped(self):
        payload = {"results": [{"found": 2, "hits": [{"document": {"data": {}}}, {"document": {"id": 7}}]}]}

        result = SearchResult.from_response(payload)

        assert [h.id for h in result.hits] == ["7"]
        assert result.found == 2

    def test_empty_response(self):
        result = SearchResult.from_response({"results": []})

        assert result.hits == []
        assert result.found == 0
