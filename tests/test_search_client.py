"""Tests for the Elasticsearch client facade."""

from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError
from elasticsearch import NotFoundError
from elasticsearch.helpers import BulkIndexError

from stagesync.config import SearchSettings
from stagesync.search import BulkWriteError, Document, SearchClient, SearchResponse, SearchTransportError
from stagesync.search.mapping import MappingDescriptor


def _client() -> tuple[SearchClient, MagicMock]:
    native = MagicMock()
    return SearchClient(native, "content"), native


def _not_found() -> NotFoundError:
    return NotFoundError("not_found", MagicMock(status=404), {"found": False})


def test_from_raw_reads_hits_totals_and_aggregations() -> None:
    raw = SimpleNamespace(
        body={
            "took": 7,
            "hits": {
                "total": {"value": 2, "relation": "eq"},
                "hits": [
                    {"_id": "Article_1_Draft", "_score": 1.5, "_source": {"Title": "A"}},
                    {"_id": "Note_2", "_score": None},
                ],
            },
            "aggregations": {"types": {"buckets": []}},
        }
    )

    response = SearchResponse.from_raw(raw)

    assert response.total == 2
    assert response.took == 7
    assert [hit.id for hit in response.hits] == ["Article_1_Draft", "Note_2"]
    assert response.hits[0].source == {"Title": "A"}
    assert response.hits[1].source == {}
    assert response.aggregations == {"types": {"buckets": []}}


def test_search_translates_from_keyword() -> None:
    client, native = _client()
    native.search.return_value = {"hits": {"total": 0, "hits": []}}

    client.search({"query": {"match_all": {}}, "size": 5, "from": 10})

    native.search.assert_called_once_with(
        index="content", query={"match_all": {}}, size=5, from_=10
    )


def test_delete_document_returns_false_when_missing() -> None:
    client, native = _client()
    native.delete.side_effect = _not_found()

    assert client.delete_document("Article_9_Draft") is False


def test_transport_failures_become_search_errors() -> None:
    client, native = _client()
    native.index.side_effect = ESConnectionError("connection refused")

    with pytest.raises(SearchTransportError):
        client.add_document(Document("Note_1", {"Title": "x"}))


def test_add_documents_sends_bulk_actions(monkeypatch: pytest.MonkeyPatch) -> None:
    client, native = _client()
    captured: dict[str, Any] = {}

    def _bulk(es, actions, **kwargs):
        captured["es"] = es
        captured["actions"] = list(actions)
        return len(captured["actions"]), []

    monkeypatch.setattr("stagesync.search.client.helpers.bulk", _bulk)

    count = client.add_documents([Document("Note_1", {"Title": "a"}), Document("Note_2", {})])

    assert count == 2
    assert captured["es"] is native
    assert captured["actions"][0] == {
        "_op_type": "index",
        "_index": "content",
        "_id": "Note_1",
        "_source": {"Title": "a"},
    }


def test_add_documents_reports_rejected_items(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client()
    errors = [{"index": {"_id": "Note_1", "status": 400}}]
    seen: dict[str, Any] = {}

    def _bulk(es, actions, **kwargs):
        seen.update(kwargs)
        return 1, errors

    monkeypatch.setattr("stagesync.search.client.helpers.bulk", _bulk)

    with pytest.raises(BulkWriteError) as excinfo:
        client.add_documents([Document("Note_1", {}), Document("Note_2", {})])
    assert excinfo.value.errors == errors
    assert seen == {"raise_on_error": False}


def test_add_documents_sends_every_chunk_after_a_rejection(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client()
    chunks: list[int] = []

    def _bulk(es, actions, chunk_size=500, raise_on_error=True, **kwargs):
        actions = list(actions)
        errors = []
        for start in range(0, len(actions), chunk_size):
            chunk = actions[start : start + chunk_size]
            chunks.append(len(chunk))
            if start == 0:
                errors.append({"index": {"_id": chunk[0]["_id"], "status": 400}})
                if raise_on_error:
                    raise BulkIndexError("1 document(s) failed to index.", errors)
        return len(actions) - len(errors), errors

    monkeypatch.setattr("stagesync.search.client.helpers.bulk", _bulk)
    documents = [Document(f"Note_{number}", {}) for number in range(1200)]

    with pytest.raises(BulkWriteError) as excinfo:
        client.add_documents(documents)

    assert chunks == [500, 500, 200]
    assert excinfo.value.errors == [{"index": {"_id": "Note_0", "status": 400}}]


def test_bulk_helper_exceptions_become_bulk_write_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client()
    errors = [{"index": {"_id": "Note_1", "status": 400}}]

    def _bulk(es, actions, **kwargs):
        raise BulkIndexError("1 document(s) failed to index.", errors)

    monkeypatch.setattr("stagesync.search.client.helpers.bulk", _bulk)

    with pytest.raises(BulkWriteError) as excinfo:
        client.add_documents([Document("Note_1", {})])
    assert excinfo.value.errors == errors


def test_delete_ids_ignores_missing_documents(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client()
    seen: dict[str, Any] = {}

    def _bulk(es, actions, **kwargs):
        seen.update(kwargs)
        return 1, [{"delete": {"_id": "Note_2", "status": 404}}]

    monkeypatch.setattr("stagesync.search.client.helpers.bulk", _bulk)

    assert client.delete_ids(["Note_1", "Note_2"]) == 1
    assert seen == {"raise_on_error": False, "refresh": True}


def test_delete_ids_raises_on_other_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = _client()
    monkeypatch.setattr(
        "stagesync.search.client.helpers.bulk",
        lambda es, actions, **kwargs: (0, [{"delete": {"_id": "Note_1", "status": 500}}]),
    )

    with pytest.raises(BulkWriteError):
        client.delete_ids(["Note_1"])


def test_create_index_splits_settings_and_mappings() -> None:
    client, native = _client()

    client.create_index({"settings": {"number_of_shards": 1}, "mappings": {"dynamic": True}})

    native.indices.create.assert_called_once_with(
        index="content", settings={"number_of_shards": 1}, mappings={"dynamic": True}
    )


def test_put_mapping_sends_properties_and_params() -> None:
    client, native = _client()
    descriptor = MappingDescriptor("Note", {"Title": {"type": "text"}})

    client.put_mapping(descriptor)

    native.indices.put_mapping.assert_called_once_with(
        index="content", properties={"Title": {"type": "text"}}, date_detection=False
    )


def test_from_settings_builds_native_client(monkeypatch: pytest.MonkeyPatch) -> None:
    factory = MagicMock()
    monkeypatch.setattr("stagesync.search.client.Elasticsearch", factory)
    settings = SearchSettings(hosts=["http://es:9200"], index="site", api_key="secret")

    client = SearchClient.from_settings(settings)

    assert client.index == "site"
    factory.assert_called_once_with(
        ["http://es:9200"], request_timeout=10.0, verify_certs=True, api_key="secret"
    )
