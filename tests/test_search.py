from datetime import datetime, timezone

import pytest

from specmarket.search import (
    CategoryCount,
    IndexDoc,
    Query,
    SearchError,
    SearchResult,
    SearchService,
    build_query,
    parse_category_aggs,
    soft_filters_in_query,
)


class FakeBackend:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def search(self, index, body):
        self.calls.append((index, body))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def resp(total, user_ids=(), aggs=None):
    out = {
        "hits": {
            "total": {"value": total},
            "hits": [{"_source": {"user_id": u, "display_name": u.upper()}} for u in user_ids],
        }
    }
    if aggs is not None:
        out["aggregations"] = aggs
    return out


# carried over cases


def test_parse_category_aggs_empty():
    assert parse_category_aggs(None) == []
    assert parse_category_aggs("{}") == []


def test_parse_category_aggs_happy():
    raw = """{
        "categories": {
            "buckets": [
                {"key": "editor", "doc_count": 12},
                {"key": "motion", "doc_count": 7},
                {"key": "smm", "doc_count": 3}
            ]
        }
    }"""
    assert parse_category_aggs(raw) == [
        CategoryCount("editor", 12),
        CategoryCount("motion", 7),
        CategoryCount("smm", 3),
    ]


def test_parse_category_aggs_malformed():
    assert parse_category_aggs("{ broken }") == []


def test_parse_category_aggs_accepts_mapping_and_rejects_bad_types():
    data = {"categories": {"buckets": [{"key": "editor", "doc_count": 2}]}}
    assert parse_category_aggs(data) == [CategoryCount("editor", 2)]
    bad = {"categories": {"buckets": [{"key": 5, "doc_count": 2}]}}
    assert parse_category_aggs(bad) == []


# query building


def test_build_query_defaults():
    body = build_query(Query(limit=20))
    assert body["query"]["bool"]["filter"] == [{"term": {"is_published": True}}]
    assert body["query"]["bool"]["must"] == {"match_all": {}}
    assert body["size"] == 20 and body["from"] == 0
    assert body["aggs"] == {"categories": {"terms": {"field": "categories", "size": 50}}}
    assert "post_filter" not in body
    assert "must_not" not in body["query"]["bool"]


def test_build_query_text_and_filters():
    q = Query(q="монтаж", skill_slugs=["premiere"], city="Moscow", rate_min=100, rate_max=500)
    body = build_query(q)
    assert body["query"]["bool"]["must"]["multi_match"]["query"] == "монтаж"
    assert body["query"]["bool"]["must"]["multi_match"]["fields"] == [
        "display_name^3",
        "bio",
        "skill_titles",
        "city.text",
    ]
    assert body["query"]["bool"]["filter"][1:] == [
        {"terms": {"skill_slugs": ["premiere"]}},
        {"term": {"city": "Moscow"}},
        {"range": {"rate_max": {"gte": 100}}},
        {"range": {"rate_min": {"lte": 500}}},
    ]


def test_build_query_categories_go_to_post_filter():
    body = build_query(Query(categories=["editor", "smm"]))
    assert body["post_filter"] == {"terms": {"categories": ["editor", "smm"]}}
    assert len(body["query"]["bool"]["filter"]) == 1


def test_build_query_exclude_and_skip_facets():
    body = build_query(Query(), exclude_ids=["u1"], skip_facets=True)
    assert body["query"]["bool"]["must_not"] == [{"terms": {"user_id": ["u1"]}}]
    assert "aggs" not in body


def test_soft_filters():
    assert soft_filters_in_query(Query()) == []
    assert soft_filters_in_query(Query(city="x", rate_max=5)) == ["city", "rate"]
    assert soft_filters_in_query(Query(rate_min=1)) == ["rate"]


# service


@pytest.mark.parametrize("limit, offset", [(0, 0), (51, -3), (-1, 0)])
def test_search_normalizes_paging(limit, offset):
    backend = FakeBackend(resp(10, ["u1"]))
    SearchService(backend, "specialists").search(Query(limit=limit, offset=offset))
    index, body = backend.calls[0]
    assert index == "specialists"
    assert body["size"] == 20
    assert body["from"] == 0


def test_search_returns_items_and_facets():
    aggs = {"categories": {"buckets": [{"key": "editor", "doc_count": 4}]}}
    backend = FakeBackend(resp(7, ["u1", "u2"], aggs))
    result = SearchService(backend, "idx").search(Query(limit=10))
    assert result.total == 7
    assert [d.user_id for d in result.items] == ["u1", "u2"]
    assert result.facets.categories == [CategoryCount("editor", 4)]
    assert len(backend.calls) == 1


def test_search_broadens_empty_text_result():
    backend = FakeBackend(resp(0), resp(3, ["u9"]))
    result = SearchService(backend, "idx").search(Query(q="zzz"))
    assert result.broadened is True
    assert [d.user_id for d in result.items] == ["u9"]
    assert backend.calls[1][1]["query"]["bool"]["must"] == {"match_all": {}}


def test_search_relaxes_soft_filters():
    backend = FakeBackend(resp(1, ["u1"]), resp(2, ["u2", "u3"]))
    result = SearchService(backend, "idx").search(Query(city="Moscow"))
    assert [d.user_id for d in result.items] == ["u1"]
    assert [d.user_id for d in result.similar] == ["u2", "u3"]
    assert result.relaxed == ["city"]
    soft_body = backend.calls[1][1]
    assert soft_body["size"] == 15
    assert soft_body["query"]["bool"]["must_not"] == [{"terms": {"user_id": ["u1"]}}]
    assert soft_body["query"]["bool"]["filter"] == [{"term": {"is_published": True}}]
    assert "aggs" not in soft_body


def test_search_relaxation_failure_is_ignored():
    backend = FakeBackend(resp(1, ["u1"]), RuntimeError("down"))
    result = SearchService(backend, "idx").search(Query(rate_min=10))
    assert [d.user_id for d in result.items] == ["u1"]
    assert result.similar == [] and result.relaxed == []


def test_search_no_relaxation_without_soft_filters():
    backend = FakeBackend(resp(1, ["u1"]))
    SearchService(backend, "idx").search(Query(categories=["editor"]))
    assert len(backend.calls) == 1


def test_search_backend_error_raises():
    backend = FakeBackend(RuntimeError("boom"))
    with pytest.raises(SearchError):
        SearchService(backend, "idx").search(Query())


def test_search_bad_hit_raises():
    bad = {"hits": {"total": {"value": 1}, "hits": [{"_source": {"rate_min": "abc"}}]}}
    with pytest.raises(SearchError):
        SearchService(FakeBackend(bad), "idx").search(Query())


def test_count_by_category():
    backend = FakeBackend(resp(42))
    service = SearchService(backend, "idx")
    assert service.count_by_category("") == 0
    assert backend.calls == []
    assert service.count_by_category("editor") == 42
    filters = backend.calls[0][1]["query"]["bool"]["filter"]
    assert {"term": {"categories": "editor"}} in filters


def test_load_docs_by_ids():
    backend = FakeBackend(resp(2, ["b", "a"]))
    service = SearchService(backend, "idx")
    assert service.load_docs_by_ids([]) == []
    assert backend.calls == []
    docs = service.load_docs_by_ids(["a", "b"])
    assert [d.user_id for d in docs] == ["b", "a"]
    body = backend.calls[0][1]
    assert body["size"] == 2
    assert {"terms": {"user_id": ["a", "b"]}} in body["query"]["bool"]["filter"]


def test_category_stats():
    aggs = {"categories": {"buckets": [{"key": "smm", "doc_count": 3}]}}
    backend = FakeBackend(resp(0, aggs=aggs))
    assert SearchService(backend, "idx").category_stats() == [CategoryCount("smm", 3)]
    assert backend.calls[0][1]["size"] == 0


# documents


def test_index_doc_round_trip():
    doc = IndexDoc(
        user_id="u1",
        display_name="Anna",
        categories=["editor"],
        rate_min=100,
        currency="RUB",
        rating_avg=4.5,
        reviews_count=3,
        is_published=True,
        updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
    data = doc.to_dict()
    assert "avatar_url" not in data and "rate_max" not in data and "last_video_at" not in data
    assert data["updated_at"].endswith("Z")
    assert IndexDoc.from_dict(data) == doc


def test_index_doc_parses_nanosecond_timestamp():
    doc = IndexDoc.from_dict({"updated_at": "2024-05-01T12:00:00.123456789Z"})
    assert doc.updated_at == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_search_result_to_dict_omits_empty():
    data = SearchResult(total=1, items=[IndexDoc(user_id="u1")]).to_dict()
    assert set(data) == {"total", "items"}
    assert data["items"][0]["user_id"] == "u1"