"""Specialist search over a document index with facets and soft-filter relaxation."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

SIMILAR_THRESHOLD = 5
DEFAULT_LIMIT = 20
MAX_LIMIT = 50

_FRACTION = re.compile(r"(\.\d{6})\d+")


class SearchError(Exception):
    """The search backend failed or returned something unreadable."""


class SpecialistNotFoundError(SearchError):
    """No specialist with the requested id."""

    def __init__(self) -> None:
        super().__init__("specialist not found")


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise TypeError(f"expected timestamp string, got {type(value).__name__}")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    return datetime.fromisoformat(_FRACTION.sub(r"\1", text))


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _str(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def _int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected integer, got {value!r}")
    return value


def _opt_int(value: Any) -> int | None:
    return None if value is None else _int(value)


def _float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {value!r}")
    return float(value)


def _bool(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {value!r}")
    return value


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"expected list, got {type(value).__name__}")
    return [_str(v) for v in value]


@dataclass
class IndexDoc:
    """One specialist document as stored in the search index."""

    user_id: str = ""
    display_name: str = ""
    bio: str = ""
    avatar_url: str = ""
    city: str = ""
    categories: list[str] = field(default_factory=list)
    primary_category: str = ""
    skill_slugs: list[str] = field(default_factory=list)
    skill_titles: str = ""
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str = ""
    rating_avg: float = 0.0
    reviews_count: int = 0
    is_published: bool = False
    updated_at: datetime | None = None
    last_video_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndexDoc":
        if not isinstance(data, Mapping):
            raise TypeError("document must be an object")
        return cls(
            user_id=_str(data.get("user_id")),
            display_name=_str(data.get("display_name")),
            bio=_str(data.get("bio")),
            avatar_url=_str(data.get("avatar_url")),
            city=_str(data.get("city")),
            categories=_str_list(data.get("categories")),
            primary_category=_str(data.get("primary_category")),
            skill_slugs=_str_list(data.get("skill_slugs")),
            skill_titles=_str(data.get("skill_titles")),
            rate_min=_opt_int(data.get("rate_min")),
            rate_max=_opt_int(data.get("rate_max")),
            currency=_str(data.get("currency")),
            rating_avg=_float(data.get("rating_avg")),
            reviews_count=_int(data.get("reviews_count")),
            is_published=_bool(data.get("is_published")),
            updated_at=_parse_time(data.get("updated_at")),
            last_video_at=_parse_time(data.get("last_video_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "bio": self.bio,
        }
        if self.avatar_url:
            out["avatar_url"] = self.avatar_url
        if self.city:
            out["city"] = self.city
        out["categories"] = list(self.categories)
        if self.primary_category:
            out["primary_category"] = self.primary_category
        out["skill_slugs"] = list(self.skill_slugs)
        out["skill_titles"] = self.skill_titles
        if self.rate_min is not None:
            out["rate_min"] = self.rate_min
        if self.rate_max is not None:
            out["rate_max"] = self.rate_max
        out["currency"] = self.currency
        out["rating_avg"] = self.rating_avg
        out["reviews_count"] = self.reviews_count
        out["is_published"] = self.is_published
        out["updated_at"] = _format_time(self.updated_at)
        if self.last_video_at is not None:
            out["last_video_at"] = _format_time(self.last_video_at)
        return out


@dataclass
class Query:
    """Search parameters; city and rate are soft filters."""

    q: str = ""
    categories: list[str] = field(default_factory=list)
    skill_slugs: list[str] = field(default_factory=list)
    city: str = ""
    rate_min: int | None = None
    rate_max: int | None = None
    limit: int = 0
    offset: int = 0


@dataclass
class CategoryCount:
    code: str
    count: int


@dataclass
class Facets:
    categories: list[CategoryCount] = field(default_factory=list)


@dataclass
class SearchResult:
    total: int = 0
    items: list[IndexDoc] = field(default_factory=list)
    similar: list[IndexDoc] = field(default_factory=list)
    relaxed: list[str] = field(default_factory=list)
    broadened: bool = False
    facets: Facets | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "total": self.total,
            "items": [d.to_dict() for d in self.items],
        }
        if self.similar:
            out["similar"] = [d.to_dict() for d in self.similar]
        if self.relaxed:
            out["relaxed"] = list(self.relaxed)
        if self.broadened:
            out["broadened"] = True
        if self.facets is not None:
            out["facets"] = {
                "categories": [
                    {"code": c.code, "count": c.count} for c in self.facets.categories
                ]
            }
        return out


class SearchBackend(Protocol):
    """Runs a search body against an index and returns the decoded response."""

    def search(self, index: str, body: Mapping[str, Any]) -> Mapping[str, Any]: ...


def soft_filters_in_query(query: Query) -> list[str]:
    """Names of the soft filters present in the query."""
    out = []
    if query.city:
        out.append("city")
    if query.rate_min is not None or query.rate_max is not None:
        out.append("rate")
    return out


def parse_category_aggs(raw: Any) -> list[CategoryCount]:
    """Buckets of ``aggregations.categories``; empty on missing or malformed input."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, bytearray)):
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            return []
    else:
        data = raw
    if data is None:
        return []
    if not isinstance(data, Mapping):
        return []
    categories = data.get("categories") or {}
    if not isinstance(categories, Mapping):
        return []
    buckets = categories.get("buckets") or []
    if not isinstance(buckets, list):
        return []
    out = []
    for bucket in buckets:
        if not isinstance(bucket, Mapping):
            return []
        try:
            out.append(
                CategoryCount(code=_str(bucket.get("key")), count=_int(bucket.get("doc_count")))
            )
        except TypeError:
            return []
    return out


def _categories_aggs() -> dict[str, Any]:
    return {"categories": {"terms": {"field": "categories", "size": 50}}}


def build_query(
    query: Query,
    exclude_ids: Sequence[str] | None = None,
    skip_facets: bool = False,
) -> dict[str, Any]:
    """Search body: hard filters, soft filters, text match and facets."""
    filters: list[Any] = [{"term": {"is_published": True}}]
    if query.skill_slugs:
        filters.append({"terms": {"skill_slugs": list(query.skill_slugs)}})
    if query.city:
        filters.append({"term": {"city": query.city}})
    if query.rate_min is not None:
        filters.append({"range": {"rate_max": {"gte": query.rate_min}}})
    if query.rate_max is not None:
        filters.append({"range": {"rate_min": {"lte": query.rate_max}}})

    if query.q:
        must: dict[str, Any] = {
            "multi_match": {
                "query": query.q,
                "fields": ["display_name^3", "bio", "skill_titles", "city.text"],
                "operator": "or",
                "type": "best_fields",
                "minimum_should_match": "60%",
            }
        }
    else:
        must = {"match_all": {}}

    bool_query: dict[str, Any] = {"must": must, "filter": filters}
    if exclude_ids:
        bool_query["must_not"] = [{"terms": {"user_id": list(exclude_ids)}}]

    body: dict[str, Any] = {
        "from": query.offset,
        "size": query.limit,
        "query": {"bool": bool_query},
        "sort": [
            "_score",
            {"rating_avg": {"order": "desc"}},
            {"reviews_count": {"order": "desc"}},
        ],
    }
    if not skip_facets:
        body["aggs"] = _categories_aggs()
    # Category goes to post_filter so the facets still show every category.
    if query.categories:
        body["post_filter"] = {"terms": {"categories": list(query.categories)}}
    return body


def _hits(response: Mapping[str, Any]) -> list[Any]:
    return list((response.get("hits") or {}).get("hits") or [])


def _total(response: Mapping[str, Any]) -> int:
    total = (response.get("hits") or {}).get("total") or 0
    if isinstance(total, Mapping):
        return int(total.get("value") or 0)
    return int(total)


def _decode_hits(response: Mapping[str, Any]) -> list[IndexDoc]:
    docs = []
    for hit in _hits(response):
        try:
            docs.append(IndexDoc.from_dict(hit.get("_source") or {}))
        except (TypeError, ValueError, AttributeError) as exc:
            raise SearchError(f"decode hit: {exc}") from exc
    return docs


class SearchService:
    """Specialist search, category counts and batch lookup."""

    def __init__(self, backend: SearchBackend, index: str) -> None:
        self._backend = backend
        self._index = index

    def _call(self, body: Mapping[str, Any], what: str) -> Mapping[str, Any]:
        try:
            return self._backend.search(self._index, body)
        except SearchError:
            raise
        except Exception as exc:
            raise SearchError(f"{what}: {exc}") from exc

    def _run(
        self,
        query: Query,
        *,
        broadened: bool = False,
        exclude_ids: Sequence[str] | None = None,
        skip_facets: bool = False,
    ) -> SearchResult:
        response = self._call(build_query(query, exclude_ids, skip_facets), "es search")
        out = SearchResult(
            total=_total(response), items=_decode_hits(response), broadened=broadened
        )
        if not skip_facets:
            cats = parse_category_aggs(response.get("aggregations"))
            if cats:
                out.facets = Facets(categories=cats)
        return out

    def search(self, query: Query) -> SearchResult:
        """Run a search, broadening an empty text search and relaxing soft filters."""
        limit = query.limit if 0 < query.limit <= MAX_LIMIT else DEFAULT_LIMIT
        query = replace(query, limit=limit, offset=max(query.offset, 0))

        out = self._run(query)
        if out.total == 0 and query.q:
            return self._run(replace(query, q=""), broadened=True)

        if query.offset == 0 and out.total < SIMILAR_THRESHOLD:
            relaxed = soft_filters_in_query(query)
            if relaxed:
                soft = replace(
                    query,
                    city="",
                    rate_min=None,
                    rate_max=None,
                    limit=SIMILAR_THRESHOLD * 3,
                    offset=0,
                )
                try:
                    extra = self._run(
                        soft, exclude_ids=[d.user_id for d in out.items], skip_facets=True
                    )
                except SearchError:
                    extra = None
                if extra is not None and extra.items:
                    out.similar = extra.items
                    out.relaxed = relaxed
        return out

    def category_stats(self) -> list[CategoryCount]:
        """Published specialists per category."""
        body = {
            "size": 0,
            "query": {"bool": {"filter": [{"term": {"is_published": True}}]}},
            "aggs": _categories_aggs(),
        }
        response = self._call(body, "es category stats")
        return parse_category_aggs(response.get("aggregations"))

    def load_docs_by_ids(self, ids: Sequence[str]) -> list[IndexDoc]:
        """Published specialists among the given user ids, in backend order."""
        ids = list(ids)
        if not ids:
            return []
        body = {
            "from": 0,
            "size": len(ids),
            "query": {
                "bool": {
                    "filter": [
                        {"term": {"is_published": True}},
                        {"terms": {"user_id": ids}},
                    ]
                }
            },
        }
        return _decode_hits(self._call(body, "es load by ids"))

    def count_by_category(self, code: str) -> int:
        """Number of published specialists in one category."""
        if not code:
            return 0
        body = {
            "size": 0,
            "query": {
                "bool": {
                    "filter": [
                        {"term": {"is_published": True}},
                        {"term": {"categories": code}},
                    ]
                }
            },
        }
        return _total(self._call(body, "es count by category"))