"""Short-lived cache of curated picks, keyed by the search parameters."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Protocol

from specmarket.search import Query
from specmarket.summarize import SummaryResult

DEFAULT_TTL = 10 * 60
KEY_PREFIX = "summarize:cache:"


class KeyValueClient(Protocol):
    """The part of a Redis-like client the cache uses."""

    def get(self, key: str) -> bytes | str | None: ...

    def set(self, key: str, value: bytes, ex: Any = None) -> Any: ...


def _encode(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text


def cache_key(query: Query) -> str:
    """A key that ignores the order of categories and skills, and the offset."""
    key: dict[str, Any] = {
        "q": query.q,
        "c": sorted(query.categories or []) or None,
        "s": sorted(query.skill_slugs or []) or None,
        "city": query.city,
    }
    if query.rate_min is not None:
        key["rmin"] = query.rate_min
    if query.rate_max is not None:
        key["rmax"] = query.rate_max
    key["lim"] = query.limit
    digest = hashlib.sha256(_encode(key).encode()).hexdigest()
    return KEY_PREFIX + digest


class SummaryCache:
    """Stores results for ``ttl`` seconds; every failure is treated as a miss."""

    def __init__(self, client: KeyValueClient | None, ttl: float = DEFAULT_TTL) -> None:
        self._client = client
        self._ttl = ttl if ttl > 0 else DEFAULT_TTL

    def get(self, query: Query) -> SummaryResult | None:
        if self._client is None:
            return None
        try:
            raw = self._client.get(cache_key(query))
            if raw is None:
                return None
            return SummaryResult.from_dict(json.loads(raw))
        except Exception:
            return None

    def set(self, query: Query, result: SummaryResult) -> None:
        if self._client is None:
            return
        try:
            raw = json.dumps(result.to_dict(), ensure_ascii=False).encode()
            self._client.set(cache_key(query), raw, ex=self._ttl)
        except Exception:
            return