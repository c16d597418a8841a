"""Keeping the specialist and feed indexes in step with the primary store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from specmarket.search import IndexDoc, SearchError, SpecialistNotFoundError


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


@dataclass
class FeedVideoDoc:
    """One video in the feed index, with its specialist's fields copied in."""

    video_id: str = ""
    video_url: str = ""
    thumb_url: str = ""
    title: str = ""
    description: str = ""
    duration_sec: int | None = None
    aspect: str = ""
    video_created_at: datetime | None = None
    category_codes: list[str] = field(default_factory=list)

    user_id: str = ""
    display_name: str = ""
    avatar_url: str = ""
    bio: str = ""
    city: str = ""
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str = ""
    categories: list[str] = field(default_factory=list)
    primary_category: str = ""
    rating_avg: float = 0.0
    reviews_count: int = 0
    is_published: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"video_id": self.video_id, "video_url": self.video_url}
        for name in ("thumb_url", "title", "description"):
            if getattr(self, name):
                out[name] = getattr(self, name)
        if self.duration_sec is not None:
            out["duration_sec"] = self.duration_sec
        if self.aspect:
            out["aspect"] = self.aspect
        out["video_created_at"] = _format_time(self.video_created_at)
        out["category_codes"] = list(self.category_codes)
        out["user_id"] = self.user_id
        out["display_name"] = self.display_name
        for name in ("avatar_url", "bio", "city"):
            if getattr(self, name):
                out[name] = getattr(self, name)
        if self.rate_min is not None:
            out["rate_min"] = self.rate_min
        if self.rate_max is not None:
            out["rate_max"] = self.rate_max
        if self.currency:
            out["currency"] = self.currency
        out["categories"] = list(self.categories)
        if self.primary_category:
            out["primary_category"] = self.primary_category
        out["rating_avg"] = self.rating_avg
        out["reviews_count"] = self.reviews_count
        out["is_published"] = self.is_published
        return out


class SpecialistSource(Protocol):
    """Reads index documents from the primary store."""

    def load_doc(self, user_id: Any) -> IndexDoc:
        """Raise SpecialistNotFoundError when there is no such specialist."""
        ...

    def load_feed_video_docs(self, user_id: Any) -> Sequence[FeedVideoDoc]:
        """Videos of a published specialist; empty otherwise."""
        ...

    def load_published_specialist_ids(self) -> Sequence[Any]: ...


class IndexBackend(Protocol):
    """Writes to the document index."""

    def index_doc(self, index: str, doc_id: str, doc: Mapping[str, Any]) -> None: ...

    def delete_doc(self, index: str, doc_id: str) -> None: ...

    def delete_by_query(self, index: str, body: Mapping[str, Any]) -> None: ...

    def count_docs(self, index: str) -> int: ...


class SpecialistIndexer:
    """Mirrors one specialist into the search index."""

    def __init__(self, source: SpecialistSource, backend: IndexBackend, index: str) -> None:
        self._source = source
        self._backend = backend
        self._index = index

    def reconcile(self, user_id: Any) -> None:
        """Index the specialist if published, otherwise remove it."""
        doc_id = str(user_id)
        try:
            doc = self._source.load_doc(user_id)
        except SpecialistNotFoundError:
            self._backend.delete_doc(self._index, doc_id)
            return
        except Exception as exc:
            raise SearchError(f"load doc: {exc}") from exc
        if not doc.is_published:
            self._backend.delete_doc(self._index, doc_id)
            return
        self._backend.index_doc(self._index, doc_id, doc.to_dict())

    def delete(self, user_id: Any) -> None:
        self._backend.delete_doc(self._index, str(user_id))


class FeedIndexer:
    """Mirrors a specialist's videos into the feed index."""

    def __init__(self, source: SpecialistSource, backend: IndexBackend, index: str) -> None:
        self._source = source
        self._backend = backend
        self._index = index

    def reconcile_videos(self, user_id: Any) -> None:
        """Replace every feed document of the specialist with fresh ones."""
        try:
            docs = list(self._source.load_feed_video_docs(user_id))
        except Exception as exc:
            raise SearchError(f"load feed docs: {exc}") from exc
        try:
            self._delete_by_user(user_id)
        except Exception as exc:
            raise SearchError(f"delete previous: {exc}") from exc
        for doc in docs:
            try:
                self._backend.index_doc(self._index, doc.video_id, doc.to_dict())
            except Exception as exc:
                raise SearchError(f"index video {doc.video_id}: {exc}") from exc

    def delete_by_user(self, user_id: Any) -> None:
        self._delete_by_user(user_id)

    def _delete_by_user(self, user_id: Any) -> None:
        self._backend.delete_by_query(
            self._index, {"query": {"term": {"user_id": str(user_id)}}}
        )

    def is_empty(self) -> bool:
        return self._backend.count_docs(self._index) == 0

    def bootstrap(self) -> int:
        """Reconcile every published specialist; return how many there were."""
        try:
            ids = list(self._source.load_published_specialist_ids())
        except Exception as exc:
            raise SearchError(f"load specialists: {exc}") from exc
        for user_id in ids:
            try:
                self.reconcile_videos(user_id)
            except Exception as exc:
                raise SearchError(f"reconcile {user_id}: {exc}") from exc
        return len(ids)