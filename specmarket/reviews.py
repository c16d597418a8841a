"""Reviews of specialists: validation rules over a review store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

TEXT_MAX_LEN = 2000
TEXT_MIN_NO_LEAD = 10
AUTHOR_NAME_CAP = 120
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

NIL_UUID = uuid.UUID(int=0)


class ReviewError(Exception):
    """Base error of the review service."""


class InvalidInputError(ReviewError):
    """Input failed validation; ``detail`` is the human-readable part."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid input: {detail}")
        self.detail = detail


class NotFoundError(ReviewError):
    def __init__(self, message: str = "review not found") -> None:
        super().__init__(message)


class ForbiddenError(ReviewError):
    def __init__(self, message: str = "not the author") -> None:
        super().__init__(message)


class LeadCheckError(ReviewError):
    def __init__(self, message: str = "lead does not authorize this review") -> None:
        super().__init__(message)


class ConflictError(ReviewError):
    def __init__(self, message: str = "review updated_at mismatch") -> None:
        super().__init__(message)


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _parse_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise TypeError("updated_at must be a timestamp string")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    return datetime.fromisoformat(text)


@dataclass
class ReviewRecord:
    """A stored review."""

    id: uuid.UUID
    author_user_id: uuid.UUID
    target_user_id: uuid.UUID
    rating: int
    text: str = ""
    author_name: str = ""
    lead_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": str(self.id)}
        if self.lead_id is not None:
            out["lead_id"] = str(self.lead_id)
        out.update(
            author_user_id=str(self.author_user_id),
            author_name=self.author_name,
            target_user_id=str(self.target_user_id),
            rating=self.rating,
            text=self.text,
            created_at=_format_time(self.created_at),
            updated_at=_format_time(self.updated_at),
        )
        return out


@dataclass
class CreateInput:
    author_user_id: uuid.UUID
    target_user_id: uuid.UUID
    rating: int
    text: str = ""
    author_name: str = ""
    lead_id: uuid.UUID | None = None


@dataclass
class UpdateInput:
    """Partial update; ``None`` leaves a field unchanged."""

    rating: int | None = None
    text: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UpdateInput":
        if not isinstance(data, Mapping):
            raise TypeError("body must be an object")
        rating = data.get("rating")
        if rating is not None and (isinstance(rating, bool) or not isinstance(rating, int)):
            raise TypeError("rating must be an integer")
        text = data.get("text")
        if text is not None and not isinstance(text, str):
            raise TypeError("text must be a string")
        return cls(rating=rating, text=text, updated_at=_parse_time(data.get("updated_at")))


class ReviewStore(Protocol):
    """Persistence of reviews. Writes raise NotFoundError, ForbiddenError or ConflictError."""

    def target_is_specialist(self, user_id: uuid.UUID) -> bool: ...

    def lead_authorizes_review(
        self, lead_id: uuid.UUID, author_id: uuid.UUID, target_id: uuid.UUID
    ) -> bool: ...

    def create(self, data: CreateInput) -> uuid.UUID: ...

    def update(
        self, review_id: uuid.UUID, author_id: uuid.UUID, data: UpdateInput
    ) -> uuid.UUID: ...

    def delete(self, review_id: uuid.UUID, author_id: uuid.UUID) -> uuid.UUID: ...

    def get_by_id(self, review_id: uuid.UUID) -> ReviewRecord: ...

    def list_by_target(
        self, target_id: uuid.UUID, limit: int, offset: int
    ) -> Sequence[ReviewRecord]: ...


def _check_rating(rating: int) -> None:
    if not 1 <= rating <= 5:
        raise InvalidInputError("rating must be 1..5")


class ReviewService:
    """Creating, editing, deleting and listing reviews."""

    def __init__(self, store: ReviewStore) -> None:
        self._store = store

    def create(self, data: CreateInput) -> ReviewRecord:
        data = replace(data, author_name=data.author_name.strip(), text=data.text.strip())
        _check_rating(data.rating)
        if data.target_user_id == NIL_UUID:
            raise InvalidInputError("target_user_id is required")
        if data.author_user_id == data.target_user_id:
            raise InvalidInputError("cannot review yourself")
        if len(data.text) > TEXT_MAX_LEN:
            raise InvalidInputError(f"text too long (max {TEXT_MAX_LEN})")
        if len(data.author_name) > AUTHOR_NAME_CAP:
            raise InvalidInputError(f"author_name too long (max {AUTHOR_NAME_CAP})")
        if data.lead_id is None and len(data.text) < TEXT_MIN_NO_LEAD:
            raise InvalidInputError(
                f"text must be at least {TEXT_MIN_NO_LEAD} chars when no lead is referenced"
            )
        if not self._store.target_is_specialist(data.target_user_id):
            raise InvalidInputError("target is not a specialist")
        if data.lead_id is not None and not self._store.lead_authorizes_review(
            data.lead_id, data.author_user_id, data.target_user_id
        ):
            raise LeadCheckError()
        review_id = self._store.create(data)
        return self._store.get_by_id(review_id)

    def update(
        self, review_id: uuid.UUID, author_id: uuid.UUID, data: UpdateInput
    ) -> ReviewRecord:
        if data.rating is None and data.text is None:
            raise InvalidInputError("nothing to update")
        if data.rating is not None:
            _check_rating(data.rating)
        if data.text is not None:
            text = data.text.strip()
            if len(text) > TEXT_MAX_LEN:
                raise InvalidInputError(f"text too long (max {TEXT_MAX_LEN})")
            data = replace(data, text=text)
        self._store.update(review_id, author_id, data)
        return self._store.get_by_id(review_id)

    def delete(self, review_id: uuid.UUID, author_id: uuid.UUID) -> None:
        self._store.delete(review_id, author_id)

    def list_by_target(
        self, target_id: uuid.UUID, limit: int = DEFAULT_LIMIT, offset: int = 0
    ) -> list[ReviewRecord]:
        """Newest first; limit outside 1..100 falls back to 20."""
        if limit <= 0 or limit > MAX_LIMIT:
            limit = DEFAULT_LIMIT
        offset = max(offset, 0)
        return list(self._store.list_by_target(target_id, limit, offset))