"""Data shapes of specialist profiles, portfolio items and upload tickets."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping


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


def _optional_str(data: Mapping[str, Any], name: str) -> str | None:
    value = data.get(name)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return value


def _optional_int(data: Mapping[str, Any], name: str) -> int | None:
    value = data.get(name)
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise TypeError(f"{name} must be an integer")
    return value


def _string_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"{name} must be a list of strings")
    return list(value)


def _put_if(out: dict[str, Any], name: str, value: Any) -> None:
    if value:
        out[name] = value


@dataclass
class CategoryRef:
    code: str
    title: str
    is_primary: bool = False


@dataclass
class SkillRef:
    id: uuid.UUID
    slug: str
    title: str
    kind: str


@dataclass
class Review:
    """A review as shown on a public profile."""

    id: uuid.UUID
    author_name: str
    rating: int
    text: str
    created_at: datetime | None = None


def _category_dict(c: CategoryRef) -> dict[str, Any]:
    return {"code": c.code, "title": c.title, "is_primary": c.is_primary}


def _skill_dict(s: SkillRef) -> dict[str, Any]:
    return {"id": str(s.id), "slug": s.slug, "title": s.title, "kind": s.kind}


def _review_dict(r: Review) -> dict[str, Any]:
    return {
        "id": str(r.id),
        "author_name": r.author_name,
        "rating": r.rating,
        "text": r.text,
        "created_at": _format_time(r.created_at),
    }


@dataclass
class PortfolioItem:
    id: uuid.UUID
    title: str = ""
    description: str = ""
    video_url: str = ""
    thumbnail_url: str = ""
    external_url: str = ""
    category_codes: list[str] = field(default_factory=list)
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
        }
        _put_if(out, "video_url", self.video_url)
        _put_if(out, "thumbnail_url", self.thumbnail_url)
        _put_if(out, "external_url", self.external_url)
        out["category_codes"] = list(self.category_codes)
        out["sort_order"] = self.sort_order
        out["created_at"] = _format_time(self.created_at)
        out["updated_at"] = _format_time(self.updated_at)
        return out


def _rates(out: dict[str, Any], rate_min: int | None, rate_max: int | None) -> None:
    if rate_min is not None:
        out["rate_min"] = rate_min
    if rate_max is not None:
        out["rate_max"] = rate_max


@dataclass
class PublicProfile:
    """What anyone can see of a published specialist; no contacts."""

    user_id: uuid.UUID
    display_name: str = ""
    bio: str = ""
    avatar_url: str = ""
    city: str = ""
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str = ""
    rating_avg: float = 0.0
    reviews_count: int = 0
    categories: list[CategoryRef] = field(default_factory=list)
    skills: list[SkillRef] = field(default_factory=list)
    portfolio: list[PortfolioItem] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "user_id": str(self.user_id),
            "display_name": self.display_name,
            "bio": self.bio,
        }
        _put_if(out, "avatar_url", self.avatar_url)
        _put_if(out, "city", self.city)
        _rates(out, self.rate_min, self.rate_max)
        out.update(
            currency=self.currency,
            rating_avg=self.rating_avg,
            reviews_count=self.reviews_count,
            categories=[_category_dict(c) for c in self.categories],
            skills=[_skill_dict(s) for s in self.skills],
            portfolio=[p.to_dict() for p in self.portfolio],
            reviews=[_review_dict(r) for r in self.reviews],
        )
        return out


@dataclass
class Profile:
    """The owner's view of a profile, contacts included.

    ``updated_at`` is the version a client sends back for optimistic locking.
    """

    user_id: uuid.UUID
    display_name: str = ""
    bio: str = ""
    avatar_url: str = ""
    city: str = ""
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str = ""
    is_published: bool = False
    rating_avg: float = 0.0
    reviews_count: int = 0
    categories: list[str] = field(default_factory=list)
    primary_category: str = ""
    skill_ids: list[str] = field(default_factory=list)
    updated_at: datetime | None = None
    contact_email: str = ""
    contact_phone: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "user_id": str(self.user_id),
            "display_name": self.display_name,
            "bio": self.bio,
        }
        _put_if(out, "avatar_url", self.avatar_url)
        _put_if(out, "city", self.city)
        _rates(out, self.rate_min, self.rate_max)
        out.update(
            currency=self.currency,
            is_published=self.is_published,
            rating_avg=self.rating_avg,
            reviews_count=self.reviews_count,
            categories=list(self.categories),
        )
        _put_if(out, "primary_category", self.primary_category)
        out["skill_ids"] = list(self.skill_ids)
        out["updated_at"] = _format_time(self.updated_at)
        _put_if(out, "contact_email", self.contact_email)
        _put_if(out, "contact_phone", self.contact_phone)
        return out


_PROFILE_FIELDS = (
    "display_name",
    "bio",
    "avatar_url",
    "city",
    "rate_min",
    "rate_max",
    "currency",
    "contact_email",
    "contact_phone",
)


@dataclass
class PatchInput:
    """Profile fields to change; ``None`` leaves a field as it is."""

    display_name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    city: str | None = None
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    updated_at: datetime | None = None


@dataclass
class CategoriesPart:
    """Full replacement of the profile's categories."""

    codes: list[str] = field(default_factory=list)
    primary: str = ""


@dataclass
class SkillsPart:
    """Full replacement of the profile's skills."""

    skill_ids: list[str] = field(default_factory=list)


@dataclass
class PatchFullInput:
    """Profile fields plus optional category and skill replacement, applied atomically."""

    display_name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    city: str | None = None
    rate_min: int | None = None
    rate_max: int | None = None
    currency: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    categories: CategoriesPart | None = None
    skills: SkillsPart | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatchFullInput":
        if not isinstance(data, Mapping):
            raise TypeError("body must be an object")
        values: dict[str, Any] = {}
        for name in _PROFILE_FIELDS:
            if name in ("rate_min", "rate_max"):
                values[name] = _optional_int(data, name)
            else:
                values[name] = _optional_str(data, name)

        categories = None
        raw_cats = data.get("categories")
        if raw_cats is not None:
            if not isinstance(raw_cats, Mapping):
                raise TypeError("categories must be an object")
            categories = CategoriesPart(
                codes=_string_list(raw_cats.get("codes"), "categories.codes"),
                primary=_optional_str(raw_cats, "primary") or "",
            )

        skills = None
        raw_skills = data.get("skills")
        if raw_skills is not None:
            if not isinstance(raw_skills, Mapping):
                raise TypeError("skills must be an object")
            skills = SkillsPart(
                skill_ids=_string_list(raw_skills.get("skill_ids"), "skills.skill_ids")
            )

        return cls(
            **values,
            categories=categories,
            skills=skills,
            updated_at=_parse_time(data.get("updated_at")),
        )

    def has_profile_fields(self) -> bool:
        """Whether any plain profile field is to be changed."""
        return any(getattr(self, name) is not None for name in _PROFILE_FIELDS)

    def to_patch_input(self) -> PatchInput:
        return PatchInput(
            **{name: getattr(self, name) for name in _PROFILE_FIELDS},
            updated_at=self.updated_at,
        )


@dataclass
class PortfolioCreateInput:
    """A video to add to the portfolio, given by URL."""

    video_url: str = ""
    thumbnail_url: str = ""
    title: str = ""
    description: str = ""
    category_codes: list[str] = field(default_factory=list)
    duration_sec: int = 0
    aspect: str = ""


@dataclass
class UploadRequest:
    """A request for a presigned upload URL."""

    filename: str = ""
    content_type: str = ""
    size_bytes: int = 0


@dataclass
class UploadTicket:
    """Where to PUT the file, and the URL to store once it is uploaded."""

    upload_url: str
    public_url: str
    key: str
    expires_in: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "upload_url": self.upload_url,
            "public_url": self.public_url,
            "key": self.key,
            "expires_in": self.expires_in,
        }