"""Validation rules and errors for profiles and portfolio uploads."""

from __future__ import annotations

import json
import uuid
from dataclasses import replace
from typing import Any, Iterable, Mapping
from urllib.parse import urlsplit

from specmarket.profile_models import CategoriesPart, PatchInput, UploadRequest

PORTFOLIO_MAX_VIDEOS_PER_USER = 20
PORTFOLIO_MAX_TITLE_LEN = 200
PORTFOLIO_MAX_DESCRIPTION_LEN = 1000

VIDEO_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
VIDEO_UPLOAD_EXPIRY = 15 * 60
IMAGE_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
IMAGE_UPLOAD_EXPIRY = 5 * 60

CONTACT_EMAIL_MAX_LEN = 254
CONTACT_PHONE_MAX_LEN = 64

ALLOWED_VIDEO_TYPES: Mapping[str, str] = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
}

ALLOWED_IMAGE_TYPES: Mapping[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class ProfileError(Exception):
    """Base error of the profile service."""


class InvalidInputError(ProfileError):
    """Input failed validation; ``detail`` is the human-readable part."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid input: {detail}")
        self.detail = detail


class NotFoundError(ProfileError):
    def __init__(self, message: str = "profile not found") -> None:
        super().__init__(message)


class ConflictError(ProfileError):
    """The client's updated_at no longer matches the stored one."""

    def __init__(self, message: str = "profile updated_at mismatch") -> None:
        super().__init__(message)


class PublishIncompleteError(ProfileError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(f"publish incomplete: {detail}" if detail else "publish incomplete")
        self.detail = detail


class EmailUnverifiedError(ProfileError):
    def __init__(self) -> None:
        super().__init__("email is not verified")


class ProfileRejectedError(ProfileError):
    """The automatic check did not pass; ``result`` holds its verdicts."""

    def __init__(self, result: Any) -> None:
        super().__init__("profile rejected by llm check")
        self.result = result


class StorageUnavailableError(ProfileError):
    def __init__(self) -> None:
        super().__init__("media storage not configured")


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def is_http_url(value: str) -> bool:
    """Whether the value is an absolute http(s) URL with a host."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    host = parts.netloc.rpartition("@")[2]
    return parts.scheme in ("http", "https") and host != "" and " " not in host


def dedup_strings(values: Iterable[str] | None) -> list[str]:
    """Trim, drop empty values and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for value in values or ():
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


def normalize_patch(patch: PatchInput) -> PatchInput:
    """Validate and tidy the given profile fields; raise InvalidInputError."""
    changes: dict[str, Any] = {}
    if patch.display_name is not None:
        name = patch.display_name.strip()
        if not name:
            raise InvalidInputError("display_name cannot be empty")
        changes["display_name"] = name
    if patch.currency is not None:
        currency = patch.currency.strip().upper()
        if len(currency.encode()) != 3:
            raise InvalidInputError("currency must be 3-letter code")
        changes["currency"] = currency
    if patch.rate_min is not None and patch.rate_min < 0:
        raise InvalidInputError("rate_min must be >= 0")
    if patch.rate_max is not None and patch.rate_max < 0:
        raise InvalidInputError("rate_max must be >= 0")
    if patch.rate_min is not None and patch.rate_max is not None and patch.rate_min > patch.rate_max:
        raise InvalidInputError("rate_min must be <= rate_max")
    if patch.contact_email is not None:
        email = patch.contact_email.strip()
        if len(email.encode()) > CONTACT_EMAIL_MAX_LEN:
            raise InvalidInputError("contact_email too long")
        changes["contact_email"] = email
    if patch.contact_phone is not None:
        phone = patch.contact_phone.strip()
        if len(phone.encode()) > CONTACT_PHONE_MAX_LEN:
            raise InvalidInputError("contact_phone too long")
        changes["contact_phone"] = phone
    return replace(patch, **changes)


def validate_categories(part: CategoriesPart) -> tuple[list[str], str]:
    """Deduplicated codes and the primary code, which must be among them."""
    codes = dedup_strings(part.codes)
    primary = part.primary
    if not codes:
        raise InvalidInputError("at least one category is required")
    if not primary:
        raise InvalidInputError("primary category is required")
    if primary not in codes:
        raise InvalidInputError("primary must be in codes")
    return codes, primary


def parse_skill_ids(raw_ids: Iterable[str] | None) -> list[uuid.UUID]:
    """Parse skill ids as UUIDs, dropping duplicates and keeping order."""
    seen: set[uuid.UUID] = set()
    out: list[uuid.UUID] = []
    for raw in raw_ids or ():
        try:
            skill_id = uuid.UUID(raw)
        except (ValueError, TypeError, AttributeError):
            raise InvalidInputError(f"bad skill id {_quote(str(raw))}") from None
        if skill_id not in seen:
            seen.add(skill_id)
            out.append(skill_id)
    return out


def ensure_subset(codes: Iterable[str], allowed: Iterable[str]) -> None:
    """Raise InvalidInputError for the first code not among the profile's categories."""
    allowed_set = set(allowed)
    for code in codes:
        if code not in allowed_set:
            raise InvalidInputError(f"category {_quote(code)} is not in profile categories")


def _describe_types(types: Iterable[str]) -> str:
    names = list(types)
    if len(names) <= 1:
        return "".join(names)
    return ", ".join(names[:-1]) + " or " + names[-1]


def validate_upload(
    request: UploadRequest, allowed_types: Mapping[str, str], max_bytes: int
) -> str:
    """Check type and size of an upload; return the file extension to use."""
    ext = allowed_types.get(request.content_type)
    if ext is None:
        raise InvalidInputError(f"content_type must be {_describe_types(allowed_types)}")
    if request.size_bytes <= 0:
        raise InvalidInputError("size_bytes is required")
    if request.size_bytes > max_bytes:
        raise InvalidInputError(f"file too large (max {max_bytes // (1024 * 1024)} MB)")
    return ext