"""Portfolio videos of a specialist and presigned media uploads."""

from __future__ import annotations

import posixpath
import uuid
from contextlib import AbstractContextManager
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Mapping, Protocol, Sequence

from specmarket.profile_models import (
    PortfolioCreateInput,
    PortfolioItem,
    Profile,
    UploadRequest,
    UploadTicket,
)
from specmarket.profile_rules import (
    ALLOWED_IMAGE_TYPES,
    ALLOWED_VIDEO_TYPES,
    IMAGE_MAX_UPLOAD_BYTES,
    IMAGE_UPLOAD_EXPIRY,
    PORTFOLIO_MAX_DESCRIPTION_LEN,
    PORTFOLIO_MAX_TITLE_LEN,
    PORTFOLIO_MAX_VIDEOS_PER_USER,
    VIDEO_MAX_UPLOAD_BYTES,
    VIDEO_UPLOAD_EXPIRY,
    InvalidInputError,
    ProfileError,
    StorageUnavailableError,
    dedup_strings,
    ensure_subset,
    is_http_url,
    validate_upload,
)
from specmarket.profiles import AGGREGATE_SPECIALIST, SpecialistEvent

DEFAULT_ASPECT = "9:16"


class PortfolioTransaction(Protocol):
    """Writes done inside one store transaction."""

    def create_video(self, user_id: uuid.UUID, item: PortfolioCreateInput) -> PortfolioItem: ...

    def update_categories(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        codes: Sequence[str],
        expected_updated_at: datetime | None,
    ) -> PortfolioItem: ...

    def delete_item(self, user_id: uuid.UUID, item_id: uuid.UUID) -> None: ...

    def emit(
        self, aggregate: str, aggregate_id: str, event: str, payload: Mapping[str, Any]
    ) -> None: ...


class PortfolioStore(Protocol):
    """Persistence of portfolio items; writes raise NotFoundError or ConflictError."""

    def get(self, user_id: uuid.UUID) -> Profile: ...

    def list_portfolio(self, user_id: uuid.UUID) -> Sequence[PortfolioItem]: ...

    def transaction(self) -> AbstractContextManager[PortfolioTransaction]: ...


class MediaStorage(Protocol):
    """An S3-compatible bucket: presigned uploads and public URLs."""

    def presign_put(self, key: str, content_type: str, expiry: timedelta) -> str: ...

    def public_url(self, key: str) -> str: ...


def _byte_len(value: str) -> int:
    return len(value.encode())


class PortfolioService:
    """Adding, re-categorising and removing videos, and issuing upload URLs."""

    def __init__(self, store: PortfolioStore, media: MediaStorage | None = None) -> None:
        self._store = store
        self._media = media

    def media_available(self) -> bool:
        return self._media is not None

    def list_portfolio(self, user_id: uuid.UUID) -> list[PortfolioItem]:
        return list(self._store.list_portfolio(user_id))

    def add_video(self, user_id: uuid.UUID, item: PortfolioCreateInput) -> PortfolioItem:
        """Validate and store a video given by URL."""
        item = replace(
            item,
            video_url=item.video_url.strip(),
            thumbnail_url=item.thumbnail_url.strip(),
            title=item.title.strip(),
            description=item.description.strip(),
        )
        if not item.video_url:
            raise InvalidInputError("video_url is required")
        if not is_http_url(item.video_url):
            raise InvalidInputError("video_url must be http(s)")
        if item.thumbnail_url and not is_http_url(item.thumbnail_url):
            raise InvalidInputError("thumbnail_url must be http(s)")
        if not item.title:
            raise InvalidInputError("title is required")
        if _byte_len(item.title) > PORTFOLIO_MAX_TITLE_LEN:
            raise InvalidInputError("title too long")
        if _byte_len(item.description) > PORTFOLIO_MAX_DESCRIPTION_LEN:
            raise InvalidInputError("description too long")

        codes = dedup_strings(item.category_codes)
        profile = self._store.get(user_id)
        if not codes:
            # A video needs a home category; default to the primary one.
            if profile.primary_category:
                codes = [profile.primary_category]
        else:
            ensure_subset(codes, profile.categories)
        item = replace(item, category_codes=codes, aspect=item.aspect or DEFAULT_ASPECT)

        self._ensure_video_room(user_id)

        with self._store.transaction() as tx:
            created = tx.create_video(user_id, item)
            _emit_upsert(tx, user_id)
        return created

    def delete_item(self, user_id: uuid.UUID, item_id: uuid.UUID) -> None:
        with self._store.transaction() as tx:
            tx.delete_item(user_id, item_id)
            _emit_upsert(tx, user_id)

    def set_categories(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        codes: Sequence[str] | None,
        expected_updated_at: datetime | None = None,
    ) -> PortfolioItem:
        """Replace a video's categories; they must be among the profile's own."""
        clean = dedup_strings(codes)
        profile = self._store.get(user_id)
        ensure_subset(clean, profile.categories)
        with self._store.transaction() as tx:
            updated = tx.update_categories(user_id, item_id, clean, expected_updated_at)
            _emit_upsert(tx, user_id)
        return updated

    def create_video_upload_url(
        self, user_id: uuid.UUID, request: UploadRequest
    ) -> UploadTicket:
        """A presigned PUT for a video under ``portfolio/<user>/``."""
        media = self._require_media()
        ext = validate_upload(request, ALLOWED_VIDEO_TYPES, VIDEO_MAX_UPLOAD_BYTES)
        self._ensure_video_room(user_id)
        return self._ticket(media, "portfolio", user_id, ext, request.content_type, VIDEO_UPLOAD_EXPIRY)

    def create_image_upload_url(
        self, user_id: uuid.UUID, request: UploadRequest
    ) -> UploadTicket:
        """A presigned PUT for an avatar or thumbnail under ``images/<user>/``."""
        media = self._require_media()
        ext = validate_upload(request, ALLOWED_IMAGE_TYPES, IMAGE_MAX_UPLOAD_BYTES)
        return self._ticket(media, "images", user_id, ext, request.content_type, IMAGE_UPLOAD_EXPIRY)

    def _require_media(self) -> MediaStorage:
        if self._media is None:
            raise StorageUnavailableError()
        return self._media

    def _ensure_video_room(self, user_id: uuid.UUID) -> None:
        videos = sum(1 for it in self._store.list_portfolio(user_id) if it.video_url)
        if videos >= PORTFOLIO_MAX_VIDEOS_PER_USER:
            raise InvalidInputError(f"max {PORTFOLIO_MAX_VIDEOS_PER_USER} videos")

    @staticmethod
    def _ticket(
        media: MediaStorage,
        prefix: str,
        user_id: uuid.UUID,
        ext: str,
        content_type: str,
        expiry_seconds: int,
    ) -> UploadTicket:
        key = posixpath.join(prefix, str(user_id), f"{uuid.uuid4()}{ext}")
        try:
            upload_url = media.presign_put(key, content_type, timedelta(seconds=expiry_seconds))
        except Exception as exc:
            raise ProfileError(f"presign: {exc}") from exc
        return UploadTicket(
            upload_url=upload_url,
            public_url=media.public_url(key),
            key=key,
            expires_in=expiry_seconds,
        )


def _emit_upsert(tx: PortfolioTransaction, user_id: uuid.UUID) -> None:
    tx.emit(AGGREGATE_SPECIALIST, str(user_id), SpecialistEvent.UPSERTED, {"user_id": str(user_id)})