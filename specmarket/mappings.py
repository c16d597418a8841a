"""Index settings and field mappings for the specialist and feed indexes."""

from __future__ import annotations

from typing import Any


def _settings() -> dict[str, Any]:
    return {
        "number_of_shards": 1,
        "number_of_replicas": 0,
        "analysis": {
            "analyzer": {
                "ru_en": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "stop", "asciifolding"],
                }
            }
        },
    }


def _text() -> dict[str, Any]:
    return {"type": "text", "analyzer": "ru_en"}


def _keyword(indexed: bool = True) -> dict[str, Any]:
    field: dict[str, Any] = {"type": "keyword"}
    if not indexed:
        field["index"] = False
    return field


def _display_name() -> dict[str, Any]:
    return {**_text(), "fields": {"raw": _keyword()}}


def _city() -> dict[str, Any]:
    return {"type": "keyword", "fields": {"text": _text()}}


def index_mapping() -> dict[str, Any]:
    """Index body for specialist documents."""
    return {
        "settings": _settings(),
        "mappings": {
            "properties": {
                "user_id": _keyword(),
                "display_name": _display_name(),
                "bio": _text(),
                "avatar_url": _keyword(indexed=False),
                "city": _city(),
                "categories": _keyword(),
                "primary_category": _keyword(),
                "skill_slugs": _keyword(),
                "skill_titles": _text(),
                "rate_min": {"type": "integer"},
                "rate_max": {"type": "integer"},
                "currency": _keyword(),
                "rating_avg": {"type": "float"},
                "reviews_count": {"type": "integer"},
                "is_published": {"type": "boolean"},
                "updated_at": {"type": "date"},
                # Latest video upload of the specialist, null without videos.
                "last_video_at": {"type": "date"},
            }
        },
    }


def feed_video_mapping() -> dict[str, Any]:
    """Index body for feed documents: one per video, specialist fields denormalised."""
    return {
        "settings": _settings(),
        "mappings": {
            "properties": {
                "video_id": _keyword(),
                "video_url": _keyword(indexed=False),
                "thumb_url": _keyword(indexed=False),
                "title": _text(),
                "description": _text(),
                "duration_sec": {"type": "integer"},
                "aspect": _keyword(),
                "video_created_at": {"type": "date"},
                "category_codes": _keyword(),
                "user_id": _keyword(),
                "display_name": _display_name(),
                "avatar_url": _keyword(indexed=False),
                "bio": _text(),
                "city": _city(),
                "rate_min": {"type": "integer"},
                "rate_max": {"type": "integer"},
                "currency": _keyword(),
                "categories": _keyword(),
                "primary_category": _keyword(),
                "rating_avg": {"type": "float"},
                "reviews_count": {"type": "integer"},
                "is_published": {"type": "boolean"},
            }
        },
    }