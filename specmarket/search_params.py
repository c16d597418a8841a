"""Turning URL query parameters into a search Query."""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Sequence, Union
from urllib.parse import parse_qs

from specmarket.search import Query

_INT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

Params = Union[str, Mapping[str, Union[str, Sequence[str]]]]


def _parse_int(text: str) -> int | None:
    if not _INT.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _normalize(params: Params) -> dict[str, list[str]]:
    if isinstance(params, str):
        return parse_qs(params, keep_blank_values=True)
    out: dict[str, list[str]] = {}
    for key, value in params.items():
        out[key] = [value] if isinstance(value, str) else list(value)
    return out


def split_csv(values: Iterable[str]) -> list[str]:
    """Split every value on commas, trimming and dropping empty parts."""
    return [
        part.strip()
        for value in values
        for part in value.split(",")
        if part.strip()
    ]


def parse_query(params: Params) -> Query:
    """Build a Query from a query string or a mapping of parameter values.

    Numbers that do not parse are ignored, as if the parameter were absent.
    """
    values = _normalize(params)

    def first(name: str) -> str:
        found = values.get(name) or [""]
        return found[0]

    query = Query(
        q=first("q").strip(),
        categories=split_csv(values.get("category", [])),
        skill_slugs=split_csv(values.get("skill", [])),
        city=first("city").strip(),
    )
    for name in ("rate_min", "rate_max", "limit", "offset"):
        text = first(name)
        if text:
            number = _parse_int(text)
            if number is not None:
                setattr(query, name, number)
    return query