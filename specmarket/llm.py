"""Request and response shapes for a chat-style LLM provider, plus retry policy."""

from __future__ import annotations

import asyncio
import concurrent.futures
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Protocol


@dataclass
class Usage:
    """Token accounting reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0


@dataclass
class MessagesRequest:
    """One system prompt plus one user message, with structured output."""

    max_tokens: int
    system: str
    user_message: str
    schema: Mapping[str, Any] | None = None
    effort: str = ""
    cache_system: bool = True
    thinking: str = "adaptive"

    def to_dict(self) -> dict[str, Any]:
        block: dict[str, Any] = {"type": "text", "text": self.system}
        if self.cache_system:
            block["cache_control"] = {"type": "ephemeral"}
        out: dict[str, Any] = {
            "max_tokens": self.max_tokens,
            "system": [block],
            "messages": [{"role": "user", "content": self.user_message}],
        }
        if self.thinking:
            out["thinking"] = {"type": self.thinking}
        if self.schema is not None or self.effort:
            config: dict[str, Any] = {}
            if self.schema is not None:
                config["format"] = {"type": "json_schema", "schema": self.schema}
            if self.effort:
                config["effort"] = self.effort
            out["output_config"] = config
        return out


@dataclass
class MessagesResponse:
    """Content blocks and usage returned by the provider."""

    content: list[Mapping[str, Any]] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    def first_text(self) -> str:
        """Text of the first non-empty text block, or an empty string."""
        for block in self.content:
            if block.get("type") == "text" and block.get("text"):
                return str(block["text"])
        return ""


class APIError(Exception):
    """The provider answered with an error status."""

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"llm api error: status {status}")
        self.status = status
        self.body = body


class LLMProvider(Protocol):
    """A configured LLM client."""

    def has_key(self) -> bool: ...

    def messages(self, request: MessagesRequest) -> MessagesResponse: ...


def build_request(
    system: str,
    user_message: str,
    schema: Mapping[str, Any] | None,
    max_tokens: int,
    effort: str = "",
) -> MessagesRequest:
    """A request with a cached system prompt, adaptive thinking and JSON-schema output."""
    return MessagesRequest(
        max_tokens=max_tokens,
        system=system,
        user_message=user_message,
        schema=schema,
        effort=effort,
    )


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


_CANCELLED = (asyncio.CancelledError, concurrent.futures.CancelledError)


def is_transient_error(exc: BaseException | None) -> bool:
    """Whether a failed call is worth one more attempt.

    Timeouts, network errors and 5xx/408/429 answers are; cancellation and
    other client errors are not.
    """
    if exc is None:
        return False
    chain = list(_chain(exc))
    if any(isinstance(e, _CANCELLED) for e in chain):
        return False
    if any(isinstance(e, TimeoutError) for e in chain):
        return True
    for e in chain:
        if isinstance(e, APIError):
            return e.status >= 500 or e.status in (408, 429)
    return any(isinstance(e, OSError) for e in chain)