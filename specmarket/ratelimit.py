"""Fixed-window rate limiting on top of a Redis-like counter store."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Sequence

# Checks every window first and only then increments all of them, so a
# rejected attempt never consumes quota. Returns the 1-based index of the
# first exhausted window, or 0 when the attempt is allowed.
CHECK_AND_INCR_LUA = """
for i = 1, #KEYS do
  local limit = tonumber(ARGV[(i-1)*2 + 1])
  local cur = redis.call('GET', KEYS[i])
  if cur and tonumber(cur) >= limit then
    return i
  end
end
for i = 1, #KEYS do
  local ttl_ms = tonumber(ARGV[(i-1)*2 + 2])
  local cur = redis.call('INCR', KEYS[i])
  if cur == 1 then
    redis.call('PEXPIRE', KEYS[i], ttl_ms)
  end
end
return 0
"""


@dataclass(frozen=True)
class Window:
    """At most ``limit`` attempts per ``period`` seconds."""

    limit: int
    period: float

    @property
    def period_ms(self) -> int:
        return int(self.period * 1000)


class RateLimitedError(Exception):
    """Raised when an attempt exceeds one of the windows."""

    def __init__(self, retry_after: float) -> None:
        super().__init__("rate limited")
        self.retry_after = retry_after


def window_key(scope: str, subject: str, window: Window) -> str:
    """Counter key for one window of one subject."""
    return f"rl:{scope}:{subject}:{int(window.period)}"


class Limiter:
    """Checks and counts attempts against several windows at once.

    A client with an ``eval(script, numkeys, *keys_and_args)`` method runs the
    check atomically on the server. A client offering only ``get``, ``incr``
    and ``pexpire`` is driven step by step under a process-local lock.
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._lock = threading.Lock()

    def allow(self, scope: str, subject: str, windows: Sequence[Window]) -> None:
        """Count one attempt; raise RateLimitedError if any window is full."""
        windows = list(windows)
        if not windows:
            return
        keys = [window_key(scope, subject, w) for w in windows]
        run_script = getattr(self._client, "eval", None)
        if callable(run_script):
            args: list[int] = []
            for w in windows:
                args.extend((w.limit, w.period_ms))
            hit = int(run_script(CHECK_AND_INCR_LUA, len(keys), *keys, *args))
        else:
            hit = self._check_and_incr(keys, windows)
        if hit > 0:
            raise RateLimitedError(windows[hit - 1].period)

    def _check_and_incr(self, keys: list[str], windows: list[Window]) -> int:
        with self._lock:
            for index, (key, w) in enumerate(zip(keys, windows), start=1):
                current = self._client.get(key)
                if current is not None and int(current) >= w.limit:
                    return index
            for key, w in zip(keys, windows):
                if int(self._client.incr(key)) == 1:
                    self._client.pexpire(key, w.period_ms)
        return 0


def _split_host(addr: str) -> str | None:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0 or addr[end + 1 : end + 2] != ":":
            return None
        port = addr[end + 2 :]
        if "[" in port or "]" in port or ":" in port:
            return None
        return addr[1:end]
    host, sep, _ = addr.rpartition(":")
    if not sep or ":" in host or "[" in host or "]" in host:
        return None
    return host


def client_ip(remote_addr: str) -> str:
    """Host part of a ``host:port`` address, or the address as given."""
    host = _split_host(remote_addr)
    return remote_addr if host is None else host