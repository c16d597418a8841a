import pytest

from specmarket.ratelimit import (
    CHECK_AND_INCR_LUA,
    Limiter,
    RateLimitedError,
    Window,
    client_ip,
    window_key,
)


class CounterStore:
    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.calls = []

    def get(self, key):
        self.calls.append(("get", key))
        value = self.values.get(key)
        return None if value is None else str(value).encode()

    def incr(self, key):
        self.calls.append(("incr", key))
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def pexpire(self, key, ms):
        self.calls.append(("pexpire", key))
        self.ttls[key] = ms


class ScriptClient:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def eval(self, script, numkeys, *keys_and_args):
        self.calls.append((script, numkeys, keys_and_args))
        return self.result


def test_allows_until_limit_then_rejects():
    store = CounterStore()
    limiter = Limiter(store)
    w = Window(limit=2, period=60)
    limiter.allow("login", "1.2.3.4", [w])
    limiter.allow("login", "1.2.3.4", [w])
    with pytest.raises(RateLimitedError) as info:
        limiter.allow("login", "1.2.3.4", [w])
    assert info.value.retry_after == w.period


def test_rejected_attempt_does_not_consume_quota():
    store = CounterStore()
    limiter = Limiter(store)
    w = Window(limit=1, period=60)
    limiter.allow("s", "x", [w])
    with pytest.raises(RateLimitedError):
        limiter.allow("s", "x", [w])
    assert store.values[window_key("s", "x", w)] == w.limit


def test_reports_first_exhausted_window():
    store = CounterStore()
    limiter = Limiter(store)
    short = Window(limit=10, period=60)
    long = Window(limit=1, period=3600)
    limiter.allow("otp", "u", [short, long])
    with pytest.raises(RateLimitedError) as info:
        limiter.allow("otp", "u", [short, long])
    assert info.value.retry_after == long.period
    assert store.values[window_key("otp", "u", short)] == 1


def test_ttl_set_only_on_first_increment():
    store = CounterStore()
    limiter = Limiter(store)
    w = Window(limit=5, period=1.5)
    limiter.allow("s", "x", [w])
    limiter.allow("s", "x", [w])
    key = window_key("s", "x", w)
    assert store.ttls == {key: 1500}
    assert [c for c in store.calls if c[0] == "pexpire"] == [("pexpire", key)]


def test_no_windows_touches_nothing():
    store = CounterStore()
    Limiter(store).allow("s", "x", [])
    assert store.calls == []


def test_script_path_passes_keys_and_args():
    client = ScriptClient(0)
    w1 = Window(limit=3, period=60)
    w2 = Window(limit=7, period=3600)
    Limiter(client).allow("s", "x", [w1, w2])
    script, numkeys, rest = client.calls[0]
    assert script == CHECK_AND_INCR_LUA
    assert numkeys == 2
    assert rest == (
        window_key("s", "x", w1),
        window_key("s", "x", w2),
        w1.limit,
        w1.period_ms,
        w2.limit,
        w2.period_ms,
    )


def test_script_path_maps_result_to_window():
    client = ScriptClient(2)
    w1 = Window(limit=3, period=60)
    w2 = Window(limit=7, period=3600)
    with pytest.raises(RateLimitedError) as info:
        Limiter(client).allow("s", "x", [w1, w2])
    assert info.value.retry_after == w2.period


def test_window_key_format():
    assert window_key("otp", "user@example.com", Window(limit=1, period=3600)) == (
        "rl:otp:user@example.com:3600"
    )


def test_error_message():
    assert str(RateLimitedError(5)) == "rate limited"


@pytest.mark.parametrize(
    "addr, expected",
    [
        ("203.0.113.5:4431", "203.0.113.5"),
        ("[::1]:8080", "::1"),
        ("no-port", "no-port"),
        ("::1", "::1"),
    ],
)
def test_client_ip(addr, expected):
    assert client_ip(addr) == expected