"""Tests for the Redis counter store against a mocked redis client."""

from unittest.mock import MagicMock, patch

import pytest
import redis

from windowlimit.adapters.store.redis_store import (
    INCR_WITH_EXPIRY_LUA,
    RedisCounterStore,
    _escape_glob,
)
from windowlimit.core.errors import ConfigurationError, InfrastructureError


@pytest.fixture
def client() -> MagicMock:
    return MagicMock(spec=redis.Redis)


@pytest.fixture
def redis_store(client: MagicMock) -> RedisCounterStore:
    return RedisCounterStore(client)


def test_registers_increment_script(client: MagicMock, redis_store: RedisCounterStore) -> None:
    client.register_script.assert_called_once_with(INCR_WITH_EXPIRY_LUA)


def test_basic_commands_delegate_to_client(client: MagicMock, redis_store: RedisCounterStore) -> None:
    client.incr.return_value = 3
    client.expire.return_value = True
    client.ttl.return_value = 17
    client.delete.return_value = 1

    assert redis_store.incr("k") == 3
    assert redis_store.expire("k", 30) is True
    assert redis_store.ttl("k") == 17
    assert redis_store.delete("k") is True

    client.incr.assert_called_once_with("k")
    client.expire.assert_called_once_with("k", 30)


def test_incr_with_expiry_runs_script(client: MagicMock) -> None:
    script = MagicMock(return_value=[1, 60])
    client.register_script.return_value = script
    redis_store = RedisCounterStore(client)

    assert redis_store.incr_with_expiry("windowlimit:(1.1.1.1)GET/", 60) == (1, 60)
    script.assert_called_once_with(keys=["windowlimit:(1.1.1.1)GET/"], args=[60])


@pytest.mark.parametrize(
    ("method", "args"),
    [("incr", ("k",)), ("expire", ("k", 1)), ("ttl", ("k",)), ("delete", ("k",))],
)
def test_redis_errors_become_infrastructure_errors(
    client: MagicMock, redis_store: RedisCounterStore, method: str, args: tuple
) -> None:
    getattr(client, method).side_effect = redis.ConnectionError("connection refused")

    with pytest.raises(InfrastructureError) as exc_info:
        getattr(redis_store, method)(*args)

    assert exc_info.value.code == "counter_store_unavailable"
    assert exc_info.value.details == {"operation": method}
    assert isinstance(exc_info.value.__cause__, redis.ConnectionError)


def test_script_errors_become_infrastructure_errors(client: MagicMock) -> None:
    client.register_script.return_value = MagicMock(side_effect=redis.ResponseError("NOSCRIPT"))
    redis_store = RedisCounterStore(client)

    with pytest.raises(InfrastructureError):
        redis_store.incr_with_expiry("k", 10)


def test_scan_escapes_prefix_and_decodes(client: MagicMock, redis_store: RedisCounterStore) -> None:
    client.scan_iter.return_value = iter([b"ns:(1.1.1.1)GET/", "ns:(2.2.2.2)GET/"])

    assert list(redis_store.scan("ns:")) == ["ns:(1.1.1.1)GET/", "ns:(2.2.2.2)GET/"]
    client.scan_iter.assert_called_once_with(match="ns:*")


def test_escape_glob() -> None:
    assert _escape_glob("a*b?[c]") == r"a\*b\?\[c\]"


def test_from_url_builds_client() -> None:
    with patch("windowlimit.adapters.store.redis_store.redis.Redis.from_url") as from_url:
        store = RedisCounterStore.from_url("redis://:secret@localhost:6379/0", socket_timeout=2.0)

    from_url.assert_called_once_with(
        "redis://:secret@localhost:6379/0", socket_timeout=2.0, decode_responses=True
    )
    assert store.client is from_url.return_value


@pytest.mark.parametrize("url", [None, ""])
def test_from_url_requires_url(url) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        RedisCounterStore.from_url(url)

    assert exc_info.value.code == "store_url_missing"


def test_from_url_rejects_bad_scheme() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        RedisCounterStore.from_url("http://localhost:6379")

    assert exc_info.value.code == "store_url_invalid"
