"""Tests for the fixed-window decision engine."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from windowlimit.adapters.store.base import TTL_NO_EXPIRY, AbstractCounterStore
from windowlimit.adapters.store.in_memory import InMemoryCounterStore
from windowlimit.core.decision import Decision, RateDecisionEngine
from windowlimit.core.errors import InfrastructureError
from windowlimit.core.rules import Limit

RULE = Limit(method="GET", path="/test", requests=5, duration=30)


@pytest.fixture(params=[True, False], ids=["atomic", "two_step"])
def engine(request, store) -> RateDecisionEngine:
    return RateDecisionEngine(store, key_prefix="windowlimit", atomic=request.param)


def test_counting_key_format(engine: RateDecisionEngine) -> None:
    assert engine.counting_key(RULE, "1.1.1.1") == "windowlimit:(1.1.1.1)GET/test"


def test_remaining_decreases_then_rejects(engine: RateDecisionEngine) -> None:
    remaining = [engine.decide(RULE, "1.1.1.1").remaining for _ in range(RULE.requests)]
    assert remaining == [4, 3, 2, 1, 0]

    rejected = engine.decide(RULE, "1.1.1.1")
    assert rejected.allowed is False
    assert rejected.remaining == 0
    assert rejected.limit == 5
    assert rejected.retry_after_seconds == RULE.duration


def test_retry_after_tracks_window_ttl(engine, fake_time) -> None:
    for _ in range(RULE.requests):
        engine.decide(RULE, "1.1.1.1")

    fake_time.advance(12)
    rejected = engine.decide(RULE, "1.1.1.1")

    assert rejected.retry_after_seconds == 18
    assert rejected.retry_after_seconds <= RULE.duration


def test_new_window_after_expiry(engine, fake_time) -> None:
    for _ in range(RULE.requests + 1):
        engine.decide(RULE, "1.1.1.1")

    fake_time.advance(RULE.duration)
    decision = engine.decide(RULE, "1.1.1.1")

    assert decision.allowed is True
    assert decision.remaining == RULE.requests - 1


def test_clients_and_routes_are_isolated(engine: RateDecisionEngine) -> None:
    other_route = Limit(method="POST", path="/test", requests=1, duration=30)

    for _ in range(RULE.requests + 1):
        engine.decide(RULE, "1.1.1.1")

    assert engine.decide(RULE, "2.2.2.2").allowed is True
    assert engine.decide(other_route, "1.1.1.1").allowed is True


def test_key_without_ttl_falls_back_to_duration(store: InMemoryCounterStore) -> None:
    engine = RateDecisionEngine(store, key_prefix="windowlimit", atomic=False)
    key = engine.counting_key(RULE, "1.1.1.1")
    for _ in range(RULE.requests):
        store.incr(key)
    assert store.ttl(key) == TTL_NO_EXPIRY

    rejected = engine.decide(RULE, "1.1.1.1")

    assert rejected.allowed is False
    assert rejected.retry_after_seconds == RULE.duration


def test_two_step_mode_only_queries_ttl_when_over_quota() -> None:
    store = Mock(spec=AbstractCounterStore)
    store.incr.side_effect = [1, 2]
    engine = RateDecisionEngine(store, key_prefix="p", atomic=False)
    rule = Limit(method="GET", path="/", requests=1, duration=10)
    store.ttl.return_value = 7

    assert engine.decide(rule, "c").allowed is True
    store.expire.assert_called_once_with("p:(c)GET/", 10)
    store.ttl.assert_not_called()

    rejected = engine.decide(rule, "c")
    assert rejected.retry_after_seconds == 7
    store.expire.assert_called_once()


def test_atomic_mode_uses_single_store_call() -> None:
    store = Mock(spec=AbstractCounterStore)
    store.incr_with_expiry.return_value = (1, 10)
    engine = RateDecisionEngine(store, key_prefix="p", atomic=True)

    decision = engine.decide(Limit(method="GET", path="/", requests=2, duration=10), "c")

    assert decision == Decision.admit(limit=2, remaining=1)
    store.incr_with_expiry.assert_called_once_with("p:(c)GET/", 10)
    store.incr.assert_not_called()


@pytest.mark.parametrize("failing", ["incr", "expire", "ttl"])
def test_store_errors_propagate_without_retry(failing: str) -> None:
    store = Mock(spec=AbstractCounterStore)
    store.incr.return_value = 2
    store.ttl.return_value = 5
    getattr(store, failing).side_effect = InfrastructureError(code="counter_store_unavailable", message="down")
    if failing == "expire":
        store.incr.return_value = 1
    engine = RateDecisionEngine(store, key_prefix="p", atomic=False)

    with pytest.raises(InfrastructureError):
        engine.decide(Limit(method="GET", path="/", requests=1, duration=10), "c")

    assert getattr(store, failing).call_count == 1


def test_concurrent_admissions_match_quota(engine: RateDecisionEngine) -> None:
    rule = Limit(method="GET", path="/burst", requests=10, duration=60)

    with ThreadPoolExecutor(max_workers=16) as pool:
        decisions = list(pool.map(lambda _: engine.decide(rule, "9.9.9.9"), range(50)))

    admitted = [d for d in decisions if d.allowed]
    assert len(admitted) == 10
    assert len(decisions) - len(admitted) == 40
    assert sorted(d.remaining for d in admitted) == list(range(10))


def test_decision_headers() -> None:
    assert Decision.admit(limit=5, remaining=3).headers() == {
        "X-RateLimit-Remaining": "3",
        "X-RateLimit-Limit": "5",
    }
    assert Decision.reject(limit=5, retry_after_seconds=12).headers() == {
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Limit": "5",
        "Retry-After": "12",
    }


def test_empty_key_prefix_rejected(store: InMemoryCounterStore) -> None:
    with pytest.raises(ValueError):
        RateDecisionEngine(store, key_prefix="")


class TwoCallStore(InMemoryCounterStore):
    """Store relying on the base two-call `incr_with_expiry`."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.ttl_calls = 0

    def ttl(self, key: str) -> int:
        self.ttl_calls += 1
        return super().ttl(key)

    incr_with_expiry = AbstractCounterStore.incr_with_expiry


def test_default_incr_with_expiry_skips_ttl_for_admits(fake_time) -> None:
    store = TwoCallStore(clock=fake_time.time)
    engine = RateDecisionEngine(store, key_prefix="p", atomic=True)
    rule = Limit(method="GET", path="/", requests=2, duration=20)

    assert engine.decide(rule, "c").allowed is True
    assert engine.decide(rule, "c").allowed is True
    assert store.ttl_calls == 0

    fake_time.advance(5)
    rejected = engine.decide(rule, "c")
    assert rejected.retry_after_seconds == 15
    assert store.ttl_calls == 1


def test_ttl_failure_does_not_affect_admits() -> None:
    store = Mock(spec=AbstractCounterStore)
    store.incr_with_expiry.return_value = (1, None)
    store.ttl.side_effect = InfrastructureError(code="counter_store_unavailable", message="down")
    engine = RateDecisionEngine(store, key_prefix="p", atomic=True)

    assert engine.decide(Limit(method="GET", path="/", requests=1, duration=10), "c").allowed is True
    store.ttl.assert_not_called()
