"""Tests for relay fan-out, partial failure and the collection budget."""
import asyncio
import time

import pytest

from nostr_rss.errors import NoReachableRelay
from nostr_rss.metrics import FeedMetrics
from nostr_rss.pool import RelayPool
from nostr_rss.types import Identity, SubscriptionFilter

from tests.helpers import ALICE, FakeConnector, FakeRelay, stub_event

FILTER = SubscriptionFilter(subject_public_keys=frozenset([ALICE]), since=0)


def identity(*relays):
    return Identity(public_key=ALICE, relay_addresses=tuple(relays))


@pytest.mark.asyncio
async def test_collects_union_from_all_relays_in_arrival_order():
    e1, e2 = stub_event(1, "hi"), stub_event(2, "bye")
    connector = FakeConnector({"r1": FakeRelay(events=[e1]), "r2": FakeRelay(events=[e1, e2])})

    collection = await RelayPool(connector=connector).collect(identity("r1", "r2"), FILTER, budget=1.0)

    assert collection.events == [e1, e1, e2]
    assert collection.reachable == {"r1", "r2"}
    assert collection.per_relay == {"r1": 1, "r2": 2}
    assert collection.failures == []
    assert collection.timed_out is False


@pytest.mark.asyncio
async def test_same_filter_sent_to_every_relay():
    connector = FakeConnector({"r1": FakeRelay(), "r2": FakeRelay(), "r3": FakeRelay()})

    await RelayPool(connector=connector).collect(identity("r1", "r2", "r3"), FILTER, budget=1.0)

    assert [c.filters for c in connector.connections] == [[FILTER]] * 3


@pytest.mark.asyncio
async def test_one_failed_relay_does_not_abort_the_rest():
    e1 = stub_event(1, "hi")
    connector = FakeConnector({
        "r1": FakeRelay(connect_error="connection refused"),
        "r2": FakeRelay(events=[e1]),
    })

    collection = await RelayPool(connector=connector).collect(identity("r1", "r2"), FILTER, budget=1.0)

    assert collection.events == [e1]
    assert collection.reachable == {"r2"}
    assert [(f.url, f.stage) for f in collection.failures] == [("r1", "connect")]


@pytest.mark.asyncio
async def test_subscription_failure_keeps_delivered_events_and_closes():
    e1 = stub_event(1, "hi")
    connector = FakeConnector({"r1": FakeRelay(events=[e1], subscribe_error="rate limited")})

    collection = await RelayPool(connector=connector).collect(identity("r1"), FILTER, budget=1.0)

    assert collection.events == [e1]
    assert collection.reachable == {"r1"}
    assert [(f.url, f.stage) for f in collection.failures] == [("r1", "subscribe")]
    assert connector.connections[0].closed


@pytest.mark.asyncio
async def test_all_relays_unreachable_raises():
    connector = FakeConnector({
        "r1": FakeRelay(connect_error="refused"),
        "r2": FakeRelay(connect_error="dns failure"),
    })

    with pytest.raises(NoReachableRelay) as exc:
        await RelayPool(connector=connector).collect(identity("r1", "r2"), FILTER, budget=1.0)

    assert {f.url for f in exc.value.failures} == {"r1", "r2"}


@pytest.mark.asyncio
async def test_reachable_relay_without_events_is_empty_success():
    connector = FakeConnector({"r1": FakeRelay()})

    collection = await RelayPool(connector=connector).collect(identity("r1"), FILTER, budget=1.0)

    assert collection.events == []
    assert collection.reachable == {"r1"}


@pytest.mark.asyncio
async def test_silent_relay_is_bounded_by_budget():
    e1 = stub_event(1, "hi")
    connector = FakeConnector({"r1": FakeRelay(events=[e1], hang=True), "r2": FakeRelay(hang=True)})
    budget = 0.2

    started = time.monotonic()
    collection = await RelayPool(connector=connector).collect(identity("r1", "r2"), FILTER, budget=budget)
    elapsed = time.monotonic() - started

    assert elapsed < budget + 1.0
    assert collection.timed_out is True
    assert collection.events == [e1]
    assert all(c.closed for c in connector.connections)


@pytest.mark.asyncio
async def test_relay_still_connecting_at_budget_counts_as_unreachable():
    connector = FakeConnector({"r1": FakeRelay(connect_hangs=True)})

    started = time.monotonic()
    with pytest.raises(NoReachableRelay) as exc:
        await RelayPool(connector=connector).collect(identity("r1"), FILTER, budget=0.1)

    assert time.monotonic() - started < 1.1
    assert exc.value.failures[0].stage == "connect"


@pytest.mark.asyncio
async def test_slow_relay_does_not_hold_back_fast_one():
    fast = stub_event(1, "fast")
    slow = stub_event(2, "slow")
    connector = FakeConnector({
        "slow": FakeRelay(events=[slow], delay=5.0),
        "fast": FakeRelay(events=[fast]),
    })

    collection = await RelayPool(connector=connector).collect(identity("slow", "fast"), FILTER, budget=0.3)

    assert collection.events == [fast]
    assert collection.reachable == {"slow", "fast"}
    assert collection.timed_out is True


@pytest.mark.asyncio
async def test_metrics_recorded():
    metrics = FeedMetrics()
    connector = FakeConnector({
        "r1": FakeRelay(events=[stub_event(1), stub_event(2)]),
        "r2": FakeRelay(connect_error="refused"),
    })

    await RelayPool(connector=connector, metrics=metrics).collect(identity("r1", "r2"), FILTER, budget=1.0)

    registry = metrics.registry
    assert registry.get_sample_value("nostr_rss_events_received_total") == 2
    assert registry.get_sample_value("nostr_rss_relay_connections_total", {"outcome": "connected"}) == 1
    assert registry.get_sample_value("nostr_rss_relay_connections_total", {"outcome": "failed"}) == 1


@pytest.mark.asyncio
async def test_cancelled_request_tears_down_connections():
    connector = FakeConnector({"r1": FakeRelay(hang=True)})
    pool = RelayPool(connector=connector)

    task = asyncio.create_task(pool.collect(identity("r1"), FILTER, budget=30.0))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert connector.connections[0].closed
