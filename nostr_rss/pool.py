"""Concurrent relay fan-out with a bounded collection window.

Every relay of an identity gets its own task. The tasks share one
``Collection``; appends happen on the event loop thread only, so arrival
order across relays is the order in which the loop delivered the events.
When the budget elapses the remaining tasks are cancelled and each one
closes its own connection on the way out.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .errors import NoReachableRelay, RelayFailure
from .logging_setup import get_logger
from .metrics import FeedMetrics
from .relay import RelayConnection
from .types import Identity, RawEvent, SubscriptionFilter

Connector = Callable[[str], Awaitable[RelayConnection]]


@dataclass
class Collection:
    """Events and per-relay outcomes gathered during one ``collect`` call."""
    events: List[RawEvent] = field(default_factory=list)
    reachable: Set[str] = field(default_factory=set)
    failures: List[RelayFailure] = field(default_factory=list)
    per_relay: Dict[str, int] = field(default_factory=dict)
    timed_out: bool = False
    elapsed: float = 0.0

    def add(self, relay: str, event: RawEvent) -> None:
        self.events.append(event)
        self.per_relay[relay] = self.per_relay.get(relay, 0) + 1

    def fail(self, relay: str, stage: str, reason: str) -> None:
        self.failures.append(RelayFailure(url=relay, stage=stage, reason=reason))


class RelayPool:
    """Connects to every relay of an identity and gathers events within a time budget."""

    def __init__(
        self,
        connector: Optional[Connector] = None,
        connect_timeout: float = 5.0,
        close_grace: float = 2.0,
        close_on_eose: bool = False,
        verify_event_ids: bool = True,
        metrics: Optional[FeedMetrics] = None,
        logger=None,
    ) -> None:
        self.log = logger or get_logger(__name__)
        self.metrics = metrics
        self.close_grace = close_grace

        if connector is None:
            async def connector(url: str) -> RelayConnection:
                return await RelayConnection.open(
                    url,
                    timeout=connect_timeout,
                    close_timeout=close_grace,
                    close_on_eose=close_on_eose,
                    verify_event_ids=verify_event_ids,
                    logger=self.log,
                )

        self.connector = connector

    async def collect(
        self,
        identity: Identity,
        flt: SubscriptionFilter,
        budget: float,
    ) -> Collection:
        """Collect events from all relays of ``identity`` for at most ``budget`` seconds.

        Raises NoReachableRelay when not a single relay could be connected.
        """
        collection = Collection()
        started = time.monotonic()

        if not identity.relay_addresses:
            raise NoReachableRelay(())

        tasks = [
            asyncio.create_task(self._drain(url, flt, collection), name=f"relay:{url}")
            for url in identity.relay_addresses
        ]

        try:
            _, pending = await asyncio.wait(tasks, timeout=budget)
        except asyncio.CancelledError:
            # The request itself was cancelled; tear down before propagating
            for task in tasks:
                task.cancel()
            await asyncio.wait(tasks, timeout=self.close_grace)
            raise

        if pending:
            collection.timed_out = True
            for task in pending:
                task.cancel()
            _, stuck = await asyncio.wait(pending, timeout=self.close_grace)
            if stuck:
                self.log.warning("relay_teardown_slow", relays=[t.get_name() for t in stuck])

        # Tasks cancelled before their first step never recorded anything
        seen = collection.reachable | {f.url for f in collection.failures}
        for url in identity.relay_addresses:
            if url not in seen:
                collection.fail(url, "connect", "budget elapsed before connection was attempted")
                seen.add(url)

        collection.elapsed = time.monotonic() - started
        if self.metrics is not None:
            self.metrics.collection_seconds.observe(collection.elapsed)
            self.metrics.events_received_total.inc(len(collection.events))

        if not collection.reachable:
            self.log.error(
                "no_reachable_relay",
                pubkey=identity.public_key,
                failures=[f"{f.url} ({f.stage}): {f.reason}" for f in collection.failures],
            )
            raise NoReachableRelay(collection.failures)

        if collection.failures:
            self.log.warning(
                "partial_relay_failure",
                pubkey=identity.public_key,
                reachable=len(collection.reachable),
                failed=[f.url for f in collection.failures],
            )

        self.log.info(
            "collection_finished",
            pubkey=identity.public_key,
            events=len(collection.events),
            relays=len(collection.reachable),
            per_relay=dict(collection.per_relay),
            timed_out=collection.timed_out,
            elapsed=round(collection.elapsed, 3),
        )
        return collection

    async def _drain(self, url: str, flt: SubscriptionFilter, collection: Collection) -> None:
        """Connect to one relay and feed its events into the shared collection."""
        try:
            connection = await self.connector(url)
        except asyncio.CancelledError:
            collection.fail(url, "connect", "budget elapsed before connection was established")
            self._count_connection("timeout")
            raise
        except Exception as e:
            collection.fail(url, "connect", str(e) or type(e).__name__)
            self._count_connection("failed")
            self.log.warning("relay_connect_failed", relay=url, error=str(e))
            return

        collection.reachable.add(url)
        self._count_connection("connected")
        self.log.debug("relay_connected", relay=url)

        try:
            async with contextlib.aclosing(connection.subscribe(flt)) as events:
                async for event in events:
                    collection.add(url, event)
        except Exception as e:
            collection.fail(url, "subscribe", str(e) or type(e).__name__)
            self.log.warning("relay_subscription_failed", relay=url, error=str(e))
        finally:
            await connection.close()

    def _count_connection(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.relay_connections_total.labels(outcome=outcome).inc()
