"""Shared fakes for relay and event tests."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import List, Optional

from nostr_rss.errors import RelayError
from nostr_rss.types import RawEvent

ALICE = "a" * 64
BOB = "b" * 64


def make_event(content: str = "hi", created_at: int = 1_700_000_000, pubkey: str = ALICE,
               kind: int = 1, tags=()) -> RawEvent:
    """Event with a correctly computed id."""
    draft = RawEvent(id="0" * 64, author_public_key=pubkey, created_at=created_at,
                     content=content, kind=kind, tags=tuple(tuple(t) for t in tags))
    return RawEvent(id=draft.compute_id(), author_public_key=pubkey, created_at=created_at,
                    content=content, kind=kind, tags=draft.tags, sig="f" * 128)


def event_id(n: int) -> str:
    return f"{n:064x}"


def stub_event(n: int, content: str = "", created_at: int = 0) -> RawEvent:
    """Event with a synthetic id, for code that never checks ids."""
    return RawEvent(id=event_id(n), author_public_key=ALICE, created_at=created_at, content=content)


def to_wire(event: RawEvent) -> dict:
    return {
        "id": event.id,
        "pubkey": event.author_public_key,
        "created_at": event.created_at,
        "kind": event.kind,
        "tags": [list(t) for t in event.tags],
        "content": event.content,
        "sig": event.sig,
    }


@dataclass
class FakeRelay:
    """Scripted relay behaviour for RelayPool tests."""
    events: List[RawEvent] = field(default_factory=list)
    connect_error: Optional[str] = None
    connect_hangs: bool = False
    subscribe_error: Optional[str] = None
    hang: bool = False
    delay: float = 0.0


class FakeConnection:
    def __init__(self, url: str, relay: FakeRelay):
        self.url = url
        self.relay = relay
        self.closed = False
        self.filters = []

    async def subscribe(self, flt):
        self.filters.append(flt)
        for event in self.relay.events:
            if self.relay.delay:
                await asyncio.sleep(self.relay.delay)
            yield event
        if self.relay.subscribe_error:
            raise RelayError(self.url, self.relay.subscribe_error)
        if self.relay.hang:
            await asyncio.Event().wait()

    async def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self, relays):
        self.relays = relays
        self.connections: List[FakeConnection] = []

    async def __call__(self, url: str) -> FakeConnection:
        relay = self.relays[url]
        if relay.connect_hangs:
            await asyncio.Event().wait()
        if relay.connect_error:
            raise RelayError(url, relay.connect_error)
        connection = FakeConnection(url, relay)
        self.connections.append(connection)
        return connection


class FakeWebSocket:
    """Stands in for a websockets ClientConnection.

    ``script`` entries are callables receiving the subscription id and
    returning the raw frame the relay sends.
    """

    def __init__(self, script):
        self.script = list(script)
        self.sent: List[list] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        subscription_id = self.sent[0][1]
        for entry in self.script:
            yield entry(subscription_id)

    async def close(self) -> None:
        self.closed = True


SUB = object()


def frame(*parts):
    """Frame builder: ``frame("EVENT", SUB, payload)`` with SUB replaced by the subscription id."""
    def build(subscription_id):
        return json.dumps([subscription_id if p is SUB else p for p in parts])
    return build

