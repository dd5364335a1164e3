"""Type definitions for the nostr RSS gateway."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Tuple

_HEX64 = re.compile(r"^[0-9a-f]{64}$")

# 9999-12-31T23:59:59Z, the last second a datetime can hold
MAX_TIMESTAMP = 253_402_300_799

# NIP-01 escapes only these; every other character is serialized verbatim
_NIP01_ESCAPES = {
    "\n": "\\n",
    '"': '\\"',
    "\\": "\\\\",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}

FilterMatch = Literal["authors", "mentions"]


def is_hex_key(value: Any) -> bool:
    """True for a 64-character lowercase hex string (event ids and public keys)."""
    return isinstance(value, str) and bool(_HEX64.match(value))


def _nip01_string(value: str) -> str:
    return '"' + "".join(_NIP01_ESCAPES.get(char, char) for char in value) + '"'


@dataclass(frozen=True)
class Identity:
    """Public key and relay list published for an identifier."""
    public_key: str
    relay_addresses: Tuple[str, ...]


@dataclass(frozen=True)
class SubscriptionFilter:
    """Query sent unchanged to every relay of one request."""
    subject_public_keys: frozenset
    since: int = 0
    match: FilterMatch = "authors"
    kinds: Tuple[int, ...] = ()
    limit: Optional[int] = None

    @classmethod
    def for_identity(
        cls,
        identity: Identity,
        since: int = 0,
        match: FilterMatch = "authors",
        kinds: Tuple[int, ...] = (),
        limit: Optional[int] = None,
    ) -> "SubscriptionFilter":
        return cls(
            subject_public_keys=frozenset([identity.public_key]),
            since=since,
            match=match,
            kinds=tuple(kinds),
            limit=limit,
        )

    def to_wire(self) -> Dict[str, Any]:
        """NIP-01 filter object."""
        keys = sorted(self.subject_public_keys)
        wire: Dict[str, Any] = {}
        if self.match == "mentions":
            wire["#p"] = keys
        else:
            wire["authors"] = keys
        if self.kinds:
            wire["kinds"] = list(self.kinds)
        wire["since"] = self.since
        if self.limit is not None:
            wire["limit"] = self.limit
        return wire

    def accepts(self, event: "RawEvent") -> bool:
        """Whether an event delivered by a relay actually satisfies this filter."""
        if event.created_at < self.since:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.match == "authors":
            return event.author_public_key in self.subject_public_keys
        return True


@dataclass(frozen=True)
class RawEvent:
    """Event as received from a relay."""
    id: str
    author_public_key: str
    created_at: int
    content: str
    kind: int = 1
    tags: Tuple[Tuple[str, ...], ...] = ()
    sig: str = ""

    @classmethod
    def from_wire(cls, payload: Any) -> "RawEvent":
        """Build from a NIP-01 event object, raising ValueError on malformed input."""
        if not isinstance(payload, dict):
            raise ValueError("event payload is not an object")

        event_id = payload.get("id")
        pubkey = payload.get("pubkey")
        created_at = payload.get("created_at")
        kind = payload.get("kind")
        content = payload.get("content")
        tags = payload.get("tags", [])

        if not is_hex_key(event_id):
            raise ValueError(f"invalid event id: {event_id!r}")
        if not is_hex_key(pubkey):
            raise ValueError(f"invalid pubkey: {pubkey!r}")
        # bool is an int subclass; reject it explicitly
        if not isinstance(created_at, int) or isinstance(created_at, bool):
            raise ValueError(f"invalid created_at: {created_at!r}")
        if not 0 <= created_at <= MAX_TIMESTAMP:
            raise ValueError(f"created_at out of range: {created_at!r}")
        if not isinstance(kind, int) or isinstance(kind, bool):
            raise ValueError(f"invalid kind: {kind!r}")
        if not isinstance(content, str):
            raise ValueError("content is not a string")
        if not isinstance(tags, list) or not all(
            isinstance(tag, list) and all(isinstance(v, str) for v in tag) for tag in tags
        ):
            raise ValueError("tags must be a list of string lists")

        return cls(
            id=event_id,
            author_public_key=pubkey,
            created_at=created_at,
            content=content,
            kind=kind,
            tags=tuple(tuple(tag) for tag in tags),
            sig=str(payload.get("sig", "")),
        )

    def compute_id(self) -> str:
        """sha256 over the NIP-01 canonical serialization."""
        tags = ",".join("[" + ",".join(_nip01_string(v) for v in tag) + "]" for tag in self.tags)
        serialized = (
            f"[0,{_nip01_string(self.author_public_key)},{self.created_at},{self.kind},"
            f"[{tags}],{_nip01_string(self.content)}]"
        )
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def has_valid_id(self) -> bool:
        return self.compute_id() == self.id


@dataclass(frozen=True)
class FeedItem:
    """One entry of the rendered feed."""
    guid: str
    content: str
    title: Optional[str] = None
    published: Optional[datetime] = None
    link: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class ChannelMetadata:
    title: str
    link: str
    description: str


@dataclass(frozen=True)
class FeedDocument:
    metadata: ChannelMetadata
    items: Tuple[FeedItem, ...] = field(default_factory=tuple)

    def to_xml(self, build_date: Optional[datetime] = None) -> str:
        from .renderer import render

        return render(self.items, self.metadata, build_date=build_date)
