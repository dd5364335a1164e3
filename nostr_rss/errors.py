"""Error taxonomy for feed generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


class FeedError(Exception):
    """Base class for failures that end a feed request."""


class ResolutionFailed(FeedError):
    """The identifier could not be resolved to a public key and relay list.

    ``transient`` is set when the discovery host could not be reached or
    answered with a server error, as opposed to an unknown or malformed
    identifier.
    """

    def __init__(self, identifier: str, reason: str, transient: bool = False):
        super().__init__(f"could not resolve {identifier!r}: {reason}")
        self.identifier = identifier
        self.reason = reason
        self.transient = transient


class RelayError(FeedError):
    """Transport or protocol failure on a single relay."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


@dataclass(frozen=True)
class RelayFailure:
    """A relay that failed during one collection. ``stage`` is connect or subscribe."""
    url: str
    stage: str
    reason: str


class NoReachableRelay(FeedError):
    """Every relay of the identity failed to connect."""

    def __init__(self, failures: Iterable[RelayFailure]):
        self.failures: Tuple[RelayFailure, ...] = tuple(failures)
        urls = ", ".join(f.url for f in self.failures) or "no relays"
        super().__init__(f"no reachable relay ({urls})")
