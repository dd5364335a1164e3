from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .logging_setup import get_logger


class FeedMetrics:
    """Prometheus metrics registered on an explicit registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.feed_requests_total = Counter(
            "nostr_rss_feed_requests_total",
            "Feed requests by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.relay_connections_total = Counter(
            "nostr_rss_relay_connections_total",
            "Relay connection attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.events_received_total = Counter(
            "nostr_rss_events_received_total",
            "Events received from relays, duplicates included",
            registry=self.registry,
        )

        self.duplicate_events_total = Counter(
            "nostr_rss_duplicate_events_total",
            "Events dropped as duplicates during aggregation",
            registry=self.registry,
        )

        self.feed_items = Histogram(
            "nostr_rss_feed_items",
            "Items per rendered feed",
            buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500, 1000),
            registry=self.registry,
        )

        self.collection_seconds = Histogram(
            "nostr_rss_collection_seconds",
            "Wall-clock time spent collecting from relays",
            buckets=(0.1, 0.5, 1, 2, 5, 10, 15, 30, 60),
            registry=self.registry,
        )

    def render(self) -> bytes:
        return generate_latest(self.registry)


@dataclass
class Observability:
    """Logger and metrics handed to the pipeline and the HTTP app."""
    logger: Any = field(default_factory=lambda: get_logger("nostr_rss"))
    metrics: FeedMetrics = field(default_factory=FeedMetrics)
