"""Feed request pipeline: resolve, collect, aggregate, render."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .aggregator import aggregate
from .config import Settings
from .errors import NoReachableRelay, ResolutionFailed
from .metrics import Observability
from .pool import RelayPool
from .renderer import render
from .resolver import IdentityResolver
from .types import ChannelMetadata, Identity, SubscriptionFilter


class ChannelTemplate:
    """Channel metadata from configuration; ``{identifier}`` and ``{pubkey}`` are filled per feed."""

    def __init__(self, title: str, link: str, description: str) -> None:
        self.title = title
        self.link = link
        self.description = description

    def for_identity(self, identifier: str, identity: Identity) -> ChannelMetadata:
        values = {"identifier": identifier, "pubkey": identity.public_key}
        return ChannelMetadata(
            title=self.title.format_map(values),
            link=self.link.format_map(values),
            description=self.description.format_map(values),
        )


class FeedPipeline:
    """Runs one feed request end to end.

    Nothing is shared between calls apart from the observability handle;
    each call opens and closes its own relay connections.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        pool: RelayPool,
        channel: ChannelTemplate,
        observability: Observability,
        collection_budget: float = 10.0,
        since_floor: int = 0,
        filter_match: str = "authors",
        event_kinds: tuple = (),
        event_limit: Optional[int] = None,
        item_order: str = "arrival",
        item_link_template: Optional[str] = None,
    ) -> None:
        self.resolver = resolver
        self.pool = pool
        self.channel = channel
        self.observability = observability
        self.collection_budget = collection_budget
        self.since_floor = since_floor
        self.filter_match = filter_match
        self.event_kinds = tuple(event_kinds)
        self.event_limit = event_limit
        self.item_order = item_order
        self.item_link_template = item_link_template

    @classmethod
    def from_settings(cls, settings: Settings, observability: Observability) -> "FeedPipeline":
        log = observability.logger
        resolver = IdentityResolver(timeout=settings.resolve_timeout, logger=log)
        pool = RelayPool(
            connect_timeout=settings.relay_connect_timeout,
            close_grace=settings.relay_close_grace,
            close_on_eose=settings.close_on_eose,
            verify_event_ids=settings.verify_event_ids,
            metrics=observability.metrics,
            logger=log,
        )
        channel = ChannelTemplate(settings.feed_title, settings.feed_link, settings.feed_description)
        return cls(
            resolver,
            pool,
            channel,
            observability,
            collection_budget=settings.collection_budget,
            since_floor=settings.since_floor,
            filter_match=settings.filter_match,
            event_kinds=tuple(settings.event_kinds),
            event_limit=settings.event_limit,
            item_order=settings.item_order,
            item_link_template=settings.item_link_template,
        )

    async def build_feed(self, identifier: str, since: Optional[int] = None) -> str:
        """Return the RSS document for ``identifier``.

        ``since`` overrides the configured floor for this request only.
        Raises ResolutionFailed or NoReachableRelay; the document is only
        returned once fully rendered.
        """
        log = self.observability.logger.bind(identifier=identifier)
        metrics = self.observability.metrics

        try:
            identity = await self.resolver.resolve(identifier)
        except ResolutionFailed as e:
            metrics.feed_requests_total.labels(outcome="resolution_failed").inc()
            log.warning("resolution_failed", reason=e.reason, transient=e.transient)
            raise

        flt = SubscriptionFilter.for_identity(
            identity,
            since=self.since_floor if since is None else since,
            match=self.filter_match,
            kinds=self.event_kinds,
            limit=self.event_limit,
        )

        try:
            collection = await self.pool.collect(identity, flt, self.collection_budget)
        except NoReachableRelay:
            metrics.feed_requests_total.labels(outcome="no_reachable_relay").inc()
            raise

        items = aggregate(
            collection.events,
            link_template=self.item_link_template,
            newest_first=self.item_order == "newest",
        )
        metrics.duplicate_events_total.inc(len(collection.events) - len(items))
        metrics.feed_items.observe(len(items))

        document = render(
            items,
            self.channel.for_identity(identifier, identity),
            build_date=datetime.now(timezone.utc),
        )
        metrics.feed_requests_total.labels(outcome="ok").inc()
        log.info(
            "feed_rendered",
            pubkey=identity.public_key,
            items=len(items),
            events=len(collection.events),
            failed_relays=len(collection.failures),
        )
        return document
