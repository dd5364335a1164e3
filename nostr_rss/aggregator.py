"""Merge relay events into feed items."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .types import FeedItem, RawEvent

TITLE_MAX_LENGTH = 80


def derive_title(content: str) -> Optional[str]:
    """First non-blank line of the content, shortened for feed readers."""
    for line in content.splitlines():
        line = line.strip()
        if line:
            if len(line) > TITLE_MAX_LENGTH:
                return line[: TITLE_MAX_LENGTH - 1].rstrip() + "…"
            return line
    return None


def published_at(created_at: int) -> Optional[datetime]:
    """UTC datetime for a unix timestamp, or None when datetime cannot hold it."""
    try:
        return datetime.fromtimestamp(created_at, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def to_feed_item(event: RawEvent, link_template: Optional[str] = None) -> FeedItem:
    link = None
    if link_template:
        link = link_template.format(id=event.id, pubkey=event.author_public_key)
    return FeedItem(
        guid=event.id,
        content=event.content,
        title=derive_title(event.content),
        published=published_at(event.created_at),
        link=link,
        author=event.author_public_key,
    )


def dedupe(events: Iterable[RawEvent]) -> List[RawEvent]:
    """Drop repeated ids, keeping the first occurrence in input order."""
    seen = set()
    unique: List[RawEvent] = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique


def aggregate(
    events: Iterable[RawEvent],
    *,
    link_template: Optional[str] = None,
    newest_first: bool = False,
) -> List[FeedItem]:
    """De-duplicate events by id and map each survivor to one FeedItem.

    Output follows input (arrival) order unless ``newest_first`` re-sorts by
    ``created_at``; the sort is stable so equal timestamps keep arrival order.
    """
    unique = dedupe(events)
    if newest_first:
        unique.sort(key=lambda event: event.created_at, reverse=True)
    return [to_feed_item(event, link_template) for event in unique]
