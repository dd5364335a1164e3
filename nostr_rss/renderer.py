"""RSS 2.0 serialization."""

import re
from datetime import datetime
from email.utils import format_datetime
from typing import Iterable, Optional
from xml.etree.ElementTree import Element, SubElement, register_namespace, tostring

from .types import ChannelMetadata, FeedItem

GENERATOR = "nostr-rss"

# RSS <author> must hold an email address; the author key goes into dc:creator
DC_NS = "http://purl.org/dc/elements/1.1/"
register_namespace("dc", DC_NS)

# Characters outside the XML 1.0 Char production cannot be escaped, only removed
_INVALID_XML_CHARS = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _clean(text: str) -> str:
    return _INVALID_XML_CHARS.sub("", text)


def render(
    items: Iterable[FeedItem],
    metadata: ChannelMetadata,
    *,
    build_date: Optional[datetime] = None,
) -> str:
    """Serialize items, in the given order, into an RSS 2.0 document string."""
    root = Element("rss", attrib={"version": "2.0"})
    channel = SubElement(root, "channel")
    SubElement(channel, "title").text = _clean(metadata.title)
    SubElement(channel, "link").text = _clean(metadata.link)
    SubElement(channel, "description").text = _clean(metadata.description)
    if build_date is not None:
        SubElement(channel, "lastBuildDate").text = format_datetime(build_date)
    SubElement(channel, "generator").text = _clean(GENERATOR)

    for item in items:
        item_el = SubElement(channel, "item")
        if item.title:
            SubElement(item_el, "title").text = _clean(item.title)
        SubElement(item_el, "description").text = _clean(item.content)
        SubElement(item_el, "guid", attrib={"isPermaLink": "false"}).text = _clean(item.guid)
        if item.published is not None:
            SubElement(item_el, "pubDate").text = format_datetime(item.published)
        if item.link:
            SubElement(item_el, "link").text = _clean(item.link)
        if item.author:
            SubElement(item_el, f"{{{DC_NS}}}creator").text = _clean(item.author)

    return "<?xml version='1.0' encoding='UTF-8'?>\n" + tostring(root, encoding="unicode")
