"""NIP-05 identity resolution.

Maps ``name@domain`` to the public key and relay list the domain publishes
in ``/.well-known/nostr.json``.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

import httpx

from .errors import ResolutionFailed
from .logging_setup import get_logger
from .types import Identity, is_hex_key

_LOCAL_PART = re.compile(r"^[a-z0-9._-]+$")
_DOMAIN = re.compile(r"^[a-z0-9.-]+(:[0-9]{1,5})?$")


def split_identifier(identifier: str) -> Tuple[str, str]:
    """Split into (local_part, domain); a bare domain stands for ``_@domain``."""
    value = identifier.strip().lower()
    if "@" in value:
        local, _, domain = value.rpartition("@")
    else:
        local, domain = "_", value

    if not local or not _LOCAL_PART.match(local):
        raise ResolutionFailed(identifier, "malformed local part")
    if not domain or not _DOMAIN.match(domain) or "." not in domain.split(":")[0]:
        raise ResolutionFailed(identifier, "malformed domain")
    return local, domain


class IdentityResolver:
    """Resolves identifiers with one HTTP lookup each; nothing is retried."""

    def __init__(
        self,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger=None,
    ) -> None:
        self.timeout = timeout
        self.transport = transport
        self.log = logger or get_logger(__name__)

    async def resolve(self, identifier: str) -> Identity:
        local, domain = split_identifier(identifier)
        url = f"https://{domain}/.well-known/nostr.json"

        try:
            # NIP-05 forbids following redirects
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self.transport,
            ) as client:
                response = await client.get(url, params={"name": local})
        except httpx.TimeoutException as e:
            self.log.warning("nip05_timeout", identifier=identifier, url=url)
            raise ResolutionFailed(identifier, f"timed out fetching {url}", transient=True) from e
        except httpx.HTTPError as e:
            self.log.warning("nip05_request_failed", identifier=identifier, url=url, error=str(e))
            raise ResolutionFailed(identifier, f"request to {url} failed: {e}", transient=True) from e

        if response.status_code >= 500:
            raise ResolutionFailed(
                identifier, f"{url} answered {response.status_code}", transient=True
            )
        if response.status_code != 200:
            raise ResolutionFailed(identifier, f"{url} answered {response.status_code}")

        try:
            document = response.json()
        except ValueError as e:
            raise ResolutionFailed(identifier, "nostr.json is not valid JSON") from e

        identity = parse_nostr_json(identifier, local, document)
        self.log.info(
            "identity_resolved",
            identifier=identifier,
            pubkey=identity.public_key,
            relays=len(identity.relay_addresses),
        )
        return identity


def parse_nostr_json(identifier: str, local: str, document: Any) -> Identity:
    """Extract the Identity for ``local`` from a nostr.json document."""
    if not isinstance(document, dict):
        raise ResolutionFailed(identifier, "nostr.json is not an object")

    names = document.get("names")
    if not isinstance(names, dict) or local not in names:
        raise ResolutionFailed(identifier, f"name {local!r} not published")

    pubkey = names[local]
    if isinstance(pubkey, str):
        pubkey = pubkey.lower()
    if not is_hex_key(pubkey):
        raise ResolutionFailed(identifier, "published public key is not 64 hex characters")

    relays_map = document.get("relays")
    published: Any = relays_map.get(pubkey) if isinstance(relays_map, dict) else None
    relays: List[str] = []
    if isinstance(published, list):
        for relay in published:
            if isinstance(relay, str) and relay.strip() and relay.strip() not in relays:
                relays.append(relay.strip())

    if not relays:
        raise ResolutionFailed(identifier, "no relays published for public key")

    return Identity(public_key=pubkey, relay_addresses=tuple(relays))
