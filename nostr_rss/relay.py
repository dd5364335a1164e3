"""NIP-01 relay client: connect, subscribe, disconnect."""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidURI, WebSocketException

from .errors import RelayError
from .logging_setup import get_logger
from .types import RawEvent, SubscriptionFilter


class RelayConnection:
    """One open WebSocket to a relay, carrying at most one subscription."""

    def __init__(
        self,
        url: str,
        websocket: ClientConnection,
        close_on_eose: bool = False,
        verify_event_ids: bool = True,
        logger=None,
    ) -> None:
        self.url = url
        self.websocket = websocket
        self.close_on_eose = close_on_eose
        self.verify_event_ids = verify_event_ids
        self.log = logger or get_logger(__name__)
        self.subscription_id: Optional[str] = None
        self.closed = False

        # Statistics
        self.events_received = 0
        self.events_rejected = 0

    @classmethod
    async def open(
        cls,
        url: str,
        timeout: float = 5.0,
        close_timeout: float = 2.0,
        close_on_eose: bool = False,
        verify_event_ids: bool = True,
        logger=None,
    ) -> "RelayConnection":
        """Connect to ``url``; every transport failure surfaces as RelayError."""
        try:
            websocket = await connect(
                url,
                open_timeout=timeout,
                close_timeout=close_timeout,
                max_size=2**22,
            )
        except InvalidURI as e:
            raise RelayError(url, "invalid relay URL") from e
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise RelayError(url, f"connect failed: {e or type(e).__name__}") from e

        return cls(
            url,
            websocket,
            close_on_eose=close_on_eose,
            verify_event_ids=verify_event_ids,
            logger=logger,
        )

    async def subscribe(self, flt: SubscriptionFilter) -> AsyncIterator[RawEvent]:
        """Send REQ and yield matching events until the relay closes or EOSE (if enabled)."""
        if self.subscription_id is not None:
            raise RelayError(self.url, "connection already has a subscription")

        self.subscription_id = uuid.uuid4().hex[:16]
        request = json.dumps(["REQ", self.subscription_id, flt.to_wire()])
        try:
            await self.websocket.send(request)
            async for frame in self.websocket:
                message = self._decode(frame)
                if message is None:
                    continue

                kind = message[0]
                if kind == "EVENT":
                    event = self._accept_event(message, flt)
                    if event is not None:
                        yield event
                elif kind == "EOSE":
                    if len(message) > 1 and message[1] == self.subscription_id:
                        self.log.debug("relay_eose", relay=self.url, events=self.events_received)
                        if self.close_on_eose:
                            return
                elif kind == "CLOSED":
                    if len(message) > 1 and message[1] == self.subscription_id:
                        reason = message[2] if len(message) > 2 else ""
                        self.subscription_id = None
                        raise RelayError(self.url, f"subscription closed by relay: {reason}")
                elif kind == "NOTICE":
                    self.log.info("relay_notice", relay=self.url, notice=message[1:])
        except ConnectionClosedOK:
            return
        except ConnectionClosed as e:
            raise RelayError(self.url, f"connection lost: {e}") from e
        except OSError as e:
            raise RelayError(self.url, f"transport error: {e}") from e

    def _decode(self, frame: Any) -> Optional[list]:
        try:
            message = json.loads(frame)
        except (TypeError, ValueError):
            self.log.debug("relay_bad_frame", relay=self.url)
            return None
        if not isinstance(message, list) or not message or not isinstance(message[0], str):
            self.log.debug("relay_bad_message", relay=self.url)
            return None
        return message

    def _accept_event(self, message: list, flt: SubscriptionFilter) -> Optional[RawEvent]:
        if len(message) < 3 or message[1] != self.subscription_id:
            return None

        try:
            event = RawEvent.from_wire(message[2])
        except ValueError as e:
            self.events_rejected += 1
            self.log.debug("event_malformed", relay=self.url, error=str(e))
            return None

        if not flt.accepts(event):
            self.events_rejected += 1
            self.log.debug("event_outside_filter", relay=self.url, event_id=event.id)
            return None

        if self.verify_event_ids and not event.has_valid_id():
            self.events_rejected += 1
            self.log.debug("event_id_mismatch", relay=self.url, event_id=event.id)
            return None

        self.events_received += 1
        return event

    async def close(self) -> None:
        """Send CLOSE for the open subscription and close the socket."""
        if self.closed:
            return
        self.closed = True

        if self.subscription_id is not None:
            try:
                await self.websocket.send(json.dumps(["CLOSE", self.subscription_id]))
            except (ConnectionClosed, OSError) as e:
                self.log.debug("relay_close_send_failed", relay=self.url, error=str(e))
            self.subscription_id = None

        try:
            await self.websocket.close()
        except (WebSocketException, OSError) as e:
            self.log.warning("relay_close_failed", relay=self.url, error=str(e))
