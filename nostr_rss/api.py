"""HTTP server exposing per-identity RSS feeds."""

import asyncio
from typing import Optional

from fastapi import FastAPI, Query, Response
from fastapi.responses import JSONResponse
import uvicorn

from .config import Settings
from .errors import NoReachableRelay, ResolutionFailed
from .metrics import Observability
from .pipeline import FeedPipeline

FEED_MEDIA_TYPE = "text/xml; charset=utf-8"


class FeedServer:
    """FastAPI app wrapping a FeedPipeline, served by uvicorn."""

    def __init__(self, settings: Settings, pipeline: FeedPipeline, observability: Observability):
        self.settings = settings
        self.pipeline = pipeline
        self.observability = observability
        self.log = observability.logger
        self.app = FastAPI(
            title="Nostr RSS",
            description="RSS feeds for NIP-05 identities, gathered from their relays",
            version="0.1.0",
        )
        self.server: Optional[uvicorn.Server] = None

        self._setup_routes()

    def _error(self, status_code: int, error: str, detail: str, identifier: str) -> JSONResponse:
        return JSONResponse(
            content={"error": error, "detail": detail, "identifier": identifier},
            status_code=status_code,
        )

    def _setup_routes(self) -> None:
        """Setup feed, health and metrics routes."""

        async def user_feed(
            identifier: str,
            since: Optional[int] = Query(default=None, ge=0),
        ):
            """RSS feed of the identity's recent events."""
            try:
                document = await self.pipeline.build_feed(identifier, since=since)
            except ResolutionFailed as e:
                if e.transient:
                    return self._error(502, "resolution_unavailable", e.reason, identifier)
                return self._error(404, "resolution_failed", e.reason, identifier)
            except NoReachableRelay as e:
                return self._error(502, "no_reachable_relay", str(e), identifier)
            except Exception as e:
                self.log.exception("feed_failed", identifier=identifier, error=str(e))
                self.observability.metrics.feed_requests_total.labels(outcome="error").inc()
                return self._error(500, "internal_error", "feed could not be generated", identifier)

            return Response(content=document, media_type=FEED_MEDIA_TYPE)

        self.app.add_api_route("/users/{identifier}/feed", user_feed, methods=["GET"])
        # Path used by earlier deployments
        self.app.add_api_route("/users/{identifier}/rss", user_feed, methods=["GET"])

        @self.app.get("/health")
        async def health_check():
            """Basic health check endpoint."""
            return JSONResponse(
                content={"status": "healthy", "service": self.settings.service_name},
                status_code=200,
            )

        @self.app.get("/metrics")
        async def metrics():
            """Prometheus-style metrics endpoint."""
            if not self.settings.metrics_enabled:
                return JSONResponse(content={"error": "metrics disabled"}, status_code=404)
            return Response(
                content=self.observability.metrics.render(),
                media_type="text/plain; version=0.0.4; charset=utf-8",
            )

    async def start(self) -> None:
        """Serve the app in the current async context until stopped."""
        try:
            config = uvicorn.Config(
                app=self.app,
                host=self.settings.host,
                port=self.settings.port,
                log_level=self.settings.log_level.lower(),
                access_log=False,
            )

            self.server = uvicorn.Server(config)

            self.log.info("feed_server_starting", host=self.settings.host, port=self.settings.port)

            await self.server.serve()

        except Exception as e:
            self.log.error("feed_server_failed", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop the server."""
        if self.server:
            self.server.should_exit = True
            self.log.info("feed_server_stop_requested")

            # Give it a moment to shut down gracefully
            await asyncio.sleep(1.0)

        self.log.info("feed_server_stopped")
