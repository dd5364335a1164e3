import asyncio
import signal
from typing import Optional

from .api import FeedServer
from .config import Settings
from .logging_setup import build_logger
from .metrics import FeedMetrics, Observability
from .pipeline import FeedPipeline


def build_observability(settings: Settings) -> Observability:
    logger = build_logger(settings.log_level, settings.log_format, service=settings.service_name)
    return Observability(logger=logger, metrics=FeedMetrics())


class Service:
    """Owns the feed server lifecycle.

    Settings, the observability handle and the pipeline are built once here
    and passed down; no component reads global state.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self.observability = build_observability(self.settings)
        self.log = self.observability.logger
        self.log.info("service_start", service=self.settings.service_name)

        self.pipeline = FeedPipeline.from_settings(self.settings, self.observability)
        self.server = FeedServer(self.settings, self.pipeline, self.observability)

        # Lifecycle primitives
        self.stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Register signal handlers and start serving."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # add_signal_handler is unavailable on Windows event loops
            loop.add_signal_handler(sig, self._handle_signal)

        self._tasks = [asyncio.create_task(self._run_server())]

    def _handle_signal(self) -> None:
        self.stop_event.set()

    async def _run_server(self) -> None:
        try:
            await self.server.start()
        finally:
            # uvicorn exiting on its own also ends the service
            self.stop_event.set()

    async def run(self) -> None:
        """Start the service and wait until stop signal; then perform a graceful shutdown."""
        await self.start()
        await self.stop_event.wait()

        await self.server.stop()

        for t in self._tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self.log.info("service_stop")


def main(settings: Optional[Settings] = None) -> None:
    asyncio.run(Service(settings).run())
