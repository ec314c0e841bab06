# chess_review/services/engine_channels.py
"""
Provides an asynchronous owner for the application's two engine channels.

Live opponent play and hints/review each get their own engine process so a
long review never contends with the opponent's move request for the same
in-flight slot. `EngineChannels` is an async context manager responsible for
the lifecycle of both: it starts them concurrently on entry and closes them on
exit.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

import structlog

from chess_review.exceptions import EngineInitializationError
from chess_review.types import EngineChannel

if TYPE_CHECKING:
    from chess_review.config.settings import EngineSettings

# A factory function type hint for creating channels: (settings, name) -> channel.
ChannelFactory = Callable[["EngineSettings", str], Awaitable[EngineChannel]]
logger = structlog.get_logger(__name__)

LIVE_CHANNEL = "live"
REVIEW_CHANNEL = "review"


class EngineChannels:
    """An async context manager owning the live and review engine channels."""

    def __init__(self, settings: "EngineSettings", channel_factory: ChannelFactory):
        """
        Args:
            settings: Engine configuration shared by both channels.
            channel_factory: An async callable (e.g. a partial of
                             `UciEngineChannel.create`) that starts one channel.
        """
        self._settings = settings
        self._channel_factory = channel_factory
        self.live: Optional[EngineChannel] = None
        self.review: Optional[EngineChannel] = None

    async def __aenter__(self) -> "EngineChannels":
        """
        Starts both channels concurrently.

        Raises:
            EngineInitializationError: If either channel fails to start; the
                other one is closed before the error propagates.
        """
        logger.info("Starting engine channels.")
        results = await asyncio.gather(
            self._channel_factory(self._settings, LIVE_CHANNEL),
            self._channel_factory(self._settings, REVIEW_CHANNEL),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        started = [r for r in results if not isinstance(r, BaseException)]
        if failures:
            await asyncio.gather(*(channel.close() for channel in started), return_exceptions=True)
            raise EngineInitializationError(f"Could not start engine channels: {failures[0]}") from failures[0]

        self.live, self.review = results
        logger.info("Engine channels started.", channels=[LIVE_CHANNEL, REVIEW_CHANNEL])
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Closes both channels and terminates their processes."""
        channels = [c for c in (self.live, self.review) if c is not None]
        await asyncio.gather(*(channel.close() for channel in channels), return_exceptions=True)
        self.live = self.review = None
        logger.info("Engine channels closed.")
