# chess_review/tracing.py

"""
tracing
~~~~~~~

This module provides the epoch tokens that tie engine responses to the run
that asked for them, and context-aware logging for those runs.

The engine's wire protocol carries no request id. Every review run (and every
live game) therefore holds an `EpochToken`; starting a new game or leaving a
review advances the `EpochCounter`, and any response that arrives for a stale
token is dropped by its consumer.
"""

import contextlib
from dataclasses import dataclass
from typing import Iterator, Optional

import structlog

from chess_review.exceptions import AnalysisCancelledError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EpochToken:
    """A handle on one epoch of an `EpochCounter`."""
    counter: "EpochCounter"
    value: int

    @property
    def is_current(self) -> bool:
        return self.counter.current == self.value

    def ensure_current(self) -> None:
        """Raises `AnalysisCancelledError` if this epoch has been superseded."""
        if not self.is_current:
            raise AnalysisCancelledError(
                f"Epoch {self.value} was superseded by epoch {self.counter.current}."
            )

    def as_dict(self) -> dict:
        """Returns the token as a dictionary suitable for logging."""
        return {"epoch": self.value}


class EpochCounter:
    """A monotonically increasing cancellation counter."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def token(self) -> EpochToken:
        """A token for the epoch in force right now."""
        return EpochToken(self, self._current)

    def advance(self, reason: Optional[str] = None) -> EpochToken:
        """Invalidates every outstanding token and returns one for the new epoch."""
        self._current += 1
        logger.debug("Epoch advanced.", epoch=self._current, reason=reason)
        return EpochToken(self, self._current)


@contextlib.contextmanager
def bound_epoch(token: EpochToken, channel: str) -> Iterator[None]:
    """Binds the epoch and channel into structlog's context for a block of work."""
    with structlog.contextvars.bound_contextvars(channel=channel, **token.as_dict()):
        yield
