# chess_review/exceptions.py
"""
Defines custom exceptions for the Chess Review application.

Centralizing exceptions in this module prevents circular dependencies that can
arise when different components need to catch errors defined in others. A clear
exception hierarchy, with a common `ChessReviewError` base, allows callers to
pause a review run on an engine failure without catching unrelated errors.

Note that several "unhappy" situations are deliberately NOT exceptions: an
unrecognized engine line, a terminal position without a best move, and an
illegal candidate drawn while weakening the engine's play are all ordinary
branches of the code that handles them.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from chess_review.types import EngineChannel


class ChessReviewError(Exception):
    """Base class for all application-specific, catchable errors."""
    pass


class EngineError(ChessReviewError):
    """
    Base class for errors related to a chess engine subprocess.

    Attributes:
        engine: An optional reference to the failed engine channel,
                allowing for targeted cleanup or replacement.
    """
    def __init__(self, message: str, engine: Optional["EngineChannel"] = None):
        super().__init__(message)
        self.engine = engine


class EngineInitializationError(EngineError):
    """
    Raised when a chess engine process fails to initialize correctly.

    This typically occurs if the executable path is invalid, or the process
    starts but never answers the `uci` / `isready` handshake.
    """
    pass


class EngineAnalysisError(EngineError):
    """Raised when a search request cannot be issued or completed."""
    pass


class EngineTimeoutError(EngineAnalysisError):
    """
    Raised when an outstanding search does not finish within its time budget.

    The channel that raised it resynchronizes before its next search, so the
    error is recoverable: the caller may start a fresh review epoch.
    """
    pass


class EngineDisconnectedError(EngineAnalysisError):
    """Raised when the engine process closes its output stream mid-conversation."""
    pass


class AnalysisCancelledError(ChessReviewError):
    """
    Raised inside a review run whose epoch has been superseded.

    The response that triggered it has already been discarded; no state was
    mutated on its behalf.
    """
    pass


class ReviewError(ChessReviewError):
    """Raised when a review cannot be started, e.g. history and move list disagree."""
    pass


class ReportGenerationError(ChessReviewError):
    """Raised for errors encountered while writing a review report."""
    pass
