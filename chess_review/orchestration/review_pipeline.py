# chess_review/orchestration/review_pipeline.py
"""
Defines the batch analysis pipeline that reviews a finished game ply by ply.

The pipeline is an explicit state machine over the ply index. It sends exactly
one search per ply, from ply 0 through the final position, and never sends the
request for ply i+1 before the response for ply i has been processed. That
discipline, together with the epoch token checked after every await, is what
ties each engine response to the ply it describes: the engine's own protocol
carries no correlation id.
"""

from enum import Enum
from typing import Optional, Sequence, TYPE_CHECKING

import chess
import structlog

from chess_review.core.score_interpreter import side_to_move_from_fen
from chess_review.core.summary_aggregator import summarize_review
from chess_review.exceptions import (AnalysisCancelledError, EngineAnalysisError,
                                     ReviewError)
from chess_review.tracing import bound_epoch
from chess_review.types import MoveDecision, ReviewSummary, Terminal
from chess_review.utils import metrics

if TYPE_CHECKING:
    from chess_review.config.settings import EvaluationSettings, ReviewSettings
    from chess_review.core.history_store import HistoryStore
    from chess_review.core.move_classifier import JudgementClassifier
    from chess_review.tracing import EpochToken
    from chess_review.types import (EngineChannel, ProgressCallback,
                                    SearchOutcome, Side, VerboseMove)

logger = structlog.get_logger(__name__)


class ReviewState(str, Enum):
    IDLE = "Idle"; REQUESTING = "Requesting"; SUMMARIZING = "Summarizing"
    DONE = "Done"; CANCELLED = "Cancelled"; FAILED = "Failed"


class BatchAnalysisPipeline:
    """Walks every ply of a finished game with one outstanding engine request."""

    def __init__(
        self,
        channel: "EngineChannel",
        history: "HistoryStore",
        classifier: "JudgementClassifier",
        moves: Sequence["VerboseMove"],
        reviewed_side: "Side",
        epoch: "EpochToken",
        review_settings: "ReviewSettings",
        evaluation_settings: "EvaluationSettings",
        on_progress: Optional["ProgressCallback"] = None,
    ):
        """
        Args:
            channel: The hints/review engine channel (never the live one).
            history: The game's store; must hold exactly `len(moves) + 1` plies.
            classifier: Grades each transition.
            moves: The moves actually played; `moves[i - 1]` leads into ply i.
            reviewed_side: Whose moves the final summary describes.
            epoch: The cancellation token this run belongs to.
            review_settings: Review depth and per-request timeout.
            evaluation_settings: Mate encoding constants.
            on_progress: Optional `(ply, total_plies)` callback after each ply.
        """
        if history.length() != len(moves) + 1:
            raise ReviewError(
                f"History holds {history.length()} plies but {len(moves)} moves were played."
            )
        self._channel = channel
        self._history = history
        self._classifier = classifier
        self._moves = list(moves)
        self._side = reviewed_side
        self._epoch = epoch
        self._settings = review_settings
        self._mate_base = evaluation_settings.mate_base
        self._on_progress = on_progress

        self.state = ReviewState.IDLE
        self.ply = 0
        self.summary: Optional[ReviewSummary] = None

    @property
    def total_plies(self) -> int:
        return len(self._moves)

    async def run(self) -> ReviewSummary:
        """
        Reviews the whole game and returns the reviewed side's summary.

        Raises:
            AnalysisCancelledError: If the epoch was superseded mid-run. The
                response in hand when that was noticed has been discarded.
            EngineAnalysisError: If the engine stalled or disconnected. The
                epoch is aborted and the store keeps whatever plies finished.
        """
        if self.state is not ReviewState.IDLE:
            raise ReviewError(f"Pipeline already ran (state: {self.state.value}).")

        with bound_epoch(self._epoch, self._channel.name):
            logger.info("Starting game review.", plies=self.total_plies, side=chess.COLOR_NAMES[self._side])
            try:
                self._epoch.ensure_current()
                self._history.clear_review()
                while self.ply <= self.total_plies:
                    self.state = ReviewState.REQUESTING
                    outcome = await self._request(self.ply)
                    # The response may belong to an epoch that no longer exists.
                    self._epoch.ensure_current()
                    self._process(self.ply, outcome)
                    if self._on_progress is not None:
                        self._on_progress(self.ply, self.total_plies)
                    self.ply += 1
            except AnalysisCancelledError:
                self.state = ReviewState.CANCELLED
                metrics.REVIEWS_TOTAL.labels(outcome="cancelled").inc()
                logger.info("Review cancelled; discarding in-flight response.", ply=self.ply)
                raise
            except EngineAnalysisError:
                self.state = ReviewState.FAILED
                self._epoch.counter.advance(reason="engine failure during review")
                metrics.REVIEWS_TOTAL.labels(outcome="failed").inc()
                logger.error("Review aborted by an engine failure.", ply=self.ply, exc_info=True)
                raise

            self.state = ReviewState.SUMMARIZING
            self.summary = summarize_review(self._history, self._moves, self._side)
            self.state = ReviewState.DONE
            metrics.REVIEWS_TOTAL.labels(outcome="done").inc()
            logger.info("Game review complete.", accuracy=self.summary.accuracy,
                        moves_judged=self.summary.plies_reviewed)
            return self.summary

    async def _request(self, ply: int) -> "SearchOutcome":
        fen = self._history.get(ply).position
        return await self._channel.search(
            fen,
            self._settings.depth,
            side_to_move_from_fen(fen),
            timeout=self._settings.request_timeout_s,
        )

    def _terminal_evaluation(self, ply: int) -> int:
        """Evaluation of a position without legal moves when the engine gave no score."""
        if ply == 0:
            return 0
        if self._moves[ply - 1].san.endswith("#"):
            # The side to move at `ply` has been checkmated.
            mated = side_to_move_from_fen(self._history.get(ply).position)
            return -self._mate_base if mated == chess.WHITE else self._mate_base
        return 0

    def _process(self, ply: int, outcome: "SearchOutcome") -> None:
        """Applies one finished response to the store and grades the move into `ply`."""
        is_terminal = isinstance(outcome.decision, Terminal)
        hint = outcome.decision if isinstance(outcome.decision, MoveDecision) else None
        self._history.set_hint(ply, hint)

        evaluation = outcome.evaluation
        if evaluation is None and is_terminal:
            evaluation = self._terminal_evaluation(ply)
        # Ply 0 stays level by convention; everything else takes the review score.
        if ply > 0 and evaluation is not None:
            self._history.set_evaluation(ply, evaluation)
        if not outcome.reached_depth:
            logger.debug("Engine finished below the review depth.", ply=ply, depth=outcome.depth)

        if ply == 0:
            return

        played = self._moves[ply - 1]
        before = self._history.get(ply - 1)
        after = self._history.get(ply)
        best_move = None if is_terminal else before.hint
        result = self._classifier.classify(played, best_move, before.evaluation, after.evaluation, played.color)
        self._history.set_judgement(ply, result)
        logger.debug("Graded move.", ply=ply, move=played.san, judgement=result.category.value,
                     accuracy=round(result.accuracy, 1))
