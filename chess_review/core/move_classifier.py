# chess_review/core/move_classifier.py
"""
Contains the central judgement engine of the application.

This module provides the `JudgementClassifier`, a pure component that grades a
played move by running a chain of composable `Heuristic` objects. This "Chain
of Responsibility" pattern keeps each rule small: the first heuristic that
returns a result decides the move, so rules are ordered by priority.
"""
from typing import List, Optional, TYPE_CHECKING

import structlog

from chess_review.core.chess_utils import mover_win_percent
from chess_review.core.heuristics import (ExactMatchHeuristic,
                                          MateTransitionHeuristic,
                                          TerminalPositionHeuristic,
                                          WinProbabilityHeuristic)
from chess_review.types import MoveContext
from chess_review.utils import metrics

if TYPE_CHECKING:
    from chess_review.config.settings import EvaluationSettings
    from chess_review.types import Heuristic, JudgementResult, MoveLike, Side

logger = structlog.get_logger(__name__)


class JudgementClassifier:
    """
    A stateless classifier that grades a single move.

    The chain runs terminal positions first, then the exact-match shortcut,
    then the mate-transition override and finally the generic
    win-probability buckets, which always decide.
    """

    def __init__(self, settings: "EvaluationSettings"):
        """Initializes the classifier and defines the ordered heuristic chain."""
        self._settings = settings
        self._heuristic_chain: List["Heuristic"] = [
            TerminalPositionHeuristic(settings),   # 1. No legal reply after the move
            ExactMatchHeuristic(),                 # 2. Same move as the engine
            MateTransitionHeuristic(settings),     # 3. Override: walked into a forced mate
            WinProbabilityHeuristic(settings),     # 4. Baseline buckets
        ]

    def classify(
        self,
        move_played: "MoveLike",
        best_move: Optional["MoveLike"],
        eval_before: int,
        eval_after: int,
        mover: "Side",
    ) -> "JudgementResult":
        """
        Grades one move.

        Args:
            move_played: The move actually played (source and target squares).
            best_move: The engine's recommendation in the position before the
                move, or None when the position after the move has no legal reply.
            eval_before: Reference-side evaluation before the move.
            eval_after: Reference-side evaluation after the move.
            mover: The side that played the move.

        Returns:
            The judgement, its accuracy sample and the lost advantage.
        """
        k = self._settings.win_percent_sensitivity
        context = MoveContext(
            move_played=move_played,
            best_move=best_move,
            eval_before=eval_before,
            eval_after=eval_after,
            mover=mover,
            before_pct=mover_win_percent(eval_before, mover, k),
            after_pct=mover_win_percent(eval_after, mover, k),
        )

        for heuristic in self._heuristic_chain:
            result = heuristic.apply(context)
            if result is not None:
                metrics.JUDGEMENTS_TOTAL.labels(category=result.category.value).inc()
                return result

        # WinProbabilityHeuristic always decides, so the chain cannot fall through.
        raise RuntimeError("Judgement chain produced no result.")
