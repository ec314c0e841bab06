# chess_review/core/heuristics.py
"""
Contains the concrete `Heuristic` implementations of the judgement chain.

Each heuristic is a single, composable rule adhering to the `Heuristic`
protocol defined in `types.py`. A heuristic either decides the move, returning
a `JudgementResult`, or returns None to pass the move down the chain. The
classifier runs them in priority order, so an override such as the
mate-transition rule only has to know about its own condition.
"""

from typing import Optional, TYPE_CHECKING

from chess_review.core.chess_utils import is_mate_score, same_move, to_mover_perspective
from chess_review.types import Heuristic, Judgement, JudgementResult

if TYPE_CHECKING:
    from chess_review.config.settings import EvaluationSettings
    from chess_review.types import MoveContext


def lost_advantage(context: "MoveContext") -> float:
    """Win-probability points the mover gave up with the move."""
    return context.before_pct - context.after_pct


def accuracy_sample(context: "MoveContext") -> float:
    """
    `100 - (best - played)` in the mover's win probability, clamped to [0, 100].

    A deeper look after the move can rate it above the best move found before
    it, which would push the raw value past 100.
    """
    return max(0.0, min(100.0, 100.0 - lost_advantage(context)))


class TerminalPositionHeuristic(Heuristic):
    """
    Judges a move after which the opponent has no legal reply.

    Delivering (or escaping into) a forced mate is always the best move;
    anything else that ends the game, like stalemate, is merely good.
    """
    def __init__(self, settings: "EvaluationSettings"):
        self._settings = settings

    def apply(self, context: "MoveContext") -> Optional[JudgementResult]:
        if context.best_move is not None:
            return None
        if is_mate_score(context.eval_after, self._settings.mate_threshold):
            return JudgementResult(Judgement.BEST, 100.0, lost_advantage(context))
        return JudgementResult(Judgement.GOOD, accuracy_sample(context), lost_advantage(context))


class ExactMatchHeuristic(Heuristic):
    """Playing the engine's own choice is 'Best' regardless of evaluation noise."""
    def apply(self, context: "MoveContext") -> Optional[JudgementResult]:
        if same_move(context.move_played, context.best_move):
            return JudgementResult(Judgement.BEST, 100.0, lost_advantage(context))
        return None


class MateTransitionHeuristic(Heuristic):
    """
    An override for walking into a forced mate from a healthy position.

    The win-probability curve is already flat in lost positions, so the raw
    delta can look modest; the transition itself is the blunder.
    """
    def __init__(self, settings: "EvaluationSettings"):
        self._settings = settings

    def apply(self, context: "MoveContext") -> Optional[JudgementResult]:
        before = to_mover_perspective(context.eval_before, context.mover)
        after = to_mover_perspective(context.eval_after, context.mover)

        was_lost_or_mated = before < -self._settings.lost_threshold
        is_mated = after < -self._settings.mate_threshold
        if not was_lost_or_mated and is_mated:
            return JudgementResult(Judgement.BLUNDER, accuracy_sample(context), lost_advantage(context))
        return None


class WinProbabilityHeuristic(Heuristic):
    """
    The baseline rule: buckets the lost win probability by ascending thresholds.

    Thresholds are inclusive upper bounds; this heuristic always decides.
    """
    def __init__(self, settings: "EvaluationSettings"):
        self._settings = settings

    def apply(self, context: "MoveContext") -> Optional[JudgementResult]:
        lost = lost_advantage(context)
        thresholds = self._settings.thresholds
        if lost <= thresholds.excellent:
            category = Judgement.EXCELLENT
        elif lost <= thresholds.good:
            category = Judgement.GOOD
        elif lost <= thresholds.inaccuracy:
            category = Judgement.INACCURACY
        elif lost <= thresholds.mistake:
            category = Judgement.MISTAKE
        else:
            category = Judgement.BLUNDER
        return JudgementResult(category, accuracy_sample(context), lost)
