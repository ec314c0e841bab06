# chess_review/core/history_store.py
"""
An owned, ply-indexed record of a game's positions and their analysis.

The store keeps four parallel arrays (positions, evaluations, hints and
judgements) that always have the same length. Live play grows them one ply at
a time and shrinks them two plies at a time on undo; the review pipeline fills
in hints and judgements and overwrites evaluations in place.
"""

from typing import List, Optional

import chess
import structlog

from chess_review.types import FEN, Hint, JudgementResult, PlyRecord

logger = structlog.get_logger(__name__)


class HistoryStore:
    """Parallel per-ply arrays with a fixed set of mutators."""

    def __init__(self, start_position: FEN = chess.STARTING_FEN):
        self._positions: List[FEN] = []
        self._evaluations: List[int] = []
        self._hints: List[Optional[Hint]] = []
        self._judgements: List[Optional[JudgementResult]] = []
        self.reset(start_position)

    def __len__(self) -> int:
        return len(self._positions)

    def length(self) -> int:
        return len(self._positions)

    @property
    def last_ply(self) -> int:
        return len(self._positions) - 1

    def _check_ply(self, ply: int) -> None:
        if not 0 <= ply < len(self._positions):
            raise IndexError(f"Ply {ply} is out of range for a history of length {len(self._positions)}.")

    def reset(self, start_position: FEN = chess.STARTING_FEN) -> None:
        """Drops everything and leaves a single, level ply-0 entry."""
        self._positions = [start_position]
        self._evaluations = [0]
        self._hints = [None]
        self._judgements = [None]

    def append(self, position: FEN, evaluation: int) -> int:
        """Records a completed move. Returns the new ply index."""
        self._positions.append(position)
        self._evaluations.append(evaluation)
        self._hints.append(None)
        self._judgements.append(None)
        return self.last_ply

    def truncate_last_two(self) -> bool:
        """
        Removes the two trailing plies from every array.

        Returns:
            False, leaving the store untouched, when fewer than two plies exist
            beyond ply 0.
        """
        if len(self._positions) < 3:
            logger.debug("Ignoring truncation of a short history.", length=len(self._positions))
            return False
        for array in (self._positions, self._evaluations, self._hints, self._judgements):
            del array[-2:]
        return True

    def get(self, ply: int) -> PlyRecord:
        self._check_ply(ply)
        return PlyRecord(
            position=self._positions[ply],
            evaluation=self._evaluations[ply],
            hint=self._hints[ply],
            judgement=self._judgements[ply],
        )

    def set_hint(self, ply: int, hint: Optional[Hint]) -> None:
        self._check_ply(ply)
        self._hints[ply] = hint

    def set_evaluation(self, ply: int, evaluation: int) -> None:
        self._check_ply(ply)
        self._evaluations[ply] = evaluation

    def set_judgement(self, ply: int, result: Optional[JudgementResult]) -> None:
        """Judgements describe the transition into `ply`, so ply 0 has none."""
        self._check_ply(ply)
        if ply == 0 and result is not None:
            raise ValueError("Ply 0 has no preceding move to judge.")
        self._judgements[ply] = result

    def clear_review(self) -> None:
        """Forgets hints and judgements from a previous review run."""
        self._hints = [None] * len(self._positions)
        self._judgements = [None] * len(self._positions)

    def positions(self) -> List[FEN]:
        return list(self._positions)

    def evaluations(self) -> List[int]:
        return list(self._evaluations)
