# chess_review/core/chess_utils.py
"""
Provides a collection of pure, stateless functions for chess-related calculations.

This module acts as the "math library" for the review domain. It has no
dependencies on other parts of this application except for the data contracts
defined in `types.py`. Its functions are deterministic and form the
foundational building blocks for the interpreter, classifier and pipeline.
"""

import math
from typing import Final, Optional, TYPE_CHECKING

import chess

from chess_review.types import GameStatus

if TYPE_CHECKING:
    from chess_review.types import MoveLike, RulesEngine, Side

# The side every stored evaluation is expressed for.
REFERENCE_SIDE: Final[chess.Color] = chess.WHITE
DEFAULT_MATE_BASE: Final[int] = 20000
DEFAULT_SENSITIVITY: Final[float] = 0.004


def win_percent(score: float, k: float = DEFAULT_SENSITIVITY) -> float:
    """
    Converts an evaluation into the reference side's winning chance, 0-100.

    `100 / (1 + 10^(-k * score))`; 50 at a level position and symmetric, so
    `win_percent(x) + win_percent(-x) == 100`.
    """
    exponent = -k * score
    # Mate-encoded scores would overflow the power for very small k.
    if exponent > 300:
        return 0.0
    if exponent < -300:
        return 100.0
    return 100.0 / (1.0 + math.pow(10.0, exponent))


def encode_mate(distance: int, mate_base: int = DEFAULT_MATE_BASE) -> int:
    """
    Encodes a mate distance reported for the side to move.

    Positive N (the mover mates in N) becomes `mate_base - N`; negative N (the
    mover is mated in |N|) becomes `-mate_base - N`. Nearer mates are more
    extreme. N == 0 means the mover is already checkmated.
    """
    if distance > 0:
        return mate_base - distance
    if distance < 0:
        return -mate_base - distance
    return -mate_base


def to_reference_perspective(score: int, side_to_move: "Side", reference: "Side" = REFERENCE_SIDE) -> int:
    """Negates a mover-relative score when the mover is not the reference side."""
    return score if side_to_move == reference else -score


def to_mover_perspective(score: int, mover: "Side", reference: "Side" = REFERENCE_SIDE) -> int:
    """Re-expresses a reference-side score from `mover`'s point of view."""
    return score if mover == reference else -score


def mover_win_percent(score: int, mover: "Side", k: float = DEFAULT_SENSITIVITY,
                      reference: "Side" = REFERENCE_SIDE) -> float:
    """The mover's own winning chance for a reference-side evaluation."""
    pct = win_percent(score, k)
    return pct if mover == reference else 100.0 - pct


def is_mate_score(score: Optional[int], mate_threshold: int) -> bool:
    return score is not None and abs(score) > mate_threshold


def same_move(played: "MoveLike", best: Optional["MoveLike"]) -> bool:
    """Two moves match when they share source and target squares."""
    if best is None:
        return False
    return played.from_square == best.from_square and played.to_square == best.to_square


def determine_game_status(rules: "RulesEngine", resigned: bool = False) -> GameStatus:
    """
    Determines the state of a live game from the rules engine's predicates.

    Checkmate is checked before any draw, and the draw reasons are reported in
    the order a player would look for them.
    """
    if resigned:
        return GameStatus.RESIGNED
    if rules.is_checkmate():
        return GameStatus.CHECKMATE
    if rules.is_stalemate():
        return GameStatus.STALEMATE
    if rules.is_threefold_repetition():
        return GameStatus.THREEFOLD_REPETITION
    if rules.is_insufficient_material():
        return GameStatus.INSUFFICIENT_MATERIAL
    if rules.is_draw():
        return GameStatus.DRAW
    if rules.is_check():
        return GameStatus.CHECK
    return GameStatus.ONGOING


def side_name(side: "Side") -> str:
    return "White" if side == chess.WHITE else "Black"
