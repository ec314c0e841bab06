# chess_review/services/rules_engine.py
"""
Adapts `python-chess` to the `RulesEngine` boundary consumed by the review core.

The core never touches a `chess.Board` directly; it speaks in square names and
`VerboseMove` records whose SAN carries the check (`+`) and mate (`#`)
markers the judgement logic relies on.
"""

from typing import List, Optional

import chess
import structlog

from chess_review.types import FEN, RulesEngine, Side, VerboseMove

logger = structlog.get_logger(__name__)


def _to_verbose(board: chess.Board, move: chess.Move) -> VerboseMove:
    """Describes `move`, which must be legal on `board` (before it is pushed)."""
    return VerboseMove(
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
        color=board.turn,
        san=board.san(move),
        promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
    )


class ChessRulesEngine(RulesEngine):
    """A `RulesEngine` backed by a `chess.Board`."""

    def __init__(self, fen: Optional[FEN] = None):
        self._board = chess.Board(fen) if fen else chess.Board()
        self._history: List[VerboseMove] = []

    @property
    def board(self) -> chess.Board:
        """A copy of the underlying board, for read-only use."""
        return self._board.copy()

    def fen(self) -> FEN:
        return self._board.fen()

    def turn(self) -> Side:
        return self._board.turn

    def reset(self, fen: Optional[FEN] = None) -> None:
        self._board = chess.Board(fen) if fen else chess.Board()
        self._history = []

    def _resolve_move(self, from_square: str, to_square: str, promotion: Optional[str]) -> Optional[chess.Move]:
        try:
            source, target = chess.parse_square(from_square), chess.parse_square(to_square)
        except ValueError:
            return None

        piece = self._board.piece_at(source)
        reaches_last_rank = chess.square_rank(target) in (0, 7)
        promotion_type = None
        if piece is not None and piece.piece_type == chess.PAWN and reaches_last_rank:
            # Default to a queen, like a player who never picks.
            promotion_type = chess.PIECE_SYMBOLS.index(promotion.lower()) if promotion else chess.QUEEN
        move = chess.Move(source, target, promotion=promotion_type)
        return move if self._board.is_legal(move) else None

    def apply_move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> Optional[VerboseMove]:
        """Plays a move if it is legal; returns None otherwise."""
        try:
            move = self._resolve_move(from_square, to_square, promotion)
        except ValueError:
            move = None
        if move is None:
            logger.debug("Rejected illegal move.", move=f"{from_square}{to_square}{promotion or ''}")
            return None
        verbose = _to_verbose(self._board, move)
        self._board.push(move)
        self._history.append(verbose)
        return verbose

    def undo(self) -> Optional[VerboseMove]:
        if not self._history:
            return None
        self._board.pop()
        return self._history.pop()

    def legal_moves(self, square: Optional[str] = None) -> List[VerboseMove]:
        """All legal moves, or only those starting on `square`."""
        moves = self._board.legal_moves
        if square is not None:
            origin = chess.parse_square(square)
            return [_to_verbose(self._board, m) for m in moves if m.from_square == origin]
        return [_to_verbose(self._board, m) for m in moves]

    def history_verbose(self) -> List[VerboseMove]:
        return list(self._history)

    def is_checkmate(self) -> bool:
        return self._board.is_checkmate()

    def is_stalemate(self) -> bool:
        return self._board.is_stalemate()

    def is_threefold_repetition(self) -> bool:
        return self._board.is_repetition(3)

    def is_insufficient_material(self) -> bool:
        return self._board.is_insufficient_material()

    def is_draw(self) -> bool:
        return (self.is_stalemate() or self.is_insufficient_material()
                or self.is_threefold_repetition() or self._board.halfmove_clock >= 100)

    def is_check(self) -> bool:
        return self._board.is_check()

    def is_game_over(self) -> bool:
        return self.is_checkmate() or self.is_draw()
