# chess_review/core/score_interpreter.py
"""
Turns raw lines of UCI engine output into typed engine events.

The engine's text protocol carries no request ids and mixes many kinds of
`info` chatter with the two lines that matter to us: score reports and the
final `bestmove`. `parse_engine_line` tokenizes a single line into one of a
closed set of variants (`ScoreUpdate`, `MoveDecision`, `Terminal`,
`Unrecognized`). `SearchAccumulator` then folds the events of one search into
a `SearchOutcome`, separating provisional scores (fine for a live display)
from the score that is final for the requested depth.
"""

import re
from typing import List, Optional, Union

import chess
import structlog

from chess_review.core.chess_utils import (DEFAULT_MATE_BASE, REFERENCE_SIDE,
                                           encode_mate, to_reference_perspective)
from chess_review.types import (EngineEvent, MoveDecision, ScoreUpdate,
                                SearchOutcome, Side, Terminal, Unrecognized)

logger = structlog.get_logger(__name__)

_MOVE_TOKEN = re.compile(r"^([a-h][1-8])([a-h][1-8])([qrbn])?$")
_NO_MOVE_TOKENS = frozenset({"(none)", "0000"})
_BOUND_TOKENS = frozenset({"lowerbound", "upperbound"})


def _int_after(tokens: List[str], key: str) -> Optional[int]:
    """Returns the integer following `key`, or None when absent or malformed."""
    try:
        return int(tokens[tokens.index(key) + 1])
    except (ValueError, IndexError):
        return None


def _parse_info(line: str, tokens: List[str], side_to_move: Side, reference: Side,
                mate_base: int) -> EngineEvent:
    depth = _int_after(tokens, "depth")
    if depth is None or "score" not in tokens:
        return Unrecognized(line)

    score_at = tokens.index("score")
    try:
        kind, value = tokens[score_at + 1], int(tokens[score_at + 2])
    except (ValueError, IndexError):
        return Unrecognized(line)

    if kind == "cp":
        mover_score, mate_distance = value, None
    elif kind == "mate":
        mover_score, mate_distance = encode_mate(value, mate_base), value
    else:
        return Unrecognized(line)

    bound = tokens[score_at + 3] if len(tokens) > score_at + 3 and tokens[score_at + 3] in _BOUND_TOKENS else None
    multipv = _int_after(tokens, "multipv") or 1

    return ScoreUpdate(
        depth=depth,
        raw_score=value,
        mate_distance=mate_distance,
        score=to_reference_perspective(mover_score, side_to_move, reference),
        bound=bound,
        multipv=multipv,
    )


def _parse_bestmove(line: str, tokens: List[str]) -> EngineEvent:
    if len(tokens) < 2:
        return Unrecognized(line)
    token = tokens[1]
    if token in _NO_MOVE_TOKENS:
        return Terminal()
    match = _MOVE_TOKEN.match(token)
    if not match:
        return Unrecognized(line)
    source, target, promotion = match.groups()
    return MoveDecision(from_square=source, to_square=target, promotion=promotion)


def parse_engine_line(
    line: str,
    side_to_move: Side,
    reference: Side = REFERENCE_SIDE,
    mate_base: int = DEFAULT_MATE_BASE,
) -> EngineEvent:
    """
    Parses one line of engine output.

    Args:
        line: The raw text line, with or without its trailing newline.
        side_to_move: The side to move in the position the engine is analyzing.
            The engine reports scores for that side; they are re-expressed for
            `reference` so that every stored evaluation shares one perspective.
        reference: The canonical side evaluations are stored for.
        mate_base: Magnitude used by the mate encoding.

    Returns:
        A `ScoreUpdate`, `MoveDecision`, `Terminal`, or `Unrecognized` event.
        Unknown input is never an error.
    """
    tokens = line.split()
    if not tokens:
        return Unrecognized(line)
    if tokens[0] == "info":
        return _parse_info(line, tokens, side_to_move, reference, mate_base)
    if tokens[0] == "bestmove":
        return _parse_bestmove(line, tokens)
    return Unrecognized(line)


class SearchAccumulator:
    """
    Collects the events of a single search request.

    A score is provisional until its depth reaches `requested_depth`; only an
    exact primary-line score at or beyond that depth becomes the final score.
    """

    def __init__(self, requested_depth: int):
        self.requested_depth = requested_depth
        self.latest: Optional[ScoreUpdate] = None
        self.final: Optional[ScoreUpdate] = None
        self._deepest_exact: Optional[ScoreUpdate] = None
        self.decision: Optional[Union[MoveDecision, Terminal]] = None

    @property
    def is_complete(self) -> bool:
        return self.decision is not None

    def feed(self, event: EngineEvent) -> Optional[ScoreUpdate]:
        """
        Records one event.

        Returns:
            The event itself when it is a primary-line score update (so callers
            can forward it to a live display), otherwise None.
        """
        if self.is_complete:
            logger.debug("Ignoring engine event after search completion.", engine_event=repr(event))
            return None

        if isinstance(event, ScoreUpdate):
            if event.multipv != 1:
                return None
            self.latest = event
            if event.is_exact:
                if self._deepest_exact is None or event.depth >= self._deepest_exact.depth:
                    self._deepest_exact = event
                if event.depth >= self.requested_depth:
                    self.final = event
            return event

        if isinstance(event, (MoveDecision, Terminal)):
            self.decision = event
        return None

    def result(self) -> SearchOutcome:
        """Builds the outcome; only valid once the move decision has arrived."""
        if self.decision is None:
            raise RuntimeError("Search outcome requested before the engine reported its move.")

        if self.final is not None:
            chosen, reached = self.final, True
        else:
            # The engine stopped short of the requested depth, which it only
            # does for forced results; the deepest exact score is its answer.
            chosen, reached = self._deepest_exact, False

        return SearchOutcome(
            decision=self.decision,
            evaluation=chosen.score if chosen else None,
            depth=chosen.depth if chosen else None,
            reached_depth=reached,
        )


def side_to_move_from_fen(fen: str) -> Side:
    """Reads the side-to-move field of a FEN string."""
    fields = fen.split()
    if len(fields) < 2 or fields[1] not in ("w", "b"):
        raise ValueError(f"FEN has no side-to-move field: {fen!r}")
    return chess.WHITE if fields[1] == "w" else chess.BLACK
