# chess_review/types.py
"""
A central module for shared data structures and service interfaces (Protocols).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import (Callable, Dict, List, Optional, Protocol,
                    TypeAlias, Union, runtime_checkable)

import chess

FEN: TypeAlias = str
Side: TypeAlias = chess.Color


class Judgement(str, Enum):
    BEST = "Best"; EXCELLENT = "Excellent"; GOOD = "Good"
    INACCURACY = "Inaccuracy"; MISTAKE = "Mistake"; BLUNDER = "Blunder"


class GameStatus(str, Enum):
    NOT_STARTED = "Not started"; ONGOING = "Ongoing"; CHECK = "Check"
    CHECKMATE = "Checkmate"; STALEMATE = "Stalemate"
    THREEFOLD_REPETITION = "Threefold Repetition"
    INSUFFICIENT_MATERIAL = "Insufficient Material"
    DRAW = "Draw"; RESIGNED = "Resignation"

    @property
    def is_terminal(self) -> bool:
        return self not in (GameStatus.NOT_STARTED, GameStatus.ONGOING, GameStatus.CHECK)


# --- ENGINE EVENTS: the closed set of things one line of engine output can mean ---

@dataclass(frozen=True, slots=True)
class ScoreUpdate:
    """A score report; `score` is mate-encoded and from the reference side's perspective."""
    depth: int; raw_score: int; mate_distance: Optional[int]; score: int
    bound: Optional[str] = None; multipv: int = 1

    @property
    def is_exact(self) -> bool:
        return self.bound is None and self.multipv == 1


@dataclass(frozen=True, slots=True)
class MoveDecision:
    from_square: str; to_square: str; promotion: Optional[str] = None

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


@dataclass(frozen=True, slots=True)
class Terminal:
    """The engine reported that the searched position has no legal move."""


@dataclass(frozen=True, slots=True)
class Unrecognized:
    line: str


EngineEvent: TypeAlias = Union[ScoreUpdate, MoveDecision, Terminal, Unrecognized]
Hint: TypeAlias = MoveDecision


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    """The result of one completed search request."""
    decision: Union[MoveDecision, Terminal]
    evaluation: Optional[int]; depth: Optional[int]; reached_depth: bool

    @property
    def best_move(self) -> Optional[MoveDecision]:
        return self.decision if isinstance(self.decision, MoveDecision) else None


# --- GAME & REVIEW DATA CONTRACTS ---

@dataclass(frozen=True, slots=True)
class VerboseMove:
    from_square: str; to_square: str; color: Side; san: str
    promotion: Optional[str] = None

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


@dataclass(frozen=True, slots=True)
class JudgementResult:
    category: Judgement; accuracy: float; lost_advantage: Optional[float] = None


@dataclass(frozen=True, slots=True)
class PlyRecord:
    position: FEN; evaluation: int
    hint: Optional[Hint] = None; judgement: Optional[JudgementResult] = None


@dataclass(frozen=True, slots=True)
class DifficultyProfile:
    rating: int; skill_level: int; search_depth: int; randomization: float


@dataclass(frozen=True, slots=True)
class WeakenedChoice:
    move: Optional[MoveDecision]; substituted: bool


@dataclass
class ReviewSummary:
    side: Side; accuracy: Optional[float]
    counts: Dict[Judgement, int]; plies_reviewed: int
    samples: List[float] = field(default_factory=list, repr=False)


@dataclass(frozen=True, slots=True)
class MoveContext:
    """Everything the judgement heuristics may look at for one transition."""
    move_played: "MoveLike"; best_move: Optional["MoveLike"]
    eval_before: int; eval_after: int; mover: Side
    before_pct: float; after_pct: float


# --- PROTOCOLS: Abstract Interfaces for Collaborators ---
# These define the "contracts" that concrete implementations must adhere to.
# They enable dependency inversion and allow for easy faking in tests.

class MoveLike(Protocol):
    from_square: str
    to_square: str


ProgressCallback = Callable[[int, int], None]
EvaluationCallback = Callable[[int, int, bool], None]


class Heuristic(Protocol):
    """One rule in the judgement chain; returns None when it does not decide the move."""
    def apply(self, context: MoveContext) -> Optional[JudgementResult]: ...


@runtime_checkable
class EngineChannel(Protocol):
    """A single, strictly ordered conversation with one engine process."""
    name: str
    async def new_game(self) -> None: ...
    async def set_option(self, name: str, value: object) -> None: ...
    async def search(
        self, fen: FEN, depth: int, side_to_move: Side,
        on_update: Optional[Callable[[ScoreUpdate], None]] = None,
        timeout: Optional[float] = None,
    ) -> SearchOutcome: ...
    async def close(self) -> None: ...


@runtime_checkable
class RulesEngine(Protocol):
    """The legality collaborator consumed by the review core."""
    def fen(self) -> FEN: ...
    def turn(self) -> Side: ...
    def reset(self, fen: Optional[FEN] = None) -> None: ...
    def apply_move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> Optional[VerboseMove]: ...
    def undo(self) -> Optional[VerboseMove]: ...
    def legal_moves(self, square: Optional[str] = None) -> List[VerboseMove]: ...
    def history_verbose(self) -> List[VerboseMove]: ...
    def is_checkmate(self) -> bool: ...
    def is_stalemate(self) -> bool: ...
    def is_draw(self) -> bool: ...
    def is_check(self) -> bool: ...
    def is_threefold_repetition(self) -> bool: ...
    def is_insufficient_material(self) -> bool: ...
    def is_game_over(self) -> bool: ...

