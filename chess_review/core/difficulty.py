# chess_review/core/difficulty.py
"""
Maps a target rating to engine strength for live play.

Even at its lowest skill level a search engine plays far above a beginner's
rating, so the weakest bands add an independent randomization layer: the
`MoveWeakener` sometimes throws the engine's choice away and plays a random
legal move instead. The weakener is a pure strategy over an injected random
source so it can be exercised with a seeded generator.
"""

import bisect
import random
from typing import Callable, Optional, Sequence, TYPE_CHECKING

import structlog

from chess_review.types import DifficultyProfile, MoveDecision, WeakenedChoice

if TYPE_CHECKING:
    from chess_review.config.settings import DifficultySettings
    from chess_review.types import VerboseMove

logger = structlog.get_logger(__name__)


def depth_for_skill(skill_level: int) -> int:
    """Search depth per skill band: easy, medium, hard, impossible."""
    if skill_level < 5:
        return 1
    elif skill_level < 10:
        return 3
    elif skill_level < 15:
        return 7
    else:
        return 10


class DifficultyProfileResolver:
    """A table-driven, monotonic rating-to-profile lookup."""

    def __init__(self, settings: "DifficultySettings"):
        self._settings = settings
        self._floors = [band.rating_floor for band in settings.bands]

    @property
    def randomization_cutoff(self) -> int:
        return self._settings.randomization_cutoff

    def resolve(self, rating: Optional[int] = None) -> DifficultyProfile:
        """
        Returns the profile of the highest band whose floor is at or below `rating`.

        Ratings below the lowest floor get the lowest band.
        """
        if rating is None:
            rating = self._settings.default_rating
        index = max(0, bisect.bisect_right(self._floors, rating) - 1)
        band = self._settings.bands[index]
        return DifficultyProfile(
            rating=rating,
            skill_level=band.skill_level,
            search_depth=depth_for_skill(band.skill_level),
            randomization=band.randomization,
        )


class MoveWeakener:
    """Randomly substitutes the engine's move with a uniformly chosen legal move."""

    def __init__(self, randomization: float, rng: Optional[random.Random] = None):
        if not 0.0 <= randomization <= 1.0:
            raise ValueError(f"randomization must be within [0, 1], got {randomization}")
        self.randomization = randomization
        self._rng = rng or random.Random()

    def choose(
        self,
        engine_move: Optional[MoveDecision],
        legal_moves: Sequence["VerboseMove"],
        is_applicable: Callable[["VerboseMove"], bool],
    ) -> WeakenedChoice:
        """
        Decides which move to actually play.

        Args:
            engine_move: The engine's best move, or None in a terminal position.
            legal_moves: The position's legal moves from the rules engine.
            is_applicable: Whether a candidate can really be applied; candidates it
                rejects (representation mismatches) are discarded and redrawn.

        Returns:
            The move to play and whether it replaced the engine's choice. When
            every candidate is rejected the engine's move stands.
        """
        if self.randomization <= 0.0 or not legal_moves:
            return WeakenedChoice(move=engine_move, substituted=False)
        if self._rng.random() >= self.randomization:
            return WeakenedChoice(move=engine_move, substituted=False)

        candidates = list(legal_moves)
        while candidates:
            candidate = candidates.pop(self._rng.randrange(len(candidates)))
            if is_applicable(candidate):
                move = MoveDecision(candidate.from_square, candidate.to_square, candidate.promotion)
                logger.debug("Substituting random move for engine move.",
                             engine_move=engine_move.uci if engine_move else None, played=move.uci)
                return WeakenedChoice(move=move, substituted=True)
            logger.debug("Discarding inapplicable random candidate.", candidate=candidate.uci)

        logger.warning("No applicable random candidate; keeping engine move.",
                       candidates=len(legal_moves))
        return WeakenedChoice(move=engine_move, substituted=False)
