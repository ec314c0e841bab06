# chess_review/orchestration/game_session.py
"""
Defines the `GameSession`, the application-facing controller for one human
versus engine game and its post-game review.

The session owns the history store and the rules engine, talks to the live
engine channel for the opponent's moves and to the review channel for the
batch review, and guards both with epoch counters so that replies which arrive
after a new game (or after leaving a review) are dropped.
"""

import random
from typing import List, Optional, TYPE_CHECKING

import chess
import chess.pgn
import structlog

from chess_review.core.chess_utils import determine_game_status, side_name
from chess_review.core.difficulty import MoveWeakener
from chess_review.core.history_store import HistoryStore
from chess_review.exceptions import AnalysisCancelledError, ReviewError
from chess_review.orchestration.review_pipeline import BatchAnalysisPipeline
from chess_review.tracing import EpochCounter, bound_epoch
from chess_review.types import (FEN, DifficultyProfile, GameStatus, MoveDecision,
                                ReviewSummary, VerboseMove)
from chess_review.utils import metrics

if TYPE_CHECKING:
    from chess_review.config.settings import Settings
    from chess_review.core.difficulty import DifficultyProfileResolver
    from chess_review.core.move_classifier import JudgementClassifier
    from chess_review.types import (EngineChannel, EvaluationCallback,
                                    ProgressCallback, RulesEngine, ScoreUpdate,
                                    Side)

logger = structlog.get_logger(__name__)


class GameSession:
    """Live play, navigation, undo and review for a single game at a time."""

    def __init__(
        self,
        settings: "Settings",
        rules: "RulesEngine",
        resolver: "DifficultyProfileResolver",
        classifier: "JudgementClassifier",
        live_channel: "EngineChannel",
        review_channel: "EngineChannel",
        rng: Optional[random.Random] = None,
        on_evaluation: Optional["EvaluationCallback"] = None,
    ):
        self._settings = settings
        self._rules = rules
        self._resolver = resolver
        self._classifier = classifier
        self._live = live_channel
        self._review = review_channel
        self._rng = rng or random.Random()
        self._on_evaluation = on_evaluation

        self.history = HistoryStore(rules.fen())
        self._live_epochs = EpochCounter()
        self._review_epochs = EpochCounter()
        self._viewing_index = 0
        self._active = False
        self._resigned = False
        self._player_side: "Side" = chess.WHITE
        self.profile: DifficultyProfile = resolver.resolve(None)
        self._weakener = MoveWeakener(self.profile.randomization, self._rng)
        self.last_review: Optional[ReviewSummary] = None

    # --- State accessors ---

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def player_side(self) -> "Side":
        return self._player_side

    @property
    def viewing_index(self) -> int:
        return self._viewing_index

    @property
    def viewing_position(self) -> FEN:
        return self.history.get(self._viewing_index).position

    @property
    def is_viewing_latest(self) -> bool:
        return self._viewing_index == self.history.last_ply

    @property
    def side_to_move(self) -> "Side":
        return self._rules.turn()

    def moves(self) -> List[VerboseMove]:
        """The moves played so far; `moves()[i - 1]` leads into ply i."""
        return self._rules.history_verbose()

    def status(self) -> GameStatus:
        if not self._active and not self._resigned and not self._rules.history_verbose():
            return GameStatus.NOT_STARTED
        return determine_game_status(self._rules, resigned=self._resigned)

    def _refresh_status(self) -> GameStatus:
        """Ends the game when the position is terminal."""
        status = self.status()
        if self._active and status.is_terminal:
            self._active = False
            logger.info("Game over.", status=status.value, side_to_move=side_name(self._rules.turn()))
        return status

    # --- Game lifecycle ---

    async def start_new_game(self, player_side: "Side" = chess.WHITE, rating: Optional[int] = None,
                             start_fen: Optional[FEN] = None) -> None:
        """
        Starts a fresh game, cancelling any in-flight engine reply or review.

        The engine moves first when the player takes Black.
        """
        if self._active:
            logger.warning("Ignoring new game request while a game is in progress.")
            return

        self._live_epochs.advance(reason="new game")
        self._review_epochs.advance(reason="new game")
        self._rules.reset(start_fen)
        self.history.reset(self._rules.fen())
        self._viewing_index = 0
        self._resigned = False
        self._player_side = player_side
        self.last_review = None

        self.profile = self._resolver.resolve(rating)
        self._weakener = MoveWeakener(self.profile.randomization, self._rng)
        logger.info("Starting new game.", player=side_name(player_side), rating=self.profile.rating,
                    skill_level=self.profile.skill_level, depth=self.profile.search_depth,
                    randomization=self.profile.randomization)

        await self._live.new_game()
        await self._live.set_option("Skill Level", self.profile.skill_level)
        self._active = True

        if self._rules.turn() != player_side:
            await self.request_engine_move()

    def resign(self) -> bool:
        if not self._active:
            return False
        self._active = False
        self._resigned = True
        self._live_epochs.advance(reason="resignation")
        logger.info("Player resigned.", player=side_name(self._player_side))
        return True

    def load_game(self, game: "chess.pgn.Game") -> int:
        """
        Replays a PGN mainline into the session for review only.

        Returns:
            The number of plies loaded.
        """
        self._live_epochs.advance(reason="game loaded")
        self._review_epochs.advance(reason="game loaded")
        self._active = False
        self._resigned = False
        self.last_review = None
        self._rules.reset(game.board().fen())
        self.history.reset(self._rules.fen())

        for move in game.mainline_moves():
            promotion = chess.piece_symbol(move.promotion) if move.promotion else None
            played = self._rules.apply_move(chess.square_name(move.from_square),
                                            chess.square_name(move.to_square), promotion)
            if played is None:
                raise ReviewError(f"Illegal move in game record: {move.uci()}")
            self.history.append(self._rules.fen(), self.history.get(self.history.last_ply).evaluation)

        self._viewing_index = self.history.last_ply
        return self.history.last_ply

    # --- Moves ---

    def play_move(self, from_square: str, to_square: str, promotion: Optional[str] = "q") -> Optional[VerboseMove]:
        """
        Plays the human's move.

        Returns:
            The move played, or None if the game is not running, an earlier
            position is being viewed, it is not the player's turn, or the move
            is illegal.
        """
        if not self._active or not self.is_viewing_latest:
            return None
        if self._rules.turn() != self._player_side:
            return None

        played = self._rules.apply_move(from_square, to_square, promotion)
        if played is None:
            return None
        self._record_position()
        self._refresh_status()
        return played

    def _record_position(self) -> None:
        # Until the engine reports on the new position, carry the last estimate forward.
        estimate = self.history.get(self.history.last_ply).evaluation
        self._viewing_index = self.history.append(self._rules.fen(), estimate)

    def _report_evaluation(self, ply: int, evaluation: int, final: bool) -> None:
        metrics.LIVE_EVALUATION.set(evaluation)
        if self._on_evaluation is not None:
            self._on_evaluation(ply, evaluation, final)

    async def request_engine_move(self) -> Optional[VerboseMove]:
        """
        Asks the live engine for its reply and plays it.

        Returns:
            The engine's move, or None when the game is over, the engine found
            no move, or the game was restarted while the engine was thinking.
        """
        if not self._active or self._rules.is_game_over():
            return None

        token = self._live_epochs.token()
        ply = self.history.last_ply
        fen = self._rules.fen()

        def on_update(update: "ScoreUpdate") -> None:
            if token.is_current:
                self._report_evaluation(ply, update.score, final=False)

        with bound_epoch(token, self._live.name):
            outcome = await self._live.search(
                fen,
                self.profile.search_depth,
                self._rules.turn(),
                on_update=on_update,
                timeout=self._settings.engine.live_request_timeout_s,
            )
            if not token.is_current:
                logger.info("Discarding engine reply from a superseded game.")
                return None

            if outcome.evaluation is not None and ply > 0:
                self.history.set_evaluation(ply, outcome.evaluation)
                self._report_evaluation(ply, outcome.evaluation, final=True)

            choice = self._weakener.choose(outcome.best_move, self._rules.legal_moves(), self._is_applicable)
            if choice.move is None:
                logger.info("Engine reports no legal move.")
                self._refresh_status()
                return None
            if choice.substituted:
                metrics.MOVES_SUBSTITUTED_TOTAL.inc()

            played = self._apply(choice.move)
            if played is None:
                logger.error("Engine move rejected by the rules engine.", move=choice.move.uci)
                return None
            self._record_position()
            self._refresh_status()
            logger.debug("Engine played.", move=played.san, substituted=choice.substituted)
            return played

    def _apply(self, move: MoveDecision) -> Optional[VerboseMove]:
        return self._rules.apply_move(move.from_square, move.to_square, move.promotion)

    def _is_applicable(self, candidate: VerboseMove) -> bool:
        """Tries a candidate on the rules engine and takes it back again."""
        if self._rules.apply_move(candidate.from_square, candidate.to_square, candidate.promotion) is None:
            return False
        self._rules.undo()
        return True

    def undo(self) -> bool:
        """
        Takes back the player's last move and the engine's reply.

        Only allowed during a game, while viewing the latest position, after
        both sides have moved, and on the player's turn.
        """
        if not self._active or not self.is_viewing_latest:
            return False
        if len(self._rules.history_verbose()) < 2 or self._rules.turn() != self._player_side:
            return False
        if not self.history.truncate_last_two():
            return False

        self._rules.undo()
        self._rules.undo()
        self._viewing_index = self.history.last_ply
        return True

    # --- Navigation ---

    def navigate_back(self) -> int:
        if self._viewing_index > 0:
            self._viewing_index -= 1
        return self._viewing_index

    def navigate_forward(self) -> int:
        if self._viewing_index < self.history.last_ply:
            self._viewing_index += 1
        return self._viewing_index

    def navigate_first(self) -> int:
        self._viewing_index = 0
        return self._viewing_index

    def navigate_last(self) -> int:
        self._viewing_index = self.history.last_ply
        return self._viewing_index

    # --- Review ---

    def create_review(self, side: Optional["Side"] = None,
                      on_progress: Optional["ProgressCallback"] = None) -> BatchAnalysisPipeline:
        """Builds a pipeline for the current game under a fresh review epoch."""
        if self._active:
            raise ReviewError("A game in progress cannot be reviewed.")
        return BatchAnalysisPipeline(
            channel=self._review,
            history=self.history,
            classifier=self._classifier,
            moves=self.moves(),
            reviewed_side=self._player_side if side is None else side,
            epoch=self._review_epochs.advance(reason="review started"),
            review_settings=self._settings.review,
            evaluation_settings=self._settings.evaluation,
            on_progress=on_progress,
        )

    async def review(self, side: Optional["Side"] = None,
                     on_progress: Optional["ProgressCallback"] = None) -> Optional[ReviewSummary]:
        """
        Reviews the finished game.

        Returns:
            The summary, or None if the review was cancelled by a new game or
            by leaving the review. Engine failures propagate.
        """
        pipeline = self.create_review(side, on_progress)
        try:
            self.last_review = await pipeline.run()
        except AnalysisCancelledError:
            return None
        return self.last_review

    def exit_review(self) -> None:
        """Leaves the review: cancels any run and returns to an empty board."""
        self._review_epochs.advance(reason="review exited")
        self._live_epochs.advance(reason="review exited")
        self._active = False
        self._resigned = False
        self._rules.reset()
        self.history.reset(self._rules.fen())
        self._viewing_index = 0
        self.last_review = None
