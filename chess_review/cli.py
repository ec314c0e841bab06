# chess_review/cli.py
"""
The main entry point for the Chess Review command line.

    chess-review review game.pgn --side black --csv review.csv
    chess-review evaluate "<fen>" --depth 18
"""
import argparse
import asyncio
import functools
import sys
from pathlib import Path
from typing import List, Optional

import chess
import chess.pgn
import structlog

from chess_review.config.settings import Settings, settings as default_settings
from chess_review.containers import get_container
from chess_review.core.chess_utils import win_percent
from chess_review.core.score_interpreter import side_to_move_from_fen
from chess_review.exceptions import ChessReviewError
from chess_review.orchestration.game_session import GameSession
from chess_review.output.report_generator import ReportGenerator, format_evaluation
from chess_review.services.engine_channels import EngineChannels
from chess_review.services.uci_channel import UciEngineChannel
from chess_review.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def _channels(settings: Settings) -> EngineChannels:
    factory = functools.partial(UciEngineChannel.create, mate_base=settings.evaluation.mate_base)
    return EngineChannels(settings.engine, factory)


async def run_review(settings: Settings, pgn_path: Path, side: Optional[str], csv_path: Optional[Path]) -> int:
    with pgn_path.open(encoding="utf-8", errors="replace") as handle:
        game = chess.pgn.read_game(handle)
    if game is None:
        logger.error("No game found in PGN file.", path=str(pgn_path))
        return 1

    async with _channels(settings) as channels:
        container = get_container(settings, channels)
        session = container.resolve(GameSession)
        plies = session.load_game(game)
        reviewed_side = chess.BLACK if side == "black" else chess.WHITE

        def on_progress(ply: int, total: int) -> None:
            logger.info("Reviewed ply.", ply=ply, total=total)

        logger.info("Reviewing game.", path=str(pgn_path), plies=plies)
        summary = await session.review(reviewed_side, on_progress=on_progress)
        if summary is None:
            return 1

        report = container.resolve(ReportGenerator)
        moves = session.moves()
        print(report.render_text(summary, session.history, moves))
        if csv_path is not None:
            report.write_csv(session.history, moves, csv_path)
    return 0


async def run_evaluate(settings: Settings, fen: str, depth: int) -> int:
    try:
        side = side_to_move_from_fen(fen)
    except ValueError as e:
        logger.error("Invalid FEN.", fen=fen, error=str(e))
        return 2

    evaluation = settings.evaluation

    def describe(score: int) -> str:
        return format_evaluation(score, evaluation.mate_threshold, evaluation.mate_base)

    def on_update(update) -> None:
        logger.info("Evaluation update.", depth=update.depth, score=describe(update.score))

    async with _channels(settings) as channels:
        outcome = await channels.review.search(fen, depth, side, on_update=on_update,
                                               timeout=settings.review.request_timeout_s)
    if outcome.evaluation is None:
        print(f"No evaluation (best move: {outcome.best_move.uci if outcome.best_move else 'none'})")
        return 0
    print(f"Evaluation: {describe(outcome.evaluation)}  "
          f"White win chance: {win_percent(outcome.evaluation, evaluation.win_percent_sensitivity):.1f}%  "
          f"Best move: {outcome.best_move.uci if outcome.best_move else 'none'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Grade every move of a chess game with a UCI engine.")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings).")
    parser.add_argument("--engine", default=None, help="Path to the UCI engine executable.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write JSON log lines to this file.")
    parser.add_argument("--json-logs", action="store_true", help="Render console logs as JSON.")
    sub = parser.add_subparsers(dest="command", required=True)

    review = sub.add_parser("review", help="Review the first game of a PGN file.")
    review.add_argument("pgn", type=Path)
    review.add_argument("--side", choices=["white", "black"], default="white",
                        help="Whose moves the summary describes.")
    review.add_argument("--csv", type=Path, default=None, help="Also write a per-move CSV report.")
    review.add_argument("--depth", type=int, default=None, help="Override the review search depth.")

    evaluate = sub.add_parser("evaluate", help="Evaluate a single position.")
    evaluate.add_argument("fen")
    evaluate.add_argument("--depth", type=int, default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = default_settings.model_copy(deep=True)
    if args.engine:
        settings.engine.path = args.engine
    if getattr(args, "depth", None):
        settings.review.depth = args.depth

    setup_logging(log_level=args.log_level or settings.default_log_level, log_file=args.log_file,
                  force_json_console=args.json_logs)

    try:
        if args.command == "review":
            return asyncio.run(run_review(settings, args.pgn, args.side, args.csv))
        return asyncio.run(run_evaluate(settings, args.fen, settings.review.depth))
    except ChessReviewError as e:
        logger.error("Chess review failed.", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
