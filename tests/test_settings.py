# tests/test_settings.py
import pytest
from pydantic import ValidationError

from chess_review.config.settings import EvaluationSettings, Settings
from chess_review.cli import build_parser


def test_defaults():
    settings = Settings()
    assert settings.evaluation.mate_base == 20000
    assert settings.evaluation.thresholds.mistake == 20.0
    assert settings.review.depth == 14
    assert settings.difficulty.randomization_cutoff == 1200


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("CHESS_REVIEW_REVIEW__DEPTH", "18")
    monkeypatch.setenv("CHESS_REVIEW_ENGINE__PATH", "/opt/engines/stockfish")
    settings = Settings()
    assert settings.review.depth == 18
    assert settings.engine.path == "/opt/engines/stockfish"


def test_mate_threshold_must_sit_between_lost_and_base():
    with pytest.raises(ValidationError):
        EvaluationSettings(lost_threshold=6000)


def test_cli_arguments():
    args = build_parser().parse_args(["--engine", "sf", "review", "game.pgn", "--side", "black", "--depth", "10"])
    assert args.command == "review"
    assert args.side == "black"
    assert args.depth == 10
    assert args.engine == "sf"
