# tests/output/test_report_generator.py
import csv

import chess
import pytest

from chess_review.config.settings import EvaluationSettings
from chess_review.core.chess_utils import win_percent
from chess_review.core.history_store import HistoryStore
from chess_review.core.summary_aggregator import summarize_review
from chess_review.exceptions import ReportGenerationError
from chess_review.output.report_generator import ReportGenerator, format_evaluation
from chess_review.types import Judgement, JudgementResult, MoveDecision, VerboseMove


@pytest.mark.parametrize("evaluation, expected", [
    (0, "+0.00"),
    (150, "+1.50"),
    (-20, "-0.20"),
    (19997, "#3"),
    (-19998, "#-2"),
])
def test_format_evaluation(evaluation, expected):
    assert format_evaluation(evaluation) == expected


def test_format_evaluation_follows_configured_mate_encoding():
    assert format_evaluation(9997, mate_threshold=5000, mate_base=10000) == "#3"
    assert format_evaluation(-9999, mate_threshold=5000, mate_base=10000) == "#-1"


@pytest.fixture
def reviewed():
    history = HistoryStore()
    moves = [VerboseMove("e2", "e4", chess.WHITE, "e4"), VerboseMove("e7", "e5", chess.BLACK, "e5")]
    history.append("fen-1", 30)
    history.append("fen-2", 25)
    history.set_hint(0, MoveDecision("d2", "d4"))
    history.set_judgement(1, JudgementResult(Judgement.EXCELLENT, 98.7, 1.3))
    history.set_judgement(2, JudgementResult(Judgement.BEST, 100.0, -0.5))
    return history, moves


def test_build_rows(reviewed):
    history, moves = reviewed
    rows = ReportGenerator(EvaluationSettings()).build_rows(history, moves)

    assert len(rows) == 2
    assert rows[0]["Move"] == "e4"
    assert rows[0]["Best"] == "d2d4"
    assert rows[0]["Judgement"] == "Excellent"
    assert rows[0]["Accuracy"] == "98.7"
    assert rows[1]["Side"] == "Black"
    assert rows[1]["Best"] == ""


def test_render_text(reviewed):
    history, moves = reviewed
    summary = summarize_review(history, moves, chess.WHITE)

    text = ReportGenerator(EvaluationSettings()).render_text(summary, history, moves)

    assert "1.    e4" in text
    assert "1...  e5" in text
    assert "White accuracy: 98.7" in text


def test_write_csv(reviewed, tmp_path):
    history, moves = reviewed
    path = tmp_path / "out" / "review.csv"

    ReportGenerator(EvaluationSettings()).write_csv(history, moves, path)

    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["Move"] for row in rows] == ["e4", "e5"]
    assert rows[1]["Judgement"] == "Best"


def test_write_csv_failure(reviewed, tmp_path):
    history, moves = reviewed
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises(ReportGenerationError):
        ReportGenerator(EvaluationSettings()).write_csv(history, moves, blocker / "review.csv")


def test_rows_use_configured_evaluation_settings():
    history = HistoryStore()
    history.append("fen-1", 9997)
    moves = [VerboseMove("d8", "h4", chess.BLACK, "Qh4")]
    settings = EvaluationSettings(mate_base=10000, mate_threshold=5000, win_percent_sensitivity=0.001)

    rows = ReportGenerator(settings).build_rows(history, moves)

    assert rows[0]["Evaluation"] == "#3"
    assert rows[0]["WinPercent"] == f"{win_percent(9997, k=0.001):.1f}"
