# chess_review/output/report_generator.py
"""
Provides a service for presenting a finished review as text or CSV.

This module contains the `ReportGenerator`, a "dumb" I/O service that is
responsible only for formatting and writing data. It contains no business
logic and relies on the pipeline to have filled the history store and to
provide a `ReviewSummary`.
"""

import csv
from pathlib import Path
from typing import Any, Dict, List, Sequence, TYPE_CHECKING

import structlog

from chess_review.core.chess_utils import side_name, win_percent
from chess_review.exceptions import ReportGenerationError
from chess_review.types import Judgement

if TYPE_CHECKING:
    from chess_review.config.settings import EvaluationSettings
    from chess_review.core.history_store import HistoryStore
    from chess_review.types import ReviewSummary, VerboseMove

logger = structlog.get_logger(__name__)


def format_evaluation(evaluation: int, mate_threshold: int = 5000, mate_base: int = 20000) -> str:
    """Human-readable evaluation: '+1.50', '-0.20', '#3' or '#-2'."""
    if abs(evaluation) > mate_threshold:
        distance = mate_base - abs(evaluation)
        return f"#{distance}" if evaluation > 0 else f"#-{distance}"
    return f"{evaluation / 100:+.2f}"


class ReportGenerator:
    """A stateless service that renders review results."""

    _CSV_HEADERS: List[str] = [
        "Ply", "Side", "Move", "Best", "Evaluation", "WinPercent", "Judgement", "Accuracy", "LostAdvantage",
    ]

    def __init__(self, settings: "EvaluationSettings"):
        self._settings = settings

    def format_evaluation(self, evaluation: int) -> str:
        return format_evaluation(evaluation, self._settings.mate_threshold, self._settings.mate_base)

    def build_rows(self, history: "HistoryStore", moves: Sequence["VerboseMove"]) -> List[Dict[str, Any]]:
        """One row per reviewed transition (plies 1..N)."""
        rows: List[Dict[str, Any]] = []
        for ply, move in enumerate(moves, start=1):
            record, before = history.get(ply), history.get(ply - 1)
            judgement = record.judgement
            rows.append({
                "Ply": ply,
                "Side": side_name(move.color),
                "Move": move.san,
                "Best": before.hint.uci if before.hint else "",
                "Evaluation": self.format_evaluation(record.evaluation),
                "WinPercent": f"{win_percent(record.evaluation, self._settings.win_percent_sensitivity):.1f}",
                "Judgement": judgement.category.value if judgement else "N/A",
                "Accuracy": f"{judgement.accuracy:.1f}" if judgement else "",
                "LostAdvantage": (f"{judgement.lost_advantage:.2f}"
                                  if judgement and judgement.lost_advantage is not None else ""),
            })
        return rows

    def render_text(self, summary: "ReviewSummary", history: "HistoryStore", moves: Sequence["VerboseMove"]) -> str:
        """A plain-text report: the move list with judgements, then the summary."""
        lines = []
        for row in self.build_rows(history, moves):
            number = (row["Ply"] + 1) // 2
            prefix = f"{number}." if row["Side"] == "White" else f"{number}..."
            lines.append(f"{prefix:<6}{row['Move']:<9}{row['Evaluation']:>8}  {row['Judgement']:<11}{row['Accuracy']:>6}")

        accuracy = f"{summary.accuracy:.1f}" if summary.accuracy is not None else "N/A"
        lines.append("")
        lines.append(f"{side_name(summary.side)} accuracy: {accuracy}")
        for category in Judgement:
            lines.append(f"  {category.value:<11}{summary.counts.get(category, 0):>3}")
        return "\n".join(lines)

    def write_csv(self, history: "HistoryStore", moves: Sequence["VerboseMove"], output_path: Path) -> None:
        """
        Writes the per-move review to a CSV file.

        Raises:
            ReportGenerationError: If the CSV file cannot be written.
        """
        rows = self.build_rows(history, moves)
        logger.info("Writing CSV report.", path=str(output_path), num_rows=len(rows))
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with output_path.open("w", newline="", encoding="utf-8") as csvfile:
                writer = csv.DictWriter(csvfile, fieldnames=self._CSV_HEADERS, extrasaction='ignore')
                writer.writeheader()
                writer.writerows(rows)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write CSV report to {output_path}") from e
