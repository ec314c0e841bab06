# chess_review/core/summary_aggregator.py
"""
Provides a pure function to create the final summary of a reviewed game.

Judgements and accuracy samples live on the history store, one per
transition. Only the reviewed side's own moves count towards its summary: the
opponent's moves are graded too, but they say nothing about the reviewed
player.
"""

import statistics
from collections import Counter
from typing import Dict, List, Sequence, TYPE_CHECKING

from chess_review.types import Judgement, ReviewSummary

if TYPE_CHECKING:
    from chess_review.core.history_store import HistoryStore
    from chess_review.types import Side, VerboseMove


def summarize_review(
    history: "HistoryStore", moves: Sequence["VerboseMove"], side: "Side"
) -> ReviewSummary:
    """
    Aggregates per-transition judgements into a `ReviewSummary`.

    Args:
        history: The store, with judgements recorded at plies 1..len(moves).
        moves: The moves actually played; `moves[i - 1]` leads into ply i.
        side: The side whose moves are summarized.

    Returns:
        Per-category counts and the arithmetic mean of the side's accuracy
        samples, or an accuracy of None when the side made no judged move.
    """
    counts: Dict[Judgement, int] = Counter()
    samples: List[float] = []

    for ply, move in enumerate(moves, start=1):
        if move.color != side or ply >= history.length():
            continue
        judgement = history.get(ply).judgement
        if judgement is None:
            continue
        counts[judgement.category] += 1
        samples.append(judgement.accuracy)

    accuracy = round(statistics.fmean(samples), 1) if samples else None
    return ReviewSummary(
        side=side,
        accuracy=accuracy,
        counts={category: counts.get(category, 0) for category in Judgement},
        plies_reviewed=len(samples),
        samples=samples,
    )
