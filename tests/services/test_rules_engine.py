# tests/services/test_rules_engine.py
import chess
import pytest

from chess_review.services.rules_engine import ChessRulesEngine


@pytest.fixture
def rules():
    return ChessRulesEngine()


def test_apply_and_undo(rules):
    played = rules.apply_move("e2", "e4")
    assert played.san == "e4"
    assert played.color == chess.WHITE
    assert rules.turn() == chess.BLACK

    assert rules.undo() == played
    assert rules.fen() == chess.STARTING_FEN
    assert rules.undo() is None


@pytest.mark.parametrize("source, target", [("e2", "e5"), ("e7", "e5"), ("z9", "e4"), ("e2", "")])
def test_illegal_moves_are_rejected(rules, source, target):
    assert rules.apply_move(source, target) is None
    assert rules.history_verbose() == []


def test_san_carries_mate_marker(rules):
    for source, target in [("f2", "f3"), ("e7", "e5"), ("g2", "g4"), ("d8", "h4")]:
        last = rules.apply_move(source, target)
    assert last.san == "Qh4#"
    assert rules.is_checkmate()
    assert rules.is_game_over()
    assert [m.san for m in rules.history_verbose()] == ["f3", "e5", "g4", "Qh4#"]


def test_promotion_defaults_to_queen():
    rules = ChessRulesEngine("8/4P3/8/8/8/k7/8/4K3 w - - 0 1")
    played = rules.apply_move("e7", "e8")
    assert played.promotion == "q"
    assert played.san.startswith("e8=Q")


def test_under_promotion():
    rules = ChessRulesEngine("8/4P3/8/8/8/k7/8/4K3 w - - 0 1")
    assert rules.apply_move("e7", "e8", "n").san == "e8=N"


def test_legal_moves(rules):
    assert len(rules.legal_moves()) == 20
    knight_moves = {m.uci for m in rules.legal_moves("g1")}
    assert knight_moves == {"g1f3", "g1h3"}


def test_reset_to_position(rules):
    rules.apply_move("e2", "e4")
    fen = "4k3/8/8/8/8/8/8/4K2R w K - 0 1"
    rules.reset(fen)
    assert rules.fen() == fen
    assert rules.history_verbose() == []


def test_threefold_repetition(rules):
    shuffle = [("g1", "f3"), ("g8", "f6"), ("f3", "g1"), ("f6", "g8")] * 2
    for source, target in shuffle:
        rules.apply_move(source, target)
    assert rules.is_threefold_repetition()
    assert rules.is_draw()
