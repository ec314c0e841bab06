# tests/services/test_uci_channel.py
import asyncio

import chess
import pytest

from chess_review.config.settings import EngineSettings
from chess_review.exceptions import (EngineAnalysisError, EngineDisconnectedError,
                                     EngineInitializationError, EngineTimeoutError)
from chess_review.services.uci_channel import UciEngineChannel
from chess_review.types import MoveDecision

AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


@pytest.mark.asyncio
async def test_handshake_sets_options_and_waits_for_ready(make_process, engine_settings):
    process = make_process()
    channel = UciEngineChannel(process, "review", engine_settings)

    await channel._handshake()

    assert process.commands == [
        "uci",
        "setoption name Threads value 1",
        "setoption name Hash value 16",
        "isready",
    ]


@pytest.mark.asyncio
async def test_handshake_times_out_without_uciok(make_process):
    process = make_process(responses={"uci": ["id name Silent"]})
    channel = UciEngineChannel(process, "review", EngineSettings(handshake_timeout_s=0.05))
    with pytest.raises(EngineTimeoutError):
        await channel._handshake()


@pytest.mark.asyncio
async def test_create_rejects_missing_executable():
    with pytest.raises(EngineInitializationError):
        await UciEngineChannel.create(EngineSettings(path="/nonexistent/path/to/engine"), "live")


@pytest.mark.asyncio
async def test_search_reports_provisional_and_final_scores(make_process, engine_settings):
    process = make_process(go_replies=[[
        "info string NNUE evaluation enabled",
        "info depth 1 seldepth 1 score cp 20 nodes 20 pv e7e5",
        "info depth 2 seldepth 2 score cp -35 nodes 80 pv c7c5",
        "info depth 2 multipv 2 score cp -90 pv a7a6",
        "bestmove c7c5 ponder g1f3",
    ]])
    channel = UciEngineChannel(process, "review", engine_settings)
    updates = []

    outcome = await channel.search(AFTER_E4, 2, chess.BLACK, on_update=lambda u: updates.append(u.score))

    assert process.commands[-2:] == [f"position fen {AFTER_E4}", "go depth 2"]
    # Black reports its own view; stored scores are White's.
    assert updates == [-20, 35]
    assert outcome.evaluation == 35
    assert outcome.reached_depth
    assert outcome.best_move == MoveDecision("c7", "c5")


@pytest.mark.asyncio
async def test_search_terminal_position(make_process, engine_settings):
    process = make_process(go_replies=[["info depth 0 score mate 0", "bestmove (none)"]])
    channel = UciEngineChannel(process, "review", engine_settings)

    fools_mate = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
    outcome = await channel.search(fools_mate, 14, chess.WHITE)

    assert outcome.best_move is None
    assert outcome.evaluation == -20000


@pytest.mark.asyncio
async def test_timeout_resynchronizes_before_next_search(make_process):
    process = make_process(
        responses={"stop": ["info depth 9 score cp 777", "bestmove a2a3"]},
        go_replies=[
            ["info depth 1 score cp 10"],
            ["info depth 1 score cp 44", "bestmove g1f3"],
        ],
    )
    channel = UciEngineChannel(process, "review", EngineSettings(handshake_timeout_s=1.0))

    with pytest.raises(EngineTimeoutError):
        await channel.search(chess.STARTING_FEN, 1, chess.WHITE, timeout=0.05)

    outcome = await channel.search(chess.STARTING_FEN, 1, chess.WHITE, timeout=1.0)

    assert "stop" in process.commands
    assert process.commands.index("stop") < process.commands.index("isready")
    # The stale bestmove from the stalled search must not leak into this one.
    assert outcome.best_move == MoveDecision("g1", "f3")
    assert outcome.evaluation == 44


@pytest.mark.asyncio
async def test_disconnect_fails_the_channel(make_process, engine_settings, eof_marker):
    process = make_process(go_replies=[["info depth 1 score cp 10", eof_marker]])
    channel = UciEngineChannel(process, "review", engine_settings)

    with pytest.raises(EngineDisconnectedError):
        await channel.search(chess.STARTING_FEN, 5, chess.WHITE)
    with pytest.raises(EngineAnalysisError):
        await channel.search(chess.STARTING_FEN, 5, chess.WHITE)


@pytest.mark.asyncio
async def test_broken_pipe_is_a_disconnect(make_process, engine_settings):
    process = make_process()
    process.stdin.broken = True
    channel = UciEngineChannel(process, "review", engine_settings)
    with pytest.raises(EngineDisconnectedError):
        await channel.set_option("Skill Level", 3)


@pytest.mark.asyncio
async def test_only_one_search_is_outstanding(make_process, engine_settings):
    process = make_process()
    channel = UciEngineChannel(process, "review", engine_settings)

    first = asyncio.create_task(channel.search(chess.STARTING_FEN, 1, chess.WHITE))
    second = asyncio.create_task(channel.search(AFTER_E4, 1, chess.BLACK))
    await asyncio.sleep(0.01)

    # The second request waits for the first response before it is written.
    assert [c for c in process.commands if c.startswith("go")] == ["go depth 1"]

    process.emit("info depth 1 score cp 25", "bestmove e2e4")
    assert (await first).best_move == MoveDecision("e2", "e4")
    await asyncio.sleep(0.01)
    assert [c for c in process.commands if c.startswith("go")] == ["go depth 1", "go depth 1"]

    process.emit("info depth 1 score cp 30", "bestmove e7e5")
    outcome = await second
    assert outcome.best_move == MoveDecision("e7", "e5")
    assert outcome.evaluation == -30


@pytest.mark.asyncio
async def test_new_game_and_options(make_process, engine_settings):
    process = make_process()
    channel = UciEngineChannel(process, "live", engine_settings)

    await channel.new_game()
    await channel.set_option("Skill Level", 5)

    assert process.commands == ["ucinewgame", "isready", "setoption name Skill Level value 5"]


@pytest.mark.asyncio
async def test_close_sends_quit_once(make_process, engine_settings):
    process = make_process()
    channel = UciEngineChannel(process, "live", engine_settings)

    await channel.close()
    await channel.close()

    assert process.commands == ["quit"]
    assert not process.killed
    with pytest.raises(EngineAnalysisError):
        await channel.search(chess.STARTING_FEN, 1, chess.WHITE)


@pytest.mark.asyncio
async def test_send_writes_raw_commands(make_process, engine_settings):
    process = make_process()
    channel = UciEngineChannel(process, "live", engine_settings)
    await channel.send("debug on")
    assert process.commands == ["debug on"]


@pytest.mark.asyncio
async def test_stale_bestmove_after_readyok_is_not_misattributed(make_process):
    process = make_process(go_replies=[
        ["info depth 1 score cp 10"],
        ["info depth 1 score cp 44", "bestmove g1f3"],
    ])
    pending = {"stale": True}

    def flush_stale():
        if pending.pop("stale", False):
            process.emit("bestmove a2a3")

    # The engine answers 'isready' at once and only then finishes the old search.
    process.responses["stop"] = lambda: asyncio.get_running_loop().call_later(0.01, flush_stale)
    process.responses["isready"] = lambda: (process.emit("readyok"), flush_stale())
    channel = UciEngineChannel(process, "review", EngineSettings(handshake_timeout_s=1.0))

    with pytest.raises(EngineTimeoutError):
        await channel.search(chess.STARTING_FEN, 1, chess.WHITE, timeout=0.05)

    outcome = await channel.search(chess.STARTING_FEN, 1, chess.WHITE, timeout=1.0)

    assert process.commands.index("stop") < process.commands.index("isready")
    assert outcome.best_move == MoveDecision("g1", "f3")
    assert outcome.evaluation == 44


@pytest.mark.asyncio
async def test_missed_readyok_resyncs_without_stop(make_process):
    process = make_process(responses={"isready": []},
                           go_replies=[["info depth 1 score cp 12", "bestmove d2d4"]])
    channel = UciEngineChannel(process, "live", EngineSettings(handshake_timeout_s=0.05))

    with pytest.raises(EngineTimeoutError):
        await channel.new_game()

    process.responses["isready"] = ["readyok"]
    outcome = await channel.search(chess.STARTING_FEN, 1, chess.WHITE, timeout=1.0)

    assert "stop" not in process.commands
    assert process.commands.count("isready") == 2
    assert outcome.best_move == MoveDecision("d2", "d4")


@pytest.mark.asyncio
async def test_close_kills_and_reaps_a_hung_engine(make_process, engine_settings):
    process = make_process(exits_on_quit=False)
    channel = UciEngineChannel(process, "live", engine_settings)

    await channel.close()

    assert process.commands == ["quit"]
    assert process.killed
    assert process.returncode == -9
