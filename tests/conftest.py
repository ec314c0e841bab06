# tests/conftest.py
import asyncio
from typing import Callable, List, Optional, Sequence, Union

import pytest

from chess_review.config.settings import EngineSettings, EvaluationSettings, Settings
from chess_review.core.move_classifier import JudgementClassifier
from chess_review.types import ScoreUpdate, SearchOutcome, Terminal

EOF = object()


class FakeStdin:
    """Records the commands written to the engine and triggers the scripted replies."""

    def __init__(self, on_command: Callable[[str], None]):
        self.commands: List[str] = []
        self.broken = False
        self._on_command = on_command

    def write(self, data: bytes) -> None:
        if self.broken:
            raise BrokenPipeError()
        for line in data.decode().splitlines():
            self.commands.append(line)
            self._on_command(line)

    async def drain(self) -> None:
        pass


class FakeUciProcess:
    """
    Stands in for an engine subprocess. Replies are fed into a real
    `asyncio.StreamReader`, so it must be created inside a running loop.

    Each `go` pops the next entry of `go_replies`; `EOF` in a reply closes the
    output stream. A response may also be a callable, run when its command
    arrives. With `exits_on_quit=False` the process only ends when killed.
    """

    def __init__(self, responses: Optional[dict] = None, go_replies: Optional[List[list]] = None,
                 exits_on_quit: bool = True):
        self.stdout = asyncio.StreamReader()
        self.responses = {"uci": ["id name FakeFish", "option name Hash type spin", "uciok"],
                          "isready": ["readyok"]}
        self.responses.update(responses or {})
        self.go_replies = list(go_replies or [])
        self.stdin = FakeStdin(self._respond)
        self.returncode: Optional[int] = None
        self.killed = False
        self.exits_on_quit = exits_on_quit
        self._exited = asyncio.Event()

    @property
    def commands(self) -> List[str]:
        return self.stdin.commands

    def emit(self, *lines: Union[str, object]) -> None:
        for line in lines:
            if line is EOF:
                self.stdout.feed_eof()
            else:
                self.stdout.feed_data(f"{line}\n".encode())

    def _respond(self, command: str) -> None:
        keyword = command.split()[0]
        if keyword == "go":
            self.emit(*(self.go_replies.pop(0) if self.go_replies else []))
        elif keyword == "quit":
            if self.exits_on_quit:
                self.returncode = 0
                self._exited.set()
        else:
            response = self.responses.get(keyword, [])
            if callable(response):
                response()
            else:
                self.emit(*response)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9
        self._exited.set()


class FakeChannel:
    """
    An in-memory `EngineChannel` answering searches from a script.

    `outcomes` are returned in request order; an exception instance in the
    script is raised instead. `on_search(index)` runs while a request is in flight.
    """

    def __init__(self, outcomes: Sequence[Union[SearchOutcome, BaseException]] = (), name: str = "review"):
        self.name = name
        self._outcomes = list(outcomes)
        self.requests: List[tuple] = []
        self.options: dict = {}
        self.new_games = 0
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_search: Optional[Callable[[int], None]] = None

    async def new_game(self) -> None:
        self.new_games += 1

    async def set_option(self, name: str, value: object) -> None:
        self.options[name] = value

    async def search(self, fen, depth, side_to_move, on_update=None, timeout=None) -> SearchOutcome:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            index = len(self.requests)
            self.requests.append((fen, depth, side_to_move))
            await asyncio.sleep(0)
            if self.on_search is not None:
                self.on_search(index)
            outcome = self._outcomes[index] if index < len(self._outcomes) else SearchOutcome(Terminal(), None, None, False)
            if isinstance(outcome, BaseException):
                raise outcome
            if on_update is not None and outcome.evaluation is not None:
                on_update(ScoreUpdate(depth=depth, raw_score=outcome.evaluation, mate_distance=None,
                                      score=outcome.evaluation))
            return outcome
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_process():
    return FakeUciProcess


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def eof_marker():
    return EOF


@pytest.fixture
def app_settings():
    return Settings()


@pytest.fixture
def engine_settings():
    return EngineSettings(handshake_timeout_s=1.0, live_request_timeout_s=1.0)


@pytest.fixture
def evaluation_settings():
    return EvaluationSettings()


@pytest.fixture
def classifier(evaluation_settings):
    return JudgementClassifier(evaluation_settings)
