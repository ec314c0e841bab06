# chess_review/services/uci_channel.py
"""
Provides a concrete implementation of the `EngineChannel` protocol for UCI engines.

This module acts as an adapter to a live engine subprocess speaking the UCI
text protocol. It owns the process's pipes, serializes every conversation with
it, and translates its output into the application's typed engine events via
the score interpreter.

The protocol has no request ids, so ordering is the only correlation there is:
the channel allows exactly one outstanding search at a time, and a search that
is abandoned (timeout or cancellation) leaves the channel marked dirty until
`stop` has drawn out its `bestmove` and an `isready` round trip has flushed
the rest of the stale output.
"""

import asyncio
import shutil
import time
from pathlib import Path
from typing import Any, Callable, Optional, TYPE_CHECKING

import structlog

from chess_review.core.score_interpreter import SearchAccumulator, parse_engine_line
from chess_review.exceptions import (EngineAnalysisError,
                                     EngineDisconnectedError,
                                     EngineInitializationError,
                                     EngineTimeoutError)
from chess_review.types import (FEN, EngineChannel, ScoreUpdate,
                                SearchOutcome, Side, Unrecognized)
from chess_review.utils import metrics

if TYPE_CHECKING:
    from chess_review.config.settings import EngineSettings

logger = structlog.get_logger(__name__)


class UciEngineChannel(EngineChannel):
    """
    A strictly ordered, asynchronous conversation with one UCI engine process.

    Sending never blocks the event loop, and responses are consumed on the same
    loop as the rest of the application, so no state is shared across threads.
    """

    def __init__(self, process: Any, name: str, settings: "EngineSettings", mate_base: int = 20000):
        """
        Private constructor. Use the `create` class method for safe instantiation.

        Args:
            process: A started process exposing `stdin` (writer), `stdout`
                     (`asyncio.StreamReader`), `wait()` and `kill()`.
            name: A label for this channel, e.g. "live" or "review".
            settings: Engine configuration (timeouts, options).
            mate_base: Magnitude of the mate encoding passed to the interpreter.
        """
        self.name = name
        self._process = process
        self._settings = settings
        self._mate_base = mate_base
        self._lock = asyncio.Lock()  # One outstanding request per channel
        self._needs_resync = False
        self._search_abandoned = False  # a "go" whose "bestmove" was never read
        self._failed = False
        self._is_closed = False

    @classmethod
    async def create(cls, settings: "EngineSettings", name: str, mate_base: int = 20000) -> "UciEngineChannel":
        """Starts the engine process and completes the UCI handshake."""
        executable = shutil.which(settings.path) or settings.path
        if not Path(executable).is_file():
            raise EngineInitializationError(f"Engine executable not found at {settings.path}")

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise EngineInitializationError(f"Failed to start engine process: {e}") from e

        channel = cls(process, name, settings, mate_base)
        try:
            await channel._handshake()
        except EngineAnalysisError as e:
            await channel.close()
            raise EngineInitializationError(f"Engine did not complete the UCI handshake: {e}", engine=channel) from e

        logger.info("Engine channel ready.", channel=name, path=executable)
        return channel

    # --- Low-level I/O ---

    def _ensure_engine_ready(self) -> None:
        """Raises an error if the channel is closed or the engine has died."""
        if self._is_closed or self._failed:
            raise EngineAnalysisError(f"Engine channel '{self.name}' is closed or the engine has failed.", engine=self)

    async def _write(self, command: str) -> None:
        logger.debug("Sending engine command.", channel=self.name, command=command)
        try:
            self._process.stdin.write(f"{command}\n".encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            self._failed = True
            raise EngineDisconnectedError(f"Engine channel '{self.name}' lost its input pipe.", engine=self) from e

    async def _send(self, command: str) -> None:
        self._ensure_engine_ready()
        await self._write(command)

    async def _read_line(self) -> str:
        raw = await self._process.stdout.readline()
        if not raw:
            self._failed = True
            logger.error("Engine closed its output stream.", channel=self.name)
            raise EngineDisconnectedError(f"Engine channel '{self.name}' disconnected.", engine=self)
        return raw.decode(errors="replace").strip()

    async def _read_until(self, token: str) -> None:
        while True:
            line = await self._read_line()
            if line.split()[:1] == [token]:
                return

    async def _wait_for(self, token: str, timeout: Optional[float]) -> None:
        try:
            await asyncio.wait_for(self._read_until(token), timeout)
        except asyncio.TimeoutError as e:
            self._needs_resync = True
            raise EngineTimeoutError(f"Timed out waiting for '{token}' on channel '{self.name}'.", engine=self) from e

    async def _handshake(self) -> None:
        timeout = self._settings.handshake_timeout_s
        await self._send("uci")
        await self._wait_for("uciok", timeout)
        await self._send(f"setoption name Threads value {self._settings.threads}")
        await self._send(f"setoption name Hash value {self._settings.hash_mb}")
        await self._send("isready")
        await self._wait_for("readyok", timeout)

    async def _resync_if_needed(self) -> None:
        """Flushes output left behind by an abandoned search or a missed 'readyok'."""
        if not self._needs_resync:
            return
        timeout = self._settings.handshake_timeout_s
        if self._search_abandoned:
            logger.warning("Stopping abandoned search before the next request.", channel=self.name)
            await self._send("stop")
            # 'isready' is answered even mid-search, so only 'bestmove' ends the old search.
            await self._wait_for("bestmove", timeout)
            self._search_abandoned = False
        await self._send("isready")
        await self._wait_for("readyok", timeout)
        self._needs_resync = False

    # --- Public commands ---

    async def new_game(self) -> None:
        """Tells the engine a new game starts and waits until it is ready."""
        async with self._lock:
            await self._resync_if_needed()
            await self._send("ucinewgame")
            await self._send("isready")
            await self._wait_for("readyok", self._settings.handshake_timeout_s)

    async def send(self, command: str) -> None:
        """Writes a raw command between requests; any reply is left unread."""
        async with self._lock:
            await self._resync_if_needed()
            await self._send(command)

    async def set_option(self, name: str, value: object) -> None:
        await self.send(f"setoption name {name} value {value}")

    async def _collect(
        self, accumulator: SearchAccumulator, side_to_move: Side,
        on_update: Optional[Callable[[ScoreUpdate], None]],
    ) -> None:
        while not accumulator.is_complete:
            line = await self._read_line()
            event = parse_engine_line(line, side_to_move, mate_base=self._mate_base)
            if isinstance(event, Unrecognized):
                metrics.ENGINE_LINES_IGNORED_TOTAL.inc()
                continue
            update = accumulator.feed(event)
            if update is not None and on_update is not None:
                on_update(update)

    async def search(
        self,
        fen: FEN,
        depth: int,
        side_to_move: Side,
        on_update: Optional[Callable[[ScoreUpdate], None]] = None,
        timeout: Optional[float] = None,
    ) -> SearchOutcome:
        """
        Searches one position to a fixed depth and waits for the engine's move.

        Args:
            fen: The position to analyze.
            depth: The requested search depth; shallower scores stay provisional.
            side_to_move: Whose perspective the engine's scores are reported from.
            on_update: Called with every primary-line score as it arrives.
            timeout: Seconds before the engine counts as stalled, or None.

        Raises:
            EngineTimeoutError: If the engine did not answer in time.
            EngineDisconnectedError: If the engine process went away.
        """
        async with self._lock:
            await self._resync_if_needed()
            accumulator = SearchAccumulator(depth)
            metrics.ENGINE_REQUESTS_TOTAL.labels(channel=self.name).inc()
            started = time.perf_counter()

            await self._send(f"position fen {fen}")
            await self._send(f"go depth {depth}")
            try:
                await asyncio.wait_for(self._collect(accumulator, side_to_move, on_update), timeout)
            except asyncio.TimeoutError as e:
                self._needs_resync = True
                self._search_abandoned = True
                metrics.ENGINE_STALLS_TOTAL.labels(channel=self.name).inc()
                logger.error("Engine search timed out.", channel=self.name, fen=fen, depth=depth, timeout=timeout)
                raise EngineTimeoutError(f"Engine channel '{self.name}' stalled after {timeout}s.", engine=self) from e
            except asyncio.CancelledError:
                if not accumulator.is_complete:
                    self._needs_resync = True
                    self._search_abandoned = True
                raise

            metrics.ENGINE_REQUEST_DURATION_SECONDS.labels(channel=self.name).observe(time.perf_counter() - started)
            return accumulator.result()

    async def close(self) -> None:
        """Gracefully terminates the engine subprocess."""
        if self._is_closed:
            return
        self._is_closed = True
        try:
            await self._write("quit")
        except EngineDisconnectedError:
            pass
        try:
            await asyncio.wait_for(self._process.wait(), timeout=2.0)
        except asyncio.TimeoutError:
            logger.warning("Engine did not exit after 'quit'; killing it.", channel=self.name)
            self._process.kill()
            await self._process.wait()
