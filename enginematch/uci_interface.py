"""
UCI Protocol Interface for Chess Engines
Synchronous driver: every operation blocks until the engine acknowledges it
"""

import logging
import random
import re
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import replace
from enum import Enum
from typing import Callable, Deque, Dict, List, Mapping, Optional, Sequence
from types import MappingProxyType

from .engine_config import DEFAULT_DEPTH, DEFAULT_EXECUTABLE, EngineSettings
from .errors import EngineError, EngineFaultedError, EngineStateError, LaunchError, ProtocolError
from .line_channel import LineChannel
from .uci_parser import (
    EMPTY_INFO,
    BestMoveResult,
    EvaluationInfo,
    is_best_move_line,
    is_info_line,
    parse_best_move_line,
    parse_info_line,
)

logger = logging.getLogger(__name__)

UCI_OK = "uciok"
READY_OK = "readyok"

# Diagnostics that mean the previous command was rejected
HANDSHAKE_FAILURES = ("No such option:", "Unknown command:")


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    AWAITING_MOVE = "awaiting move"
    FAULTED = "faulted"
    CLOSED = "closed"


class UCIEngine:
    """
    UCI Protocol Handler for one engine process

    Features:
    - Readiness handshake after every command
    - Layered option configuration at launch
    - Structured evaluation and bestmove results
    - Optional read timeout and cancellation

    Only one command/response exchange is ever in flight. Any error raised
    during an exchange leaves the handle FAULTED; relaunch to recover.
    """

    def __init__(self, channel: LineChannel, settings: Optional[EngineSettings] = None):
        """
        Wrap an open channel; call initialize() before use

        Args:
            channel: Line channel connected to the engine
            settings: Launch settings (defaults if None)
        """
        self.channel = channel
        self.settings = settings or EngineSettings()
        self.state = EngineState.UNINITIALIZED

        self.depth = self.settings.depth
        self.ponder = self.settings.ponder
        self._options: Dict[str, str] = {}

        # Engine info
        self.name = "Unknown"
        self.author = "Unknown"
        self.available_options: Dict[str, Dict] = {}

        self.last_info: Optional[EvaluationInfo] = None
        self.cancel_event = threading.Event()
        self._backlog: Deque[str] = deque()

    @classmethod
    def launch(cls,
               settings: EngineSettings,
               rng: Optional[random.Random] = None,
               channel_factory: Optional[Callable[[str], LineChannel]] = None) -> "UCIEngine":
        """
        Start the engine, identify it and apply the layered options

        Args:
            settings: Launch settings
            rng: Random source for the randomized contempt
            channel_factory: Builds the channel from the executable name

        Raises:
            LaunchError: Start-up failed; the process is shut down and the
                underlying error is chained
        """
        factory = channel_factory or LineChannel.spawn
        channel = factory(settings.executable)
        engine = cls(channel, settings)

        try:
            engine.initialize(rng)
        except EngineError as e:
            logger.error(f"Initialization of {settings.executable} failed: {e}")
            channel.close()
            raise LaunchError(f"Failed to initialize {settings.executable}: {e}") from e

        return engine

    @property
    def options(self) -> Mapping[str, str]:
        """Option values acknowledged by the engine so far"""
        return MappingProxyType(self._options)

    @contextmanager
    def _exchange(self, *allowed: EngineState):
        if self.state is EngineState.FAULTED:
            raise EngineFaultedError(f"{self.settings.executable} is faulted")
        if self.state not in allowed:
            raise EngineStateError(f"Not allowed while {self.state.value}")
        try:
            yield
        except EngineError:
            self.state = EngineState.FAULTED
            raise

    def send_command(self, command: str):
        """Send command to engine"""
        logger.debug(f">> {command}")
        self.channel.write_line(command)

    def _read_line(self) -> str:
        return self.channel.read_line(timeout=self.settings.read_timeout, cancel=self.cancel_event)

    def initialize(self, rng: Optional[random.Random] = None):
        """
        Identify the engine and send the layered options

        Args:
            rng: Random source for the randomized contempt
        """
        with self._exchange(EngineState.UNINITIALIZED):
            self.send_command("uci")
            lines = self.channel.read_until(
                lambda line: line == UCI_OK,
                timeout=self.settings.read_timeout,
                cancel=self.cancel_event
            )

            for line in lines:
                if line.startswith("id name"):
                    self.name = line[8:].strip()
                elif line.startswith("id author"):
                    self.author = line[10:].strip()
                elif line.startswith("option name"):
                    self._parse_option(line)

            logger.info(f"Engine initialized: {self.name} by {self.author}")
            logger.info(f"Options found: {len(self.available_options)}")

            self.state = EngineState.READY

        for name, value in self.settings.layered_options(rng).items():
            self.set_option(name, value)

    def _parse_option(self, line: str):
        """Parse UCI option line"""
        # Example: option name Hash type spin default 16 min 1 max 65536
        match = re.match(r'option name (.+?)(?:\s+type\s+(.+))?$', line)
        if match:
            name = match.group(1).strip()
            rest = match.group(2) or ""

            option_info = {"raw": line}
            type_match = re.match(r'(\w+)', rest)
            if type_match:
                option_info["type"] = type_match.group(1)
            default_match = re.search(r'default (\S+)', rest)
            if default_match:
                option_info["default"] = default_match.group(1)

            self.available_options[name] = option_info

    def is_ready(self) -> List[str]:
        """
        Readiness handshake: send 'isready' and read until 'readyok'

        Returns:
            Lines that arrived before 'readyok'

        Raises:
            ProtocolError: The engine rejected the previous command
        """
        self.send_command("isready")
        skipped = []
        while True:
            line = self._read_line()
            if any(marker in line for marker in HANDSHAKE_FAILURES):
                logger.error(f"{self.settings.executable} rejected command: {line}")
                raise ProtocolError(line, line=line)
            if line == READY_OK:
                return skipped
            skipped.append(line)

    def set_option(self, name: str, value: str):
        """Set an engine option and wait for it to be acknowledged"""
        with self._exchange(EngineState.READY):
            self.send_command(f"setoption name {name} value {value}")
            self.is_ready()
            self._options[name] = value

    def new_game(self):
        """Start a new game"""
        with self._exchange(EngineState.READY):
            self.send_command("ucinewgame")
            self.is_ready()

    def set_position(self, moves: Sequence[str] = ()):
        """
        Set position from the start position

        Args:
            moves: Moves in UCI format (e.g., ["e2e4", "e7e5"]); empty resets
                to the opening position
        """
        with self._exchange(EngineState.READY):
            self.send_command(f"position startpos moves {' '.join(moves)}")
            self.is_ready()

    def set_fen_position(self, fen: str):
        """Set position from a FEN string, passed through unchecked"""
        with self._exchange(EngineState.READY):
            self.send_command(f"position fen {fen}")
            self.is_ready()

    def start_search(self):
        """
        Start a depth-limited search

        The engine answers 'isready' even while searching. Output that
        arrives before 'readyok' is kept for compute_best_move().
        """
        with self._exchange(EngineState.READY):
            self.send_command(f"go depth {self.depth}")
            self.state = EngineState.AWAITING_MOVE
            self._backlog.extend(self.is_ready())

    def compute_best_move(self) -> BestMoveResult:
        """
        Search the current position and wait for 'bestmove'

        Starts a search unless start_search() was already called.

        Returns:
            The bestmove result carrying the last evaluation seen (None if
            the engine printed no info line)

        Raises:
            ParseError: An info or bestmove line was malformed
            EngineIOError: The engine exited before answering
        """
        with self._exchange(EngineState.READY, EngineState.AWAITING_MOVE):
            if self.state is EngineState.READY:
                self.start_search()

            latest: Optional[EvaluationInfo] = None
            while True:
                line = self._backlog.popleft() if self._backlog else self._read_line()

                if is_best_move_line(line):
                    result = parse_best_move_line(line)
                    self.state = EngineState.READY
                    return replace(result, info=latest)

                if is_info_line(line):
                    info = parse_info_line(line)
                    if info is not EMPTY_INFO:
                        latest = info
                        self.last_info = info

    def quit(self):
        """Shutdown engine"""
        if self.state is EngineState.CLOSED:
            return
        try:
            self.send_command("quit")
        except EngineError as e:
            logger.warning(f"Error during quit: {e}")
        finally:
            self.channel.close()
            self.state = EngineState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.quit()


def launch(executable: str = DEFAULT_EXECUTABLE,
           depth: int = DEFAULT_DEPTH,
           ponder: bool = False,
           options: Optional[Mapping[str, object]] = None,
           random_contempt: bool = False,
           rand_min: int = -10,
           rand_max: int = 10,
           **kwargs) -> UCIEngine:
    """
    Launch an engine from plain arguments

    Any remaining keyword arguments go to UCIEngine.launch (rng,
    channel_factory).

    Example:
        deep = launch(depth=20)
        shallow = launch(depth=10, random_contempt=True)
    """
    settings = EngineSettings(
        executable=executable,
        depth=depth,
        ponder=ponder,
        options=dict(options or {}),
        random_contempt=random_contempt,
        rand_min=rand_min,
        rand_max=rand_max
    )
    return UCIEngine.launch(settings, **kwargs)
