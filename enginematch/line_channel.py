"""
Line Channel
Newline-delimited text stream to and from an engine subprocess
"""

import logging
import queue
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence, TextIO

from .errors import EngineCancelledError, EngineIOError, EngineTimeoutError, LaunchError

logger = logging.getLogger(__name__)

# How often a waiting read re-checks its cancel event and deadline
POLL_INTERVAL = 0.1

_EOF = object()


class LineChannel:
    """
    Bidirectional line stream to an engine process

    A background thread assembles stdout into trimmed lines and hands them
    over through a FIFO queue, so lines are consumed in exactly the order
    the engine printed them. End of stream is delivered as a sentinel and
    turns every later read into an EngineIOError.
    """

    def __init__(self,
                 stdin: TextIO,
                 stdout: TextIO,
                 process: Optional[subprocess.Popen] = None,
                 label: str = "engine"):
        """
        Wrap an already open pair of text streams

        Args:
            stdin: Stream the engine reads commands from
            stdout: Stream the engine writes its output to
            process: Owning subprocess, if any
            label: Name used in log and error messages
        """
        self.stdin = stdin
        self.stdout = stdout
        self.process = process
        self.label = label

        self._lines: queue.Queue = queue.Queue()
        self._eof = False
        self._closed = False

        self._reader = threading.Thread(
            target=self._read_output,
            name=f"{label}-reader",
            daemon=True
        )
        self._reader.start()

    @classmethod
    def spawn(cls, executable: str, args: Sequence[str] = ()) -> "LineChannel":
        """
        Start an engine process and wire its stdin/stdout to a channel

        Standard error is left to the process's default disposition.

        Raises:
            LaunchError: The executable could not be started
        """
        try:
            process = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                bufsize=1
            )
        except OSError as e:
            logger.error(f"Failed to start engine {executable}: {e}")
            raise LaunchError(f"Failed to start engine {executable}: {e}") from e

        logger.info(f"Engine process started: {executable} (PID {process.pid})")
        return cls(process.stdin, process.stdout, process=process, label=executable)

    def _read_output(self):
        """Background thread to read engine output"""
        try:
            for raw in iter(self.stdout.readline, ""):
                line = raw.strip()
                if line:
                    logger.debug(f"<< {line}")
                    self._lines.put(line)
        except (OSError, ValueError) as e:
            # Surfaces to the reader as end of stream
            logger.error(f"Error reading output from {self.label}: {e}")
        finally:
            self._lines.put(_EOF)

    def write_line(self, text: str):
        """
        Send one line to the engine and flush it

        Raises:
            EngineIOError: Channel closed, process exited, or the write failed
        """
        if self._closed:
            raise EngineIOError(f"Channel to {self.label} is closed")
        if self.process is not None and self.process.poll() is not None:
            raise EngineIOError(f"{self.label} exited with code {self.process.returncode}")

        try:
            self.stdin.write(text + "\n")
            self.stdin.flush()
        except (OSError, ValueError) as e:
            raise EngineIOError(f"Error sending '{text}' to {self.label}: {e}") from e

    def read_line(self,
                  timeout: Optional[float] = None,
                  cancel: Optional[threading.Event] = None) -> str:
        """
        Block until the next line is available

        Args:
            timeout: Seconds to wait before giving up (None waits forever)
            cancel: Event checked between waits; set it to abort the read

        Raises:
            EngineIOError: The engine closed its output stream
            EngineTimeoutError: No line arrived within the timeout
            EngineCancelledError: The cancel event was set
        """
        if self._eof:
            raise EngineIOError(f"{self.label} process exited unexpectedly")

        if timeout is None and cancel is None:
            item = self._lines.get()
        else:
            item = self._wait_for_line(timeout, cancel)

        if item is _EOF:
            self._eof = True
            raise EngineIOError(f"{self.label} process exited unexpectedly")
        return item

    def _wait_for_line(self, timeout: Optional[float], cancel: Optional[threading.Event]):
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if cancel is not None and cancel.is_set():
                raise EngineCancelledError(f"Read from {self.label} cancelled")

            wait = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise EngineTimeoutError(f"Timeout after {timeout}s waiting for {self.label}")
                wait = min(wait, remaining)

            try:
                return self._lines.get(timeout=wait)
            except queue.Empty:
                continue

    def read_until(self,
                   predicate: Callable[[str], bool],
                   timeout: Optional[float] = None,
                   cancel: Optional[threading.Event] = None) -> List[str]:
        """
        Read lines until one satisfies the predicate

        Returns:
            Every line read, the matching one last
        """
        lines = []
        while True:
            line = self.read_line(timeout=timeout, cancel=cancel)
            lines.append(line)
            if predicate(line):
                return lines

    def close(self, timeout: float = 5.0):
        """Close the engine's input, reap the process and release its output"""
        if self._closed:
            return
        self._closed = True

        try:
            self.stdin.close()
        except OSError as e:
            logger.warning(f"Error closing input of {self.label}: {e}")

        if self.process is not None:
            try:
                self.process.wait(timeout=timeout)
                logger.info(f"{self.label} terminated with code {self.process.returncode}")
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
                logger.warning(f"{self.label} killed forcefully")

        self._reader.join(timeout=timeout)
        if self._reader.is_alive():
            # Closing under a blocked readline would block as well
            logger.warning(f"Reader of {self.label} still running, output left open")
            return
        try:
            self.stdout.close()
        except OSError as e:
            logger.warning(f"Error closing output of {self.label}: {e}")

    @property
    def closed(self) -> bool:
        return self._closed
