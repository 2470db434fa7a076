"""
Engine Errors
Exception hierarchy shared by the channel, driver and match layers
"""

from typing import Optional


class EngineError(Exception):
    """Base class for every error raised by this package"""


class EngineIOError(EngineError, OSError):
    """Stream closed, process exited, or a read/write failed"""


class EngineTimeoutError(EngineIOError):
    """No line arrived before the read deadline"""


class EngineCancelledError(EngineError):
    """A blocking read was cancelled by the caller"""


class ProtocolError(EngineError):
    """The engine answered with something the protocol does not allow"""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class ParseError(ProtocolError, ValueError):
    """A line did not match the grammar expected for its type"""

    def __init__(self, message: str, line: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, line)
        self.field = field


class EngineFaultedError(ProtocolError):
    """Operation attempted on a handle that already failed"""


class EngineStateError(EngineError, RuntimeError):
    """Operation not allowed in the handle's current state"""


class LaunchError(EngineError):
    """Engine could not be started or its setup handshakes failed"""
