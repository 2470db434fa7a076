"""
Engine Match Framework
Drive UCI chess engines and play them against each other
"""

__version__ = "1.0.0"

from .errors import (
    EngineError,
    EngineIOError,
    EngineTimeoutError,
    EngineCancelledError,
    ProtocolError,
    ParseError,
    EngineFaultedError,
    EngineStateError,
    LaunchError,
)
from .line_channel import LineChannel
from .uci_parser import (
    BestMoveResult,
    EvaluationInfo,
    Score,
    ScoreKind,
    parse_info_line,
    parse_best_move_line,
)
from .engine_config import EngineSettings, BASE_OPTIONS
from .uci_interface import UCIEngine, EngineState, launch
from .match import Match, MatchState, Side, TerminationReason, create_match

__all__ = [
    'EngineError',
    'EngineIOError',
    'EngineTimeoutError',
    'EngineCancelledError',
    'ProtocolError',
    'ParseError',
    'EngineFaultedError',
    'EngineStateError',
    'LaunchError',
    'LineChannel',
    'BestMoveResult',
    'EvaluationInfo',
    'Score',
    'ScoreKind',
    'parse_info_line',
    'parse_best_move_line',
    'EngineSettings',
    'BASE_OPTIONS',
    'UCIEngine',
    'EngineState',
    'launch',
    'Match',
    'MatchState',
    'Side',
    'TerminationReason',
    'create_match',
]
