"""
UCI Response Parser
Turns raw engine output lines into immutable records
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from itertools import takewhile
from typing import Dict, List, Optional, Tuple

from .errors import ParseError

INFO = "info"
BESTMOVE = "bestmove"
PONDER = "ponder"

# Ponder marker printed when the engine sees no reply for the opponent
NO_PONDER = "(none)"

# Coordinate notation, e.g. e2e4 or e7e8q
MOVE_TOKEN = re.compile(r"[a-h]\d[a-h]\d[qrnb]?")

REQUIRED_FIELDS = ("depth", "seldepth", "multipv", "nodes", "nps", "tbhits", "time")

_MAX_VALUE = 2 ** 63 - 1
_UNSIGNED = re.compile(r"[0-9]+")
_SIGNED = re.compile(r"-?[0-9]+")
_TOKEN = re.compile(r"\S+")


class ScoreKind(str, Enum):
    CENTIPAWN = "cp"
    MATE = "mate"


@dataclass(frozen=True)
class Score:
    """Evaluation from the side to move's point of view"""
    kind: ScoreKind = ScoreKind.CENTIPAWN
    value: int = 0

    @property
    def is_mate(self) -> bool:
        return self.kind is ScoreKind.MATE


@dataclass(frozen=True)
class EvaluationInfo:
    """One parsed 'info' line"""
    depth: int = 0
    seldepth: int = 0
    multipv: int = 0
    score: Score = field(default_factory=Score)
    nodes: int = 0
    nps: int = 0
    tbhits: int = 0
    time: int = 0
    principal_variation: Tuple[str, ...] = ()

    @property
    def pv(self) -> str:
        """Principal variation as a space separated move list"""
        return " ".join(self.principal_variation)


# Returned for diagnostic notices that carry no search data
EMPTY_INFO = EvaluationInfo()


@dataclass(frozen=True)
class BestMoveResult:
    """Terminal 'bestmove' line plus the evaluation that preceded it"""
    move: str
    ponder: Optional[str] = None
    info: Optional[EvaluationInfo] = None

    @property
    def has_ponder(self) -> bool:
        return self.ponder is not None and self.ponder != NO_PONDER


def is_move_token(token: str) -> bool:
    return MOVE_TOKEN.fullmatch(token) is not None


def line_keyword(line: str) -> str:
    """First whitespace-delimited token of a line, or '' for a blank line"""
    parts = line.split(None, 1)
    return parts[0] if parts else ""


def is_info_line(line: str) -> bool:
    return line_keyword(line) == INFO


def is_best_move_line(line: str) -> bool:
    return line_keyword(line) == BESTMOVE


def _is_notice(words: List[str]) -> bool:
    """
    Free-form diagnostics: 'info string ...', progress lines reporting the
    move currently searched, and lines without any searchable field
    """
    if words[1:2] == ["string"] or "currmove" in words:
        return True
    searchable = set(REQUIRED_FIELDS) | {"score", "pv"}
    return not searchable.intersection(words[1:])


def _number(line: str, key: str, token: Optional[str], pattern) -> int:
    if token is None or pattern.fullmatch(token) is None:
        raise ParseError(f"Could not parse {key}: {line}", line=line, field=key)
    value = int(token)
    if abs(value) > _MAX_VALUE:
        raise ParseError(f"Value of {key} out of range: {line}", line=line, field=key)
    return value


def parse_info_line(line: str) -> EvaluationInfo:
    """
    Parse a UCI 'info' line

    Examples:
        "info depth 2 seldepth 3 multipv 1 score cp -656 nodes 43 nps 43000 tbhits 0 time 1 pv g7g6 h3g3 g6f7"
        "info string NNUE evaluation using nn-82215d0fd0df.nnue enabled"  -> EMPTY_INFO

    Keys are matched in any order. The run of move tokens right after the
    'pv' keyword is the move list; whatever follows it is ignored, so
    'pv' has to come after every other key.

    Raises:
        ParseError: A required field is missing or malformed
    """
    matches = list(_TOKEN.finditer(line))
    words = [m.group() for m in matches]
    if not words or words[0] != INFO:
        raise ParseError(f"Not an info line: {line}", line=line)
    if _is_notice(words):
        return EMPTY_INFO

    values: Dict[str, int] = {}
    score: Optional[Score] = None
    pv: Optional[Tuple[str, ...]] = None

    def word(index: int) -> Optional[str]:
        return words[index] if index < len(words) else None

    i = 1
    while i < len(words):
        key = words[i]
        if key == "string":
            break
        if key == "pv":
            pv = _parse_pv(line, line[matches[i].end():])
            break
        if key in REQUIRED_FIELDS and key not in values:
            values[key] = _number(line, key, word(i + 1), _UNSIGNED)
            i += 2
        elif key == "score" and score is None:
            # score cp -100  <- side to move is behind 100 centipawns
            # score mate 3   <- side to move mates in 3
            try:
                kind = ScoreKind(word(i + 1))
            except ValueError:
                raise ParseError(f"Could not parse score: {line}", line=line, field="score") from None
            score = Score(kind, _number(line, "score", word(i + 2), _SIGNED))
            i += 3
        else:
            i += 1

    for key in REQUIRED_FIELDS:
        if key not in values:
            raise ParseError(f"Could not parse {key}: {line}", line=line, field=key)
    if score is None:
        raise ParseError(f"Could not parse score: {line}", line=line, field="score")
    if pv is None:
        raise ParseError(f"Could not parse pv: {line}", line=line, field="pv")

    return EvaluationInfo(score=score, principal_variation=pv, **values)


def _parse_pv(line: str, remainder: str) -> Tuple[str, ...]:
    moves = tuple(takewhile(is_move_token, remainder.split()))
    if not moves:
        raise ParseError(f"Could not parse pv: {line}", line=line, field="pv")
    return moves


def parse_best_move_line(line: str) -> BestMoveResult:
    """
    Parse a UCI 'bestmove' line

    Examples:
        "bestmove d2d4 ponder a7a6"
        "bestmove d2d4"

    The ponder value is returned as printed, including the '(none)' marker.

    Raises:
        ParseError: Not a bestmove line, or no move token found
    """
    parts = line.split()
    if not parts or parts[0] != BESTMOVE:
        raise ParseError(f"Not a bestmove line: {line}", line=line)
    if len(parts) < 2:
        raise ParseError(f"No move found: {line}", line=line, field="move")

    ponder = parts[3] if len(parts) >= 4 else None
    return BestMoveResult(move=parts[1], ponder=ponder)
