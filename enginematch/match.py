"""
Match System
Plays two engines against each other until mate, stalemate or move limit
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import chess
import chess.pgn

from .uci_interface import UCIEngine
from .uci_parser import NO_PONDER, BestMoveResult

logger = logging.getLogger(__name__)

# Plies after which the game is abandoned as a draw
MAX_MOVES = 500


class Side(str, Enum):
    WHITE = "white"
    BLACK = "black"


class TerminationReason(str, Enum):
    MATE = "Forced mate announced"
    MOVE_LIMIT = "Maximum moves reached"
    NO_REPLY = "No reply for the opponent"
    NO_LEGAL_MOVE = "No legal move"


@dataclass
class MatchState:
    """
    Side assignment, move history and outcome of one match

    The history is append-only; its length alone decides who moves next.
    """
    white: str
    black: str
    moves: List[str] = field(default_factory=list)
    winner: Optional[str] = None
    reason: Optional[TerminationReason] = None

    @property
    def finished(self) -> bool:
        return self.reason is not None

    @property
    def side_to_move(self) -> Side:
        return Side.WHITE if len(self.moves) % 2 == 0 else Side.BLACK

    def player(self, side: Side) -> str:
        return self.white if side is Side.WHITE else self.black


class Match:
    """
    Chess match between two engine handles

    Features:
    - Random side assignment
    - Turn order by ply parity
    - Mate, no-reply and move-limit termination
    - PGN export
    - Live updates via callback
    """

    def __init__(self,
                 state: MatchState,
                 engines: Dict[str, UCIEngine],
                 max_moves: int = MAX_MOVES,
                 update_callback: Optional[Callable[[MatchState, BestMoveResult], None]] = None):
        """
        Initialize match; see create_match() for the usual entry point

        Args:
            state: Initial match state
            engines: Engine handle per player id
            max_moves: Maximum plies before the game is a draw
            update_callback: Called after each move, once its outcome is settled, with (state, result)
        """
        if max_moves < 0:
            raise ValueError(f"max_moves must not be negative: {max_moves}")

        self.state = state
        self.engines = engines
        self.max_moves = max_moves
        self.update_callback = update_callback

    def advance_one_move(self) -> bool:
        """
        Let the side to move play one move

        Returns:
            True if the game goes on, False once it is over
        """
        state = self.state
        if state.finished:
            return False

        if len(state.moves) >= self.max_moves:
            state.reason = TerminationReason.MOVE_LIMIT
            logger.info(f"Match finished: draw - {state.reason.value} ({self.max_moves})")
            return False

        side = state.side_to_move
        active = state.player(side)
        inactive = state.player(Side.BLACK if side is Side.WHITE else Side.WHITE)
        engine = self.engines[active]

        engine.set_position(state.moves)
        result = engine.compute_best_move()

        if result.move == NO_PONDER:
            state.reason = TerminationReason.NO_LEGAL_MOVE
        else:
            state.moves.append(result.move)
            logger.info(f"Move {len(state.moves)}: {side.value} ({active}) plays {result.move}")

        info = result.info
        if info is not None and info.score.is_mate:
            if info.score.value > 0:
                state.winner = active
            elif info.score.value < 0:
                state.winner = inactive
            # Mate 0 names no winner
            state.reason = TerminationReason.MATE
        elif not state.finished and result.ponder == NO_PONDER:
            state.reason = TerminationReason.NO_REPLY

        if self.update_callback:
            self.update_callback(state, result)

        if state.finished:
            logger.info(f"Match finished: {state.winner or 'no winner'} - {state.reason.value}")
            return False
        return True

    def run_to_completion(self) -> Optional[str]:
        """
        Play until the game is over

        Returns:
            Winning player id, or None for no winner
        """
        while self.advance_one_move():
            pass

        logger.info(f"Total moves: {len(self.state.moves)}")
        return self.state.winner

    @property
    def result(self) -> str:
        """PGN result tag"""
        if not self.state.finished:
            return "*"
        if self.state.winner is None:
            return "1/2-1/2"
        return "1-0" if self.state.winner == self.state.white else "0-1"

    def to_pgn(self) -> str:
        """Render the game as PGN, stopping at the first unplayable move"""
        game = chess.pgn.Game()

        game.headers["Event"] = "Engine Match"
        game.headers["Date"] = datetime.now().strftime("%Y.%m.%d")
        game.headers["White"] = self.state.white
        game.headers["Black"] = self.state.black
        game.headers["Result"] = self.result
        if self.state.reason is not None:
            game.headers["Termination"] = self.state.reason.value

        node = game
        board = chess.Board()
        for move_uci in self.state.moves:
            try:
                move = chess.Move.from_uci(move_uci)
            except ValueError:
                logger.warning(f"Could not add move to PGN: {move_uci}")
                break
            if move not in board.legal_moves:
                logger.warning(f"Could not add move to PGN: {move_uci}")
                break
            node = node.add_variation(move)
            board.push(move)

        return str(game)

    def save_pgn(self, filename: str):
        """Save game to PGN file"""
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        with open(filename, 'w') as f:
            f.write(self.to_pgn())
        logger.info(f"PGN saved to {filename}")


def create_match(id_a: str,
                 engine_a: UCIEngine,
                 id_b: str,
                 engine_b: UCIEngine,
                 max_moves: int = MAX_MOVES,
                 opening_moves: Optional[Sequence[str]] = None,
                 rng: Optional[random.Random] = None,
                 update_callback: Optional[Callable[[MatchState, BestMoveResult], None]] = None) -> Match:
    """
    Set up a match between two engines; white is picked at random

    Both engines are reset with 'ucinewgame'.

    Example:
        deep = launch(depth=20)
        shallow = launch(depth=10)
        winner = create_match("deep", deep, "shallow", shallow).run_to_completion()

    Args:
        id_a, id_b: Distinct, non-empty player ids
        engine_a, engine_b: Their engine handles
        max_moves: Maximum plies before the game is a draw
        opening_moves: Moves already played, in UCI format
        rng: Random source for the side assignment
        update_callback: Called after each move, once its outcome is settled, with (state, result)
    """
    if not id_a or not id_b:
        raise ValueError("Player ids must not be empty")
    if id_a == id_b:
        raise ValueError(f"Player ids must differ: {id_a}")

    rng = rng or random.Random()
    if rng.random() < 0.5:
        state = MatchState(white=id_a, black=id_b)
    else:
        state = MatchState(white=id_b, black=id_a)
    state.moves.extend(opening_moves or [])

    engine_a.new_game()
    engine_b.new_game()

    logger.info(f"Match created: {state.white} (White) vs {state.black} (Black)")
    return Match(state, {id_a: engine_a, id_b: engine_b}, max_moves, update_callback)
