"""Tests for the UCIEngine driver over a scripted channel."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from enginematch.engine_config import BASE_OPTIONS, EngineSettings
from enginematch.errors import (
    EngineFaultedError,
    EngineIOError,
    EngineStateError,
    LaunchError,
    ParseError,
    ProtocolError,
)
from enginematch.uci_interface import EngineState, UCIEngine, launch
from enginematch.uci_parser import Score, ScoreKind
from scripted_channel import ScriptedChannel

INFO_D1 = "info depth 1 seldepth 1 multipv 1 score cp 20 nodes 20 nps 20000 tbhits 0 time 1 pv e2e4"
INFO_D2 = "info depth 2 seldepth 3 multipv 1 score cp 35 nodes 80 nps 40000 tbhits 0 time 2 pv d2d4 d7d5"


class _FixedRandom:
    def __init__(self, offset: int) -> None:
        self.offset = offset
        self.calls: list[tuple[int, int]] = []

    def randrange(self, start: int, stop: int) -> int:
        self.calls.append((start, stop))
        return start + self.offset


class TestLaunch:
    def test_identifies_engine(self, launch_scripted) -> None:
        engine = launch_scripted(ScriptedChannel())
        assert engine.state is EngineState.READY
        assert engine.name == "Scripted 1.0"
        assert engine.author == "enginematch tests"
        assert engine.available_options["Hash"]["type"] == "spin"
        assert engine.available_options["Hash"]["default"] == "16"

    def test_sends_layered_options_each_acknowledged(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)

        assert channel.sent[0] == "uci"
        expected = ["setoption name Ponder value false"] + [
            f"setoption name {name} value {value}" for name, value in BASE_OPTIONS.items()
        ]
        assert channel.commands("setoption") == expected
        # Every setoption is followed by its own readiness probe
        for index, line in enumerate(channel.sent):
            if line.startswith("setoption"):
                assert channel.sent[index + 1] == "isready"
        assert dict(engine.options) == {"Ponder": "false", **BASE_OPTIONS}

    def test_caller_options_override_base(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel, options={"Hash": 128, "UCI_Chess960": True, "SyzygyPath": "/tb"})
        assert engine.options["Hash"] == "128"
        assert engine.options["UCI_Chess960"] == "true"
        assert engine.options["SyzygyPath"] == "/tb"
        assert channel.commands("setoption name Hash") == ["setoption name Hash value 128"]

    def test_ponder_flag_is_forwarded(self, launch_scripted) -> None:
        engine = launch_scripted(ScriptedChannel(), ponder=True)
        assert engine.ponder is True
        assert engine.options["Ponder"] == "true"

    def test_random_contempt(self, launch_scripted) -> None:
        rng = _FixedRandom(offset=3)
        engine = launch_scripted(ScriptedChannel(), rng=rng, random_contempt=True, rand_min=-10, rand_max=10)
        assert rng.calls == [(-10, 10)]
        assert engine.options["Contempt"] == "-7"

    def test_random_contempt_stays_in_range(self, launch_scripted) -> None:
        engine = launch_scripted(ScriptedChannel(), random_contempt=True, rand_min=5, rand_max=6)
        assert engine.options["Contempt"] == "5"

    def test_caller_contempt_beats_random(self, launch_scripted) -> None:
        engine = launch_scripted(
            ScriptedChannel(), rng=_FixedRandom(0), random_contempt=True, options={"Contempt": "42"}
        )
        assert engine.options["Contempt"] == "42"

    def test_rejected_option_fails_launch(self, launch_scripted) -> None:
        channel = ScriptedChannel(rejected_options={"Slow Mover"})
        with pytest.raises(LaunchError) as excinfo:
            launch_scripted(channel)
        cause = excinfo.value.__cause__
        assert isinstance(cause, ProtocolError)
        assert cause.line == "No such option: Slow Mover"
        assert channel.closed

    def test_replaced_base_options(self, launch_scripted) -> None:
        channel = ScriptedChannel(rejected_options={"Slow Mover", "Contempt"})
        launch_scripted(channel, base_options={"Threads": 2})
        assert channel.commands("setoption") == [
            "setoption name Ponder value false",
            "setoption name Threads value 2",
        ]

    def test_silent_engine_fails_launch(self) -> None:
        class _Mute(ScriptedChannel):
            def write_line(self, text: str) -> None:
                self.sent.append(text)

        channel = _Mute()
        with pytest.raises(LaunchError) as excinfo:
            UCIEngine.launch(EngineSettings(), channel_factory=lambda _executable: channel)
        assert isinstance(excinfo.value.__cause__, EngineIOError)

    def test_launch_function(self) -> None:
        channel = ScriptedChannel()
        engine = launch("my-engine", depth=7, options={"Threads": 4}, channel_factory=lambda _executable: channel)
        assert engine.settings.executable == "my-engine"
        assert engine.depth == 7
        assert engine.options["Threads"] == "4"


class TestSettings:
    def test_depth_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            EngineSettings(depth=0)

    def test_contempt_range_checked(self) -> None:
        with pytest.raises(ValidationError):
            EngineSettings(random_contempt=True, rand_min=3, rand_max=3)

    def test_range_ignored_without_randomizing(self) -> None:
        assert EngineSettings(rand_min=3, rand_max=3).rand_min == 3

    def test_settings_are_frozen(self) -> None:
        settings = EngineSettings()
        with pytest.raises(ValidationError):
            settings.depth = 5

    def test_layered_order(self) -> None:
        settings = EngineSettings(options={"Extra": "1"}, base_options={"Hash": "8"})
        assert list(settings.layered_options()) == ["Ponder", "Hash", "Extra"]

    def test_options_are_read_only(self) -> None:
        overrides = {"Hash": 8}
        settings = EngineSettings(options=overrides)
        with pytest.raises(TypeError):
            settings.options["Hash"] = "999"
        with pytest.raises(TypeError):
            settings.base_options["Threads"] = "64"
        overrides["Hash"] = 999
        assert settings.options["Hash"] == "8"
        assert settings.layered_options()["Hash"] == "8"
        assert settings.base_options["Threads"] == BASE_OPTIONS["Threads"]


class TestHandshake:
    def test_chatter_is_discarded(self, launch_scripted) -> None:
        channel = ScriptedChannel(chatter=["info string hello", "some banner"])
        engine = launch_scripted(channel)
        engine.new_game()
        assert engine.state is EngineState.READY
        assert channel.sent[-2:] == ["ucinewgame", "isready"]

    def test_unknown_command_faults(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        channel.chatter = ["Unknown command: 'ucinewgame'. Type help for more information."]
        with pytest.raises(ProtocolError) as excinfo:
            engine.new_game()
        assert "Unknown command:" in str(excinfo.value)
        assert engine.state is EngineState.FAULTED

    def test_faulted_handle_refuses_work(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        channel.rejected_options = {"Bogus"}
        with pytest.raises(ProtocolError):
            engine.set_option("Bogus", "1")
        sent = len(channel.sent)
        with pytest.raises(EngineFaultedError):
            engine.set_position([])
        assert len(channel.sent) == sent

    def test_set_option_after_launch(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        engine.set_option("Skill Level", "3")
        assert channel.sent[-2:] == ["setoption name Skill Level value 3", "isready"]
        assert engine.options["Skill Level"] == "3"


class TestPosition:
    def test_empty_history(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        launch_scripted(channel).set_position([])
        assert channel.sent[-2:] == ["position startpos moves ", "isready"]

    def test_moves_joined_by_spaces(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        launch_scripted(channel).set_position(["e2e4", "e7e5", "g1f3"])
        assert channel.sent[-2] == "position startpos moves e2e4 e7e5 g1f3"

    def test_fen_passed_verbatim(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        fen = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
        launch_scripted(channel).set_fen_position(fen)
        assert channel.sent[-2:] == [f"position fen {fen}", "isready"]


class TestComputeBestMove:
    def test_returns_move_with_last_info(self, launch_scripted) -> None:
        channel = ScriptedChannel(searches=[[INFO_D1, INFO_D2, "bestmove d2d4 ponder d7d5"]])
        engine = launch_scripted(channel, depth=6)

        result = engine.compute_best_move()

        assert channel.commands("go") == ["go depth 6"]
        assert result.move == "d2d4"
        assert result.ponder == "d7d5"
        assert result.info is not None
        assert result.info.depth == 2
        assert result.info.score == Score(ScoreKind.CENTIPAWN, 35)
        assert engine.last_info == result.info
        assert engine.state is EngineState.READY

    def test_bestmove_before_readyok_is_kept(self, launch_scripted) -> None:
        # A single-threaded engine finishes the search before reading 'isready'
        channel = ScriptedChannel(searches=[[INFO_D1, "bestmove e2e4"]])
        engine = launch_scripted(channel)
        result = engine.compute_best_move()
        assert result.move == "e2e4"
        assert result.ponder is None
        assert result.info.pv == "e2e4"

    def test_bestmove_after_readyok(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        engine.start_search()
        assert engine.state is EngineState.AWAITING_MOVE
        channel.pending.extend([INFO_D1, "readyok", "bestmove e2e4 ponder e7e5"])

        result = engine.compute_best_move()

        assert result.move == "e2e4"
        assert len(channel.commands("go")) == 1
        assert engine.state is EngineState.READY

    def test_notices_and_chatter_are_ignored(self, launch_scripted) -> None:
        channel = ScriptedChannel(
            searches=[[INFO_D1, "info string NNUE evaluation using nn-1.nnue enabled", "garbage", "bestmove e2e4"]]
        )
        result = launch_scripted(channel).compute_best_move()
        assert result.info.depth == 1

    def test_no_info_lines(self, launch_scripted) -> None:
        channel = ScriptedChannel(searches=[["bestmove e2e4 ponder e7e5"]])
        assert launch_scripted(channel).compute_best_move().info is None

    def test_info_is_per_search(self, launch_scripted) -> None:
        channel = ScriptedChannel(searches=[[INFO_D2, "bestmove d2d4"], ["bestmove e7e5"]])
        engine = launch_scripted(channel)
        assert engine.compute_best_move().info is not None
        assert engine.compute_best_move().info is None

    def test_malformed_info_faults(self, launch_scripted) -> None:
        channel = ScriptedChannel(searches=[["info depth 3 nodes 10 pv e2e4", "bestmove e2e4"]])
        engine = launch_scripted(channel)
        with pytest.raises(ParseError) as excinfo:
            engine.compute_best_move()
        assert excinfo.value.field == "seldepth"
        assert engine.state is EngineState.FAULTED

    def test_engine_exit_during_search(self, launch_scripted) -> None:
        channel = ScriptedChannel(searches=[[INFO_D1]])
        engine = launch_scripted(channel)
        with pytest.raises(EngineIOError):
            engine.compute_best_move()
        assert engine.state is EngineState.FAULTED

    def test_no_commands_while_searching(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        engine.start_search()
        with pytest.raises(EngineStateError):
            engine.set_position(["e2e4"])
        assert engine.state is EngineState.AWAITING_MOVE


class TestQuit:
    def test_quit_closes_channel(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        engine.quit()
        assert channel.sent[-1] == "quit"
        assert channel.closed
        assert engine.state is EngineState.CLOSED

    def test_quit_twice(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        engine = launch_scripted(channel)
        engine.quit()
        engine.quit()
        assert channel.commands("quit") == ["quit"]

    def test_context_manager(self, launch_scripted) -> None:
        channel = ScriptedChannel()
        with launch_scripted(channel) as engine:
            engine.new_game()
        assert channel.closed

    def test_closed_handle_refuses_work(self, launch_scripted) -> None:
        engine = launch_scripted(ScriptedChannel())
        engine.quit()
        with pytest.raises(EngineStateError):
            engine.new_game()
