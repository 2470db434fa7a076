"""Shared pytest fixtures used across the test suite."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from enginematch.engine_config import EngineSettings
from enginematch.line_channel import LineChannel
from enginematch.uci_interface import UCIEngine
from scripted_channel import ScriptedChannel

FAKE_ENGINE = Path(__file__).with_name("fake_uci_engine.py")


@pytest.fixture
def launch_scripted() -> Callable[..., UCIEngine]:
    """Launch a UCIEngine over a ScriptedChannel with the given settings."""

    def _launch(channel: ScriptedChannel, rng=None, **settings) -> UCIEngine:
        return UCIEngine.launch(
            EngineSettings(**settings),
            rng=rng,
            channel_factory=lambda _executable: channel,
        )

    return _launch


@pytest.fixture
def fake_engine_factory() -> Callable[[str], LineChannel]:
    """Channel factory running the python-chess fake engine in a subprocess."""

    def _spawn(_executable: str) -> LineChannel:
        return LineChannel.spawn(sys.executable, args=[str(FAKE_ENGINE)])

    return _spawn
