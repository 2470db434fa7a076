"""
Engine Configuration
Immutable launch settings and layered UCI options
"""

import random
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_EXECUTABLE = "stockfish"
DEFAULT_DEPTH = 2

# Sent on every launch unless overridden by the caller
BASE_OPTIONS: Dict[str, str] = {
    "Contempt": "0",
    "Threads": "1",
    "Hash": "16",
    "MultiPV": "1",
    "Skill Level": "20",
    "Move Overhead": "30",
    "Slow Mover": "80",
    "UCI_Chess960": "false",
}


def format_option_value(value: Any) -> str:
    """Render a Python value the way UCI expects it"""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class EngineSettings(BaseModel):
    """
    Everything needed to launch and configure one engine

    Attributes:
        executable: Engine binary, by path or by name on PATH
        depth: Depth passed to 'go depth'
        ponder: Forwarded as the 'Ponder' option
        options: Caller overrides, applied after the base options
        random_contempt: Replace 'Contempt' by a random value in [rand_min, rand_max)
        base_options: Options sent before the caller's overrides
        read_timeout: Seconds to wait for any single line (None blocks forever)
    """
    model_config = ConfigDict(frozen=True)

    executable: str = DEFAULT_EXECUTABLE
    depth: int = Field(DEFAULT_DEPTH, gt=0)
    ponder: bool = False
    options: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    random_contempt: bool = False
    rand_min: int = -10
    rand_max: int = 10
    base_options: Mapping[str, str] = Field(default_factory=lambda: dict(BASE_OPTIONS), validate_default=True)
    read_timeout: Optional[float] = Field(None, gt=0)

    @field_validator("options", "base_options", mode="before")
    @classmethod
    def _format_values(cls, value):
        if isinstance(value, Mapping):
            return {str(name): format_option_value(v) for name, v in value.items()}
        return value

    @field_validator("options", "base_options")
    @classmethod
    def _freeze(cls, value):
        return MappingProxyType(dict(value))

    @model_validator(mode="after")
    def _check_contempt_range(self):
        if self.random_contempt and self.rand_min >= self.rand_max:
            raise ValueError(f"rand_min ({self.rand_min}) must be below rand_max ({self.rand_max})")
        return self

    def layered_options(self, rng: Optional[random.Random] = None) -> Dict[str, str]:
        """
        Options in the order they are sent to the engine

        Ponder comes first, then the base options, then the random contempt
        (if enabled), then the caller's overrides.
        """
        layered = {"Ponder": format_option_value(self.ponder)}
        layered.update(self.base_options)

        if self.random_contempt:
            rng = rng or random.Random()
            layered["Contempt"] = str(rng.randrange(self.rand_min, self.rand_max))

        layered.update(self.options)
        return layered
