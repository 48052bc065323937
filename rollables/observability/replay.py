"""
Replay of recorded dice draws.

A ReplaySession is a RandomSource: instead of generating numbers it hands
back the die values a previous session recorded, in order. The seed threaded
through a DiceRoller is used as the position in the recorded stream, so the
source stays a pure function of its arguments.
"""

from dataclasses import dataclass, field
from typing import Any
import json
import logging

from rollables.data_models import SplitMixSource

logger = logging.getLogger(__name__)


@dataclass
class ReplaySession:
    """
    Random source that replays a recorded draw stream.

    Usage:
        session = ReplaySession.from_run_log(get_run_log().to_dict())
        node, _ = resolve(ref, registry, seed=0, source=session)

    When the stream runs out, or a recorded value does not fit the bounds
    asked for, a value is generated from `seed` plus the position instead
    and the overrun is counted.
    """

    seed: int = 0
    draw_stream: list[int] = field(default_factory=list)
    _overruns: int = field(default=0, repr=False)
    _furthest: int = field(default=0, repr=False)

    @classmethod
    def from_run_log(cls, log_data: dict[str, Any]) -> "ReplaySession":
        """
        Build a session from RunLog.to_dict() output or a saved log file.

        Every die of every roll event is flattened into the draw stream.
        """
        stream = []
        for event in log_data.get("events", []):
            if event.get("event_type") == "roll":
                stream.extend(event.get("rolls", []))
        return cls(seed=log_data.get("seed") or 0, draw_stream=stream)

    @classmethod
    def load(cls, filepath: str) -> "ReplaySession":
        """Load either a saved session or a saved run log."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        if "draw_stream" in data:
            return cls(seed=data.get("seed", 0), draw_stream=data["draw_stream"])
        return cls.from_run_log(data)

    def save(self, filepath: str) -> None:
        data = {
            "seed": self.seed,
            "draw_stream": self.draw_stream,
        }
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info(f"ReplaySession saved to {filepath}")

    def draw(self, seed: int, low: int, high: int) -> tuple[int, int]:
        """Return the recorded value at position `seed` and the next position."""
        position = seed
        self._furthest = max(self._furthest, position + 1)
        if 0 <= position < len(self.draw_stream):
            value = self.draw_stream[position]
            if low <= value <= high:
                return value, position + 1
            logger.warning(
                f"Replay value {value} at position {position} outside [{low}, {high}]"
            )
        else:
            logger.warning(f"Replay overrun: no recorded draw at position {position}")

        self._overruns += 1
        value, _ = SplitMixSource().draw(self.seed + position, low, high)
        return value, position + 1

    def get_total_draws(self) -> int:
        return len(self.draw_stream)

    def get_overrun_count(self) -> int:
        """Number of draws that could not be served from the stream."""
        return self._overruns

    def get_remaining_draws(self) -> int:
        return max(0, len(self.draw_stream) - self._furthest)

    def reset(self) -> None:
        self._overruns = 0
        self._furthest = 0

    def get_summary(self) -> dict[str, Any]:
        return {
            "seed": self.seed,
            "total_draws": len(self.draw_stream),
            "furthest_position": self._furthest,
            "remaining_draws": self.get_remaining_draws(),
            "overruns": self._overruns,
        }
