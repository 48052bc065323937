"""
Core data models for the Rollables engine.

Holds the values every other module threads through a resolution:
- RollContext: the immutable (depth, variables) state passed down recursion
- RandomSource: the pure seed -> (value, seed') generator contract
- DiceRoller: the per-call cursor all dice draws must go through
- DiceResult: a single group of dice draws, kept for display and logging
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Protocol
import logging


logger = logging.getLogger(__name__)


def frozen_map(values: Optional[Mapping] = None) -> Mapping:
    """Return a read-only copy of a mapping."""
    return MappingProxyType(dict(values or {}))


# =============================================================================
# ROLL CONTEXT
# =============================================================================


@dataclass(frozen=True)
class RollContext:
    """
    Ambient state threaded through recursive resolution.

    A child context is always a copy extended with new bindings; a context
    is never changed in place, so any node can be re-rolled later against
    the exact context it was first rolled with.
    """

    depth: int = 0
    vars: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "vars", frozen_map(self.vars))

    def child(self, bindings: Optional[Mapping[str, int]] = None) -> "RollContext":
        """Context for references nested one level below this one."""
        return RollContext(depth=self.depth + 1, vars={**self.vars, **(bindings or {})})

    def extended(self, bindings: Optional[Mapping[str, int]] = None) -> "RollContext":
        """Same depth, with additional variable bindings."""
        if not bindings:
            return self
        return RollContext(depth=self.depth, vars={**self.vars, **bindings})

    def get(self, key: str, default: int = 0) -> int:
        return self.vars.get(key, default)


# =============================================================================
# RANDOM SOURCES
# =============================================================================


class RandomSource(Protocol):
    """
    Pure random generator contract.

    draw() must not depend on anything but its arguments: the same seed and
    bounds always give the same (value, next_seed).
    """

    def draw(self, seed: int, low: int, high: int) -> tuple[int, int]:
        ...


_MASK64 = (1 << 64) - 1
_GOLDEN_GAMMA = 0x9E3779B97F4A7C15


class SplitMixSource:
    """
    Default random source based on splitmix64.

    The seed is a 64-bit counter advanced by a fixed odd constant on every
    draw, so one resolution never draws from the same seed twice within
    the generator's period.
    """

    def draw(self, seed: int, low: int, high: int) -> tuple[int, int]:
        if high < low:
            raise ValueError(f"Empty draw range [{low}, {high}]")
        state = (seed + _GOLDEN_GAMMA) & _MASK64
        z = state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
        z ^= z >> 31
        return low + z % (high - low + 1), state


# =============================================================================
# DICE
# =============================================================================


@dataclass(frozen=True)
class DiceResult:
    """Result of one group of dice draws with every individual die retained."""

    notation: str
    rolls: tuple[int, ...]
    total: int
    reason: str = ""

    def __str__(self) -> str:
        return f"{self.notation}: {list(self.rolls)} = {self.total}"


class DiceRoller:
    """
    Seed-threading dice cursor.

    All randomness in a resolution goes through one DiceRoller, which owns
    nothing but the current seed and the source it draws from. A new roller
    is created for every top-level call and never shared, so resolution
    stays reproducible for a fixed seed.

    Usage:
        dice = DiceRoller(seed=42)
        result = dice.roll(2, 6, "reaction")
        next_seed = dice.seed
    """

    def __init__(self, seed: int, source: Optional[RandomSource] = None):
        self.seed = seed
        self._source = source if source is not None else SplitMixSource()
        self._roll_log: list[DiceResult] = []

    def randint(self, low: int, high: int) -> int:
        """Draw one integer in [low, high] and advance the seed."""
        value, self.seed = self._source.draw(self.seed, low, high)
        return value

    def roll(self, count: int, sides: int, reason: str = "") -> DiceResult:
        """
        Roll `count` dice with `sides` faces.

        Args:
            count: Number of dice (0 gives a total of 0)
            sides: Faces per die, must be positive
            reason: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total
        """
        if sides <= 0:
            raise ValueError(f"Die size must be positive, got {sides}")
        rolls = tuple(self.randint(1, sides) for _ in range(max(count, 0)))
        result = DiceResult(
            notation=f"{count}d{sides}",
            rolls=rolls,
            total=sum(rolls),
            reason=reason,
        )
        self._roll_log.append(result)

        from rollables.observability.run_log import get_run_log

        get_run_log().log_roll(
            notation=result.notation,
            rolls=list(rolls),
            total=result.total,
            reason=reason,
        )
        return result

    def roll_percentile(self, reason: str = "") -> DiceResult:
        """Roll d100 for percentile checks."""
        return self.roll(1, 100, reason)

    def get_roll_log(self) -> list[DiceResult]:
        """Get every roll made through this cursor."""
        return self._roll_log.copy()
