"""
Pytest fixtures for the Rollables test suite.

Provides a fresh run log per test, scripted random sources for forcing
exact draws, and small table registries used across the suites.
"""

import pytest

from rollables.content_loader import TableRegistry
from rollables.data_models import DiceRoller
from rollables.observability import ReplaySession, reset_run_log


# =============================================================================
# RUN LOG
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_run_log():
    """Every test starts and ends with an empty run log."""
    log = reset_run_log()
    yield log
    reset_run_log()


# =============================================================================
# DICE FIXTURES
# =============================================================================


@pytest.fixture
def scripted():
    """
    Build a random source that returns the given values in order.

    Use with seed 0: the seed is the position in the scripted stream.
    """

    def _scripted(*values: int) -> ReplaySession:
        return ReplaySession(seed=0, draw_stream=list(values))

    return _scripted


@pytest.fixture
def scripted_dice(scripted):
    """Build a DiceRoller drawing the given values in order."""

    def _scripted_dice(*values: int) -> DiceRoller:
        return DiceRoller(0, scripted(*values))

    return _scripted_dice


# =============================================================================
# REGISTRY FIXTURES
# =============================================================================


@pytest.fixture
def make_registry():
    """Build a TableRegistry from {entry: decoded document}."""

    def _make_registry(sources: dict) -> TableRegistry:
        registry = TableRegistry.from_sources(sources)
        assert registry.get_load_stats()["errors"] == []
        return registry

    return _make_registry


@pytest.fixture
def loot_registry(make_registry):
    """
    Two tables: /loot's second row computes gold and references /other.
    """
    return make_registry(
        {
            "/loot": {
                "title": "Loot",
                "dice": "1d2",
                "rows": [
                    "1|Sword",
                    "2|[[@gold:10]] gold, then [[@next:/other]]",
                ],
            },
            "/other": {
                "title": "Other",
                "dice": "1d2",
                "rows": ["1|Shield", "2|Helm"],
            },
        }
    )


@pytest.fixture
def treasure_registry(make_registry):
    """Tables with nested references, inputs, extra text and a bundle."""
    return make_registry(
        {
            "/two": {"title": "Two Rows", "dice": "1d2", "rows": ["1|A [[/gems]]", "2|B [[/coins]]"]},
            "/gems": {"title": "Gems", "rows": ["Ruby", "Pearl", "Opal"]},
            "/coins": {"title": "Coins", "rows": ["Copper", "Silver"]},
            "/colors": {"title": "Colors", "rows": ["Red", "Green", "Blue"]},
            "/metals": {"title": "Metals", "rows": ["silver", "gold"]},
            "/sword": {
                "title": "Sword",
                "inputs": {"metal": "./metals"},
                "rows": ["A [metal] sword"],
            },
            "/purse": {"title": "Purse", "rows": ["[[@gold:2d6]] gold"]},
            "/chest": {"title": "Chest", "rows": ["Chest holds [gold] gold"]},
            "/hoard": {"title": "Hoard", "bundle": ["/purse|store=gold:gold", "/chest"]},
        }
    )
