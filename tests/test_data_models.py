"""
Unit tests for the core data models.

Tests RollContext, SplitMixSource and the seed-threading DiceRoller from
rollables/data_models.py.
"""

import dataclasses

import pytest

from rollables.data_models import DiceResult, DiceRoller, RollContext, SplitMixSource
from rollables.observability import get_run_log


class TestRollContext:
    """Tests for the immutable roll context."""

    def test_defaults(self):
        """A new context is at depth 0 with no variables."""
        context = RollContext()
        assert context.depth == 0
        assert dict(context.vars) == {}

    def test_child_goes_one_level_deeper(self):
        """child() increments depth and merges bindings."""
        context = RollContext(vars={"a": 1})
        child = context.child({"b": 2})
        assert child.depth == 1
        assert dict(child.vars) == {"a": 1, "b": 2}

    def test_child_bindings_override(self):
        """Later bindings win over inherited ones."""
        child = RollContext(vars={"a": 1}).child({"a": 5})
        assert child.get("a") == 5

    def test_extended_keeps_depth(self):
        """extended() merges at the same depth."""
        context = RollContext(depth=3).extended({"x": 4})
        assert context.depth == 3
        assert context.get("x") == 4

    def test_extended_without_bindings_is_identity(self):
        """Extending with nothing returns the same context."""
        context = RollContext(vars={"a": 1})
        assert context.extended({}) is context
        assert context.extended(None) is context

    def test_parent_is_never_changed(self):
        """Deriving contexts leaves the original untouched."""
        context = RollContext(vars={"a": 1})
        context.child({"a": 2})
        context.extended({"b": 3})
        assert dict(context.vars) == {"a": 1}

    def test_vars_are_read_only(self):
        """Variables cannot be assigned in place."""
        context = RollContext(vars={"a": 1})
        with pytest.raises(TypeError):
            context.vars["a"] = 2

    def test_context_is_frozen(self):
        """Fields cannot be reassigned."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            RollContext().depth = 4

    def test_missing_key_defaults_to_zero(self):
        """get() returns 0 for unbound keys."""
        assert RollContext().get("nothing") == 0


class TestSplitMixSource:
    """Tests for the default pure random source."""

    def test_draw_is_pure(self):
        """The same seed and bounds give the same value and next seed."""
        source = SplitMixSource()
        assert source.draw(42, 1, 6) == source.draw(42, 1, 6)

    def test_draw_advances_seed(self):
        """The returned seed differs from the input seed."""
        _, next_seed = SplitMixSource().draw(42, 1, 6)
        assert next_seed != 42

    def test_draw_stays_in_bounds(self):
        """Values always fall within [low, high]."""
        source = SplitMixSource()
        seed = 0
        for _ in range(500):
            value, seed = source.draw(seed, 3, 8)
            assert 3 <= value <= 8

    def test_single_value_range(self):
        """A range of one value always returns it."""
        assert SplitMixSource().draw(7, 5, 5)[0] == 5

    def test_empty_range_rejected(self):
        """high < low is an error."""
        with pytest.raises(ValueError):
            SplitMixSource().draw(0, 6, 1)

    def test_no_seed_reused_in_a_sequence(self):
        """Threading the seed never revisits an earlier seed."""
        source = SplitMixSource()
        seeds = [0]
        for _ in range(200):
            seeds.append(source.draw(seeds[-1], 1, 100)[1])
        assert len(set(seeds)) == len(seeds)


class TestDiceRoller:
    """Tests for the seed-threading dice cursor."""

    def test_roll_within_bounds(self):
        """Every die and the total stay within bounds."""
        dice = DiceRoller(seed=1)
        for _ in range(100):
            result = dice.roll(3, 6, "test")
            assert len(result.rolls) == 3
            assert all(1 <= r <= 6 for r in result.rolls)
            assert 3 <= result.total <= 18
            assert result.total == sum(result.rolls)

    def test_zero_dice_total_zero(self):
        """Rolling no dice gives a total of 0."""
        result = DiceRoller(seed=1).roll(0, 6)
        assert result.rolls == ()
        assert result.total == 0

    def test_non_positive_sides_rejected(self):
        """A die needs at least one face."""
        with pytest.raises(ValueError):
            DiceRoller(seed=1).roll(1, 0)

    def test_same_seed_same_rolls(self):
        """Two rollers with one seed roll identically."""
        first, second = DiceRoller(seed=9), DiceRoller(seed=9)
        assert first.roll(4, 20).rolls == second.roll(4, 20).rolls
        assert first.roll(2, 8).rolls == second.roll(2, 8).rolls
        assert first.seed == second.seed

    def test_seed_advances_per_draw(self):
        """The cursor's seed moves on every draw."""
        dice = DiceRoller(seed=5)
        before = dice.seed
        dice.randint(1, 6)
        assert dice.seed != before

    def test_scripted_source(self, scripted_dice):
        """A scripted source forces exact values."""
        result = scripted_dice(4, 2).roll(2, 6)
        assert result.rolls == (4, 2)
        assert result.total == 6

    def test_roll_percentile(self, scripted_dice):
        """Percentile rolls are one d100."""
        result = scripted_dice(37).roll_percentile("check")
        assert result.notation == "1d100"
        assert result.total == 37

    def test_roll_logged_to_run_log(self, scripted_dice):
        """Every roll is recorded as a roll event."""
        scripted_dice(3, 5).roll(2, 6, "damage")
        rolls = get_run_log().get_rolls()
        assert len(rolls) == 1
        assert rolls[0].notation == "2d6"
        assert rolls[0].rolls == [3, 5]
        assert rolls[0].total == 8
        assert rolls[0].reason == "damage"

    def test_roll_log_per_cursor(self):
        """Each cursor keeps its own list of rolls."""
        dice = DiceRoller(seed=3)
        dice.roll(1, 6)
        dice.roll(1, 8)
        log = dice.get_roll_log()
        assert [r.notation for r in log] == ["1d6", "1d8"]
        assert DiceRoller(seed=3).get_roll_log() == []

    def test_dice_result_str(self):
        """DiceResult renders notation, dice and total."""
        result = DiceResult(notation="2d6", rolls=(3, 4), total=7)
        assert str(result) == "2d6: [3, 4] = 7"
