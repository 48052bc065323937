"""
Tests for replaying recorded draws through ReplaySession.
"""

import json

from rollables.data_models import DiceRoller
from rollables.observability import ReplaySession, get_run_log
from rollables.tables import UnresolvedRef, render_node, resolve


class TestReplaySession:
    """Tests for the replaying random source."""

    def test_values_in_order(self):
        dice = DiceRoller(0, ReplaySession(draw_stream=[4, 2, 6]))
        assert dice.roll(3, 6).rolls == (4, 2, 6)
        assert dice.seed == 3

    def test_draw_is_pure(self):
        """The position, not hidden state, picks the value."""
        session = ReplaySession(draw_stream=[4, 2])
        assert session.draw(1, 1, 6) == (2, 2)
        assert session.draw(1, 1, 6) == (2, 2)

    def test_overrun_falls_back(self):
        session = ReplaySession(seed=9, draw_stream=[3])
        value, next_position = session.draw(1, 1, 6)
        assert 1 <= value <= 6
        assert next_position == 2
        assert session.get_overrun_count() == 1

    def test_value_outside_bounds_falls_back(self):
        session = ReplaySession(draw_stream=[20])
        value, _ = session.draw(0, 1, 6)
        assert 1 <= value <= 6
        assert session.get_overrun_count() == 1

    def test_remaining_draws(self):
        session = ReplaySession(draw_stream=[1, 2, 3])
        DiceRoller(0, session).roll(2, 6)
        assert session.get_remaining_draws() == 1
        session.reset()
        assert session.get_remaining_draws() == 3

    def test_summary(self):
        session = ReplaySession(seed=4, draw_stream=[1, 2])
        summary = session.get_summary()
        assert summary["seed"] == 4
        assert summary["total_draws"] == 2
        assert summary["overruns"] == 0


class TestFromRunLog:
    """Building sessions from recorded run logs."""

    def test_flattens_roll_events(self):
        log = get_run_log()
        log.set_seed(12)
        log.log_roll("2d6", [3, 5], 8)
        log.log_table_lookup("/gems", "Gems", 8, "Pearl")
        log.log_roll("1d4", [2], 2)
        session = ReplaySession.from_run_log(log.to_dict())
        assert session.draw_stream == [3, 5, 2]
        assert session.seed == 12

    def test_replays_a_resolution(self, treasure_registry):
        ref = UnresolvedRef("/two")
        original, _ = resolve(ref, treasure_registry, 2024)
        session = ReplaySession.from_run_log(get_run_log().to_dict())
        replayed, _ = resolve(ref, treasure_registry, 0, source=session)
        assert render_node(replayed) == render_node(original)
        assert session.get_overrun_count() == 0


class TestPersistence:
    """Saving and loading sessions."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "session.json"
        ReplaySession(seed=3, draw_stream=[1, 2, 3]).save(str(path))
        loaded = ReplaySession.load(str(path))
        assert loaded.seed == 3
        assert loaded.draw_stream == [1, 2, 3]

    def test_load_saved_run_log(self, tmp_path):
        log = get_run_log()
        log.log_roll("1d6", [5], 5)
        path = tmp_path / "run.json"
        log.save(str(path))
        assert ReplaySession.load(str(path)).draw_stream == [5]

    def test_saved_format(self, tmp_path):
        path = tmp_path / "session.json"
        ReplaySession(seed=0, draw_stream=[6]).save(str(path))
        assert json.loads(path.read_text()) == {"seed": 0, "draw_stream": [6]}
