"""
Tests for the rollables command line.
"""

import argparse
import json
import logging

import pytest

from rollables.main import (
    RollerConfig,
    create_config_from_args,
    main,
    parse_arguments,
    parse_index_path,
    run,
)
from rollables.observability import get_run_log


@pytest.fixture
def tables_dir(tmp_path):
    root = tmp_path / "tables"
    (root / "loot").mkdir(parents=True)
    (root / "loot" / "gems.yml").write_text("title: Gems\nrows:\n  - Ruby\n  - Pearl\n  - Opal\n")
    (root / "loot" / "bag.yml").write_text(
        "title: Bag\nrows:\n  - 'A bag of [[./gems|roll=2]]'\n"
    )
    (root / "npc.yml").write_text("title: NPC\nrows:\n  - Miller\n  - Smith\n")
    return root


class TestParseIndexPath:
    """Tests for parse_index_path()."""

    @pytest.mark.parametrize("text", ["0,1", "0.1", "[0, 1]", " 0 , 1 "])
    def test_forms(self, text):
        assert parse_index_path(text) == [0, 1]

    def test_empty_is_root(self):
        assert parse_index_path("") == []
        assert parse_index_path("[]") == []

    def test_invalid(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_index_path("zero")


class TestArguments:
    """Tests for argument parsing into RollerConfig."""

    def test_defaults(self):
        config = create_config_from_args(parse_arguments([]))
        assert config.entry is None
        assert config.seed is None
        assert config.rerolls == []
        assert config.tables_dir.name == "tables"

    def test_roll_options(self):
        config = create_config_from_args(
            parse_arguments(["/loot/bag", "--seed", "7", "--reroll", "0", "--reroll", "0,0", "--tree"])
        )
        assert config.entry == "/loot/bag"
        assert config.seed == 7
        assert config.rerolls == [[0], [0, 0]]
        assert config.show_tree is True

    def test_string_paths_converted(self):
        config = RollerConfig(tables_dir="t", save_log="log.json")
        assert config.tables_dir.name == "t"
        assert config.save_log.name == "log.json"


class TestRun:
    """Tests for run() and main()."""

    def test_list(self, tables_dir, capsys):
        assert run(RollerConfig(tables_dir=tables_dir, list_tables=True)) == 0
        assert capsys.readouterr().out.split() == ["/loot/bag", "/loot/gems", "/npc"]

    def test_list_filtered(self, tables_dir, capsys):
        assert main(["--tables", str(tables_dir), "--list", "--filter", "loot"]) == 0
        assert capsys.readouterr().out.split() == ["/loot/bag", "/loot/gems"]

    def test_missing_directory(self, tmp_path):
        assert run(RollerConfig(tables_dir=tmp_path / "none", list_tables=True)) == 1

    def test_no_entry(self, tables_dir):
        assert run(RollerConfig(tables_dir=tables_dir)) == 2

    def test_unknown_table(self, tables_dir):
        assert run(RollerConfig(tables_dir=tables_dir, entry="/dragons")) == 1

    def test_roll(self, tables_dir, capsys):
        assert run(RollerConfig(tables_dir=tables_dir, entry="/npc", seed=3)) == 0
        assert capsys.readouterr().out.strip() in ("Miller", "Smith")

    def test_same_seed_same_output(self, tables_dir, capsys):
        run(RollerConfig(tables_dir=tables_dir, entry="/loot/bag", seed=99))
        first = capsys.readouterr().out
        run(RollerConfig(tables_dir=tables_dir, entry="/loot/bag", seed=99))
        assert capsys.readouterr().out == first
        assert first.startswith("A bag of ")

    def test_reroll_header(self, tables_dir, capsys):
        config = RollerConfig(tables_dir=tables_dir, entry="/loot/bag", seed=5, rerolls=[[0, 0, 1]])
        assert run(config) == 0
        out = capsys.readouterr().out
        assert "--- re-rolled [0, 0, 1] ---" in out

    def test_reroll_out_of_range(self, tables_dir):
        config = RollerConfig(tables_dir=tables_dir, entry="/npc", seed=5, rerolls=[[4]])
        assert run(config) == 1

    def test_tree(self, tables_dir, capsys):
        run(RollerConfig(tables_dir=tables_dir, entry="/loot/bag", seed=1, show_tree=True))
        out = capsys.readouterr().out
        assert "Bag" in out
        assert "[0, 0, 1]" in out

    def test_export(self, tables_dir, tmp_path):
        output = tmp_path / "static"
        assert main(["--tables", str(tables_dir), "--export", str(output)]) == 0
        assert json.loads((output / "index.json").read_text()) == ["/loot/bag", "/loot/gems", "/npc"]

    def test_save_log_and_replay(self, tables_dir, tmp_path, capsys):
        """Replaying a saved run log prints the same result."""
        log_file = tmp_path / "run.json"
        run(
            RollerConfig(
                tables_dir=tables_dir, entry="/loot/bag", seed=31, rerolls=[[0, 0, 0]], save_log=log_file
            )
        )
        original = capsys.readouterr().out
        saved = json.loads(log_file.read_text())
        assert saved["seed"] == 31

        run(RollerConfig(tables_dir=tables_dir, entry="/loot/bag", rerolls=[[0, 0, 0]], replay_file=log_file))
        assert capsys.readouterr().out == original

    def test_verbose_echoes_events(self, tables_dir, caplog):
        """Verbose runs mirror each run log event into the debug log."""
        with caplog.at_level(logging.DEBUG, logger="rollables.main"):
            assert run(RollerConfig(tables_dir=tables_dir, entry="/npc", seed=2, verbose=True)) == 0
        echoed = [r.getMessage() for r in caplog.records if r.name == "rollables.main"]
        assert any("TABLE NPC" in message for message in echoed)
        assert get_run_log()._subscribers == []

    def test_quiet_run_does_not_echo(self, tables_dir, caplog):
        with caplog.at_level(logging.DEBUG, logger="rollables.main"):
            run(RollerConfig(tables_dir=tables_dir, entry="/npc", seed=2))
        assert not any("TABLE NPC" in r.getMessage() for r in caplog.records)

    def test_show_log(self, tables_dir, capsys):
        run(RollerConfig(tables_dir=tables_dir, entry="/npc", seed=2, show_log=True))
        out = capsys.readouterr().out
        assert "=== Run Log ===" in out
        assert "Seed: 2" in out
        assert "TABLE NPC" in out
