"""
Rollables - Main Entry Point

Rolls a table from a directory of table files and prints the result,
optionally re-rolling single rows of it by index path.
"""

import argparse
import logging
import random
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from rollables.content_loader import TableDirectoryError, TableRegistry, export_bundle, index
from rollables.observability import LogEvent, ReplaySession, get_run_log, reset_run_log
from rollables.tables import (
    EngineError,
    UnresolvedRef,
    format_tree,
    render_node,
    reroll,
    resolve,
    resolve_path,
)


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class RollerConfig:
    """Configuration for one command-line run."""

    tables_dir: Path = field(default_factory=lambda: Path("tables"))
    entry: Optional[str] = None
    seed: Optional[int] = None

    # Directory options
    list_tables: bool = False
    filters: list[str] = field(default_factory=list)
    export_dir: Optional[Path] = None

    # Roll options
    rerolls: list[list[int]] = field(default_factory=list)
    show_tree: bool = False
    replay_file: Optional[Path] = None

    # Run log options
    show_log: bool = False
    save_log: Optional[Path] = None

    verbose: bool = False

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.tables_dir, str):
            self.tables_dir = Path(self.tables_dir)
        if isinstance(self.export_dir, str):
            self.export_dir = Path(self.export_dir)
        if isinstance(self.replay_file, str):
            self.replay_file = Path(self.replay_file)
        if isinstance(self.save_log, str):
            self.save_log = Path(self.save_log)


def parse_index_path(text: str) -> list[int]:
    """Parse "0,1,2" (or "0.1.2", or "[0, 1, 2]") into an index path."""
    cleaned = text.strip().strip("[]").replace(".", ",")
    if not cleaned:
        return []
    try:
        return [int(part) for part in cleaned.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid index path: {text!r}") from None


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Rollables - roll random tables with nested references",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rollables --tables tables --list                 # List every table
  rollables --tables tables --list --filter loot   # List tables matching "loot"
  rollables --tables tables /loot/hoard --seed 7   # Roll one table
  rollables --tables tables /loot/hoard --seed 7 --reroll 0,1 --tree
        """
    )

    parser.add_argument(
        "entry",
        nargs="?",
        help="Table or bundle to roll, e.g. /loot/hoard",
    )
    parser.add_argument(
        "--tables",
        type=Path,
        default=Path("tables"),
        help="Directory containing table files (default: tables)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the roll (random when omitted)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    directory_group = parser.add_argument_group("Directory Options")
    directory_group.add_argument(
        "--list",
        action="store_true",
        help="List table entries instead of rolling",
    )
    directory_group.add_argument(
        "--filter",
        action="append",
        default=[],
        help="Only list entries containing this text (repeatable)",
    )
    directory_group.add_argument(
        "--export",
        type=Path,
        help="Write index.json and rollables.json for the directory here",
    )

    roll_group = parser.add_argument_group("Roll Options")
    roll_group.add_argument(
        "--reroll",
        type=parse_index_path,
        action="append",
        default=[],
        help="Re-roll the node at this index path after rolling (repeatable)",
    )
    roll_group.add_argument(
        "--tree",
        action="store_true",
        help="Print the result tree with index paths",
    )
    roll_group.add_argument(
        "--replay",
        type=Path,
        help="Replay the draws recorded in a saved run log",
    )

    log_group = parser.add_argument_group("Run Log Options")
    log_group.add_argument(
        "--show-log",
        action="store_true",
        help="Print the run log after rolling",
    )
    log_group.add_argument(
        "--save-log",
        type=Path,
        help="Save the run log as JSON",
    )

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> RollerConfig:
    """Create RollerConfig from parsed arguments."""
    return RollerConfig(
        tables_dir=args.tables,
        entry=args.entry,
        seed=args.seed,
        list_tables=args.list,
        filters=list(args.filter),
        export_dir=args.export,
        rerolls=list(args.reroll),
        show_tree=args.tree,
        replay_file=args.replay,
        show_log=args.show_log,
        save_log=args.save_log,
        verbose=args.verbose,
    )


# =============================================================================
# RUN
# =============================================================================

def _echo_event(event: LogEvent) -> None:
    logger.debug(str(event))


def run(config: RollerConfig) -> int:
    """
    Execute one run.

    Returns:
        Process exit code
    """
    try:
        if config.list_tables:
            for entry in index(config.tables_dir, config.filters):
                print(entry)
            return 0

        if config.export_dir:
            export_bundle(config.tables_dir, config.export_dir)
            return 0

        if not config.entry:
            logger.error("No table given to roll (use --list to see them)")
            return 2

        registry = TableRegistry.load_from_directory(config.tables_dir)
    except TableDirectoryError as e:
        logger.error(str(e))
        return 1

    path = resolve_path(config.entry, "/", registry.root)
    if path not in registry:
        logger.error(f"No table at {path}")
        return 1

    source = ReplaySession.load(str(config.replay_file)) if config.replay_file else None
    if source is not None:
        # a replay source is addressed by stream position, not by seed
        seed, start = source.seed, 0
    else:
        seed = config.seed if config.seed is not None else random.randrange(2**32)
        start = seed

    log = reset_run_log()
    log.set_seed(seed)
    if config.verbose:
        log.subscribe(_echo_event)

    try:
        node, next_seed = resolve(UnresolvedRef(path), registry, start, source=source)
        print(render_node(node))

        for index_path in config.rerolls:
            node, next_seed = reroll(index_path, node, registry, next_seed, source=source)
            print(f"\n--- re-rolled {index_path} ---")
            print(render_node(node))
    except EngineError as e:
        logger.error(str(e))
        return 1
    finally:
        log.unsubscribe(_echo_event)

    if config.show_tree:
        print()
        print(format_tree(node))

    logger.info(f"Seed {seed}; next seed {next_seed}")

    if config.show_log:
        print()
        get_run_log().print_log(max_events=None)
    if config.save_log:
        get_run_log().save(str(config.save_log))

    return 0


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    config = create_config_from_args(args)
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
