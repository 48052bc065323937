"""
Table Registry for the Rollables engine.

A read-only mapping from resolved path to Definition, fully populated
before any resolution starts. Malformed definitions are logged and left
out one path at a time; the rest of the registry still loads.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Iterator, Optional, Union
import logging

from rollables.content_loader.table_directory import TableDirectoryError, index, resolve_entry
from rollables.content_loader.table_loader import decode_document, parse_definition
from rollables.tables.errors import DefinitionError
from rollables.tables.path_resolver import resolve_path
from rollables.tables.table_types import Definition

logger = logging.getLogger(__name__)


class TableRegistry(Mapping):
    """
    Registry of table and bundle definitions keyed by resolved path.

    Usage:
        registry = TableRegistry.load_from_directory("tables/")
        definition = registry["/treasure/gems"]
    """

    def __init__(self, definitions: Optional[dict[str, Definition]] = None, root: str = "/"):
        self.root = root
        self._definitions: dict[str, Definition] = {}
        self._load_stats: dict[str, Any] = {
            "sources_seen": 0,
            "definitions_loaded": 0,
            "errors": [],
        }
        for definition in (definitions or {}).values():
            self.register(definition)

    # =========================================================================
    # MAPPING PROTOCOL
    # =========================================================================

    def __getitem__(self, path: str) -> Definition:
        return self._definitions[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    # =========================================================================
    # POPULATION
    # =========================================================================

    def register(self, definition: Definition) -> None:
        """Add a definition under its own (already resolved) path."""
        if definition.path in self._definitions:
            logger.warning(f"Replacing definition at {definition.path}")
        self._definitions[definition.path] = definition

    def _add_source(self, entry: str, raw: Any, suffix: str = ".yml") -> bool:
        path = resolve_path(entry, "/", self.root)
        self._load_stats["sources_seen"] += 1
        try:
            data = decode_document(raw, suffix) if isinstance(raw, str) else raw
            definition = parse_definition(path, data)
        except (DefinitionError, ValueError) as e:
            logger.error(f"Excluding {path}: {e}")
            self._load_stats["errors"].append(f"{path}: {e}")
            return False
        self.register(definition)
        self._load_stats["definitions_loaded"] += 1
        return True

    @classmethod
    def from_sources(cls, sources: Mapping[str, Any], root: str = "/") -> "TableRegistry":
        """
        Build a registry from raw documents.

        Args:
            sources: Entry -> YAML text or already-decoded mapping
            root: Registry root
        """
        registry = cls(root=root)
        for entry, raw in sources.items():
            registry._add_source(entry, raw)
        logger.info(f"Loaded {len(registry)} of {len(sources)} table definitions")
        return registry

    @classmethod
    def load_from_directory(cls, directory: Union[str, Path], root: str = "/") -> "TableRegistry":
        """
        Build a registry from every table file below a directory.

        Files that cannot be read or decoded as UTF-8, or that resolve
        outside the directory, are recorded as errors like malformed ones.
        """
        registry = cls(root=root)
        for entry in index(directory):
            try:
                file_path = resolve_entry(directory, entry)
                raw = file_path.read_text(encoding="utf-8")
            except (OSError, ValueError, TableDirectoryError) as e:
                logger.error(f"Could not read {entry}: {e}")
                registry._load_stats["sources_seen"] += 1
                registry._load_stats["errors"].append(f"{entry}: {e}")
                continue
            registry._add_source(entry, raw, file_path.suffix)

        stats = registry._load_stats
        logger.info(
            f"Loaded {stats['definitions_loaded']} table definitions from {directory} "
            f"({len(stats['errors'])} excluded)"
        )
        return registry

    def get_load_stats(self) -> dict[str, Any]:
        """Counts of sources seen and loaded, plus one message per exclusion."""
        return {**self._load_stats, "errors": list(self._load_stats["errors"])}

    @property
    def load_stats(self) -> dict[str, Any]:
        return self.get_load_stats()
