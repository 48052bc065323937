"""
File-system directory of table files.

Table files live anywhere below a root directory. An entry is the file's
root-relative path without its extension, `/`-prefixed, which is also the
path the definition is registered under:

    <root>/treasure/gems.yml  ->  /treasure/gems
"""

from pathlib import Path
from typing import Iterable, Union
import json
import logging

logger = logging.getLogger(__name__)

TABLE_SUFFIXES = (".yml", ".yaml", ".json")


class TableDirectoryError(Exception):
    """Raised when an entry cannot be served from the table directory."""

    pass


def _entry_for(root: Path, file_path: Path) -> str:
    relative = file_path.relative_to(root).with_suffix("")
    return "/" + relative.as_posix()


def index(root: Union[str, Path], filters: Iterable[str] = ()) -> list[str]:
    """
    List every table entry below `root`.

    Args:
        root: Table directory
        filters: Substrings; when given, only entries containing at least
            one of them are listed

    Returns:
        Sorted entries
    """
    root = Path(root)
    if not root.is_dir():
        raise TableDirectoryError(f"Table directory not found: {root}")

    entries = sorted(
        {
            _entry_for(root, file_path)
            for file_path in root.rglob("*")
            if file_path.is_file() and file_path.suffix.lower() in TABLE_SUFFIXES
        }
    )

    filters = [f for f in filters if f]
    if filters:
        entries = [entry for entry in entries if any(f in entry for f in filters)]
    return entries


def resolve_entry(root: Union[str, Path], entry: str) -> Path:
    """
    Find the file backing an entry.

    Leading slashes are ignored. The entry must stay inside `root` once
    resolved; `../` escapes are rejected.

    Raises:
        TableDirectoryError: If the entry escapes the root or has no file
    """
    root = Path(root).resolve()
    relative = entry.lstrip("/")
    base = (root / relative).resolve()
    if root not in base.parents:
        raise TableDirectoryError(f"entry {base} out of bounds!")

    for suffix in TABLE_SUFFIXES:
        candidate = base.with_name(base.name + suffix)
        if candidate.is_file():
            if root not in candidate.resolve().parents:
                raise TableDirectoryError(f"entry {candidate.resolve()} out of bounds!")
            return candidate
    raise TableDirectoryError(f"No table file for entry {entry!r}")


def retrieve(root: Union[str, Path], entry: str) -> str:
    """Return the raw text of an entry's table file."""
    file_path = resolve_entry(root, entry)
    logger.debug(f"Retrieving {entry} from {file_path}")
    return file_path.read_text(encoding="utf-8")


def export_bundle(root: Union[str, Path], output_dir: Union[str, Path]) -> Path:
    """
    Write the directory out as static JSON for clients without file access.

    Produces `index.json` (the entry list) and `rollables.json` (entry ->
    raw text) under `output_dir`.

    Returns:
        The output directory
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    entries = index(root)
    contents = {entry: retrieve(root, entry) for entry in entries}

    with open(output_dir / "index.json", "w", encoding="utf-8") as f:
        json.dump(entries, f, indent=2)
    with open(output_dir / "rollables.json", "w", encoding="utf-8") as f:
        json.dump(contents, f)

    logger.info(f"Exported {len(entries)} tables to {output_dir}")
    return output_dir
