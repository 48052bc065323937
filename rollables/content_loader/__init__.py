"""
Content loading for the Rollables engine.

Finds table files on disk, decodes them into definitions and builds the
registry the resolution engine reads from.
"""

from rollables.content_loader.table_directory import (
    TABLE_SUFFIXES,
    TableDirectoryError,
    export_bundle,
    index,
    resolve_entry,
    retrieve,
)
from rollables.content_loader.table_loader import (
    decode_document,
    parse_definition,
    parse_reference,
)
from rollables.content_loader.table_registry import TableRegistry

__all__ = [
    "TABLE_SUFFIXES",
    "TableDirectoryError",
    "export_bundle",
    "index",
    "resolve_entry",
    "retrieve",
    "decode_document",
    "parse_definition",
    "parse_reference",
    "TableRegistry",
]
