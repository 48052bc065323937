"""
Index-path addressing inside a resolved result tree.

An index path is a list of integers describing a descent:
- in a TableResult the head selects a row; the rest of the path continues
  into that row's nested references
- in a BundleResult the head selects a repeat; a single remaining index
  selects a child of that repeat, a longer remainder continues into it

`locate` recomputes the context each addressed node was rolled with, and
`replace` rebuilds only the nodes along the path, leaving every other
subtree as the same object.
"""

from dataclasses import dataclass, replace as dataclass_replace
from enum import Enum
from typing import Any, Optional, Sequence
import logging

from rollables.data_models import RollContext
from rollables.tables.errors import IndexOutOfRange
from rollables.tables.table_types import (
    BundleResult,
    ResultNode,
    RowResult,
    TableResult,
)

logger = logging.getLogger(__name__)


class LocationKind(str, Enum):
    """What an index path ends on."""

    ROW = "row"          # A row of a TableResult
    REPEAT = "repeat"    # A repeat of a BundleResult
    NODE = "node"        # A whole result node (the root, a nested ref or a bundle child)


@dataclass(frozen=True)
class Location:
    """
    Target of an index path.

    `context` is the context the target was rolled with. For ROW and REPEAT
    targets `parent` is the table or bundle holding the target and `index`
    its position there.
    """

    context: RollContext
    node: Any
    kind: LocationKind
    parent: Optional[ResultNode] = None
    index: Optional[int] = None


def child_context(
    context: RollContext,
    bindings,
    siblings: Sequence[ResultNode],
    index: int,
) -> RollContext:
    """
    Context for the `index`-th of a run of sibling references.

    One level deeper than `context` with `bindings` applied, then extended
    by the exports of every earlier sibling.
    """
    result = context.child(bindings)
    for sibling in siblings[:index]:
        result = result.extended(sibling.exports)
    return result


def _in_range(index: int, items: Sequence) -> bool:
    return 0 <= index < len(items)


def locate(
    path: Sequence[int],
    root: ResultNode,
    context: Optional[RollContext] = None,
) -> Optional[Location]:
    """
    Find the node an index path addresses.

    Args:
        path: Index path; empty addresses the root itself
        root: Result tree
        context: Context the root was rolled with

    Returns:
        Location, or None when the path is out of range or descends through
        something that was never rolled (a missing row or unresolved leaf)
    """
    context = context or RollContext()
    remaining = tuple(path)
    if not remaining:
        return Location(context=context, node=root, kind=LocationKind.NODE)

    node = root
    while remaining:
        head, tail = remaining[0], remaining[1:]

        if isinstance(node, TableResult):
            if not _in_range(head, node.rows):
                return None
            row = node.rows[head]
            if not tail:
                return Location(context, row, LocationKind.ROW, parent=node, index=head)
            if not isinstance(row, RowResult) or not _in_range(tail[0], row.nested_refs):
                return None
            context = child_context(context, row.stored, row.nested_refs, tail[0])
            node = row.nested_refs[tail[0]]

        elif isinstance(node, BundleResult):
            if not _in_range(head, node.repeats):
                return None
            repeat = node.repeats[head]
            if not tail:
                return Location(context, repeat, LocationKind.REPEAT, parent=node, index=head)
            if not _in_range(tail[0], repeat):
                return None
            context = child_context(context, {}, repeat, tail[0])
            node = repeat[tail[0]]

        else:
            logger.debug(f"Index path {list(path)} descends through an unrolled node")
            return None

        remaining = tail[1:]

    return Location(context=context, node=node, kind=LocationKind.NODE)


def _splice(items: tuple, index: int, value: Any) -> tuple:
    return items[:index] + (value,) + items[index + 1:]


def replace(path: Sequence[int], new: Any, root: ResultNode) -> ResultNode:
    """
    Return a new tree with the target of `path` swapped for `new`.

    `new` must match what the path addresses: a row result for row paths,
    a tuple of nodes for bundle repeats, a result node otherwise.

    Raises:
        IndexOutOfRange: If the path does not address anything in `root`
    """
    path = tuple(path)
    if not path:
        return new
    return _replace(root, path, new, path)


def _replace(node: ResultNode, path: tuple, new: Any, full_path: tuple) -> ResultNode:
    head, tail = path[0], path[1:]

    if isinstance(node, TableResult):
        if not _in_range(head, node.rows):
            raise IndexOutOfRange(full_path)
        if not tail:
            return dataclass_replace(node, rows=_splice(node.rows, head, new))
        row = node.rows[head]
        if not isinstance(row, RowResult) or not _in_range(tail[0], row.nested_refs):
            raise IndexOutOfRange(full_path)
        child = row.nested_refs[tail[0]]
        child = new if len(tail) == 1 else _replace(child, tail[1:], new, full_path)
        row = dataclass_replace(row, nested_refs=_splice(row.nested_refs, tail[0], child))
        return dataclass_replace(node, rows=_splice(node.rows, head, row))

    if isinstance(node, BundleResult):
        if not _in_range(head, node.repeats):
            raise IndexOutOfRange(full_path)
        if not tail:
            return dataclass_replace(node, repeats=_splice(node.repeats, head, tuple(new)))
        repeat = node.repeats[head]
        if not _in_range(tail[0], repeat):
            raise IndexOutOfRange(full_path)
        child = repeat[tail[0]]
        child = new if len(tail) == 1 else _replace(child, tail[1:], new, full_path)
        repeat = _splice(repeat, tail[0], child)
        return dataclass_replace(node, repeats=_splice(node.repeats, head, repeat))

    raise IndexOutOfRange(full_path)
