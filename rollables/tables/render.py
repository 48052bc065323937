"""
Plain-text rendering of resolved results.

Pure functions over the result tree; presentation layers that need colors
or interactive re-roll affordances walk the tree themselves.
"""

from typing import Sequence

from rollables.tables.table_types import (
    BundleResult,
    ResolvedInput,
    ResolvedPercent,
    ResolvedPlain,
    ResolvedReference,
    ResolvedText,
    ResolvedValue,
    ResultNode,
    RowMissing,
    RowResult,
    TableResult,
)


def render_text(text: Sequence[ResolvedText], nested_refs: Sequence[ResultNode] = ()) -> str:
    """Render one row's resolved text, expanding references inline."""
    parts = []
    for item in text:
        if isinstance(item, ResolvedPlain):
            parts.append(item.text)
        elif isinstance(item, ResolvedValue):
            parts.append(str(item.value))
        elif isinstance(item, ResolvedInput):
            parts.append(item.text)
        elif isinstance(item, ResolvedPercent):
            if item.selected:
                parts.append(render_text(item.inner, nested_refs))
        elif isinstance(item, ResolvedReference):
            if item.index < len(nested_refs):
                parts.append(render_node(nested_refs[item.index], inline=True))
    return "".join(parts)


def render_row(row) -> str:
    if isinstance(row, RowMissing):
        return f"(no row for {row.total})"
    return render_text(row.text, row.nested_refs)


def row_texts(node: ResultNode) -> list[str]:
    """One rendered string per rolled row (tables) or child (bundles)."""
    if isinstance(node, TableResult):
        return [render_row(row) for row in node.rows]
    if isinstance(node, BundleResult):
        return [render_node(child, inline=True) for repeat in node.repeats for child in repeat]
    return []


def render_node(node: ResultNode, inline: bool = False) -> str:
    """
    Render a result node to text.

    Rows are joined by newlines, or by ", " when the node is rendered inside
    another row. Unresolved leaves render as nothing.
    """
    parts = row_texts(node)
    if isinstance(node, TableResult) and node.extra_text:
        parts.append(render_text(node.extra_text, node.extra_refs))
    separator = ", " if inline else "\n"
    return separator.join(part for part in parts if part)


def format_tree(node: ResultNode, indent: int = 0) -> str:
    """
    Describe a result tree with titles, totals and index paths.

    The bracketed paths are the index paths accepted by re-roll.
    """
    return "\n".join(_tree_lines(node, indent, ()))


def _tree_lines(node: ResultNode, indent: int, prefix: tuple[int, ...]) -> list[str]:
    pad = "  " * indent
    if isinstance(node, TableResult):
        lines = [f"{pad}{node.title}"]
        for i, row in enumerate(node.rows):
            path = list(prefix + (i,))
            if isinstance(row, RowResult):
                lines.append(f"{pad}  {path} ({row.total}) {render_row(row)}")
                for k, child in enumerate(row.nested_refs):
                    lines.extend(_tree_lines(child, indent + 2, prefix + (i, k)))
            else:
                lines.append(f"{pad}  {path} {render_row(row)}")
        if node.extra_text:
            lines.append(f"{pad}  {render_text(node.extra_text, node.extra_refs)}")
        return lines
    if isinstance(node, BundleResult):
        lines = [f"{pad}{node.title}"]
        for r, repeat in enumerate(node.repeats):
            lines.append(f"{pad}  {list(prefix + (r,))}")
            for c, child in enumerate(repeat):
                lines.extend(_tree_lines(child, indent + 2, prefix + (r, c)))
        return lines
    return [f"{pad}{node.title} (not rolled)"]
