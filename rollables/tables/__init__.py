"""
Rollable table engine.

Dice notation, row templates, reference paths, recursive resolution and
index-path re-roll over immutable result trees.
"""

from rollables.tables.errors import (
    EngineError,
    PathNotFound,
    IndexOutOfRange,
    MalformedExpression,
    MalformedTemplate,
    DefinitionError,
)
from rollables.tables.path_resolver import resolve_path, parent_dir
from rollables.tables.dice_expression import (
    Operator,
    Constant,
    Dice,
    BinaryOp,
    Expression,
    ExpressionResult,
    parse_expression,
    evaluate,
    roll_notation,
)
from rollables.tables.table_types import (
    Const,
    ContextKey,
    parse_variable,
    RollInstructions,
    UnresolvedRef,
    TextTransform,
    PlainText,
    InputPlaceholder,
    ComputedValue,
    PercentChance,
    TableReference,
    RowRange,
    RowDef,
    TableDefinition,
    BundleDefinition,
    Definition,
    ResolvedPlain,
    ResolvedValue,
    ResolvedInput,
    ResolvedPercent,
    ResolvedReference,
    RowMissing,
    RowResult,
    TableResult,
    BundleResult,
    UnresolvedLeaf,
    ResultNode,
)
from rollables.tables.row_template import (
    parse_template,
    parse_reference,
    parse_row,
    parse_rows,
    TemplateResolution,
    TemplateResolver,
)
from rollables.tables.index_path import Location, LocationKind, locate, replace
from rollables.tables.resolution_engine import (
    MAX_DEPTH,
    ResolutionEngine,
    resolve,
    reroll,
)
from rollables.tables.render import render_text, render_row, render_node, format_tree

__all__ = [
    # Errors
    "EngineError",
    "PathNotFound",
    "IndexOutOfRange",
    "MalformedExpression",
    "MalformedTemplate",
    "DefinitionError",
    # Paths
    "resolve_path",
    "parent_dir",
    # Dice expressions
    "Operator",
    "Constant",
    "Dice",
    "BinaryOp",
    "Expression",
    "ExpressionResult",
    "parse_expression",
    "evaluate",
    "roll_notation",
    # Definitions
    "Const",
    "ContextKey",
    "parse_variable",
    "RollInstructions",
    "UnresolvedRef",
    "TextTransform",
    "PlainText",
    "InputPlaceholder",
    "ComputedValue",
    "PercentChance",
    "TableReference",
    "RowRange",
    "RowDef",
    "TableDefinition",
    "BundleDefinition",
    "Definition",
    # Results
    "ResolvedPlain",
    "ResolvedValue",
    "ResolvedInput",
    "ResolvedPercent",
    "ResolvedReference",
    "RowMissing",
    "RowResult",
    "TableResult",
    "BundleResult",
    "UnresolvedLeaf",
    "ResultNode",
    # Templates
    "parse_template",
    "parse_reference",
    "parse_row",
    "parse_rows",
    "TemplateResolution",
    "TemplateResolver",
    # Engine
    "Location",
    "LocationKind",
    "locate",
    "replace",
    "MAX_DEPTH",
    "ResolutionEngine",
    "resolve",
    "reroll",
    # Rendering
    "render_text",
    "render_row",
    "render_node",
    "format_tree",
]
