"""
Recursive resolution of rollable references.

Per reference:
    raw path -> resolved path -> registry lookup
        absent  -> UnresolvedLeaf
        table   -> roll_table
        bundle  -> roll_bundle

Rows and bundle children may reference further tables, including the table
being rolled. Recursion is bounded by context depth rather than cycle
detection: a table rolled deeper than `max_depth` still rolls its own rows
but leaves every reference inside them unresolved.

All draws go through one DiceRoller per top-level call, so a resolution is
fully determined by (registry, root reference, seed, context).
"""

from typing import Any, Mapping, Optional, Sequence
import logging

from rollables.data_models import DiceRoller, RandomSource, RollContext
from rollables.observability.run_log import get_run_log
from rollables.tables.dice_expression import Expression, evaluate
from rollables.tables.errors import IndexOutOfRange, PathNotFound
from rollables.tables.index_path import Location, LocationKind, child_context, locate, replace
from rollables.tables.path_resolver import resolve_path
from rollables.tables.render import render_row, row_texts
from rollables.tables.row_template import TemplateResolver
from rollables.tables.table_types import (
    BundleDefinition,
    BundleResult,
    Definition,
    ResultNode,
    RollInstructions,
    RowDef,
    RowMissing,
    RowResult,
    TableDefinition,
    TableResult,
    UnresolvedLeaf,
    UnresolvedRef,
)

logger = logging.getLogger(__name__)

# Tables rolled at a depth above this leave their references unresolved
MAX_DEPTH = 10

# Consecutive ignored totals tolerated before a batch gives up
MAX_IGNORE_REROLLS = 100


class ResolutionEngine:
    """
    Rolls references against a registry using a single dice cursor.

    Usage:
        engine = ResolutionEngine(registry, DiceRoller(seed=42))
        node = engine.resolve_ref(UnresolvedRef("/treasure"), RollContext())
    """

    def __init__(
        self,
        registry: Mapping[str, Definition],
        dice: DiceRoller,
        max_depth: int = MAX_DEPTH,
    ):
        self.registry = registry
        self.dice = dice
        self.max_depth = max_depth
        self._root = getattr(registry, "root", "/")

    # =========================================================================
    # REFERENCES
    # =========================================================================

    def resolve_ref(
        self,
        ref: UnresolvedRef,
        context: RollContext,
        context_dir: str = "/",
    ) -> ResultNode:
        """
        Resolve one reference.

        Args:
            ref: Reference as written in a definition
            context: Context the reference is rolled with
            context_dir: Path of the definition holding the reference

        Returns:
            TableResult, BundleResult, or UnresolvedLeaf when the path has
            no definition
        """
        path = resolve_path(ref.raw_path, context_dir, self._root)
        definition = self.registry.get(path)
        if definition is None:
            logger.debug(f"No definition at {path}; leaving {ref.raw_path!r} unresolved")
            return UnresolvedLeaf(ref=ref, path=path)
        return self._roll_definition(ref, path, definition, context, ref.instructions)

    def _roll_definition(
        self,
        ref: UnresolvedRef,
        path: str,
        definition: Definition,
        context: RollContext,
        instructions: RollInstructions,
    ) -> ResultNode:
        if isinstance(definition, TableDefinition):
            return self.roll_table(ref, path, definition, context, instructions)
        return self.roll_bundle(ref, path, definition, context, instructions)

    def _resolve_children(
        self,
        refs: Sequence[UnresolvedRef],
        context_dir: str,
        context: RollContext,
        bindings: Optional[Mapping[str, int]] = None,
    ) -> tuple[ResultNode, ...]:
        """
        Resolve a run of sibling references one after another.

        Each sibling is rolled one level deeper with `bindings`, plus the
        exports of every sibling before it. Past the depth limit the
        references are returned as leaves.
        """
        if context.depth > self.max_depth:
            if refs:
                logger.debug(
                    f"Depth {context.depth} exceeds {self.max_depth}; "
                    f"{len(refs)} reference(s) under {context_dir} left unresolved"
                )
            return tuple(
                UnresolvedLeaf(ref=ref, path=resolve_path(ref.raw_path, context_dir, self._root))
                for ref in refs
            )

        children: list[ResultNode] = []
        for i, ref in enumerate(refs):
            sibling_context = child_context(context, bindings or {}, children, i)
            children.append(self.resolve_ref(ref, sibling_context, context_dir))
        return tuple(children)

    # =========================================================================
    # TABLES
    # =========================================================================

    def roll_table(
        self,
        ref: UnresolvedRef,
        path: str,
        definition: TableDefinition,
        context: RollContext,
        instructions: RollInstructions,
    ) -> TableResult:
        """Roll a table: inputs once, then the rows, then the extra text."""
        inputs = self._roll_inputs(definition, context)
        input_values = {key: row_texts(node) for key, node in inputs.items()}

        rows = self._roll_rows(definition, context, instructions, input_values)

        extra_text: tuple = ()
        extra_refs: tuple = ()
        if definition.extra_text is not None:
            resolution = TemplateResolver(self.dice, context, input_values).resolve(
                definition.extra_text
            )
            extra_text = resolution.text
            extra_refs = self._resolve_children(resolution.refs, definition.path, context)

        return TableResult(
            ref=ref,
            path=path,
            definition=definition,
            instructions=instructions,
            rows=rows,
            extra_text=extra_text,
            extra_refs=extra_refs,
            inputs=inputs,
        )

    def _roll_inputs(self, definition: TableDefinition, context: RollContext) -> dict[str, ResultNode]:
        keys = list(definition.inputs)
        nodes = self._resolve_children(
            [definition.inputs[key] for key in keys], definition.path, context
        )
        return dict(zip(keys, nodes))

    def _count(self, instructions: RollInstructions, context: RollContext) -> int:
        if instructions.roll_count is None:
            return 1
        return max(instructions.roll_count.evaluate(context), 0)

    def _roll_total(
        self,
        expression: Expression,
        instructions: RollInstructions,
        context: RollContext,
        reason: str,
    ) -> int:
        if instructions.total_override is not None:
            return instructions.total_override.evaluate(context)
        total = evaluate(expression, self.dice, reason).total
        if instructions.modifier is not None:
            total += instructions.modifier.evaluate(context)
        return total

    def _roll_rows(
        self,
        definition: TableDefinition,
        context: RollContext,
        instructions: RollInstructions,
        input_values: Mapping[str, Sequence[Any]],
        also_ignore: Sequence[int] = (),
    ) -> tuple[Any, ...]:
        """
        Roll the batch of rows for one table roll.

        Ignored totals are re-rolled without using up a repeat; with
        `unique`, each accepted total joins the ignore set for the rest of
        the batch.
        """
        expression = instructions.dice_override or definition.dice
        ignore = {variable.evaluate(context) for variable in instructions.ignore}
        ignore.update(also_ignore)
        reason = f"table {definition.path}"

        rows = []
        for _ in range(self._count(instructions, context)):
            total = self._roll_total(expression, instructions, context, reason)
            rerolls = 0
            while total in ignore and rerolls < MAX_IGNORE_REROLLS:
                rerolls += 1
                total = self._roll_total(expression, instructions, context, reason)
            if total in ignore:
                logger.warning(
                    f"{definition.path}: gave up after {MAX_IGNORE_REROLLS} ignored totals; "
                    f"stopping at {len(rows)} row(s)"
                )
                break

            row_def = definition.find_row(total)
            if row_def is None:
                logger.debug(f"{definition.path}: no row covers {total}")
                row = RowMissing(total=total)
            else:
                row = self._roll_row(definition, row_def, total, context, instructions, input_values)
            self._log_table_lookup(definition, row, context)
            rows.append(row)

            if instructions.unique:
                ignore.add(total)

        return tuple(rows)

    def _roll_row(
        self,
        definition: TableDefinition,
        row_def: RowDef,
        total: int,
        context: RollContext,
        instructions: RollInstructions,
        input_values: Mapping[str, Sequence[Any]],
    ) -> RowResult:
        resolver = TemplateResolver(self.dice, context, input_values)
        resolution = resolver.resolve(row_def.template, instructions.store)
        nested = self._resolve_children(
            resolution.refs, definition.path, context, resolution.stored
        )
        return RowResult(
            total=total,
            range=row_def.range,
            text=resolution.text,
            nested_refs=nested,
            values=resolution.values,
            stored=resolution.stored,
        )

    # =========================================================================
    # BUNDLES
    # =========================================================================

    def roll_bundle(
        self,
        ref: UnresolvedRef,
        path: str,
        definition: BundleDefinition,
        context: RollContext,
        instructions: RollInstructions,
    ) -> BundleResult:
        """Roll every reference of a bundle, `roll_count` times over."""
        repeats = tuple(
            self._roll_repeat(definition, context)
            for _ in range(self._count(instructions, context))
        )
        return BundleResult(
            ref=ref,
            path=path,
            definition=definition,
            instructions=instructions,
            repeats=repeats,
        )

    def _roll_repeat(self, definition: BundleDefinition, context: RollContext) -> tuple[ResultNode, ...]:
        return self._resolve_children(definition.refs, definition.path, context)

    # =========================================================================
    # RE-ROLL
    # =========================================================================

    def _current_definition(self, path: str, expected: type) -> Definition:
        definition = self.registry.get(path)
        if not isinstance(definition, expected):
            raise PathNotFound(path)
        return definition

    def reroll_location(self, location: Location) -> Any:
        """
        Roll the target of a location again in its original context.

        Returns:
            A replacement of the same shape as `location.node`

        Raises:
            PathNotFound: If the target's definition is no longer registered
        """
        if location.kind == LocationKind.ROW:
            table: TableResult = location.parent
            definition = self._current_definition(table.path, TableDefinition)
            also_ignore = ()
            if table.instructions.unique:
                also_ignore = tuple(
                    row.total for i, row in enumerate(table.rows) if i != location.index
                )
            input_values = {key: row_texts(node) for key, node in table.inputs.items()}
            rows = self._roll_rows(
                definition,
                location.context,
                table.instructions.with_roll_count(1),
                input_values,
                also_ignore,
            )
            return rows[0] if rows else location.node

        if location.kind == LocationKind.REPEAT:
            bundle: BundleResult = location.parent
            definition = self._current_definition(bundle.path, BundleDefinition)
            return self._roll_repeat(definition, location.context)

        node = location.node
        definition = self.registry.get(node.path)
        if definition is None:
            raise PathNotFound(node.path)
        return self._roll_definition(
            node.ref, node.path, definition, location.context, node.ref.instructions
        )

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================

    def _log_table_lookup(self, definition: TableDefinition, row, context: RollContext) -> None:
        get_run_log().log_table_lookup(
            table_path=definition.path,
            table_title=definition.title,
            roll_total=row.total,
            result_text=render_row(row),
            depth=context.depth,
        )


# =============================================================================
# ENGINE API
# =============================================================================


def resolve(
    root_ref: UnresolvedRef,
    registry: Mapping[str, Definition],
    seed: int,
    context: Optional[RollContext] = None,
    source: Optional[RandomSource] = None,
    max_depth: int = MAX_DEPTH,
) -> tuple[ResultNode, int]:
    """
    Resolve a root reference into a result tree.

    Args:
        root_ref: Reference to roll; relative paths resolve against the root
        registry: Resolved path -> Definition
        seed: Seed for the first draw
        context: Starting context (depth 0, no variables by default)
        source: Random source (splitmix64 by default)

    Returns:
        (result tree, seed after the last draw)
    """
    dice = DiceRoller(seed, source)
    engine = ResolutionEngine(registry, dice, max_depth)
    node = engine.resolve_ref(root_ref, context or RollContext())
    return node, dice.seed


def reroll(
    path: Sequence[int],
    root: ResultNode,
    registry: Mapping[str, Definition],
    seed: int,
    context: Optional[RollContext] = None,
    source: Optional[RandomSource] = None,
    max_depth: int = MAX_DEPTH,
) -> tuple[ResultNode, int]:
    """
    Roll one node of an existing tree again and splice it in.

    A row path re-rolls that single row; a bundle repeat path re-rolls that
    repeat; any other path re-rolls the addressed node. Everything off the
    path is shared with `root`.

    Args:
        path: Index path of the target
        root: Existing result tree
        registry: Resolved path -> Definition
        seed: Seed for the first draw
        context: Context `root` was originally rolled with

    Returns:
        (new result tree, seed after the last draw)

    Raises:
        IndexOutOfRange: If the path does not address a node of `root`
        PathNotFound: If the target's definition is not in the registry
    """
    location = locate(path, root, context)
    if location is None:
        raise IndexOutOfRange(path)

    dice = DiceRoller(seed, source)
    engine = ResolutionEngine(registry, dice, max_depth)
    replacement = engine.reroll_location(location)

    target = location.parent if location.parent is not None else location.node
    get_run_log().log_reroll(
        index_path=list(path),
        target_path=target.path,
        kind=location.kind.value,
    )
    return replace(path, replacement, root), dice.seed
