"""
Table type definitions for the Rollables engine.

Covers both sides of a roll:
- definitions decoded from table files (tables, bundles, rows, templates,
  references and their roll instructions)
- the immutable result tree produced by the resolution engine

Every type is a frozen dataclass holding tuples and read-only mappings, so
a result tree can share untouched subtrees after a re-roll.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Union
import re

from rollables.data_models import DiceResult, RollContext, frozen_map
from rollables.tables.dice_expression import Expression, parse_expression


# =============================================================================
# VARIABLES
# =============================================================================


@dataclass(frozen=True)
class Const:
    """A literal integer instruction value."""

    value: int

    def evaluate(self, context: RollContext) -> int:
        return self.value


@dataclass(frozen=True)
class ContextKey:
    """An instruction value read from the roll context (0 when unbound)."""

    key: str

    def evaluate(self, context: RollContext) -> int:
        return context.get(self.key, 0)


Variable = Union[Const, ContextKey]

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def parse_variable(raw: Any) -> Variable:
    """
    Build a Variable from a decoded value.

    Integers and numeric strings become Const; any other non-empty string is
    a context key.
    """
    if isinstance(raw, bool):
        raise ValueError(f"Expected a number or variable name, got {raw!r}")
    if isinstance(raw, int):
        return Const(raw)
    text = str(raw).strip()
    if _INTEGER_RE.match(text):
        return Const(int(text))
    if not text:
        raise ValueError("Empty variable")
    return ContextKey(text)


# =============================================================================
# ROLL INSTRUCTIONS AND REFERENCES
# =============================================================================


def _parse_list(raw: Any) -> list:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [item for item in str(raw).split(",") if item.strip()]


def _parse_store(raw: Any) -> dict[str, str]:
    """
    Store maps are {target: source}; the string form "target:source,name"
    and the list form ["name"] store a value under its own name.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return {str(target): str(source) for target, source in raw.items()}
    store = {}
    for item in _parse_list(raw):
        target, _, source = str(item).partition(":")
        target = target.strip()
        if not target:
            raise ValueError(f"Invalid store entry {item!r}")
        store[target] = source.strip() or target
    return store


@dataclass(frozen=True)
class RollInstructions:
    """
    How a reference should be rolled.

    roll_count repeats the roll; dice_override replaces the table's dice;
    total_override skips the roll entirely; modifier is added to every
    rolled total; unique forbids repeating a total within one batch; ignore
    lists totals that are always re-rolled; store copies computed values
    outward into the roll context under new names.
    """

    roll_count: Optional[Variable] = None
    dice_override: Optional[Expression] = None
    total_override: Optional[Variable] = None
    modifier: Optional[Variable] = None
    unique: bool = False
    ignore: tuple[Variable, ...] = ()
    store: Mapping[str, str] = field(default_factory=dict)
    title_override: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "ignore", tuple(self.ignore))
        object.__setattr__(self, "store", frozen_map(self.store))

    # Option names accepted by from_mapping()
    KEYS = ("roll", "dice", "total", "modifier", "unique", "ignore", "store", "title")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RollInstructions":
        """
        Build instructions from a decoded option map.

        Raises:
            ValueError: On unknown options or values of the wrong shape
            MalformedExpression: When `dice` is not valid notation
        """
        unknown = set(data) - set(cls.KEYS)
        if unknown:
            raise ValueError(f"Unknown roll options: {', '.join(sorted(unknown))}")

        dice = data.get("dice")
        unique = data.get("unique", False)
        if isinstance(unique, str):
            unique = unique.strip().lower() in ("true", "yes", "1")

        return cls(
            roll_count=parse_variable(data["roll"]) if data.get("roll") is not None else None,
            dice_override=parse_expression(str(dice)) if dice is not None else None,
            total_override=parse_variable(data["total"]) if data.get("total") is not None else None,
            modifier=parse_variable(data["modifier"]) if data.get("modifier") is not None else None,
            unique=bool(unique),
            ignore=tuple(parse_variable(item) for item in _parse_list(data.get("ignore"))),
            store=_parse_store(data.get("store")),
            title_override=str(data["title"]) if data.get("title") is not None else None,
        )

    def with_roll_count(self, count: int) -> "RollInstructions":
        return replace(self, roll_count=Const(count))


@dataclass(frozen=True)
class UnresolvedRef:
    """A reference to another rollable, exactly as written in a definition."""

    raw_path: str
    instructions: RollInstructions = field(default_factory=RollInstructions)
    title_override: Optional[str] = None

    @property
    def title(self) -> Optional[str]:
        return self.title_override or self.instructions.title_override


# =============================================================================
# TEMPLATE COMPONENTS
# =============================================================================


class TextTransform(str, Enum):
    """Text transforms available to input placeholders (`t=`)."""

    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    CAPITALIZE = "capitalize"
    TITLE = "title"

    def apply(self, text: str) -> str:
        if self is TextTransform.LOWERCASE:
            return text.lower()
        if self is TextTransform.UPPERCASE:
            return text.upper()
        if self is TextTransform.CAPITALIZE:
            return text[:1].upper() + text[1:]
        return text.title()


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class InputPlaceholder:
    """`[key]` with optional color, background, transform and index modifiers."""

    key: str
    color: Optional[str] = None
    background: Optional[str] = None
    transform: Optional[TextTransform] = None
    index: int = 0


@dataclass(frozen=True)
class ComputedValue:
    """`[[@name:expr]]` - evaluated at roll time and recorded under `name`."""

    name: str
    expression: Expression


@dataclass(frozen=True)
class PercentChance:
    """`[[N% inner]]` - one of a group of blocks sharing a single d100 draw."""

    label: str
    inner: tuple["TextComponent", ...]
    percent: int


@dataclass(frozen=True)
class TableReference:
    """`[[@name:/path|options]]` - a nested rollable resolved after the row."""

    ref: UnresolvedRef
    name: Optional[str] = None


TextComponent = Union[PlainText, InputPlaceholder, ComputedValue, PercentChance, TableReference]


# =============================================================================
# DEFINITIONS
# =============================================================================


@dataclass(frozen=True)
class RowRange:
    """Inclusive range of totals a row matches."""

    min: int
    max: int

    def __post_init__(self):
        if self.min > self.max:
            raise ValueError(f"Row range {self.min}-{self.max} is empty")

    def matches(self, total: int) -> bool:
        """Check if a roll total falls within this row's range."""
        return self.min <= total <= self.max

    def __str__(self) -> str:
        return str(self.min) if self.min == self.max else f"{self.min}-{self.max}"


@dataclass(frozen=True)
class RowDef:
    template: tuple[TextComponent, ...]
    range: RowRange
    source: str = ""


@dataclass(frozen=True)
class TableDefinition:
    """
    A rollable selected by matching a rolled total against row ranges.

    `inputs` are references rolled once per table roll whose rendered rows
    feed `[key]` placeholders; `extra_text` is resolved once per table roll.
    """

    path: str
    title: str
    dice: Expression
    rows: tuple[RowDef, ...]
    inputs: Mapping[str, UnresolvedRef] = field(default_factory=dict)
    extra_text: Optional[tuple[TextComponent, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "rows", tuple(self.rows))
        object.__setattr__(self, "inputs", frozen_map(self.inputs))

    def find_row(self, total: int) -> Optional[RowDef]:
        """First row, in declaration order, whose range contains the total."""
        for row in self.rows:
            if row.range.matches(total):
                return row
        return None


@dataclass(frozen=True)
class BundleDefinition:
    """A fixed, ordered list of references rolled together."""

    path: str
    title: str
    refs: tuple[UnresolvedRef, ...]

    def __post_init__(self):
        object.__setattr__(self, "refs", tuple(self.refs))


Definition = Union[TableDefinition, BundleDefinition]


# =============================================================================
# RESOLVED TEXT
# =============================================================================


@dataclass(frozen=True)
class ResolvedPlain:
    text: str


@dataclass(frozen=True)
class ResolvedValue:
    name: str
    value: int
    rolls: tuple[DiceResult, ...] = ()


@dataclass(frozen=True)
class ResolvedInput:
    key: str
    text: str
    color: Optional[str] = None
    background: Optional[str] = None
    found: bool = True


@dataclass(frozen=True)
class ResolvedPercent:
    label: str
    percent: int
    selected: bool
    inner: tuple["ResolvedText", ...] = ()


@dataclass(frozen=True)
class ResolvedReference:
    """Placeholder for a nested result; `index` points into the row's nested_refs."""

    index: int
    name: Optional[str] = None


ResolvedText = Union[ResolvedPlain, ResolvedValue, ResolvedInput, ResolvedPercent, ResolvedReference]


# =============================================================================
# RESULT TREE
# =============================================================================


@dataclass(frozen=True)
class RowMissing:
    """A rolled total that no row range covers. Kept inline as data."""

    total: int


@dataclass(frozen=True)
class RowResult:
    """
    One rolled row.

    `values` holds every computed value produced while resolving the row;
    `stored` holds the bindings copied outward by the roll's store map, which
    is also the extra context the row's nested references were rolled with.
    """

    total: int
    range: RowRange
    text: tuple[ResolvedText, ...]
    nested_refs: tuple["ResultNode", ...] = ()
    values: Mapping[str, tuple[int, ...]] = field(default_factory=dict)
    stored: Mapping[str, int] = field(default_factory=dict)
    rolls: tuple[DiceResult, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "text", tuple(self.text))
        object.__setattr__(self, "nested_refs", tuple(self.nested_refs))
        object.__setattr__(self, "values", frozen_map(self.values))
        object.__setattr__(self, "stored", frozen_map(self.stored))


@dataclass(frozen=True)
class TableResult:
    ref: UnresolvedRef
    path: str
    definition: TableDefinition
    instructions: RollInstructions
    rows: tuple[Union[RowResult, RowMissing], ...]
    extra_text: tuple[ResolvedText, ...] = ()
    extra_refs: tuple["ResultNode", ...] = ()
    inputs: Mapping[str, "ResultNode"] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "rows", tuple(self.rows))
        object.__setattr__(self, "inputs", frozen_map(self.inputs))

    @property
    def title(self) -> str:
        return self.ref.title or self.instructions.title_override or self.definition.title

    @property
    def exports(self) -> Mapping[str, int]:
        """Bindings this roll hands back to its caller (later rows win)."""
        merged: dict[str, int] = {}
        for row in self.rows:
            if isinstance(row, RowResult):
                merged.update(row.stored)
        return frozen_map(merged)


@dataclass(frozen=True)
class BundleResult:
    ref: UnresolvedRef
    path: str
    definition: BundleDefinition
    instructions: RollInstructions
    repeats: tuple[tuple["ResultNode", ...], ...]

    def __post_init__(self):
        object.__setattr__(self, "repeats", tuple(tuple(r) for r in self.repeats))

    @property
    def title(self) -> str:
        return self.ref.title or self.instructions.title_override or self.definition.title

    @property
    def exports(self) -> Mapping[str, int]:
        """Store map applied to everything the bundle's children exported."""
        accumulated: dict[str, int] = {}
        for repeat in self.repeats:
            for child in repeat:
                accumulated.update(child.exports)
        return frozen_map({
            target: accumulated[source]
            for target, source in self.instructions.store.items()
            if source in accumulated
        })


@dataclass(frozen=True)
class UnresolvedLeaf:
    """A reference left unrolled: absent from the registry, or past the depth limit."""

    ref: UnresolvedRef
    path: str

    @property
    def title(self) -> str:
        return self.ref.title or self.path

    @property
    def exports(self) -> Mapping[str, int]:
        return frozen_map()


ResultNode = Union[TableResult, BundleResult, UnresolvedLeaf]
