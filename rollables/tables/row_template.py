"""
Row template mini-language.

A template is one line of text with markers:
- `[key]`, `[key:c=red]`, `[key:cbg=blue]`, `[key:t=lowercase]`, `[key:[1]]`
  input placeholders (modifiers may be combined with commas)
- `[[@name:2d6+1]]` a computed value
- `[[@name:/path|roll=2|unique]]`, `[[./path]]` a nested table reference
- `[[30% inner]]`, `[[30 percent inner]]` a percent-chance block whose inner
  text uses this same grammar
- `\\[` and `\\]` for literal brackets

A row line may start with `N|` or `N-M|` to declare its match range.

Parsing happens once at load time; TemplateResolver turns the parsed
components into resolved text at roll time.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
import logging
import re

from rollables.data_models import DiceRoller, RollContext, frozen_map
from rollables.tables.dice_expression import evaluate, parse_expression
from rollables.tables.errors import MalformedExpression, MalformedTemplate
from rollables.tables.table_types import (
    ComputedValue,
    InputPlaceholder,
    PercentChance,
    PlainText,
    ResolvedInput,
    ResolvedPercent,
    ResolvedPlain,
    ResolvedReference,
    ResolvedText,
    ResolvedValue,
    RollInstructions,
    RowDef,
    RowRange,
    TableReference,
    TextComponent,
    TextTransform,
    UnresolvedRef,
)

logger = logging.getLogger(__name__)

_RANGE_PREFIX_RE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+))?\s*\|")
_PERCENT_HEAD_RE = re.compile(r"^\s*(\d+)\s*(?:%|percent\b)\s?", re.IGNORECASE)
_NAME_RE = re.compile(r"^[A-Za-z_][\w\- ]*$")
_INDEX_MODIFIER_RE = re.compile(r"^\[\s*(\d+)\s*\]$")
REFERENCE_PREFIXES = ("/", "./", "../", "$/")


# =============================================================================
# PARSING
# =============================================================================


class _TemplateParser:
    """Scanner for one template line."""

    def __init__(self, text: str, offset: int = 0):
        self._text = text
        self._offset = offset

    def _error(self, position: int, message: str) -> MalformedTemplate:
        return MalformedTemplate(self._offset + position, message)

    def parse(self) -> tuple[TextComponent, ...]:
        text = self._text
        components: list[TextComponent] = []
        buffer: list[str] = []

        def flush() -> None:
            if buffer:
                components.append(PlainText("".join(buffer)))
                buffer.clear()

        i = 0
        while i < len(text):
            char = text[i]
            if char == "\n":
                break
            if char == "\\" and i + 1 < len(text) and text[i + 1] in "[]\\":
                buffer.append(text[i + 1])
                i += 2
                continue
            if text.startswith("[[", i):
                flush()
                end = self._find_close(i + 2, 2)
                components.append(self._double_marker(text[i + 2:end], i + 2))
                i = end + 2
                continue
            if char == "[":
                flush()
                end = self._find_close(i + 1, 1)
                components.append(self._placeholder(text[i + 1:end], i + 1))
                i = end + 1
                continue
            buffer.append(char)
            i += 1

        flush()
        return tuple(components)

    def _find_close(self, start: int, width: int) -> int:
        """Index where the marker opened just before `start` closes."""
        text = self._text
        stack = [width]
        j = start
        while j < len(text) and text[j] != "\n":
            if text[j] == "\\":
                j += 2
                continue
            if text.startswith("[[", j):
                stack.append(2)
                j += 2
            elif text[j] == "[":
                stack.append(1)
                j += 1
            elif text[j] == "]":
                if stack[-1] == 2:
                    if not text.startswith("]]", j):
                        j += 1
                        continue
                    stack.pop()
                    j += 2
                    if not stack:
                        return j - 2
                else:
                    stack.pop()
                    j += 1
                    if not stack:
                        return j - 1
            else:
                j += 1
        opener = "[" * width
        raise self._error(start - width, f"unterminated {opener} marker")

    def _double_marker(self, body: str, position: int) -> TextComponent:
        stripped = body.strip()
        lead = len(body) - len(body.lstrip())

        if stripped.startswith("@"):
            name, sep, rest = stripped[1:].partition(":")
            name = name.strip()
            if not name or not _NAME_RE.match(name):
                raise self._error(position, f"invalid computed value name {name!r}")
            if not sep:
                raise self._error(position, f"expected ':' after @{name}")
            body_position = position + lead + len(stripped) - len(rest)
            if rest.strip().startswith(REFERENCE_PREFIXES):
                return self._reference(rest.strip(), name, body_position)
            try:
                expression = parse_expression(rest, offset=self._offset + body_position)
            except MalformedExpression as e:
                raise MalformedTemplate(e.position, e.message) from e
            return ComputedValue(name=name, expression=expression)

        if stripped.startswith(REFERENCE_PREFIXES):
            return self._reference(stripped, None, position + lead)

        match = _PERCENT_HEAD_RE.match(body)
        if match:
            percent = int(match.group(1))
            if percent > 100:
                raise self._error(position, f"percent chance {percent} exceeds 100")
            inner_offset = self._offset + position + match.end()
            inner = _TemplateParser(body[match.end():], inner_offset).parse()
            return PercentChance(label=match.group(0).strip(), inner=inner, percent=percent)

        raise self._error(position, f"unrecognised marker [[{body}]]")

    def _reference(self, body: str, name: Optional[str], position: int) -> TableReference:
        raw_path, *options = body.split("|")
        raw_path = raw_path.strip()
        option_map: dict[str, Any] = {}
        for option in options:
            option = option.strip()
            if not option:
                continue
            key, sep, value = option.partition("=")
            option_map[key.strip()] = value.strip() if sep else True
        try:
            instructions = RollInstructions.from_mapping(option_map)
        except MalformedExpression as e:
            raise self._error(position, f"invalid dice option: {e.message}") from e
        except ValueError as e:
            raise self._error(position, str(e)) from e
        return TableReference(ref=UnresolvedRef(raw_path, instructions), name=name)

    def _placeholder(self, body: str, position: int) -> InputPlaceholder:
        key, sep, modifiers = body.partition(":")
        key = key.strip()
        if not key or not _NAME_RE.match(key):
            raise self._error(position, f"invalid input key {key!r}")

        color = background = None
        transform = None
        index = 0
        if sep:
            for modifier in modifiers.split(","):
                modifier = modifier.strip()
                index_match = _INDEX_MODIFIER_RE.match(modifier)
                if index_match:
                    index = int(index_match.group(1))
                    continue
                option, eq, value = modifier.partition("=")
                option, value = option.strip(), value.strip()
                if not eq or not value:
                    raise self._error(position, f"invalid modifier {modifier!r} for [{key}]")
                if option == "c":
                    color = value
                elif option == "cbg":
                    background = value
                elif option == "t":
                    try:
                        transform = TextTransform(value.lower())
                    except ValueError:
                        raise self._error(position, f"unknown text transform {value!r}") from None
                else:
                    raise self._error(position, f"unknown modifier {option!r} for [{key}]")

        return InputPlaceholder(
            key=key,
            color=color,
            background=background,
            transform=transform,
            index=index,
        )


def parse_template(text: str, offset: int = 0) -> tuple[TextComponent, ...]:
    """
    Parse one line of template text into components.

    Parsing stops at the first newline.

    Raises:
        MalformedTemplate: On unterminated markers, invalid keys or modifiers,
            and malformed embedded dice expressions
    """
    return _TemplateParser(text, offset).parse()


def parse_reference(text: str) -> UnresolvedRef:
    """Parse `path|option|option=value` as written inside a reference marker."""
    text = text.strip()
    if not text.split("|", 1)[0].strip():
        raise MalformedTemplate(0, "reference has no path")
    return _TemplateParser(text)._reference(text, None, 0).ref


def parse_row(line: str, position: int) -> RowDef:
    """
    Parse a row line, honouring an optional `N|` / `N-M|` range prefix.

    Args:
        line: Raw row text
        position: 1-based position among content rows, used as the range
            when the line declares none
    """
    match = _RANGE_PREFIX_RE.match(line)
    if match:
        low = int(match.group(1))
        high = int(match.group(2) or low)
        if low > high:
            raise MalformedTemplate(match.start(1), f"row range {low}-{high} is empty")
        row_range = RowRange(low, high)
        body_start = match.end()
    else:
        row_range = RowRange(position, position)
        body_start = 0
    template = parse_template(line[body_start:], offset=body_start)
    return RowDef(template=template, range=row_range, source=line)


def parse_rows(source: Union[str, Sequence[Any]]) -> tuple[RowDef, ...]:
    """Parse a block of rows; blank lines are skipped and not counted."""
    lines = source.splitlines() if isinstance(source, str) else [str(line) for line in source]
    rows = []
    for line in lines:
        if not line.strip():
            continue
        position = len(rows) + 1
        try:
            rows.append(parse_row(line, position))
        except MalformedTemplate as e:
            raise MalformedTemplate(e.position, f"row {position}: {e.message}") from e
    return tuple(rows)


# =============================================================================
# RESOLUTION
# =============================================================================


@dataclass(frozen=True)
class TemplateResolution:
    """Output of one resolution pass over a template."""

    text: tuple[ResolvedText, ...]
    refs: tuple[UnresolvedRef, ...] = ()
    values: Mapping[str, tuple[int, ...]] = field(default_factory=dict)
    stored: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", frozen_map(self.values))
        object.__setattr__(self, "stored", frozen_map(self.stored))


def evaluate_store(
    store: Mapping[str, str],
    values: Mapping[str, Sequence[Any]],
    context: RollContext,
) -> dict[str, int]:
    """
    Evaluate a store map (target -> source) against one pass's values.

    The last value recorded under `source` wins; otherwise the context's
    binding is used; sources found nowhere are skipped.
    """
    stored = {}
    for target, source in store.items():
        if values.get(source):
            stored[target] = values[source][-1]
        elif source in context.vars:
            stored[target] = context.vars[source]
    return stored


class TemplateResolver:
    """
    Resolves template components for one pass (one row, or a table's extra text).

    Computed values are recorded so later placeholders in the same pass can
    read them. Table references are not rolled here: they are collected in
    order and the row's text points at them by index, leaving recursion to
    the resolution engine.

    Percent-chance blocks in the same component list share one d100 draw,
    taken when the first block is reached. Blocks are walked in order,
    accumulating their percentages, and the first whose cumulative value
    reaches the draw is selected; every other block in the list is not.
    A selected block's inner list forms its own group with its own draw.
    """

    def __init__(
        self,
        dice: DiceRoller,
        context: RollContext,
        inputs: Optional[Mapping[str, Sequence[Any]]] = None,
    ):
        self._dice = dice
        self._context = context
        self._inputs = inputs or {}
        self._values: dict[str, list[int]] = {}
        self._refs: list[UnresolvedRef] = []

    def resolve(
        self,
        components: Iterable[TextComponent],
        store: Optional[Mapping[str, str]] = None,
    ) -> TemplateResolution:
        text = self._resolve_group(components)
        values = {name: tuple(found) for name, found in self._values.items()}
        return TemplateResolution(
            text=tuple(text),
            refs=tuple(self._refs),
            values=values,
            stored=evaluate_store(store or {}, values, self._context),
        )

    def _resolve_group(self, components: Iterable[TextComponent]) -> list[ResolvedText]:
        resolved: list[ResolvedText] = []
        draw: Optional[int] = None
        cumulative = 0
        decided = False

        for component in components:
            if isinstance(component, PlainText):
                resolved.append(ResolvedPlain(component.text))

            elif isinstance(component, ComputedValue):
                result = evaluate(component.expression, self._dice, f"computed value {component.name}")
                self._values.setdefault(component.name, []).append(result.total)
                resolved.append(ResolvedValue(component.name, result.total, result.rolls))

            elif isinstance(component, InputPlaceholder):
                resolved.append(self._resolve_input(component))

            elif isinstance(component, TableReference):
                self._refs.append(component.ref)
                resolved.append(ResolvedReference(index=len(self._refs) - 1, name=component.name))

            elif isinstance(component, PercentChance):
                if draw is None:
                    draw = self._dice.roll_percentile("percent chance").total
                selected = False
                if not decided:
                    cumulative += component.percent
                    selected = decided = cumulative >= draw
                inner = tuple(self._resolve_group(component.inner)) if selected else ()
                resolved.append(
                    ResolvedPercent(
                        label=component.label,
                        percent=component.percent,
                        selected=selected,
                        inner=inner,
                    )
                )

        return resolved

    def _lookup(self, key: str, index: int) -> Optional[Any]:
        for source in (self._values, self._inputs):
            found = source.get(key)
            if found and index < len(found):
                return found[index]
        if index == 0 and key in self._context.vars:
            return self._context.vars[key]
        return None

    def _resolve_input(self, placeholder: InputPlaceholder) -> ResolvedInput:
        value = self._lookup(placeholder.key, placeholder.index)
        if value is None:
            logger.debug(f"No value for [{placeholder.key}] at index {placeholder.index}")
            return ResolvedInput(
                key=placeholder.key,
                text="",
                color=placeholder.color,
                background=placeholder.background,
                found=False,
            )
        text = str(value)
        if placeholder.transform is not None:
            text = placeholder.transform.apply(text)
        return ResolvedInput(
            key=placeholder.key,
            text=text,
            color=placeholder.color,
            background=placeholder.background,
        )
