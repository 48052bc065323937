"""
Table definition loader.

Decodes one table file (YAML or JSON) into a Definition. Two shapes are
accepted:

1) Table:
    title: Treasure
    dice: 1d6                  # optional, defaults to 1d<highest row>
    inputs:                    # optional, rolled once per table roll
      metal: ./metals
    rows: |
      1-3|[[@gold:2d6]] gold pieces
      4-6|A [metal] ring
    extra: "[[./curses|roll=1]]" # optional, resolved once per table roll

2) Bundle:
    title: Hoard
    bundle:
      - /treasure|roll=2
      - path: ./gems
        store: {value: gold}

References are either a string in the same `path|option|option=value` form
used inside row templates, or a mapping with a `path` key and the option
keys accepted by RollInstructions.
"""

from typing import Any, Mapping
import json
import logging

import yaml

from rollables.tables.dice_expression import Constant, Dice, parse_expression
from rollables.tables.errors import DefinitionError, MalformedExpression, MalformedTemplate
from rollables.tables.row_template import parse_reference as parse_reference_text
from rollables.tables.row_template import parse_rows, parse_template
from rollables.tables.table_types import (
    BundleDefinition,
    Definition,
    RollInstructions,
    TableDefinition,
    UnresolvedRef,
)

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yml", ".yaml")
JSON_SUFFIXES = (".json",)


def decode_document(text: str, suffix: str = ".yml") -> Any:
    """
    Decode raw file text.

    Args:
        text: File contents
        suffix: File extension selecting the format

    Raises:
        ValueError: On unsupported formats or undecodable text
    """
    suffix = suffix.lower()
    try:
        if suffix in YAML_SUFFIXES:
            return yaml.safe_load(text)
        if suffix in JSON_SUFFIXES:
            return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to decode {suffix} document: {e}") from e
    raise ValueError(f"Unsupported file format: {suffix}. Use .yml, .yaml or .json")


def parse_reference(path: str, raw: Any) -> UnresolvedRef:
    """
    Build an UnresolvedRef from its decoded form.

    Args:
        path: Path of the definition holding the reference (for errors)
        raw: A reference string or a mapping with a `path` key
    """
    try:
        if isinstance(raw, str):
            return parse_reference_text(raw)
        if isinstance(raw, Mapping):
            options = dict(raw)
            raw_path = options.pop("path", None)
            if not raw_path:
                raise DefinitionError(path, f"reference {raw!r} has no path")
            return UnresolvedRef(str(raw_path).strip(), RollInstructions.from_mapping(options))
    except (MalformedTemplate, MalformedExpression) as e:
        raise DefinitionError(path, f"invalid reference {raw!r}: {e.message}") from e
    except ValueError as e:
        raise DefinitionError(path, f"invalid reference {raw!r}: {e}") from e
    raise DefinitionError(path, f"reference must be a string or mapping, got {type(raw).__name__}")


def _default_dice(path: str, rows) -> Dice:
    if not rows:
        raise DefinitionError(path, "table has no rows")
    return Dice(count=1, sides=max(row.range.max for row in rows))


def _parse_table(path: str, title: str, data: Mapping[str, Any]) -> TableDefinition:
    raw_rows = data.get("rows")
    if raw_rows is None:
        raw_rows = ""
    if not isinstance(raw_rows, (str, list)):
        raise DefinitionError(path, "rows must be text or a list")
    try:
        rows = parse_rows(raw_rows)
    except MalformedTemplate as e:
        raise DefinitionError(path, str(e)) from e

    dice_text = data.get("dice")
    if dice_text is None:
        dice = _default_dice(path, rows)
    else:
        try:
            dice = parse_expression(str(dice_text))
        except MalformedExpression as e:
            raise DefinitionError(path, f"invalid dice {dice_text!r}: {e}") from e
        if isinstance(dice, Constant):
            logger.debug(f"{path}: dice {dice_text!r} is a constant")

    raw_inputs = data.get("inputs") or {}
    if not isinstance(raw_inputs, Mapping):
        raise DefinitionError(path, "inputs must be a mapping of key to reference")
    inputs = {str(key): parse_reference(path, raw) for key, raw in raw_inputs.items()}

    extra_text = None
    extra = data.get("extra")
    if extra is not None:
        try:
            extra_text = parse_template(str(extra))
        except MalformedTemplate as e:
            raise DefinitionError(path, f"extra: {e}") from e

    return TableDefinition(
        path=path,
        title=title,
        dice=dice,
        rows=rows,
        inputs=inputs,
        extra_text=extra_text,
    )


def _parse_bundle(path: str, title: str, data: Mapping[str, Any]) -> BundleDefinition:
    refs = data.get("bundle")
    if not isinstance(refs, list):
        raise DefinitionError(path, "bundle must be a list of references")
    return BundleDefinition(
        path=path,
        title=title,
        refs=tuple(parse_reference(path, raw) for raw in refs),
    )


def parse_definition(path: str, data: Any) -> Definition:
    """
    Convert a decoded document into a Definition.

    Args:
        path: Resolved path the definition will be registered under
        data: Decoded YAML / JSON document

    Raises:
        DefinitionError: When the document does not match either shape or
            any template, expression or reference inside it is malformed
    """
    if not isinstance(data, Mapping):
        raise DefinitionError(path, "document must be a mapping")

    title = str(data.get("title") or path.rsplit("/", 1)[-1])

    if "bundle" in data:
        if "rows" in data:
            raise DefinitionError(path, "a definition cannot have both rows and bundle")
        return _parse_bundle(path, title, data)
    if "rows" in data:
        return _parse_table(path, title, data)
    raise DefinitionError(path, "document needs either rows or bundle")
