"""
Error surface of the rollable table engine.

Definition-time errors (malformed dice or template grammar) exclude a single
definition from the registry. Navigation errors are raised only by re-roll;
everything else in the engine degrades to data inside the result tree.
"""

from typing import Sequence


class EngineError(Exception):
    """Base class for all errors raised by the table engine."""

    pass


class PathNotFound(EngineError):
    """Raised when a re-roll target has no definition in the registry."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No rollable definition at {path}")


class IndexOutOfRange(EngineError):
    """Raised when an index path no longer addresses a node in the result tree."""

    def __init__(self, index_path: Sequence[int]):
        self.index_path = tuple(index_path)
        super().__init__(f"Index path {list(self.index_path)} is out of range")


class _PositionalError(EngineError):
    """An error that points at a character offset in the parsed source."""

    def __init__(self, position: int, message: str):
        self.position = position
        self.message = message
        super().__init__(f"{message} (at position {position})")


class MalformedExpression(_PositionalError):
    """Raised when dice notation cannot be parsed."""

    pass


class MalformedTemplate(_PositionalError):
    """Raised when a row or extra-text template cannot be parsed."""

    pass


class DefinitionError(EngineError):
    """Raised when a raw table or bundle document does not match the schema."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")
