"""
Dice notation grammar and evaluator.

    expr := term (('+' | '-' | '*') term)*
    term := '(' expr ')' | ['-'] int ['d' int] | ['-'] 'd' int

All three operators share a single precedence level and are applied
strictly left to right, so `2+3*4` is 20. Tables written against this
notation depend on that order; it is not conventional arithmetic.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from rollables.data_models import DiceResult, DiceRoller
from rollables.tables.errors import MalformedExpression


class Operator(str, Enum):
    """Binary operators, all at the same precedence."""

    ADD = "+"
    SUB = "-"
    MUL = "*"

    def apply(self, left: int, right: int) -> int:
        if self is Operator.ADD:
            return left + right
        if self is Operator.SUB:
            return left - right
        return left * right


@dataclass(frozen=True)
class Constant:
    value: int

    @property
    def notation(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Dice:
    """An N-d-M term: `count` dice of `sides` faces."""

    count: int
    sides: int
    negative: bool = False

    @property
    def notation(self) -> str:
        sign = "-" if self.negative else ""
        return f"{sign}{self.count}d{self.sides}"


@dataclass(frozen=True)
class BinaryOp:
    op: Operator
    left: "Expression"
    right: "Expression"

    @property
    def notation(self) -> str:
        right = self.right.notation
        if isinstance(self.right, BinaryOp):
            right = f"({right})"
        return f"{self.left.notation}{self.op.value}{right}"


Expression = Union[Constant, Dice, BinaryOp]


@dataclass(frozen=True)
class ExpressionResult:
    """Evaluated expression: the total plus every dice group drawn for it."""

    total: int
    rolls: tuple[DiceResult, ...] = ()


# =============================================================================
# PARSER
# =============================================================================


class _ExpressionParser:
    """Recursive-descent parser over a single dice expression."""

    def __init__(self, text: str, offset: int = 0):
        self._text = text
        self._offset = offset
        self._pos = 0

    def _error(self, message: str) -> MalformedExpression:
        return MalformedExpression(self._offset + self._pos, message)

    def _skip_whitespace(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos].isspace():
            self._pos += 1

    def _peek(self) -> str:
        return self._text[self._pos] if self._pos < len(self._text) else ""

    def _integer(self) -> Union[int, None]:
        start = self._pos
        while self._peek().isdigit():
            self._pos += 1
        if start == self._pos:
            return None
        return int(self._text[start:self._pos])

    def parse(self) -> Expression:
        self._skip_whitespace()
        if not self._peek():
            raise self._error("empty expression")
        expression = self._expression()
        self._skip_whitespace()
        if self._peek():
            raise self._error(f"unexpected {self._peek()!r} after expression")
        return expression

    def _expression(self) -> Expression:
        left = self._term()
        while True:
            self._skip_whitespace()
            symbol = self._peek()
            if symbol not in ("+", "-", "*"):
                return left
            self._pos += 1
            right = self._term()
            left = BinaryOp(Operator(symbol), left, right)

    def _term(self) -> Expression:
        self._skip_whitespace()
        if not self._peek():
            raise self._error("missing operand")

        if self._peek() == "(":
            self._pos += 1
            inner = self._expression()
            self._skip_whitespace()
            if self._peek() != ")":
                raise self._error("unterminated parenthesis")
            self._pos += 1
            return inner

        negative = False
        if self._peek() == "-":
            negative = True
            self._pos += 1
            self._skip_whitespace()

        count = self._integer()
        if self._peek() in ("d", "D"):
            self._pos += 1
            sides = self._integer()
            if sides is None:
                raise self._error("missing die size after 'd'")
            if sides <= 0:
                raise self._error("die size must be positive")
            return Dice(count=1 if count is None else count, sides=sides, negative=negative)

        if count is None:
            raise self._error("missing operand")
        return Constant(-count if negative else count)


def parse_expression(text: str, offset: int = 0) -> Expression:
    """
    Parse dice notation into an expression tree.

    Args:
        text: Notation such as "1d6", "2d6+3", "(1d4+1)*10"
        offset: Position of `text` inside a larger source, added to error
            positions so they point into the original line

    Raises:
        MalformedExpression: On unterminated parentheses, missing operands,
            non-positive die sizes or trailing input
    """
    return _ExpressionParser(text, offset).parse()


# =============================================================================
# EVALUATION
# =============================================================================


def evaluate(expression: Expression, dice: DiceRoller, reason: str = "") -> ExpressionResult:
    """
    Evaluate an expression tree, drawing dice left to right.

    The same tree and the same sequence of draws always give the same total.
    """
    rolls: list[DiceResult] = []

    def _eval(node: Expression) -> int:
        if isinstance(node, Constant):
            return node.value
        if isinstance(node, Dice):
            result = dice.roll(node.count, node.sides, reason)
            rolls.append(result)
            return -result.total if node.negative else result.total
        left = _eval(node.left)
        right = _eval(node.right)
        return node.op.apply(left, right)

    total = _eval(expression)
    return ExpressionResult(total=total, rolls=tuple(rolls))


def roll_notation(notation: str, dice: DiceRoller, reason: str = "") -> ExpressionResult:
    """Parse and evaluate notation in one step."""
    return evaluate(parse_expression(notation), dice, reason or notation)
