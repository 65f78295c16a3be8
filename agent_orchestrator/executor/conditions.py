"""Condition expressions for branching steps.

A deliberately small language, parsed into an AST and interpreted. Nothing is
ever handed to ``eval``; there are no loops, assignments or user functions, so
every evaluation is side-effect free and terminates.

Grammar (lowest precedence first)::

    expr       := and_expr (("or" | "||") and_expr)*
    and_expr   := not_expr (("and" | "&&") not_expr)*
    not_expr   := ("not" | "!") not_expr | comparison
    comparison := unary (CMP unary)?          CMP: == != < <= > >= contains
    unary      := "-" unary | postfix
    postfix    := primary ("." NAME | "[" (STRING | NUMBER) "]")*
    primary    := NUMBER | STRING | true | false | null
                | ("length" | "len") "(" expr ")"
                | "variables" | "input"
                | "(" expr ")"

``variables.<step_id>`` reads a committed step output (MissingVariable if the
step has not committed). ``.length`` on a string, list or mapping without a
``length`` key gives its size, so ``variables.story.length > 100`` and
``length(variables.story) > 100`` are equivalent.

Parentheses, ``not``, negation and ``length()`` may nest at most
``MAX_NESTING_DEPTH`` levels.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional, Union

from agent_orchestrator.errors import InvalidExpression
from agent_orchestrator.executor.variable_store import VariableStore

logger = logging.getLogger(__name__)

MAX_EXPRESSION_CHARS = 2000
MAX_NESTING_DEPTH = 64

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<op>==|!=|<=|>=|&&|\|\||[<>!().\[\]-])
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}
_ESCAPE_RE = re.compile(r"\\(.)")

_COMPARISON_OPS = {"==", "!=", "<", "<=", ">", ">=", "contains"}
_FUNCTIONS = {"length", "len"}
_ROOT_NAMES = {"variables", "input"}
_CONSTANTS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
}


# ── AST ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Const:
    value: Any


@dataclass(frozen=True)
class Root:
    name: str  # "variables" or "input"


@dataclass(frozen=True)
class Attr:
    target: "Node"
    key: Union[str, int, float]


@dataclass(frozen=True)
class Length:
    operand: "Node"


@dataclass(frozen=True)
class Negate:
    operand: "Node"


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class BoolOp:
    op: str  # "and" / "or"
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Const, Root, Attr, Length, Negate, Not, BoolOp, Compare]


# ── Tokenizer / parser ────────────────────────────────────


@dataclass(frozen=True)
class _Token:
    kind: str  # number, string, op, name, end
    text: str
    pos: int


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise InvalidExpression(
                f"Unexpected character {expression[pos]!r} at position {pos}",
                expression,
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(_Token("end", "", len(expression)))
    return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _number(text: str) -> Union[int, float]:
    return float(text) if "." in text else int(text)


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0
        self.depth = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.pos]

    def _advance(self) -> _Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _accept(self, *texts: str) -> Optional[_Token]:
        token = self.current
        if token.kind in ("op", "name") and token.text in texts:
            return self._advance()
        return None

    def _expect(self, text: str) -> _Token:
        token = self._accept(text)
        if token is None:
            self._fail(f"Expected {text!r}")
        return token

    def _fail(self, message: str) -> None:
        token = self.current
        found = token.text or "end of expression"
        raise InvalidExpression(
            f"{message} at position {token.pos} (found {found!r})", self.expression
        )

    def _nested(self, parse_rule) -> Node:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            self._fail(f"Expression nested deeper than {MAX_NESTING_DEPTH} levels")
        node = parse_rule()
        self.depth -= 1
        return node

    def parse(self) -> Node:
        node = self._or()
        if self.current.kind != "end":
            self._fail("Unexpected token")
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._accept("or", "||"):
            node = BoolOp("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._accept("and", "&&"):
            node = BoolOp("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._accept("not", "!"):
            return Not(self._nested(self._not))
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._unary()
        token = self.current
        if token.kind in ("op", "name") and token.text in _COMPARISON_OPS:
            self._advance()
            right = self._unary()
            if self.current.text in _COMPARISON_OPS:
                self._fail("Chained comparisons are not supported")
            return Compare(token.text, left, right)
        return left

    def _unary(self) -> Node:
        if self._accept("-"):
            return Negate(self._nested(self._unary))
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._accept("."):
                token = self.current
                if token.kind != "name":
                    self._fail("Expected attribute name after '.'")
                self._advance()
                node = Attr(node, token.text)
            elif self._accept("["):
                token = self.current
                if token.kind == "string":
                    key: Union[str, int, float] = _unquote(token.text)
                elif token.kind == "number":
                    key = _number(token.text)
                else:
                    self._fail("Expected string or number index")
                self._advance()
                self._expect("]")
                node = Attr(node, key)
            else:
                return node

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            return Const(_number(token.text))
        if token.kind == "string":
            self._advance()
            return Const(_unquote(token.text))
        if token.kind == "name":
            if token.text in _CONSTANTS:
                self._advance()
                return Const(_CONSTANTS[token.text])
            if token.text in _FUNCTIONS:
                self._advance()
                self._expect("(")
                operand = self._nested(self._or)
                self._expect(")")
                return Length(operand)
            if token.text in _ROOT_NAMES:
                self._advance()
                return Root(token.text)
            self._fail(
                f"Unknown name {token.text!r}; expressions may only reference "
                f"'variables', 'input' and length()"
            )
        if self._accept("("):
            node = self._nested(self._or)
            self._expect(")")
            return node
        self._fail("Expected a value")


@lru_cache(maxsize=512)
def parse_condition(expression: str) -> Node:
    """Parse an expression into an AST. Raises InvalidExpression."""
    if not expression or not expression.strip():
        raise InvalidExpression("Empty expression", expression)
    if len(expression) > MAX_EXPRESSION_CHARS:
        raise InvalidExpression(
            f"Expression longer than {MAX_EXPRESSION_CHARS} characters"
        )
    try:
        return _Parser(expression).parse()
    except RecursionError:
        raise InvalidExpression("Expression is nested too deeply", expression) from None


# ── Evaluation ────────────────────────────────────────────


class ConditionEvaluator:
    """Evaluates condition expressions against one execution's variables."""

    def evaluate(
        self,
        expression: str,
        variables: VariableStore,
        input_value: Any = None,
    ) -> bool:
        tree = parse_condition(expression)
        try:
            result = _Evaluation(expression, variables, input_value).run(tree)
        except RecursionError:
            raise InvalidExpression(
                "Expression is nested too deeply", expression
            ) from None
        logger.debug(f"Condition {expression!r} -> {result!r}")
        return bool(result)


def _is_variable_lookup(node: Attr) -> bool:
    return isinstance(node.target, Root) and node.target.name == "variables"


class _Evaluation:
    def __init__(self, expression: str, variables: VariableStore, input_value: Any):
        self.expression = expression
        self.variables = variables
        self.input_value = input_value

    def _error(self, message: str) -> InvalidExpression:
        return InvalidExpression(message, self.expression)

    def run(self, node: Node) -> Any:
        if isinstance(node, Const):
            return node.value
        if isinstance(node, Root):
            if node.name == "input":
                return self.input_value
            return self.variables.snapshot()
        if isinstance(node, Attr):
            if _is_variable_lookup(node):
                return self.variables.get(str(node.key))
            # Long access chains are walked iteratively, not recursively.
            keys = []
            while isinstance(node, Attr) and not _is_variable_lookup(node):
                keys.append(node.key)
                node = node.target
            value = self.run(node)
            for key in reversed(keys):
                value = self._access(value, key)
            return value
        if isinstance(node, Length):
            return self._length(self.run(node.operand))
        if isinstance(node, Negate):
            value = self.run(node.operand)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise self._error(f"Cannot negate {type(value).__name__}")
            return -value
        if isinstance(node, Not):
            return not self.run(node.operand)
        if isinstance(node, BoolOp):
            left = self.run(node.left)
            if node.op == "and":
                return bool(left) and bool(self.run(node.right))
            return bool(left) or bool(self.run(node.right))
        if isinstance(node, Compare):
            return self._compare(node.op, self.run(node.left), self.run(node.right))
        raise self._error(f"Unsupported node {type(node).__name__}")

    def _access(self, value: Any, key: Union[str, int, float]) -> Any:
        if value is None:
            return None
        if isinstance(value, dict):
            if key in value:
                return value[key]
            if key == "length":
                return len(value)
            return None
        if isinstance(value, (str, list, tuple)):
            if key == "length":
                return len(value)
            if isinstance(key, int) and -len(value) <= key < len(value):
                return value[key]
            return None
        return None

    def _length(self, value: Any) -> int:
        if value is None:
            return 0
        if isinstance(value, (str, list, tuple, dict)):
            return len(value)
        raise self._error(f"length() is not defined for {type(value).__name__}")

    def _compare(self, op: str, left: Any, right: Any) -> bool:
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "contains":
            if isinstance(left, str) and isinstance(right, str):
                return right in left
            if isinstance(left, (list, tuple, dict)):
                try:
                    return right in left
                except TypeError:
                    raise self._error(
                        f"Cannot look up {type(right).__name__} in a mapping"
                    ) from None
            raise self._error(
                f"'contains' needs a string, list or mapping on the left, "
                f"got {type(left).__name__}"
            )
        numeric = (int, float)
        both_numbers = (
            isinstance(left, numeric)
            and isinstance(right, numeric)
            and not isinstance(left, bool)
            and not isinstance(right, bool)
        )
        both_strings = isinstance(left, str) and isinstance(right, str)
        if not (both_numbers or both_strings):
            raise self._error(
                f"Cannot compare {type(left).__name__} {op} {type(right).__name__}"
            )
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right


def validate_condition(expression: str) -> None:
    """Parse-only check used at registration time."""
    parse_condition(expression)
