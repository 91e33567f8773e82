"""Parser de expresiones de trigger.

Convierte el texto de la expresión en un árbol de nodos evaluables.
Soporta un subconjunto compatible con exprtk: aritmética, comparaciones,
operadores lógicos (palabra clave o símbolo), funciones numéricas y
paréntesis. Los identificadores pueden ir cualificados con el asset
(`asset.datapoint`).

Precedencia (de menor a mayor):
    or | || nor
    and & && nand
    xor
    < <= > >= == = != <>
    + -
    * / %
    unario (- + ! not)
    ^ (asociativo a la derecha)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..errors import ExpressionError

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<op><=|>=|==|!=|<>|&&|\|\||[-+*/%^<>=!&|])
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
    """,
    re.VERBOSE,
)

KEYWORDS = frozenset({"and", "or", "not", "xor", "nand", "nor"})

# Límites de anidamiento: paréntesis/llamadas/unarios y profundidad del árbol
MAX_NESTING = 24
MAX_TREE_DEPTH = 256

CONSTANTS: Dict[str, float] = {
    "pi": math.pi,
    "epsilon": 1e-10,
    "inf": math.inf,
    "true": 1.0,
    "false": 0.0,
}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def tokenize(expression: str) -> List[Token]:
    """Divide la expresión en tokens; lanza ExpressionError si hay basura."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise ExpressionError(
                expression, f"unexpected character {expression[pos]!r}", pos
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", len(expression)))
    return tokens


# =============================================================================
# Aritmética con semántica IEEE (nunca lanza excepciones)
# =============================================================================

def _div(a: float, b: float) -> float:
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _mod(a: float, b: float) -> float:
    if b == 0.0 or math.isinf(a):
        return math.nan
    return math.fmod(a, b)


def _pow(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def _sqrt(a: float) -> float:
    return math.sqrt(a) if a >= 0.0 else math.nan


def _log(a: float) -> float:
    if a == 0.0:
        return -math.inf
    return math.log(a) if a > 0.0 else math.nan


def _log10(a: float) -> float:
    if a == 0.0:
        return -math.inf
    return math.log10(a) if a > 0.0 else math.nan


def _exp(a: float) -> float:
    try:
        return math.exp(a)
    except OverflowError:
        return math.inf


def _trig(func: Callable[[float], float]) -> Callable[[float], float]:
    def wrapper(a: float) -> float:
        try:
            return func(a)
        except ValueError:
            return math.nan
    return wrapper


def _round(a: float) -> float:
    # Redondeo "half away from zero", como C
    if math.isnan(a) or math.isinf(a):
        return a
    return float(math.floor(abs(a) + 0.5)) * math.copysign(1.0, a)


def _truth(value: bool) -> float:
    return 1.0 if value else 0.0


BINARY_OPERATORS: Dict[str, Callable[[float, float], float]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _div,
    "%": _mod,
    "^": _pow,
    "<": lambda a, b: _truth(a < b),
    "<=": lambda a, b: _truth(a <= b),
    ">": lambda a, b: _truth(a > b),
    ">=": lambda a, b: _truth(a >= b),
    "==": lambda a, b: _truth(a == b),
    "!=": lambda a, b: _truth(a != b),
    "and": lambda a, b: _truth(a != 0.0 and b != 0.0),
    "or": lambda a, b: _truth(a != 0.0 or b != 0.0),
    "nand": lambda a, b: _truth(not (a != 0.0 and b != 0.0)),
    "nor": lambda a, b: _truth(not (a != 0.0 or b != 0.0)),
    "xor": lambda a, b: _truth((a != 0.0) != (b != 0.0)),
}

# Sinónimos que se normalizan al operador canónico
_OPERATOR_ALIASES = {
    "=": "==",
    "<>": "!=",
    "&&": "and",
    "&": "and",
    "||": "or",
    "|": "or",
    "!": "not",
}

# nombre -> (mínimo de argumentos, máximo o None, implementación)
FUNCTIONS: Dict[str, Tuple[int, Optional[int], Callable[..., float]]] = {
    "abs": (1, 1, abs),
    "ceil": (1, 1, lambda a: a if math.isinf(a) or math.isnan(a) else float(math.ceil(a))),
    "floor": (1, 1, lambda a: a if math.isinf(a) or math.isnan(a) else float(math.floor(a))),
    "round": (1, 1, _round),
    "sqrt": (1, 1, _sqrt),
    "exp": (1, 1, _exp),
    "log": (1, 1, _log),
    "log10": (1, 1, _log10),
    "sin": (1, 1, _trig(math.sin)),
    "cos": (1, 1, _trig(math.cos)),
    "tan": (1, 1, _trig(math.tan)),
    "min": (1, None, lambda *args: min(args)),
    "max": (1, None, lambda *args: max(args)),
    "avg": (1, None, lambda *args: sum(args) / len(args)),
    "sum": (1, None, lambda *args: sum(args)),
    "pow": (2, 2, _pow),
    "clamp": (3, 3, lambda lo, x, hi: max(lo, min(x, hi))),
    "if": (3, 3, lambda cond, a, b: a if cond != 0.0 else b),
}


# =============================================================================
# Nodos del árbol
# =============================================================================

class Node:
    """Nodo evaluable; `slots` son los valores actuales de las variables."""

    __slots__ = ()

    def evaluate(self, slots: Sequence[float]) -> float:
        raise NotImplementedError

    def children(self) -> Iterator["Node"]:
        return iter(())


class Number(Node):
    __slots__ = ("value",)

    def __init__(self, value: float):
        self.value = value

    def evaluate(self, slots: Sequence[float]) -> float:
        return self.value


class Name(Node):
    """Identificador; se resuelve a un slot o a una constante al compilar."""

    __slots__ = ("name", "position", "slot", "constant")

    def __init__(self, name: str, position: int):
        self.name = name
        self.position = position
        self.slot: Optional[int] = None
        self.constant: Optional[float] = None

    def evaluate(self, slots: Sequence[float]) -> float:
        if self.slot is not None:
            return slots[self.slot]
        if self.constant is not None:
            return self.constant
        raise RuntimeError(f"Unresolved identifier '{self.name}'")


class Unary(Node):
    __slots__ = ("op", "operand")

    def __init__(self, op: str, operand: Node):
        self.op = op
        self.operand = operand

    def evaluate(self, slots: Sequence[float]) -> float:
        value = self.operand.evaluate(slots)
        if self.op == "-":
            return -value
        if self.op == "not":
            return _truth(value == 0.0)
        return value

    def children(self) -> Iterator[Node]:
        yield self.operand


class Binary(Node):
    __slots__ = ("op", "left", "right", "_func")

    def __init__(self, op: str, left: Node, right: Node):
        self.op = op
        self.left = left
        self.right = right
        self._func = BINARY_OPERATORS[op]

    def evaluate(self, slots: Sequence[float]) -> float:
        return self._func(self.left.evaluate(slots), self.right.evaluate(slots))

    def children(self) -> Iterator[Node]:
        yield self.left
        yield self.right


class Call(Node):
    __slots__ = ("name", "args", "_func")

    def __init__(self, name: str, args: List[Node]):
        self.name = name
        self.args = args
        self._func = FUNCTIONS[name][2]

    def evaluate(self, slots: Sequence[float]) -> float:
        return float(self._func(*(arg.evaluate(slots) for arg in self.args)))

    def children(self) -> Iterator[Node]:
        return iter(self.args)


def iter_names(node: Node) -> Iterator[Name]:
    """Recorre el árbol y devuelve todos los identificadores."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Name):
            yield current
        stack.extend(current.children())


def tree_depth(node: Node) -> int:
    """Profundidad máxima del árbol (recorrido iterativo)."""
    deepest = 0
    stack = [(node, 1)]
    while stack:
        current, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in current.children())
    return deepest


# =============================================================================
# Parser descendente recursivo
# =============================================================================

_COMPARISONS = frozenset({"<", "<=", ">", ">=", "==", "!="})


class _Parser:

    def __init__(self, expression: str):
        self._expression = expression
        self._tokens = tokenize(expression)
        self._index = 0
        self._depth = 0

    # -- helpers ------------------------------------------------------------

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _error(self, reason: str, token: Optional[Token] = None) -> ExpressionError:
        token = token or self._current
        return ExpressionError(self._expression, reason, token.position)

    def _operator(self) -> Optional[str]:
        """Operador canónico del token actual, o None."""
        token = self._current
        if token.kind == "op":
            return _OPERATOR_ALIASES.get(token.text, token.text)
        if token.kind == "name" and token.text.lower() in KEYWORDS:
            return token.text.lower()
        return None

    def _nested(self, parse: Callable[[], Node]) -> Node:
        if self._depth >= MAX_NESTING:
            raise self._error("expression nested too deeply")
        self._depth += 1
        try:
            return parse()
        finally:
            self._depth -= 1

    # -- gramática ----------------------------------------------------------

    def parse(self) -> Node:
        if self._current.kind == "end":
            raise self._error("empty expression")
        node = self._or()
        if self._current.kind != "end":
            raise self._error(f"unexpected token '{self._current.text}'")
        if tree_depth(node) > MAX_TREE_DEPTH:
            raise ExpressionError(self._expression, "expression nested too deeply")
        return node

    def _binary_level(self, operators: frozenset, operand: Callable[[], Node]) -> Node:
        node = operand()
        while self._operator() in operators:
            op = self._operator()
            self._advance()
            node = Binary(op, node, operand())
        return node

    def _or(self) -> Node:
        return self._binary_level(frozenset({"or", "nor"}), self._and)

    def _and(self) -> Node:
        return self._binary_level(frozenset({"and", "nand"}), self._xor)

    def _xor(self) -> Node:
        return self._binary_level(frozenset({"xor"}), self._comparison)

    def _comparison(self) -> Node:
        return self._binary_level(_COMPARISONS, self._additive)

    def _additive(self) -> Node:
        return self._binary_level(frozenset({"+", "-"}), self._multiplicative)

    def _multiplicative(self) -> Node:
        return self._binary_level(frozenset({"*", "/", "%"}), self._unary)

    def _unary(self) -> Node:
        op = self._operator()
        if op in ("-", "+", "not"):
            self._advance()
            return Unary(op, self._nested(self._unary))
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._operator() == "^":
            self._advance()
            return Binary("^", base, self._nested(self._unary))
        return base

    def _primary(self) -> Node:
        token = self._current
        if token.kind == "number":
            self._advance()
            return Number(float(token.text))
        if token.kind == "lparen":
            self._advance()
            node = self._nested(self._or)
            self._expect("rparen", "expected ')'")
            return node
        if token.kind == "name":
            if token.text.lower() in KEYWORDS:
                raise self._error(f"unexpected keyword '{token.text}'")
            self._advance()
            if self._current.kind == "lparen":
                return self._call(token)
            return Name(token.text, token.position)
        if token.kind == "end":
            raise self._error("unexpected end of expression")
        raise self._error(f"unexpected token '{token.text}'")

    def _call(self, name_token: Token) -> Node:
        name = name_token.text.lower()
        if name not in FUNCTIONS:
            raise self._error(f"unknown function '{name_token.text}'", name_token)
        self._advance()  # (
        args: List[Node] = []
        if self._current.kind != "rparen":
            args.append(self._nested(self._or))
            while self._current.kind == "comma":
                self._advance()
                args.append(self._nested(self._or))
        self._expect("rparen", "expected ')' after function arguments")

        min_args, max_args, _ = FUNCTIONS[name]
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise self._error(
                f"function '{name}' called with {len(args)} argument(s)", name_token
            )
        return Call(name, args)

    def _expect(self, kind: str, reason: str) -> Token:
        if self._current.kind != kind:
            raise self._error(reason)
        return self._advance()


def parse_expression(expression: str) -> Node:
    """Parsea la expresión y devuelve la raíz del árbol.

    Solo valida sintaxis; los identificadores quedan sin resolver.

    Raises:
        ExpressionError: Si la expresión está vacía o es sintácticamente inválida
    """
    return _Parser(expression).parse()
