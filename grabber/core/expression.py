"""
Safe expression language used by the `if`, `ifElse` and `while` actions.

Conditions are written in a small JavaScript-flavoured subset
(`INPUT > 5 && INPUT.includes("x")`). A condition goes through three phases:

1. a lark LALR grammar parses it and `NodeBuilder` maps the tree onto the
   node dataclasses below;
2. a policy pass that rejects unsafe forms before anything is evaluated;
3. evaluation against an explicit binding map.

The evaluator never reaches host attributes: the only receivers are mappings,
sequences, strings, numbers and the `Math` namespace defined here.
"""
# @file purpose: Parse, police and evaluate condition expressions.

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken, VisitError

from .errors import ExpressionError

BLOCKED_NAMES = frozenset(
    {
        "__proto__",
        "constructor",
        "prototype",
        "eval",
        "Function",
        "require",
        "import",
        "process",
        "global",
        "globalThis",
    }
)

STRING_METHODS = frozenset(
    {
        "includes", "startsWith", "endsWith", "toLowerCase", "toUpperCase",
        "trim", "trimStart", "trimEnd", "slice", "substring", "substr",
        "indexOf", "lastIndexOf", "charAt", "charCodeAt", "split",
        "replace", "match", "search", "repeat", "padStart", "padEnd",
    }
)
SEQUENCE_METHODS = frozenset(
    {
        "length", "join", "concat", "reverse", "sort", "filter", "map",
        "reduce", "some", "every", "find", "findIndex", "flat", "flatMap",
    }
)
COMMON_METHODS = frozenset({"toString", "valueOf"})
SAFE_METHODS = STRING_METHODS | SEQUENCE_METHODS | COMMON_METHODS

UNARY_OPERATORS = frozenset({"-", "+", "!", "typeof"})
BINARY_OPERATORS = frozenset(
    {"+", "-", "*", "/", "%", "**", "==", "!=", "===", "!==", "<", "<=", ">", ">=", "in"}
)
LOGICAL_OPERATORS = frozenset({"&&", "||"})

MAX_EXPRESSION_LENGTH = 2000


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def _unescape(body: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass
class Node:
    pass


@dataclass
class Literal(Node):
    value: Any


@dataclass
class Identifier(Node):
    name: str


@dataclass
class Unary(Node):
    op: str
    operand: Node


@dataclass
class Binary(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Logical(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Conditional(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class Member(Node):
    obj: Node
    prop: Node
    computed: bool


@dataclass
class Call(Node):
    callee: Node
    args: List[Node]


@dataclass
class ArrayLiteral(Node):
    items: List[Node]


@dataclass
class ObjectLiteral(Node):
    # key is a plain string, or a Node for computed keys
    entries: List[tuple[Any, Node]]


@dataclass
class Template(Node):
    quasis: List[str]
    expressions: List[Node]


# Forms that parse but are always rejected by the policy pass.


@dataclass
class Assignment(Node):
    op: str
    target: Node
    value: Node


@dataclass
class Update(Node):
    op: str
    target: Node


@dataclass
class New(Node):
    callee: Node
    args: List[Node] = field(default_factory=list)


@dataclass
class This(Node):
    pass


@dataclass
class Sequence_(Node):
    items: List[Node]


@dataclass
class ArrowFunction(Node):
    params: Node
    body: Node


@dataclass
class Spread(Node):
    value: Node


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

# Precedence climbs from `sequence` (loosest) down to `primary`. Forms the
# policy pass always rejects (assignment, arrow, new, this, spread, comma)
# are still parsed so the rejection names the construct.
GRAMMAR = r"""
?start: sequence

?sequence: assignment
         | assignment ("," assignment)+            -> sequence

?assignment: conditional
           | conditional assign_op assignment      -> assign
           | conditional "=>" assignment           -> arrow

?conditional: or_expr
            | or_expr "?" assignment ":" assignment -> ternary

?or_expr: and_expr
        | or_expr "||" and_expr                    -> logical_or

?and_expr: equality
         | and_expr "&&" equality                  -> logical_and

?equality: relational
         | equality eq_op relational               -> binary

?relational: additive
           | relational rel_op additive            -> binary

?additive: multiplicative
         | additive add_op multiplicative          -> binary

?multiplicative: exponent
               | multiplicative mul_op exponent    -> binary

?exponent: unary
         | unary "**" exponent                     -> power

?unary: postfix
      | unary_op unary                             -> prefix
      | update_op unary                            -> prefix_update

?postfix: call_member
        | call_member update_op                    -> postfix_update

?call_member: primary
            | call_member "." NAME                 -> member
            | call_member "[" sequence "]"         -> computed_member
            | call_member "(" [arguments] ")"      -> call

?primary: NUMBER                                   -> number
        | STRING                                   -> string
        | TEMPLATE                                 -> template
        | "true"                                   -> true
        | "false"                                  -> false
        | "null"                                   -> null
        | "undefined"                              -> null
        | "this"                                   -> this
        | "new" primary                            -> new
        | NAME                                     -> identifier
        | "(" sequence ")"
        | "[" [arguments] "]"                      -> array
        | "{" [properties] "}"                     -> object

arguments: argument ("," argument)*
?argument: assignment
         | "..." assignment                        -> spread

properties: property ("," property)*
property: prop_key ":" assignment                  -> pair
        | NAME                                     -> shorthand
        | "..." assignment                         -> spread_entry
?prop_key: NAME
         | NUMBER
         | STRING                                  -> string_key
         | "[" assignment "]"

!assign_op: "=" | "+=" | "-=" | "*=" | "/=" | "%=" | "**=" | "<<=" | ">>=" | "&=" | "|=" | "^="
!eq_op: "===" | "!==" | "==" | "!="
!rel_op: "<" | "<=" | ">" | ">=" | "in" | "instanceof"
!add_op: "+" | "-"
!mul_op: "*" | "/" | "%"
!unary_op: "!" | "-" | "+" | "~" | "typeof" | "void" | "delete"
!update_op: "++" | "--"

NAME: /[A-Za-z_$][A-Za-z0-9_$]*/
NUMBER: /(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?/
STRING: /"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*'/
TEMPLATE: /`(?:\\.|[^`\\])*`/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start", maybe_placeholders=True)


@v_args(inline=True)
class NodeBuilder(Transformer):
    """Turns the lark parse tree into the node dataclasses above."""

    def __init__(self, expression: str) -> None:
        super().__init__()
        self.expression = expression

    # operator rules carry exactly one kept token
    def unary_op(self, tok: Token) -> str:
        return str(tok)

    assign_op = eq_op = rel_op = add_op = mul_op = update_op = unary_op

    def number(self, tok: Token) -> Literal:
        text = str(tok)
        if any(c in text for c in ".eE"):
            return Literal(float(text))
        return Literal(int(text))

    def string(self, tok: Token) -> Literal:
        return Literal(_unescape(tok[1:-1]))

    def template(self, tok: Token) -> Template:
        return _template(tok[1:-1], self.expression)

    def true(self) -> Literal:
        return Literal(True)

    def false(self) -> Literal:
        return Literal(False)

    def null(self) -> Literal:
        return Literal(None)

    def this(self) -> This:
        return This()

    def new(self, callee: Node) -> New:
        return New(callee)

    def identifier(self, tok: Token) -> Identifier:
        return Identifier(str(tok))

    def array(self, items: Optional[List[Node]]) -> ArrayLiteral:
        return ArrayLiteral(items or [])

    def object(self, entries: Optional[List[tuple[Any, Node]]]) -> ObjectLiteral:
        return ObjectLiteral(entries or [])

    def arguments(self, *items: Node) -> List[Node]:
        return list(items)

    def properties(self, *entries: tuple[Any, Node]) -> List[tuple[Any, Node]]:
        return list(entries)

    def spread(self, value: Node) -> Spread:
        return Spread(value)

    def pair(self, key: Any, value: Node) -> tuple[Any, Node]:
        return (str(key) if isinstance(key, Token) else key), value

    def string_key(self, tok: Token) -> str:
        return _unescape(tok[1:-1])

    def shorthand(self, tok: Token) -> tuple[str, Node]:
        return str(tok), Identifier(str(tok))

    def spread_entry(self, value: Node) -> tuple[str, Node]:
        return "...", Spread(value)

    def member(self, obj: Node, name: Token) -> Member:
        return Member(obj, Literal(str(name)), computed=False)

    def computed_member(self, obj: Node, prop: Node) -> Member:
        return Member(obj, prop, computed=True)

    def call(self, callee: Node, args: Optional[List[Node]]) -> Call:
        return Call(callee, args or [])

    def prefix(self, op: str, operand: Node) -> Unary:
        return Unary(op, operand)

    def prefix_update(self, op: str, target: Node) -> Update:
        return Update(op, target)

    def postfix_update(self, target: Node, op: str) -> Update:
        return Update(op, target)

    def power(self, left: Node, right: Node) -> Binary:
        return Binary("**", left, right)

    def binary(self, left: Node, op: str, right: Node) -> Binary:
        return Binary(op, left, right)

    def logical_or(self, left: Node, right: Node) -> Logical:
        return Logical("||", left, right)

    def logical_and(self, left: Node, right: Node) -> Logical:
        return Logical("&&", left, right)

    def ternary(self, test: Node, consequent: Node, alternate: Node) -> Conditional:
        return Conditional(test, consequent, alternate)

    def assign(self, target: Node, op: str, value: Node) -> Assignment:
        return Assignment(op, target, value)

    def arrow(self, params: Node, body: Node) -> ArrowFunction:
        return ArrowFunction(params, body)

    def sequence(self, *items: Node) -> Sequence_:
        return Sequence_(list(items))


def _syntax_error(expression: str, e: UnexpectedInput) -> ExpressionError:
    if isinstance(e, UnexpectedCharacters):
        found = f"character {e.char!r}"
    elif isinstance(e, UnexpectedToken) and e.token.type != "$END":
        found = repr(str(e.token))
    else:
        found = "end of input"
    return ExpressionError(expression, f"Syntax error: unexpected {found} at column {e.column}")


def _parse_source(source: str, expression: str) -> Node:
    if not source.strip():
        raise ExpressionError(expression, "Expression cannot be empty")
    try:
        tree = _parser.parse(source)
    except UnexpectedInput as e:
        raise _syntax_error(expression, e) from e
    try:
        return NodeBuilder(expression).transform(tree)
    except VisitError as e:
        # template substitutions are parsed from inside the builder
        if isinstance(e.orig_exc, ExpressionError):
            raise e.orig_exc from None
        raise


def _template(body: str, expression: str) -> Template:
    """Split a template body into literal chunks and parsed `${...}` substitutions."""
    quasis: List[str] = []
    expressions: List[Node] = []
    buf: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            buf.append(_ESCAPES.get(body[i + 1], body[i + 1]))
            i += 2
        elif body.startswith("${", i):
            depth = 1
            j = i + 2
            while j < len(body) and depth:
                if body[j] == "{":
                    depth += 1
                elif body[j] == "}":
                    depth -= 1
                j += 1
            if depth:
                raise ExpressionError(expression, "Syntax error: unterminated template substitution")
            quasis.append("".join(buf))
            buf = []
            expressions.append(_parse_source(body[i + 2 : j - 1], expression))
            i = j
        else:
            buf.append(ch)
            i += 1
    quasis.append("".join(buf))
    return Template(quasis, expressions)


def parse(expression: str) -> Node:
    """Parse an expression string into a node tree (no policy checks)."""
    if not isinstance(expression, str):
        raise ExpressionError(repr(expression), "Expression must be a string")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(expression[:40] + "...", "Expression is too long")
    return _parse_source(expression, expression)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

_REJECTED = {
    Assignment: "Assignments are not allowed",
    Update: "Update expressions (++/--) are not allowed",
    New: "Object construction (new) is not allowed",
    This: "The 'this' keyword is not allowed",
    Sequence_: "Sequence expressions (comma operator) are not allowed",
    ArrowFunction: "Function definitions are not allowed",
    Spread: "Spread elements are not allowed",
}


def _static_name(prop: Node) -> Optional[str]:
    if isinstance(prop, Literal) and isinstance(prop.value, str):
        return prop.value
    return None


def check(node: Node, expression: str) -> None:
    """Walk the tree and raise ExpressionError on the first disallowed form."""

    def fail(rule: str) -> ExpressionError:
        return ExpressionError(expression, rule)

    def visit(n: Node) -> None:
        rule = _REJECTED.get(type(n))
        if rule:
            raise fail(rule)
        if isinstance(n, Literal):
            return
        if isinstance(n, Identifier):
            if n.name in BLOCKED_NAMES:
                raise fail(f"Access to identifier '{n.name}' is not allowed")
            return
        if isinstance(n, Unary):
            if n.op not in UNARY_OPERATORS:
                raise fail(f"Unsafe unary operator: {n.op}")
            visit(n.operand)
            return
        if isinstance(n, Binary):
            if n.op not in BINARY_OPERATORS:
                raise fail(f"Operator '{n.op}' is not allowed")
            visit(n.left)
            visit(n.right)
            return
        if isinstance(n, Logical):
            visit(n.left)
            visit(n.right)
            return
        if isinstance(n, Conditional):
            visit(n.test)
            visit(n.consequent)
            visit(n.alternate)
            return
        if isinstance(n, Member):
            visit(n.obj)
            name = _static_name(n.prop)
            if name in BLOCKED_NAMES:
                raise fail(f"Access to property '{name}' is not allowed")
            if n.computed:
                visit(n.prop)
            return
        if isinstance(n, Call):
            callee = n.callee
            if not isinstance(callee, Member):
                raise fail("Only whitelisted method calls are allowed")
            visit(callee)
            method = _static_name(callee.prop)
            on_math = isinstance(callee.obj, Identifier) and callee.obj.name == "Math"
            if on_math:
                if method not in MATH.functions:
                    raise fail(f"Math.{method} is not available")
            elif method not in SAFE_METHODS:
                raise fail(f"Method '{method}' is not whitelisted")
            for arg in n.args:
                visit(arg)
            return
        if isinstance(n, ArrayLiteral):
            for item in n.items:
                visit(item)
            return
        if isinstance(n, ObjectLiteral):
            for key, value in n.entries:
                if isinstance(key, Node):
                    visit(key)
                elif key in BLOCKED_NAMES:
                    raise fail(f"Access to property '{key}' is not allowed")
                visit(value)
            return
        if isinstance(n, Template):
            for e in n.expressions:
                visit(e)
            return
        raise fail(f"Unsupported expression type: {type(n).__name__}")

    visit(node)


def validate(expression: str) -> Node:
    """Parse and police an expression; returns the checked tree."""
    node = parse(expression)
    check(node, expression)
    return node


def is_valid(expression: str) -> bool:
    """Validator form: the same pipeline without evaluation."""
    try:
        validate(expression)
    except ExpressionError:
        return False
    return True


# ---------------------------------------------------------------------------
# JS-flavoured value helpers
# ---------------------------------------------------------------------------


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _format_number(v: float) -> str:
    if isinstance(v, float):
        if math.isnan(v):
            return "NaN"
        if math.isinf(v):
            return "Infinity" if v > 0 else "-Infinity"
        if v.is_integer() and abs(v) < 1e21:
            return str(int(v))
    return str(v)


def to_js_string(v: Any) -> str:
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if _is_number(v):
        return _format_number(v)
    if isinstance(v, (list, tuple)):
        return ",".join("" if item is None else to_js_string(item) for item in v)
    if isinstance(v, dict):
        return "[object Object]"
    return str(v)


def _to_number(v: Any) -> float:
    if v is None:
        return 0
    if isinstance(v, bool):
        return int(v)
    if _is_number(v):
        return v
    if isinstance(v, str):
        text = v.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return math.nan
    return math.nan


def truthy(v: Any) -> bool:
    """JavaScript truthiness: empty arrays and objects are truthy."""
    if v is None or v is False:
        return False
    if _is_number(v):
        return v != 0 and not (isinstance(v, float) and math.isnan(v))
    if isinstance(v, str):
        return v != ""
    return True


def _js_type(v: Any) -> str:
    if v is None:
        return "object"
    if isinstance(v, bool):
        return "boolean"
    if _is_number(v):
        return "number"
    if isinstance(v, str):
        return "string"
    if isinstance(v, (_BoundMethod, _MathFunction)):
        return "function"
    return "object"


def _strict_equals(a: Any, b: Any) -> bool:
    if _js_type(a) != _js_type(b):
        return False
    if isinstance(a, (dict, list)):
        return a is b
    return a == b


def _loose_equals(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if _js_type(a) == _js_type(b):
        return _strict_equals(a, b)
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return to_js_string(a) == to_js_string(b)
    return _to_number(a) == _to_number(b)


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, (str, list, dict)) or isinstance(b, (str, list, dict)):
        return to_js_string(a) + to_js_string(b)
    return _to_number(a) + _to_number(b)


def _divide(a: Any, b: Any) -> Any:
    x, y = _to_number(a), _to_number(b)
    if y == 0:
        if x == 0 or math.isnan(x):
            return math.nan
        return math.inf if x > 0 else -math.inf
    result = x / y
    return int(result) if isinstance(result, float) and result.is_integer() else result


def _remainder(a: Any, b: Any) -> Any:
    x, y = _to_number(a), _to_number(b)
    if y == 0:
        return math.nan
    if isinstance(x, int) and isinstance(y, int):
        return int(math.fmod(x, y))
    return math.fmod(x, y)


def _compare(op: str, a: Any, b: Any) -> bool:
    if not (isinstance(a, str) and isinstance(b, str)):
        a, b = _to_number(a), _to_number(b)
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _contains(key: Any, container: Any) -> bool:
    if isinstance(container, dict):
        return to_js_string(key) in container
    if isinstance(container, (list, tuple)):
        index = _to_number(key)
        return isinstance(index, int) and 0 <= index < len(container)
    raise TypeError(f"Cannot use 'in' operator to search for {to_js_string(key)!r}")


# ---------------------------------------------------------------------------
# Whitelisted methods
# ---------------------------------------------------------------------------


def _index(value: Any, length: int, default: int) -> int:
    if value is None:
        return default
    n = int(_to_number(value))
    if n < 0:
        n = max(length + n, 0)
    return min(n, length)


def _slice(seq: Any, start: Any = None, end: Any = None) -> Any:
    n = len(seq)
    return seq[_index(start, n, 0) : _index(end, n, n)]


def _substring(s: str, start: Any = None, end: Any = None) -> str:
    n = len(s)
    a = min(max(int(_to_number(start)) if start is not None else 0, 0), n)
    b = min(max(int(_to_number(end)) if end is not None else n, 0), n)
    return s[min(a, b) : max(a, b)]


def _substr(s: str, start: Any = None, length: Any = None) -> str:
    a = _index(start, len(s), 0)
    if length is None:
        return s[a:]
    return s[a : a + max(int(_to_number(length)), 0)]


def _index_of(seq: Any, needle: Any, start: Any = None) -> int:
    a = _index(start, len(seq), 0)
    if isinstance(seq, str):
        return seq.find(to_js_string(needle), a)
    for i in range(a, len(seq)):
        if _strict_equals(seq[i], needle):
            return i
    return -1


def _last_index_of(seq: Any, needle: Any) -> int:
    if isinstance(seq, str):
        return seq.rfind(to_js_string(needle))
    for i in range(len(seq) - 1, -1, -1):
        if _strict_equals(seq[i], needle):
            return i
    return -1


def _includes(seq: Any, needle: Any, start: Any = None) -> bool:
    return _index_of(seq, needle, start) != -1


def _split(s: str, sep: Any = None, limit: Any = None) -> list:
    if sep is None:
        parts = [s]
    elif sep == "":
        parts = list(s)
    else:
        parts = s.split(to_js_string(sep))
    if limit is not None:
        parts = parts[: max(int(_to_number(limit)), 0)]
    return parts


def _match(s: str, pattern: Any) -> Optional[list]:
    m = re.search(to_js_string(pattern), s)
    if m is None:
        return None
    return [m.group(0), *m.groups()]


def _search(s: str, pattern: Any) -> int:
    m = re.search(to_js_string(pattern), s)
    return -1 if m is None else m.start()


def _pad(s: str, length: Any, fill: Any = " ", *, start: bool) -> str:
    target = int(_to_number(length))
    fill = to_js_string(fill)
    if target <= len(s) or not fill:
        return s
    padding = (fill * target)[: target - len(s)]
    return padding + s if start else s + padding


def _flat(seq: list, depth: Any = 1) -> list:
    out: list = []
    d = int(_to_number(depth))
    for item in seq:
        if isinstance(item, list) and d > 0:
            out.extend(_flat(item, d - 1))
        else:
            out.append(item)
    return out


def _sort(seq: list) -> list:
    # default JS sort compares string forms; null/undefined last
    present = [x for x in seq if x is not None]
    return sorted(present, key=to_js_string) + [x for x in seq if x is None]


def _needs_callback(name: str) -> Callable[..., Any]:
    def method(seq: Any, *args: Any) -> Any:
        raise TypeError(f"'{name}' requires a callback function, which expressions cannot define")

    return method


def _truthy_predicate(name: str) -> Callable[..., Any]:
    def method(seq: list, *args: Any) -> Any:
        if args:
            raise TypeError(f"'{name}' only supports the argument-less truthiness form")
        if name == "filter":
            return [x for x in seq if truthy(x)]
        if name == "some":
            return any(truthy(x) for x in seq)
        if name == "every":
            return all(truthy(x) for x in seq)
        if name == "find":
            return next((x for x in seq if truthy(x)), None)
        return next((i for i, x in enumerate(seq) if truthy(x)), -1)

    return method


_STRING_IMPL: dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "startsWith": lambda s, p, pos=None: s.startswith(to_js_string(p), _index(pos, len(s), 0)),
    "endsWith": lambda s, p, end=None: s[: _index(end, len(s), len(s))].endswith(to_js_string(p)),
    "toLowerCase": lambda s: s.lower(),
    "toUpperCase": lambda s: s.upper(),
    "trim": lambda s: s.strip(),
    "trimStart": lambda s: s.lstrip(),
    "trimEnd": lambda s: s.rstrip(),
    "slice": _slice,
    "substring": _substring,
    "substr": _substr,
    "indexOf": _index_of,
    "lastIndexOf": _last_index_of,
    "charAt": lambda s, i=0: s[int(_to_number(i))] if 0 <= int(_to_number(i)) < len(s) else "",
    "charCodeAt": lambda s, i=0: (
        ord(s[int(_to_number(i))]) if 0 <= int(_to_number(i)) < len(s) else math.nan
    ),
    "split": _split,
    "replace": lambda s, a, b: s.replace(to_js_string(a), to_js_string(b), 1),
    "match": _match,
    "search": _search,
    "repeat": lambda s, n: s * max(int(_to_number(n)), 0),
    "padStart": lambda s, n, f=" ": _pad(s, n, f, start=True),
    "padEnd": lambda s, n, f=" ": _pad(s, n, f, start=False),
    "concat": lambda s, *rest: s + "".join(to_js_string(r) for r in rest),
}

_SEQUENCE_IMPL: dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "indexOf": _index_of,
    "lastIndexOf": _last_index_of,
    "slice": _slice,
    "join": lambda seq, sep=",": to_js_string(sep).join(
        "" if x is None else to_js_string(x) for x in seq
    ),
    "concat": lambda seq, *rest: list(seq)
    + [y for r in rest for y in (r if isinstance(r, list) else [r])],
    "reverse": lambda seq: list(reversed(seq)),
    "sort": _sort,
    "flat": _flat,
    "filter": _truthy_predicate("filter"),
    "some": _truthy_predicate("some"),
    "every": _truthy_predicate("every"),
    "find": _truthy_predicate("find"),
    "findIndex": _truthy_predicate("findIndex"),
    "map": _needs_callback("map"),
    "reduce": _needs_callback("reduce"),
    "flatMap": _needs_callback("flatMap"),
}

_COMMON_IMPL: dict[str, Callable[..., Any]] = {
    "toString": lambda v: to_js_string(v),
    "valueOf": lambda v: v,
}


@dataclass
class _BoundMethod:
    receiver: Any
    name: str

    def __call__(self, *args: Any) -> Any:
        if isinstance(self.receiver, str):
            impl = _STRING_IMPL.get(self.name) or _COMMON_IMPL.get(self.name)
        elif isinstance(self.receiver, list):
            impl = _SEQUENCE_IMPL.get(self.name) or _COMMON_IMPL.get(self.name)
        else:
            impl = _COMMON_IMPL.get(self.name)
        if impl is None:
            raise TypeError(f"{to_js_string(self.receiver)!r}.{self.name} is not a function")
        return impl(self.receiver, *args)


@dataclass
class _MathFunction:
    name: str
    fn: Callable[..., Any]

    def __call__(self, *args: Any) -> Any:
        return self.fn(*(_to_number(a) for a in args))


def _js_round(x: float) -> int:
    return math.floor(x + 0.5)


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


class _MathNamespace:
    """The `Math` object visible to expressions (pure functions only)."""

    functions: dict[str, Callable[..., Any]] = {
        "abs": abs,
        "ceil": math.ceil,
        "floor": math.floor,
        "round": _js_round,
        "trunc": math.trunc,
        "sign": _sign,
        "sqrt": math.sqrt,
        "cbrt": lambda x: math.copysign(abs(x) ** (1 / 3), x),
        "pow": math.pow,
        "exp": math.exp,
        "log": math.log,
        "log2": math.log2,
        "log10": math.log10,
        "min": lambda *xs: min(xs) if xs else math.inf,
        "max": lambda *xs: max(xs) if xs else -math.inf,
        "hypot": math.hypot,
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "atan2": math.atan2,
    }
    constants: dict[str, float] = {"PI": math.pi, "E": math.e}

    def member(self, name: str) -> Any:
        if name in self.functions:
            return _MathFunction(name, self.functions[name])
        return self.constants.get(name)


MATH = _MathNamespace()


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class Evaluator:
    def __init__(self, expression: str, context: Mapping[str, Any]):
        self.expression = expression
        self.context = context

    def fail(self, rule: str) -> ExpressionError:
        return ExpressionError(self.expression, rule)

    def eval(self, n: Node) -> Any:
        if isinstance(n, Literal):
            return n.value
        if isinstance(n, Identifier):
            if n.name in self.context:
                return self.context[n.name]
            if n.name == "Math":
                return MATH
            raise self.fail(f"Variable '{n.name}' is not defined")
        if isinstance(n, Unary):
            v = self.eval(n.operand)
            if n.op == "!":
                return not truthy(v)
            if n.op == "typeof":
                return _js_type(v)
            number = _to_number(v)
            return -number if n.op == "-" else number
        if isinstance(n, Logical):
            left = self.eval(n.left)
            if n.op == "&&":
                return self.eval(n.right) if truthy(left) else left
            return left if truthy(left) else self.eval(n.right)
        if isinstance(n, Binary):
            return self.binary(n.op, self.eval(n.left), self.eval(n.right))
        if isinstance(n, Conditional):
            return self.eval(n.consequent) if truthy(self.eval(n.test)) else self.eval(n.alternate)
        if isinstance(n, Member):
            obj = self.eval(n.obj)
            prop = self.eval(n.prop) if n.computed else n.prop.value  # type: ignore[attr-defined]
            return self.member(obj, prop)
        if isinstance(n, Call):
            fn = self.eval(n.callee)
            if not isinstance(fn, (_BoundMethod, _MathFunction)):
                raise self.fail("Callee is not a function")
            args = [self.eval(a) for a in n.args]
            return fn(*args)
        if isinstance(n, ArrayLiteral):
            return [self.eval(item) for item in n.items]
        if isinstance(n, ObjectLiteral):
            out: dict[str, Any] = {}
            for key, value in n.entries:
                name = to_js_string(self.eval(key)) if isinstance(key, Node) else key
                out[name] = self.eval(value)
            return out
        if isinstance(n, Template):
            parts = [n.quasis[0]]
            for expr, quasi in zip(n.expressions, n.quasis[1:]):
                parts.append(to_js_string(self.eval(expr)))
                parts.append(quasi)
            return "".join(parts)
        raise self.fail(f"Cannot evaluate node type: {type(n).__name__}")

    def binary(self, op: str, a: Any, b: Any) -> Any:
        if op == "+":
            return _add(a, b)
        if op == "-":
            return _to_number(a) - _to_number(b)
        if op == "*":
            return _to_number(a) * _to_number(b)
        if op == "/":
            return _divide(a, b)
        if op == "%":
            return _remainder(a, b)
        if op == "**":
            return _to_number(a) ** _to_number(b)
        if op == "===":
            return _strict_equals(a, b)
        if op == "!==":
            return not _strict_equals(a, b)
        if op == "==":
            return _loose_equals(a, b)
        if op == "!=":
            return not _loose_equals(a, b)
        if op == "in":
            return _contains(a, b)
        return _compare(op, a, b)

    def member(self, obj: Any, prop: Any) -> Any:
        if obj is None:
            raise self.fail(f"Cannot access property '{to_js_string(prop)}' of null")
        name = to_js_string(prop) if not _is_number(prop) else prop
        if name in BLOCKED_NAMES:
            raise self.fail(f"Access to property '{name}' is not allowed")
        if obj is MATH:
            return MATH.member(str(name))
        if isinstance(obj, dict):
            key = to_js_string(prop)
            if key in obj:
                return obj[key]
            if key in COMMON_METHODS:
                return _BoundMethod(obj, key)
            return None
        if isinstance(obj, (str, list)):
            if name == "length":
                return len(obj)
            index = _to_number(prop) if not isinstance(prop, str) or prop.isdigit() else None
            if isinstance(index, int) and not isinstance(index, bool):
                return obj[index] if 0 <= index < len(obj) else None
            if isinstance(name, str) and name in SAFE_METHODS:
                return _BoundMethod(obj, name)
            return None
        if isinstance(name, str) and name in COMMON_METHODS:
            return _BoundMethod(obj, name)
        return None


def evaluate(expression: str, context: Mapping[str, Any] | None = None) -> Any:
    """Validate, then evaluate `expression` against `context`."""
    node = validate(expression)
    try:
        return Evaluator(expression, dict(context or {})).eval(node)
    except ExpressionError:
        raise
    except (TypeError, ValueError, OverflowError, ArithmeticError, re.error, IndexError) as e:
        raise ExpressionError(expression, f"Runtime error: {e}") from e
