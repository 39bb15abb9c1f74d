import pytest

from grabber.core import expression
from grabber.core.errors import ExpressionError


@pytest.mark.parametrize(
    "source,context,expected",
    [
        ("INPUT > 5", {"INPUT": 7}, True),
        ("INPUT > 5", {"INPUT": 3}, False),
        ("1 + 2 * 3", {}, 7),
        ("2 ** 3", {}, 8),
        ("'a' + 1", {}, "a1"),
        ("7 / 2", {}, 3.5),
        ("1 == '1'", {}, True),
        ("1 === '1'", {}, False),
        ("null == undefined", {}, True),
        ("INPUT && INPUT.length", {"INPUT": "abc"}, 3),
        ("INPUT || 'none'", {"INPUT": ""}, "none"),
        ("INPUT ? 'yes' : 'no'", {"INPUT": []}, "yes"),
        ("INPUT.name.toUpperCase()", {"INPUT": {"name": "bob"}}, "BOB"),
        ("INPUT['name']", {"INPUT": {"name": "bob"}}, "bob"),
        ("INPUT[1]", {"INPUT": ["a", "b"]}, "b"),
        ("INPUT.includes('ell')", {"INPUT": "hello"}, True),
        ("INPUT.split(',').length", {"INPUT": "a,b,c"}, 3),
        ("INPUT.join('-')", {"INPUT": [1, 2]}, "1-2"),
        ("INPUT.filter().length", {"INPUT": [0, 1, "", "x"]}, 2),
        ("Math.max(1, INPUT, 3)", {"INPUT": 9}, 9),
        ("Math.floor(2.7)", {}, 2),
        ("typeof INPUT", {"INPUT": "s"}, "string"),
        ("'k' in INPUT", {"INPUT": {"k": 1}}, True),
        ("!INPUT", {"INPUT": 0}, True),
        ("[1, 2].concat([3])", {}, [1, 2, 3]),
        ("`n=${INPUT}`", {"INPUT": 4}, "n=4"),
        ("`${INPUT.a}-${INPUT.b + 1}`", {"INPUT": {"a": "x", "b": 1}}, "x-2"),
        ("'7' > 5", {}, True),
        ("'a' < 'b'", {}, True),
        ("[10, 9, 1].sort()", {}, [1, 10, 9]),
        ("1 + 2 * 3 ** 2", {}, 19),
        ("2 ** 3 ** 2", {}, 512),
        ("(1 + 2) * 3", {}, 9),
        ("-INPUT + 1", {"INPUT": 3}, -2),
        ("!INPUT || INPUT > 1 && false", {"INPUT": 1}, False),
        ("typeof INPUT === 'number'", {"INPUT": 1}, True),
        ("INPUT.length > 2 ? 'long' : 'short'", {"INPUT": "abcd"}, "long"),
        ("({a: INPUT, 'b': 2}).a", {"INPUT": 3}, 3),
        ("index + 1", {"index": 1}, 2),
        ("newValue", {"newValue": "x"}, "x"),
    ],
)
def test_evaluates_js_subset(source, context, expected) -> None:
    assert expression.evaluate(source, context) == expected


@pytest.mark.parametrize(
    "source",
    [
        "process.exit(0)",
        "constructor",
        "INPUT.constructor",
        "INPUT['__proto__']",
        "eval('1')",
        "globalThis",
        "require('fs')",
        "INPUT = 1",
        "INPUT += 1",
        "INPUT++",
        "--INPUT",
        "new Date()",
        "this",
        "1, 2",
        "x => x",
        "(a, b) => a",
        "function () { return 1 }",
        "[...INPUT]",
        "Math.random()",
        "INPUT.toFixed(2)",
    ],
)
def test_rejects_unsafe_forms_for_any_context(source) -> None:
    assert not expression.is_valid(source)
    for context in ({}, {"INPUT": 1}, {"INPUT": {"constructor": 1}}):
        with pytest.raises(ExpressionError):
            expression.evaluate(source, context)


def test_unknown_identifier_is_an_error() -> None:
    with pytest.raises(ExpressionError, match="Variable 'missing' is not defined"):
        expression.evaluate("missing > 1", {})


def test_member_access_on_null_fails() -> None:
    with pytest.raises(ExpressionError, match="of null"):
        expression.evaluate("INPUT.name", {"INPUT": None})


def test_callback_methods_fail_at_runtime() -> None:
    assert expression.is_valid("INPUT.map()")
    with pytest.raises(ExpressionError, match="Runtime error"):
        expression.evaluate("INPUT.map()", {"INPUT": [1]})


def test_error_names_expression_and_rule() -> None:
    with pytest.raises(ExpressionError) as info:
        expression.validate("a = 1")
    assert info.value.expression == "a = 1"
    assert "Assignments are not allowed" in info.value.rule


def test_truthiness_follows_js() -> None:
    assert expression.truthy([]) and expression.truthy({})
    assert not expression.truthy(0)
    assert not expression.truthy("")
    assert not expression.truthy(None)
    assert not expression.truthy(float("nan"))


@pytest.mark.parametrize("source", ["INPUT >", "INPUT ) 1", "a # b", "INPUT.map(", "`${INPUT`"])
def test_syntax_errors_are_expression_errors(source) -> None:
    assert not expression.is_valid(source)
    with pytest.raises(ExpressionError, match="Syntax error"):
        expression.validate(source)


@pytest.mark.parametrize("source", ["", "   ", "`a${}b`"])
def test_empty_expressions_are_rejected(source) -> None:
    with pytest.raises(ExpressionError, match="cannot be empty"):
        expression.validate(source)


def test_computed_blocked_property_fails_at_runtime() -> None:
    source = "INPUT['__pro' + 'to__']"
    assert expression.is_valid(source)
    with pytest.raises(ExpressionError, match="'__proto__' is not allowed"):
        expression.evaluate(source, {"INPUT": {}})


def test_parse_builds_node_tree() -> None:
    node = expression.parse("INPUT.a > 1 && !done")
    assert isinstance(node, expression.Logical) and node.op == "&&"
    left = node.left
    assert isinstance(left, expression.Binary) and left.op == ">"
    assert left.left == expression.Member(
        expression.Identifier("INPUT"), expression.Literal("a"), computed=False
    )
    assert node.right == expression.Unary("!", expression.Identifier("done"))
