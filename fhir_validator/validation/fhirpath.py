"""
FHIRPath invariants.

Parsing and evaluation are done by fhirpathpy. Expressions are compiled once
when a profile is loaded, so syntax errors and unknown functions surface
there rather than during validation.

On top of evaluation, every expression gets a static pass over its member
chains: each field it navigates must be an element of the schema type it is
applied to. The pass only looks at the schema, so an unknown field is caught
whether or not the record carries data along that chain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterator

import fhirpathpy
from fhirpathpy.parser import parse as parse_fhirpath

from fhir_validator.validation.errors import InvalidPathError
from fhir_validator.validation.schema import ResourceSchema

if TYPE_CHECKING:
    from fhir_validator.validation.record import Record, RecordNode


class ExpressionSyntaxError(ValueError):
    """Expression text cannot be compiled."""


class EvaluationError(Exception):
    """Expression compiled but cannot be evaluated against this record."""


# name -> (min arguments, max arguments)
FUNCTIONS: dict[str, tuple[int, int]] = {
    "empty": (0, 0),
    "exists": (0, 1),
    "all": (1, 1),
    "allTrue": (0, 0),
    "anyTrue": (0, 0),
    "allFalse": (0, 0),
    "anyFalse": (0, 0),
    "subsetOf": (1, 1),
    "supersetOf": (1, 1),
    "count": (0, 0),
    "distinct": (0, 0),
    "isDistinct": (0, 0),
    "where": (1, 1),
    "select": (1, 1),
    "repeat": (1, 1),
    "ofType": (1, 1),
    "single": (0, 0),
    "first": (0, 0),
    "last": (0, 0),
    "tail": (0, 0),
    "skip": (1, 1),
    "take": (1, 1),
    "intersect": (1, 1),
    "exclude": (1, 1),
    "union": (1, 1),
    "combine": (1, 1),
    "iif": (2, 3),
    "not": (0, 0),
    "toInteger": (0, 0),
    "toDecimal": (0, 0),
    "toString": (0, 0),
    "toBoolean": (0, 0),
    "indexOf": (1, 1),
    "substring": (1, 2),
    "startsWith": (1, 1),
    "endsWith": (1, 1),
    "contains": (1, 1),
    "upper": (0, 0),
    "lower": (0, 0),
    "replace": (2, 2),
    "matches": (1, 1),
    "replaceMatches": (2, 2),
    "length": (0, 0),
    "hasValue": (0, 0),
    "children": (0, 0),
    "descendants": (0, 0),
    "trace": (1, 2),
    "now": (0, 0),
    "today": (0, 0),
}

# functions whose argument is evaluated once per input item
_ITERATING = frozenset({"exists", "all", "where", "select", "repeat", "iif"})

# functions returning a subset of their input
_FILTERING = frozenset(
    {"where", "first", "last", "tail", "skip", "take", "single", "distinct", "trace", "intersect", "exclude"}
)

# (schema types of a collection, member chain that produced it)
_Focus = tuple[frozenset, str]


class Expression:
    """A compiled invariant expression."""

    def __init__(self, text: str, tree: dict[str, Any], evaluator: Callable[..., list]):
        self.text = text
        self._tree = tree
        self._evaluator = evaluator

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expression) and other.text == self.text

    def __hash__(self) -> int:
        return hash(self.text)

    def check_members(
        self,
        schema: ResourceSchema,
        type_name: str,
        resource_type: str,
        context: str = "",
    ) -> None:
        """
        Check every member access against ``schema``.

        ``type_name`` is the type the expression is applied to and
        ``context`` the path that led there; both only depend on the
        constraint, never on record data. Raises InvalidPathError naming the
        navigated member chain.
        """
        _MemberWalk(schema, resource_type).walk(self._tree, (frozenset({type_name}), context))

    def evaluate(self, node: RecordNode, record: Record) -> list[Any]:
        resource = record.to_python()
        data = resource if node is record.root else node.to_python()
        try:
            return self._evaluator(data, {"resource": resource})
        except Exception as exc:  # fhirpathpy reports evaluation failures as plain Exceptions
            raise EvaluationError(str(exc) or type(exc).__name__) from exc

    def check(self, node: RecordNode, record: Record) -> bool | None:
        """
        Evaluate as a condition: True/False, or None when the result is empty.

        A non-boolean single item counts as true; several items are an error.
        """
        result = self.evaluate(node, record)
        if not result:
            return None
        if len(result) > 1:
            raise EvaluationError(
                f"'{self.text}' returned {len(result)} items where a single boolean was expected"
            )
        value = result[0]
        return value if isinstance(value, bool) else True


def compile_expression(text: str) -> Expression:
    """Parse and compile ``text``; raises ExpressionSyntaxError."""
    if not text or not text.strip():
        raise ExpressionSyntaxError("Expression is empty")
    try:
        tree = parse_fhirpath(text)
    except Exception as exc:  # the parser raises plain Exceptions on syntax errors
        raise ExpressionSyntaxError(f"Invalid FHIRPath '{text}': {exc}") from exc

    # the parser recovers from some errors instead of raising; a tree that
    # does not cover the whole text is one of those
    top = _top(tree)
    if top is None or ("text" in top and top["text"] != _compact(text)):
        raise ExpressionSyntaxError(f"Invalid FHIRPath '{text}': could not parse the whole expression")

    for node in _iter_nodes(tree):
        if node.get("type") != "Functn":
            continue
        name, params = _function_parts(node)
        if name not in FUNCTIONS:
            raise ExpressionSyntaxError(f"Unknown function '{name}' in '{text}'")
        lowest, highest = FUNCTIONS[name]
        if not lowest <= len(params) <= highest:
            raise ExpressionSyntaxError(
                f"Function '{name}' takes {lowest}..{highest} arguments, got {len(params)} in '{text}'"
            )

    return Expression(text, tree, fhirpathpy.compile(text))


# ---------------------------------------------------------------------------
# Parse tree helpers
# ---------------------------------------------------------------------------


def _top(tree: dict[str, Any]) -> dict[str, Any] | None:
    """The outermost expression node below the parser's wrappers."""
    node = tree
    while "type" not in node or node["type"] == "EntireExpression":
        children = node.get("children") or []
        if not children:
            return None
        node = children[0]
    return node


def _iter_nodes(node: dict[str, Any]) -> Iterator[dict[str, Any]]:
    yield node
    for child in node.get("children") or []:
        yield from _iter_nodes(child)


def _function_parts(node: dict[str, Any]) -> tuple[str, list[dict[str, Any]]]:
    name = node.get("text", "").split("(", 1)[0].strip("`")
    params: list[dict[str, Any]] = []
    for child in node.get("children") or []:
        if child.get("type") == "ParamList":
            params = child.get("children") or []
        elif child.get("type") == "Identifier" and not name:
            name = child.get("text", "").strip("`")
    return name, params


def _compact(text: str) -> str:
    """``text`` without the whitespace the parser drops between tokens."""
    out = []
    quote = None
    escaped = False
    for char in text:
        if quote:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in "'`":
            quote = char
            out.append(char)
        elif not char.isspace():
            out.append(char)
    return "".join(out)


class _MemberWalk:
    """Infers the schema types along an expression and checks each member step."""

    def __init__(self, schema: ResourceSchema, resource_type: str):
        self.schema = schema
        self.resource_type = resource_type

    def walk(self, node: dict[str, Any], focus: _Focus | None) -> _Focus | None:
        kind = node.get("type")
        children = node.get("children") or []

        if kind == "InvocationExpression":
            left = self.walk(children[0], focus)
            return self.invoke(children[1], left, leading=False)
        if kind == "InvocationTerm":
            return self.invoke(children[0], focus, leading=True)
        if kind == "ExternalConstantTerm":
            name = node.get("text", "").lstrip("%").strip("`'")
            if name in ("resource", "rootResource"):
                return frozenset({self.resource_type}), f"%{name}"
            if name == "context":
                return focus
            return None
        if kind == "IndexerExpression":
            left = self.walk(children[0], focus)
            self.walk(children[1], focus)
            return left
        if kind == "UnionExpression":
            sides = [self.walk(child, focus) for child in children]
            if all(sides):
                return frozenset().union(*(types for types, _ in sides)), sides[0][1]
            return None
        if len(children) == 1:
            return self.walk(children[0], focus)
        for child in children:
            self.walk(child, focus)
        return None

    def invoke(self, node: dict[str, Any], focus: _Focus | None, leading: bool) -> _Focus | None:
        kind = node.get("type")
        if kind == "MemberInvocation":
            return self.member(node.get("text", "").strip("`"), focus, leading)
        if kind == "FunctionInvocation":
            return self.function(node["children"][0], focus)
        if kind == "ThisInvocation":
            return focus
        return None

    def member(self, name: str, focus: _Focus | None, leading: bool) -> _Focus | None:
        if focus is None:
            return None
        types, chain = focus
        path = f"{chain}.{name}" if chain else name

        if leading and self.schema.is_resource(name):
            if name not in types:
                raise InvalidPathError(path, name, " | ".join(sorted(types)))
            return frozenset({name}), chain or name

        found = [self.schema.element(type_name, name) for type_name in sorted(types)]
        found = [element for element in found if element is not None]
        if not found:
            raise InvalidPathError(path, name, " | ".join(sorted(types)))
        return frozenset(element.type_name for element in found), path

    def function(self, node: dict[str, Any], focus: _Focus | None) -> _Focus | None:
        name, params = _function_parts(node)
        results = [self.walk(param, focus if name in _ITERATING else None) for param in params]
        if name in _FILTERING:
            return focus
        if name == "select" and results:
            return results[0]
        return None
