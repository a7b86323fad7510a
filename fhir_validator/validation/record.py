"""
Generic tree model of a clinical resource.

A ``Record`` is built once from raw JSON-like input and is read-only
afterwards. Every node carries the kind and type its schema declares, so
nothing downstream needs to guess what a value is.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from fhir_validator.validation.errors import MalformedRecordError
from fhir_validator.validation.paths import PathExpression, PathResolver
from fhir_validator.validation.schema import DEFAULT_SCHEMA, ElementDefinition, ResourceSchema

_SCALAR_TYPES = (str, bool, int, float)


class NodeKind(str, Enum):
    PRIMITIVE = "primitive"
    COMPOSITE = "composite"
    REPEATED = "repeated"


@dataclass(frozen=True)
class RecordNode:
    """One field of a record: a scalar, an object, or a list of either."""

    name: str
    kind: NodeKind
    type_name: str
    path: str
    value: Any = None
    children: tuple[RecordNode, ...] = ()

    @property
    def is_repeated(self) -> bool:
        return self.kind is NodeKind.REPEATED

    @property
    def is_primitive(self) -> bool:
        return self.kind is NodeKind.PRIMITIVE

    def child(self, name: str) -> RecordNode | None:
        if self.kind is not NodeKind.COMPOSITE:
            return None
        for node in self.children:
            if node.name == name:
                return node
        return None

    def to_python(self) -> Any:
        if self.kind is NodeKind.PRIMITIVE:
            return self.value
        if self.kind is NodeKind.REPEATED:
            return [node.to_python() for node in self.children]
        return {node.name: node.to_python() for node in self.children}


class Record:
    """A resource instance plus the schema it was built against."""

    def __init__(self, root: RecordNode, schema: ResourceSchema = DEFAULT_SCHEMA):
        self.root = root
        self.schema = schema
        self._resolver = PathResolver(schema)

    @property
    def resource_type(self) -> str:
        return self.root.type_name

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    @classmethod
    def from_dict(
        cls,
        raw: Any,
        resource_type: str | None = None,
        schema: ResourceSchema | None = None,
    ) -> Record:
        """
        Build a record from parsed JSON.

        ``resource_type`` is a fallback for input without ``resourceType``.
        Raises MalformedRecordError on any shape disagreement.
        """
        schema = schema or DEFAULT_SCHEMA
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"a resource must be an object, got {_describe(raw)}")

        declared = raw.get("resourceType")
        if declared is not None and not isinstance(declared, str):
            raise MalformedRecordError("resourceType must be a string", "resourceType")
        type_name = declared or resource_type
        if not type_name:
            raise MalformedRecordError("resourceType is missing")
        if not schema.is_resource(type_name):
            raise MalformedRecordError(f"unknown resource type '{type_name}'", "resourceType")

        root = _build_composite(type_name, type_name, raw, "", schema)
        return cls(root, schema)

    def resolve(self, path: str | PathExpression) -> list[RecordNode]:
        return self._resolver.resolve(path, self.root)

    def get(self, path: str | PathExpression) -> list[Any]:
        """Values at ``path``; empty when the field is absent from this instance."""
        return [node.to_python() for node in self.resolve(path)]

    def to_python(self) -> dict[str, Any]:
        return {"resourceType": self.resource_type, **self.root.to_python()}


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def _describe(value: Any) -> str:
    if isinstance(value, dict):
        return "an object"
    if isinstance(value, list):
        return "a list"
    if value is None:
        return "null"
    return type(value).__name__


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _build_composite(
    name: str, type_name: str, raw: Any, path: str, schema: ResourceSchema
) -> RecordNode:
    if not isinstance(raw, dict):
        raise MalformedRecordError(
            f"expected an object of type {type_name}, got {_describe(raw)}", path
        )
    elements = schema.elements_of(type_name)
    children = []
    for field_name, value in raw.items():
        child_path = _join(path, field_name)
        element = elements.get(field_name)
        if element is None:
            raise MalformedRecordError(
                f"'{field_name}' is not an element of {type_name}", child_path
            )
        if value is None:
            continue
        children.append(_build_element(element, value, child_path, schema))
    return RecordNode(name, NodeKind.COMPOSITE, type_name, path, children=tuple(children))


def _build_element(
    element: ElementDefinition, value: Any, path: str, schema: ResourceSchema
) -> RecordNode:
    if not element.repeated:
        return _build_single(element.name, element.type_name, value, path, schema)

    if not isinstance(value, list):
        raise MalformedRecordError(
            f"expected a list of {element.type_name}, got {_describe(value)}", path
        )
    items = tuple(
        _build_single(element.name, element.type_name, item, f"{path}[{index}]", schema)
        for index, item in enumerate(value)
    )
    return RecordNode(element.name, NodeKind.REPEATED, element.type_name, path, children=items)


def _build_single(
    name: str, type_name: str, value: Any, path: str, schema: ResourceSchema
) -> RecordNode:
    if isinstance(value, list):
        raise MalformedRecordError(f"expected a single {type_name}, got a list", path)
    if value is None:
        raise MalformedRecordError("null is not allowed inside a list", path)
    if not schema.is_primitive(type_name):
        return _build_composite(name, type_name, value, path, schema)
    if not isinstance(value, _SCALAR_TYPES):
        raise MalformedRecordError(
            f"expected a {type_name} value, got {_describe(value)}", path
        )
    return RecordNode(name, NodeKind.PRIMITIVE, type_name, path, value=value)
