"""
Path expressions and their resolution against record trees.

Grammar (dot/bracket notation)::

    path    := segment ("." segment)*
    segment := name ("[" (digits | "*") "]")?

A repeated element yields one match per item unless an index selects one.
A leading resource type name (``Patient.name``) anchors at the root.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fhir_validator.validation.errors import InvalidPathError
from fhir_validator.validation.schema import DEFAULT_SCHEMA, ResourceSchema

if TYPE_CHECKING:
    from fhir_validator.validation.record import RecordNode

WILDCARD = "*"

_SEGMENT_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)(?:\[(\d+|\*)\])?")


class PathSyntaxError(ValueError):
    """Path text does not follow the path grammar."""


@dataclass(frozen=True)
class PathSegment:
    name: str
    index: int | str | None = None

    def __str__(self) -> str:
        return self.name if self.index is None else f"{self.name}[{self.index}]"


@dataclass(frozen=True)
class PathExpression:
    text: str
    segments: tuple[PathSegment, ...]

    def __str__(self) -> str:
        return self.text


def parse_path(text: str) -> PathExpression:
    """Parse ``text`` into segments; the empty path addresses the root."""
    text = text.strip()
    if not text:
        return PathExpression("", ())

    segments = []
    for part in text.split("."):
        match = _SEGMENT_RE.fullmatch(part)
        if not match:
            raise PathSyntaxError(f"Invalid path segment '{part}' in '{text}'")
        name, index = match.groups()
        if index is not None and index != WILDCARD:
            index = int(index)
        segments.append(PathSegment(name, index))
    return PathExpression(text, tuple(segments))


class PathResolver:
    """Locates the nodes a path addresses, checking every step against the schema."""

    def __init__(self, schema: ResourceSchema = DEFAULT_SCHEMA):
        self.schema = schema
        self._lock = threading.Lock()
        self._checked: dict[tuple[str, str], str] = {}

    def resolve(self, path: str | PathExpression, node: RecordNode) -> list[RecordNode]:
        if isinstance(path, str):
            path = parse_path(path)
        segments = self._strip_anchor(path, node.type_name)
        self._check(path, node.type_name, segments)

        matches = [node]
        for segment in segments:
            matches = [found for current in matches for found in self._step(current, segment)]
        return matches

    def type_of(self, path: str | PathExpression, type_name: str) -> str:
        """Schema type that ``path`` addresses when applied to ``type_name``."""
        if isinstance(path, str):
            path = parse_path(path)
        return self._check(path, type_name, self._strip_anchor(path, type_name))

    def _strip_anchor(
        self, path: PathExpression, type_name: str
    ) -> tuple[PathSegment, ...]:
        segments = path.segments
        if segments and self.schema.is_resource(segments[0].name):
            if segments[0].name != type_name or segments[0].index is not None:
                raise InvalidPathError(path.text, str(segments[0]), type_name)
            return segments[1:]
        return segments

    def _check(
        self, path: PathExpression, type_name: str, segments: tuple[PathSegment, ...]
    ) -> str:
        key = (path.text, type_name)
        with self._lock:
            if key in self._checked:
                return self._checked[key]
        current = type_name
        for segment in segments:
            element = self.schema.element(current, segment.name)
            if element is None:
                raise InvalidPathError(path.text, segment.name, current)
            current = element.type_name
        with self._lock:
            self._checked[key] = current
        return current

    @staticmethod
    def _step(node: RecordNode, segment: PathSegment) -> list[RecordNode]:
        child = node.child(segment.name)
        if child is None:
            return []
        if child.is_repeated:
            if isinstance(segment.index, int):
                return list(child.children[segment.index : segment.index + 1])
            return list(child.children)
        # singletons behave as one-item collections
        if isinstance(segment.index, int) and segment.index != 0:
            return []
        return [child]
