"""Typed view over the FHIR structure definitions in ``schemas.fhir``."""

from __future__ import annotations

from dataclasses import dataclass

from fhir_validator.schemas.fhir import (
    DATATYPE_DEFINITIONS,
    PRIMITIVE_TYPES,
    RESOURCE_DEFINITIONS,
)


@dataclass(frozen=True)
class ElementDefinition:
    """One field of a resource or datatype."""

    name: str
    type_name: str
    repeated: bool = False


class ResourceSchema:
    """
    Resolves element definitions for resource types and datatypes.

    Types are looked up lazily by name, so recursive datatypes such as
    ``Extension.extension`` need no special handling.
    """

    def __init__(
        self,
        resources: dict[str, dict[str, tuple[str, bool]]],
        datatypes: dict[str, dict[str, tuple[str, bool]]],
        primitives: frozenset[str],
    ):
        self.primitives = primitives
        self._types: dict[str, dict[str, ElementDefinition]] = {}
        self.resource_types = frozenset(resources)
        for type_name, elements in {**datatypes, **resources}.items():
            self._types[type_name] = {
                name: ElementDefinition(name, element_type, repeated)
                for name, (element_type, repeated) in elements.items()
            }

    def is_primitive(self, type_name: str) -> bool:
        return type_name in self.primitives

    def is_resource(self, type_name: str) -> bool:
        return type_name in self.resource_types

    def knows_type(self, type_name: str) -> bool:
        return type_name in self.primitives or type_name in self._types

    def elements_of(self, type_name: str) -> dict[str, ElementDefinition]:
        """Element definitions of a composite type (empty for primitives)."""
        if type_name in self.primitives:
            return {}
        try:
            return self._types[type_name]
        except KeyError:
            raise KeyError(f"Unknown type: {type_name}") from None

    def element(self, type_name: str, name: str) -> ElementDefinition | None:
        return self.elements_of(type_name).get(name)


DEFAULT_SCHEMA = ResourceSchema(RESOURCE_DEFINITIONS, DATATYPE_DEFINITIONS, PRIMITIVE_TYPES)
