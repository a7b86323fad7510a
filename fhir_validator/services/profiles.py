"""Registry of compiled profiles, keyed by canonical URL and version."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from fhir_validator.schemas.profiles import BUILTIN_PROFILES
from fhir_validator.validation.constraints import ConstraintSet, load_constraint_set
from fhir_validator.validation.errors import ProfileNotFoundError, ProfileParseError
from fhir_validator.validation.structure_definition import load_structure_definition

logger = logging.getLogger(__name__)


class ProfileRegistry:
    """Holds loaded constraint sets; the latest registration of a URL wins when no version is asked for."""

    def __init__(self):
        self._profiles: dict[tuple[str, str | None], ConstraintSet] = {}
        self._latest: dict[str, ConstraintSet] = {}
        self._lock = threading.Lock()

    def register(self, constraint_set: ConstraintSet) -> ConstraintSet:
        with self._lock:
            self._profiles[constraint_set.key] = constraint_set
            self._latest[constraint_set.url] = constraint_set
        logger.info("Registered profile %s|%s", constraint_set.url, constraint_set.version)
        return constraint_set

    def register_definition(self, raw: Any) -> ConstraintSet:
        """Load a raw definition or a StructureDefinition and register it."""
        if isinstance(raw, dict) and raw.get("resourceType") == "StructureDefinition":
            return self.register(load_structure_definition(raw))
        return self.register(load_constraint_set(raw))

    def get(self, url: str, version: str | None = None) -> ConstraintSet:
        with self._lock:
            found = self._profiles.get((url, version)) if version else self._latest.get(url)
        if found is None:
            raise ProfileNotFoundError(url, version)
        return found

    def all(self) -> list[ConstraintSet]:
        with self._lock:
            return sorted(self._profiles.values(), key=lambda c: (c.url, c.version or ""))

    def load_directory(self, directory: str | Path) -> int:
        """Register every ``*.json`` definition in ``directory``; returns how many loaded."""
        loaded = 0
        for path in sorted(Path(directory).glob("*.json")):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ProfileParseError(f"{path.name}: not valid JSON ({exc})") from exc
            self.register_definition(raw)
            loaded += 1
        logger.info("Loaded %d profile definitions from %s", loaded, directory)
        return loaded


def build_default_registry(profile_dir: str = "") -> ProfileRegistry:
    """Registry with the built-in profiles plus any definitions under ``profile_dir``."""
    registry = ProfileRegistry()
    for definition in BUILTIN_PROFILES:
        registry.register_definition(definition)
    if profile_dir:
        registry.load_directory(profile_dir)
    return registry
