"""Schema validation for tracked items and the project aggregate.

Validation never raises for bad input. Callers get a
:class:`ValidationResult` and decide whether a failure is fatal.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from jsonschema import Draft7Validator, FormatChecker

from .schemas import KINDS, get_kind, project_data_schema


@dataclass(frozen=True, slots=True)
class FieldError:
    """A single schema violation."""

    path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating one value against one schema."""

    valid: bool
    errors: List[FieldError] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "errors": [error.to_dict() for error in self.errors]}


Checker = Callable[[Any], ValidationResult]

# Compiled checkers keyed by schema identity; the schema is kept alive alongside.
# Oldest entries are evicted past CHECKER_CACHE_SIZE.
CHECKER_CACHE_SIZE = 32
_checker_cache: Dict[int, Tuple[Dict[str, Any], Checker]] = {}
_checker_lock = threading.Lock()


def _format_path(parts) -> str:
    return ".".join(str(p) for p in parts) if parts else "(root)"


def compile_schema(schema: Dict[str, Any]) -> Checker:
    """Compile ``schema`` into a reusable check function."""
    cached = _checker_cache.get(id(schema))
    if cached is not None and cached[0] is schema:
        return cached[1]

    Draft7Validator.check_schema(schema)
    validator = Draft7Validator(schema, format_checker=FormatChecker())

    def check(value: Any) -> ValidationResult:
        errors = [
            FieldError(_format_path(error.absolute_path), error.message)
            for error in validator.iter_errors(value)
        ]
        if not errors:
            return ValidationResult(valid=True)
        errors.sort(key=lambda e: (e.path, e.message))
        return ValidationResult(valid=False, errors=errors)

    with _checker_lock:
        _checker_cache.pop(id(schema), None)
        _checker_cache[id(schema)] = (schema, check)
        while len(_checker_cache) > CHECKER_CACHE_SIZE:
            del _checker_cache[next(iter(_checker_cache))]
    return check


def validate(schema: Dict[str, Any], value: Any) -> ValidationResult:
    """Validate ``value`` against ``schema``."""
    return compile_schema(schema)(value)


def validate_item(kind: str, value: Any) -> ValidationResult:
    """Validate a single item against the schema of its kind.

    Raises:
        UnknownKindError: If ``kind`` is not registered
    """
    return validate(get_kind(kind).schema, value)


def _duplicate_id_errors(value: Any) -> List[FieldError]:
    if not isinstance(value, dict):
        return []
    errors: List[FieldError] = []
    for spec in KINDS.values():
        items = value.get(spec.collection)
        if not isinstance(items, list):
            continue
        seen: set = set()
        for index, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                continue
            if item["id"] in seen:
                errors.append(
                    FieldError(f"{spec.collection}.{index}.id", f"duplicate id {item['id']!r} in {spec.collection}")
                )
            seen.add(item["id"])
    return errors


def validate_project_data(value: Any) -> ValidationResult:
    """Validate a full project aggregate, including per-collection id uniqueness."""
    result = validate(project_data_schema(), value)
    duplicates = _duplicate_id_errors(value)
    if not duplicates:
        return result
    errors = sorted(result.errors + duplicates, key=lambda e: (e.path, e.message))
    return ValidationResult(valid=False, errors=errors)
