"""JSON Schema validation infrastructure.

Provides schema validation for platform config files and simulation
scenarios:
- Automatic schema resolution via $ref
- Cross-reference registry for all schemas under ``schemas/``
- Cached validators
- Error messages carrying the JSON path of each failure
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from tribunal.core import SCHEMAS_DIR, load_json

SCHEMA_URI_PREFIX = "https://schemas.tribunal.dev/"


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a registry of every ``*.schema.json`` for $ref resolution."""
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("**/*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue
        schema_id = schema.get("$id") or SCHEMA_URI_PREFIX + schema_path.relative_to(schemas_dir).as_posix()
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(schema_path: Path) -> Draft202012Validator:
    """Create (and cache) a validator for a schema file."""
    schema = load_json(schema_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_against_schema(obj: Any, schema_path: Path) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(Path(schema_path))
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
