"""JSON schema validation for exported chain documents."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator


def default_schema_path() -> Path:
    return Path(__file__).resolve().parents[1] / "schema" / "chain.schema.json"


@lru_cache(maxsize=None)
def _validator(schema_path: Path) -> Draft202012Validator:
    with schema_path.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_document(document: Any, schema_path: Path | None = None) -> list[str]:
    """Return one message per schema violation in ``document``."""

    validator = _validator(schema_path or default_schema_path())
    errors = sorted(validator.iter_errors(document), key=lambda err: err.json_path)
    return [f"{list(error.path)}: {error.message}" for error in errors]


__all__ = ["default_schema_path", "validate_document"]
