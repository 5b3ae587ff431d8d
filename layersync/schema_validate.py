import json
from pathlib import Path
from typing import Dict, List

from jsonschema import Draft202012Validator

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
SCHEMA_STORE: Dict[str, dict] = {}
_VALIDATORS: Dict[str, Draft202012Validator] = {}

INSTALL_STATE_SCHEMA = "install_state.schema.json"
LAYER_MANIFEST_SCHEMA = "layer_manifest.schema.json"


def _load_schema_store() -> None:
    if SCHEMA_STORE:
        return
    for path in SCHEMA_DIR.glob("*.schema.json"):
        schema = json.loads(path.read_text(encoding="utf-8"))
        SCHEMA_STORE[path.name] = schema


def _validator(schema_name: str) -> Draft202012Validator:
    _load_schema_store()
    if schema_name in _VALIDATORS:
        return _VALIDATORS[schema_name]
    schema = SCHEMA_STORE.get(schema_name)
    if schema is None:
        raise FileNotFoundError(f"Schema {schema_name} not found in {SCHEMA_DIR}")
    Draft202012Validator.check_schema(schema)
    validator = Draft202012Validator(schema)
    _VALIDATORS[schema_name] = validator
    return validator


def validate_document(schema_name: str, payload: object) -> List[str]:
    """Return human-readable errors, sorted by location, for payload against schema_name."""
    validator = _validator(schema_name)
    errors: List[str] = []
    for error in sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.absolute_path]):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors

