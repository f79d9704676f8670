import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from bqv_core.issues import Issue

METADATA_SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "view_metadata.schema.json"


def load_schema(schema_path: Optional[str] = None) -> Dict[str, Any]:
    path = Path(schema_path) if schema_path else METADATA_SCHEMA_PATH
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _to_json_path(parts: List[Any]) -> str:
    if not parts:
        return "/"
    return "/" + "/".join(str(part) for part in parts)


def metadata_issues(metadata: Any, schema: Optional[Dict[str, Any]] = None, source: str = "") -> List[Issue]:
    """Validate a parsed metadata sidecar against the view metadata schema."""
    validator = Draft202012Validator(schema or load_schema())
    issues: List[Issue] = []

    for error in sorted(validator.iter_errors(metadata), key=lambda e: list(e.absolute_path)):
        path = _to_json_path(list(error.absolute_path))
        issues.append(
            Issue(
                severity="error",
                code="METADATA_SCHEMA_INVALID",
                message=error.message,
                path=f"{source}#{path}" if source else path,
            )
        )

    return issues
