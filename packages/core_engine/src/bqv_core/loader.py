"""Scan a base directory into view definitions.

Layout::

    <base_dir>/<dataset>/<view>/query.sql
    <base_dir>/<dataset>/<view>/meta.json    (or meta.yaml / meta.yml)

A view directory without ``query.sql`` is skipped. A broken metadata sidecar
skips only that view and is reported as an :class:`Issue`.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from bqv_core.definitions import DefinitionSet, ViewDefinition, ViewMetadata
from bqv_core.errors import ConfigError
from bqv_core.issues import Issue
from bqv_core.schema import load_schema, metadata_issues

logger = logging.getLogger(__name__)

QUERY_FILE = "query.sql"
METADATA_FILES = ("meta.json", "meta.yaml", "meta.yml")


def _subdirs(path: Path) -> List[Path]:
    return sorted(p for p in path.iterdir() if p.is_dir() and not p.name.startswith("."))


def _read_structured(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def _scoped(issues: List[Issue], dataset: str, view: str) -> List[Issue]:
    return [replace(issue, dataset=dataset, view=view) for issue in issues]


def load_metadata(path: Path, schema: Optional[Dict[str, Any]] = None) -> Tuple[Optional[ViewMetadata], List[Issue]]:
    try:
        data = _read_structured(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        return None, [Issue(severity="error", code="METADATA_UNREADABLE", message=str(e), path=str(path))]

    if data is None:
        data = {}
    issues = metadata_issues(data, schema, source=str(path))
    if issues:
        return None, issues
    return ViewMetadata.from_dict(data), []


def load_view_dir(
    dataset: str,
    view_dir: Path,
    schema: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[ViewDefinition], List[Issue]]:
    query_path = view_dir / QUERY_FILE
    if not query_path.is_file():
        logger.debug("Query file not found. skip %s.%s", dataset, view_dir.name)
        return None, []

    try:
        query = query_path.read_text(encoding="utf-8")
    except OSError as e:
        issue = Issue(severity="error", code="QUERY_UNREADABLE", message=str(e), path=str(query_path))
        return None, _scoped([issue], dataset, view_dir.name)

    metadata = None
    for name in METADATA_FILES:
        meta_path = view_dir / name
        if not meta_path.is_file():
            continue
        metadata, issues = load_metadata(meta_path, schema)
        if issues:
            return None, _scoped(issues, dataset, view_dir.name)
        logger.debug("Metadata from file(%s.%s): %s", dataset, view_dir.name, metadata)
        break
    else:
        logger.debug("Metadata file not found for %s.%s", dataset, view_dir.name)

    return (
        ViewDefinition(
            dataset=dataset,
            view=view_dir.name,
            query_template=query,
            metadata=metadata,
            source_dir=str(view_dir),
        ),
        [],
    )


def load_definitions_with_issues(base_dir: str) -> Tuple[DefinitionSet, List[Issue]]:
    root = Path(base_dir)
    if not root.is_dir():
        raise ConfigError(f"Base directory not found: {base_dir}")

    schema = load_schema()
    definitions = DefinitionSet()
    issues: List[Issue] = []
    for dataset_dir in _subdirs(root):
        for view_dir in _subdirs(dataset_dir):
            definition, view_issues = load_view_dir(dataset_dir.name, view_dir, schema)
            issues.extend(view_issues)
            if definition is not None:
                definitions.add(definition)
    return definitions, issues


def load_definitions(base_dir: str) -> DefinitionSet:
    definitions, issues = load_definitions_with_issues(base_dir)
    for issue in issues:
        logger.error("%s skipped: %s %s: %s", issue.fqn, issue.code, issue.path, issue.message)
    return definitions


def load_params(path: Optional[str]) -> Dict[str, str]:
    """Load the template parameter file (JSON or YAML mapping).

    A missing file means no parameters.
    """
    if not path:
        return {}
    param_path = Path(path)
    if not param_path.exists():
        return {}
    try:
        data = yaml.safe_load(param_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse parameter file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Parameter file must contain a mapping: {path}")
    return {str(key): "" if value is None else str(value) for key, value in data.items()}
