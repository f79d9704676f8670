"""Converge live views to their declared definitions.

Per definition, ``apply_view`` walks a small state machine:

- view absent            -> create (then push metadata)   -> changed
- view present, no diff  -> skip, zero mutating calls     -> unchanged
- view present, diff     -> etag-guarded update           -> changed

A missing dataset is created first, before the view's state is examined.
``run_batch`` runs one action over a whole definition set, isolating failures
so that every definition is attempted and the caller gets a failure count.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from bqv_core.definitions import ColumnDoc, LiveViewState, ViewDefinition, ViewDiff
from bqv_core.diffing import compute_diff, diff_view, metadata_differs
from bqv_core.errors import BqvError, NotFoundError
from bqv_core.rendering import render_query
from bqv_core.warehouse.base import ViewUpdate, Warehouse

logger = logging.getLogger(__name__)

STATUS_CHANGED = "changed"
STATUS_UNCHANGED = "unchanged"
STATUS_ERROR = "error"
STATUS_SKIPPED = "skipped"


def _ensure_dataset(definition: ViewDefinition, warehouse: Warehouse) -> None:
    if warehouse.dataset_exists(definition.dataset):
        return
    logger.info("Dataset(%s) was not found. creating it...", definition.dataset)
    warehouse.create_dataset(definition.dataset)


def _get_view_or_none(definition: ViewDefinition, warehouse: Warehouse) -> Optional[LiveViewState]:
    try:
        return warehouse.get_view(definition.dataset, definition.view)
    except NotFoundError:
        return None


def merge_columns(declared: Tuple[ColumnDoc, ...], live: Tuple[ColumnDoc, ...]) -> Tuple[ColumnDoc, ...]:
    """Overlay declared column descriptions onto the live schema by name."""
    docs = {column.name: column.description for column in declared}
    return tuple(ColumnDoc(name=column.name, description=docs.get(column.name, column.description)) for column in live)


def build_update(definition: ViewDefinition, live: LiveViewState, query: str) -> ViewUpdate:
    metadata = definition.metadata
    if metadata is None:
        return ViewUpdate(query=query)
    return ViewUpdate(
        query=query,
        description=metadata.description,
        columns=merge_columns(metadata.columns, live.columns),
        labels_to_delete=sorted(live.labels),
        labels_to_set=dict(metadata.labels),
    )


def apply_view(
    definition: ViewDefinition,
    warehouse: Warehouse,
    params: Optional[Mapping[str, str]] = None,
) -> bool:
    """Create or update one view. Returns True if the warehouse was changed."""
    query = render_query(definition.query_template, params, definition.dataset, definition.view)
    _ensure_dataset(definition, warehouse)

    live = _get_view_or_none(definition, warehouse)
    if live is None:
        logger.info("Creating view(%s) ...", definition.fqn)
        description = definition.metadata.description if definition.metadata else None
        warehouse.create_view(definition.dataset, definition.view, query, description)
        baseline = warehouse.get_view(definition.dataset, definition.view)
        # Column docs and labels can only be attached once the schema exists.
        if metadata_differs(definition, baseline):
            warehouse.update_view(
                definition.dataset,
                definition.view,
                build_update(definition, baseline, query),
                baseline.etag,
            )
        return True

    diff = compute_diff(definition, live, params)
    if diff is None:
        logger.info("Skipping view(%s). It exists and hasn't changed.", definition.fqn)
        return False

    logger.info(
        "Updating view(%s) ... query changed: %s, metadata changed: %s",
        definition.fqn,
        diff.query_changed,
        diff.metadata_changed,
    )
    warehouse.update_view(definition.dataset, definition.view, build_update(definition, live, query), live.etag)
    return True


def validate_view(
    definition: ViewDefinition,
    warehouse: Warehouse,
    params: Optional[Mapping[str, str]] = None,
) -> bool:
    """Dry-run the rendered query. Returns True if Apply would change the view."""
    live = warehouse.fetch_view(definition.dataset, definition.view)
    query = render_query(definition.query_template, params, definition.dataset, definition.view)
    if live is not None and live.view_query == query:
        logger.info("View(%s) won't change", definition.fqn)
        return False

    warehouse.dry_run_query(query)
    logger.info("View(%s) seems OK", definition.fqn)
    return True


def destroy_view(definition: ViewDefinition, warehouse: Warehouse) -> bool:
    """Delete the declared view if it exists. Returns True if it was deleted."""
    if warehouse.fetch_view(definition.dataset, definition.view) is None:
        logger.debug("View(%s) didn't exist.", definition.fqn)
        return False
    logger.info("Deleting view(%s) ...", definition.fqn)
    warehouse.delete_view(definition.dataset, definition.view)
    return True


# ---------------------------------------------------------------------------
# Batch execution
# ---------------------------------------------------------------------------


@dataclass
class ViewOutcome:
    dataset: str
    view: str
    status: str
    error: Optional[str] = None
    error_kind: Optional[str] = None
    diff: Optional[ViewDiff] = None

    @property
    def fqn(self) -> str:
        return f"{self.dataset}.{self.view}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "dataset": self.dataset,
            "view": self.view,
            "status": self.status,
        }
        if self.error is not None:
            payload["error"] = self.error
            payload["error_kind"] = self.error_kind
        if self.diff is not None:
            payload["diff"] = self.diff.to_dict()
        return payload


@dataclass
class BatchReport:
    outcomes: List[ViewOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def changed(self) -> int:
        return self._count(STATUS_CHANGED)

    @property
    def unchanged(self) -> int:
        return self._count(STATUS_UNCHANGED)

    @property
    def failed(self) -> int:
        return self._count(STATUS_ERROR)

    @property
    def skipped(self) -> int:
        return self._count(STATUS_SKIPPED)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def diffs(self) -> List[ViewDiff]:
        return [outcome.diff for outcome in self.outcomes if outcome.diff is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "success" if self.ok else "failed",
            "summary": {
                "total": len(self.outcomes),
                "changed": self.changed,
                "unchanged": self.unchanged,
                "failed": self.failed,
                "skipped": self.skipped,
            },
            "views": [outcome.to_dict() for outcome in self.outcomes],
        }


Action = Callable[[ViewDefinition], Any]


def _run_one(
    definition: ViewDefinition,
    action: Action,
    verb: str,
    cancellation_check: Optional[Callable[[], bool]],
) -> ViewOutcome:
    if cancellation_check is not None and cancellation_check():
        return ViewOutcome(definition.dataset, definition.view, STATUS_SKIPPED, error="cancelled")
    try:
        result = action(definition)
    except BqvError as e:
        logger.error("Failed to %s view %s: %s", verb, definition.fqn, e)
        return ViewOutcome(definition.dataset, definition.view, STATUS_ERROR, error=str(e), error_kind=e.kind)
    except Exception as e:
        logger.error("Failed to %s view %s: %s", verb, definition.fqn, e, exc_info=True)
        return ViewOutcome(definition.dataset, definition.view, STATUS_ERROR, error=str(e), error_kind="unexpected")

    diff = result if isinstance(result, ViewDiff) else None
    status = STATUS_CHANGED if result else STATUS_UNCHANGED
    return ViewOutcome(definition.dataset, definition.view, status, diff=diff)


def run_batch(
    definitions: Iterable[ViewDefinition],
    action: Action,
    *,
    verb: str = "apply",
    max_workers: int = 1,
    cancellation_check: Optional[Callable[[], bool]] = None,
) -> BatchReport:
    """Run *action* over every definition and collect one outcome per view.

    A truthy action result counts as ``changed``. Failures are recorded, not
    raised. Outcomes keep the definitions' order regardless of parallelism.
    """
    items = list(definitions)
    if max_workers < 1:
        max_workers = 1

    if max_workers == 1 or len(items) <= 1:
        outcomes = [_run_one(d, action, verb, cancellation_check) for d in items]
        return BatchReport(outcomes=outcomes)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(_run_one, d, action, verb, cancellation_check) for d in items]
        outcomes = [future.result() for future in futures]
    return BatchReport(outcomes=outcomes)


def plan_views(
    definitions: Iterable[ViewDefinition],
    warehouse: Warehouse,
    params: Optional[Mapping[str, str]] = None,
    **batch_options: Any,
) -> BatchReport:
    return run_batch(
        definitions,
        lambda d: diff_view(d, warehouse, params),
        verb="plan",
        **batch_options,
    )


def apply_views(
    definitions: Iterable[ViewDefinition],
    warehouse: Warehouse,
    params: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
    **batch_options: Any,
) -> BatchReport:
    if dry_run:
        return run_batch(
            definitions,
            lambda d: validate_view(d, warehouse, params),
            verb="validate",
            **batch_options,
        )
    return run_batch(
        definitions,
        lambda d: apply_view(d, warehouse, params),
        verb="apply",
        **batch_options,
    )


def destroy_views(
    definitions: Iterable[ViewDefinition],
    warehouse: Warehouse,
    **batch_options: Any,
) -> BatchReport:
    return run_batch(
        definitions,
        lambda d: destroy_view(d, warehouse),
        verb="destroy",
        **batch_options,
    )
