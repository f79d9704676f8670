"""Dictionary-backed warehouse for tests and local rehearsal runs."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Tuple

from bqv_core.definitions import ColumnDoc, LiveViewState
from bqv_core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from bqv_core.warehouse.base import ViewUpdate, Warehouse

MUTATING_CALLS = {"create_dataset", "create_view", "update_view", "delete_view"}


class InMemoryWarehouse(Warehouse):
    kind = "memory"

    def __init__(self, **_: Any) -> None:
        self.datasets: Set[str] = set()
        self.views: Dict[Tuple[str, str], LiveViewState] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self.invalid_queries: Dict[str, str] = {}
        self.view_schemas: Dict[Tuple[str, str], Tuple[str, ...]] = {}
        self._etag_counter = 0
        self._lock = threading.Lock()

    # -- test helpers -------------------------------------------------------

    def seed_view(
        self,
        dataset: str,
        view: str,
        query: str,
        description: str = "",
        columns: Tuple[ColumnDoc, ...] = (),
        labels: Optional[Dict[str, str]] = None,
    ) -> LiveViewState:
        with self._lock:
            self.datasets.add(dataset)
            state = LiveViewState(
                view_query=query,
                description=description,
                columns=tuple(columns),
                labels=dict(labels or {}),
                etag=self._next_etag(),
            )
            self.views[(dataset, view)] = state
            return state

    def set_view_schema(self, dataset: str, view: str, column_names: List[str]) -> None:
        """Columns a created view reports, as BigQuery infers them from the query."""
        self.view_schemas[(dataset, view)] = tuple(column_names)

    def fail_on(self, call: str, error: Exception, dataset: Optional[str] = None) -> None:
        """Make every later *call* raise *error*, or only those on *dataset*."""
        self.failures[(call, dataset)] = error

    def reject_query(self, query: str, reason: str = "Syntax error") -> None:
        self.invalid_queries[query] = reason

    def mutating_calls(self) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def reset_calls(self) -> None:
        self.calls.clear()

    # -- contract -----------------------------------------------------------

    def _next_etag(self) -> str:
        self._etag_counter += 1
        return f"etag-{self._etag_counter}"

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        target = call[1] if len(call) > 1 and call[0] != "dry_run_query" else None
        error = self.failures.get((call[0], target)) or self.failures.get((call[0], None))
        if error is not None:
            raise error

    def dataset_exists(self, dataset: str) -> bool:
        with self._lock:
            self._record("dataset_exists", dataset)
            return dataset in self.datasets

    def create_dataset(self, dataset: str) -> None:
        with self._lock:
            self._record("create_dataset", dataset)
            self.datasets.add(dataset)

    def get_view(self, dataset: str, view: str) -> LiveViewState:
        with self._lock:
            self._record("get_view", dataset, view)
            state = self.views.get((dataset, view))
            if state is None:
                raise NotFoundError(f"Not found: View {dataset}.{view}", dataset=dataset, view=view)
            return state

    def create_view(self, dataset: str, view: str, query: str, description: Optional[str] = None) -> None:
        with self._lock:
            self._record("create_view", dataset, view, query)
            if dataset not in self.datasets:
                raise NotFoundError(f"Not found: Dataset {dataset}", dataset=dataset, view=view)
            if (dataset, view) in self.views:
                raise TransportError(f"Already Exists: View {dataset}.{view}", dataset=dataset, view=view)
            self.views[(dataset, view)] = LiveViewState(
                view_query=query,
                description=description or "",
                columns=tuple(ColumnDoc(name=name) for name in self.view_schemas.get((dataset, view), ())),
                etag=self._next_etag(),
            )

    def update_view(self, dataset: str, view: str, update: ViewUpdate, etag: str) -> None:
        with self._lock:
            self._record("update_view", dataset, view, update)
            current = self.views.get((dataset, view))
            if current is None:
                raise NotFoundError(f"Not found: View {dataset}.{view}", dataset=dataset, view=view)
            if etag != current.etag:
                raise ConflictError(
                    f"Precondition check failed for {dataset}.{view}: etag {etag} != {current.etag}",
                    dataset=dataset,
                    view=view,
                )
            labels = {k: v for k, v in current.labels.items() if k not in update.labels_to_delete}
            labels.update(update.labels_to_set)
            self.views[(dataset, view)] = replace(
                current,
                view_query=update.query,
                description=current.description if update.description is None else update.description,
                columns=current.columns if update.columns is None else tuple(update.columns),
                labels=labels,
                etag=self._next_etag(),
            )

    def delete_view(self, dataset: str, view: str) -> None:
        with self._lock:
            self._record("delete_view", dataset, view)
            if self.views.pop((dataset, view), None) is None:
                raise NotFoundError(f"Not found: View {dataset}.{view}", dataset=dataset, view=view)

    def dry_run_query(self, query: str) -> None:
        with self._lock:
            self._record("dry_run_query", query)
            reason = self.invalid_queries.get(query)
            if reason is not None:
                raise ValidationError(reason)
