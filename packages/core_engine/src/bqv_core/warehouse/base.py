"""Live-state accessor interface and registry for warehouse backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from bqv_core.definitions import ColumnDoc, LiveViewState
from bqv_core.errors import NotFoundError


@dataclass
class ViewUpdate:
    """Everything pushed in one guarded update of a view."""

    query: str
    description: Optional[str] = None
    columns: Optional[Tuple[ColumnDoc, ...]] = None
    labels_to_delete: List[str] = field(default_factory=list)
    labels_to_set: Dict[str, str] = field(default_factory=dict)


class Warehouse(ABC):
    """Narrow query surface over the warehouse.

    Implementations translate client failures into :mod:`bqv_core.errors`
    kinds. They never retry; that belongs to the underlying client.
    """

    kind: str = ""

    @abstractmethod
    def dataset_exists(self, dataset: str) -> bool:
        """Return True if *dataset* exists."""

    @abstractmethod
    def create_dataset(self, dataset: str) -> None:
        """Create *dataset*."""

    @abstractmethod
    def get_view(self, dataset: str, view: str) -> LiveViewState:
        """Fetch the view's live state. Raises NotFoundError when absent."""

    @abstractmethod
    def create_view(self, dataset: str, view: str, query: str, description: Optional[str] = None) -> None:
        """Create the view with *query* (standard SQL)."""

    @abstractmethod
    def update_view(self, dataset: str, view: str, update: ViewUpdate, etag: str) -> None:
        """Push *update* guarded by *etag*. Raises ConflictError on mismatch."""

    @abstractmethod
    def delete_view(self, dataset: str, view: str) -> None:
        """Delete the view."""

    @abstractmethod
    def dry_run_query(self, query: str) -> None:
        """Validate *query* without running it. Raises ValidationError."""

    def fetch_view(self, dataset: str, view: str) -> Optional[LiveViewState]:
        """Return live state, or None when the dataset or the view is missing."""
        if not self.dataset_exists(dataset):
            return None
        try:
            return self.get_view(dataset, view)
        except NotFoundError:
            return None


# ---------------------------------------------------------------------------
# Warehouse registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[str, Callable[..., Warehouse]] = {}


def register_warehouse(kind: str, factory: Callable[..., Warehouse]) -> None:
    _REGISTRY[kind] = factory


def get_warehouse(kind: str, **options: Any) -> Warehouse:
    """Build a warehouse backend by kind name."""
    factory = _REGISTRY.get(kind)
    if factory is None:
        raise ValueError(f"Unknown warehouse backend: {kind}")
    return factory(**options)


def list_warehouses() -> List[str]:
    return sorted(_REGISTRY)
