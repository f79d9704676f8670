"""In-memory model of declared views and their diffs against the warehouse."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from bqv_core.errors import ConfigError

ParameterSet = Dict[str, str]


@dataclass(frozen=True)
class ColumnDoc:
    name: str
    description: str = ""


@dataclass(frozen=True)
class ViewMetadata:
    """Description, column docs and labels declared in a view's sidecar file."""

    description: str = ""
    columns: Tuple[ColumnDoc, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "ViewMetadata":
        columns = tuple(
            ColumnDoc(name=item.get("name", ""), description=item.get("description", "") or "")
            for item in data.get("schema", []) or []
        )
        labels = {str(key): str(value) for key, value in (data.get("labels") or {}).items()}
        return cls(description=data.get("description", "") or "", columns=columns, labels=labels)

    def column_descriptions(self) -> List[str]:
        return [column.description for column in self.columns]


@dataclass(frozen=True)
class ViewDefinition:
    dataset: str
    view: str
    query_template: str
    metadata: Optional[ViewMetadata] = None
    source_dir: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.dataset, self.view)

    @property
    def fqn(self) -> str:
        return f"{self.dataset}.{self.view}"

    @property
    def has_metadata(self) -> bool:
        return self.metadata is not None


@dataclass(frozen=True)
class LiveViewState:
    """Snapshot of a view as the warehouse reports it. Never cached."""

    view_query: str = ""
    description: str = ""
    columns: Tuple[ColumnDoc, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)
    etag: str = ""
    exists: bool = True

    def column_descriptions(self, names: Optional[Sequence[str]] = None) -> List[str]:
        """Descriptions in schema order, or looked up by *names* in that order."""
        if names is None:
            return [column.description for column in self.columns]
        docs = {column.name: column.description for column in self.columns}
        return [docs.get(name, "") for name in names]


@dataclass(frozen=True)
class ViewDiff:
    dataset: str
    view: str
    old_query: str
    new_query: str
    metadata_changed: bool = False
    view_exists: bool = True

    @property
    def fqn(self) -> str:
        return f"{self.dataset}.{self.view}"

    @property
    def query_changed(self) -> bool:
        return self.old_query != self.new_query

    @property
    def is_create(self) -> bool:
        return not self.view_exists and not self.old_query

    def to_dict(self) -> Dict[str, object]:
        return {
            "dataset": self.dataset,
            "view": self.view,
            "old_query": self.old_query,
            "new_query": self.new_query,
            "metadata_changed": self.metadata_changed,
            "is_create": self.is_create,
        }


class DefinitionSet:
    """Declared view definitions keyed by (dataset, view)."""

    def __init__(self, definitions: Iterable[ViewDefinition] = ()):
        self._items: Dict[Tuple[str, str], ViewDefinition] = {}
        for definition in definitions:
            self.add(definition)

    def add(self, definition: ViewDefinition) -> None:
        if definition.key in self._items:
            raise ConfigError(
                f"Duplicate view definition: {definition.fqn}",
                dataset=definition.dataset,
                view=definition.view,
            )
        self._items[definition.key] = definition

    def find(self, dataset: str, view: str) -> Optional[ViewDefinition]:
        return self._items.get((dataset, view))

    def filter(self, patterns: Sequence[str]) -> "DefinitionSet":
        """Keep definitions whose ``dataset.view`` matches any fnmatch pattern."""
        if not patterns:
            return DefinitionSet(self)
        return DefinitionSet(
            d for d in self if any(fnmatch.fnmatchcase(d.fqn, pattern) for pattern in patterns)
        )

    def __iter__(self) -> Iterator[ViewDefinition]:
        for key in sorted(self._items):
            yield self._items[key]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
