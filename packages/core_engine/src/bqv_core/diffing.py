import logging
from typing import List, Mapping, Optional

from bqv_core.canonical import metadata_fingerprint
from bqv_core.definitions import LiveViewState, ViewDefinition, ViewDiff
from bqv_core.rendering import render_query
from bqv_core.warehouse.base import Warehouse

logger = logging.getLogger(__name__)


def compared_columns(definition: ViewDefinition, live: Optional[LiveViewState] = None) -> List[str]:
    """Declared column names, in declaration order, that the live schema has.

    Both sides of the metadata comparison use exactly these columns.
    """
    metadata = definition.metadata
    if metadata is None:
        return []
    names = [column.name for column in metadata.columns]
    if live is None:
        return names
    live_names = {column.name for column in live.columns}
    skipped = [name for name in names if name not in live_names]
    if skipped:
        logger.debug("Columns not in the schema of %s, ignored: %s", definition.fqn, ", ".join(skipped))
    return [name for name in names if name in live_names]


def declared_fingerprint(definition: ViewDefinition, live: Optional[LiveViewState] = None) -> str:
    metadata = definition.metadata
    if metadata is None:
        return ""
    docs = {column.name: column.description for column in metadata.columns}
    descriptions = [docs[name] for name in compared_columns(definition, live)]
    return metadata_fingerprint(metadata.description, descriptions, metadata.labels)


def live_fingerprint(live: LiveViewState, definition: Optional[ViewDefinition] = None) -> str:
    if definition is None:
        return metadata_fingerprint(live.description, live.column_descriptions(), live.labels)
    descriptions = live.column_descriptions(compared_columns(definition, live))
    return metadata_fingerprint(live.description, descriptions, live.labels)


def metadata_differs(definition: ViewDefinition, live: LiveViewState) -> bool:
    """Compare declared and live metadata. Undeclared metadata is not managed."""
    if not definition.has_metadata:
        return False
    old_meta = live_fingerprint(live, definition)
    new_meta = declared_fingerprint(definition, live)
    logger.debug("Old metadata string (%s): %s", definition.fqn, old_meta)
    logger.debug("New metadata string (%s): %s", definition.fqn, new_meta)
    return old_meta != new_meta


def compute_diff(
    definition: ViewDefinition,
    live: Optional[LiveViewState],
    params: Optional[Mapping[str, str]] = None,
) -> Optional[ViewDiff]:
    """Diff a definition against fetched live state.

    *live* is None when the dataset or the view does not exist. Returns None
    when nothing would change.
    """
    new_query = render_query(definition.query_template, params, definition.dataset, definition.view)

    if live is None or not live.exists:
        return ViewDiff(
            dataset=definition.dataset,
            view=definition.view,
            old_query="",
            new_query=new_query,
            metadata_changed=definition.has_metadata,
            view_exists=False,
        )

    query_changed = live.view_query != new_query
    metadata_changed = metadata_differs(definition, live)
    if not query_changed and not metadata_changed:
        return None

    return ViewDiff(
        dataset=definition.dataset,
        view=definition.view,
        old_query=live.view_query,
        new_query=new_query,
        metadata_changed=metadata_changed,
    )


def diff_view(
    definition: ViewDefinition,
    warehouse: Warehouse,
    params: Optional[Mapping[str, str]] = None,
) -> Optional[ViewDiff]:
    live = warehouse.fetch_view(definition.dataset, definition.view)
    return compute_diff(definition, live, params)
