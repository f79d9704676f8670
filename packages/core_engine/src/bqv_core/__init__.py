from bqv_core.canonical import metadata_fingerprint
from bqv_core.config import Settings, default_config_path, load_config, resolve_settings
from bqv_core.definitions import (
    ColumnDoc,
    DefinitionSet,
    LiveViewState,
    ParameterSet,
    ViewDefinition,
    ViewDiff,
    ViewMetadata,
)
from bqv_core.diffing import compute_diff, diff_view
from bqv_core.errors import (
    BqvError,
    ConfigError,
    ConflictError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from bqv_core.loader import load_definitions, load_definitions_with_issues, load_params
from bqv_core.reconcile import (
    BatchReport,
    ViewOutcome,
    apply_view,
    apply_views,
    destroy_view,
    destroy_views,
    plan_views,
    run_batch,
    validate_view,
)
from bqv_core.rendering import render_query
from bqv_core.report import format_plan, format_report
from bqv_core.warehouse import (
    BigQueryWarehouse,
    InMemoryWarehouse,
    ViewUpdate,
    Warehouse,
    get_warehouse,
    list_warehouses,
)

__all__ = [
    "apply_view",
    "apply_views",
    "BatchReport",
    "BigQueryWarehouse",
    "BqvError",
    "ColumnDoc",
    "compute_diff",
    "ConfigError",
    "ConflictError",
    "default_config_path",
    "DefinitionSet",
    "destroy_view",
    "destroy_views",
    "diff_view",
    "format_plan",
    "format_report",
    "get_warehouse",
    "InMemoryWarehouse",
    "list_warehouses",
    "LiveViewState",
    "load_config",
    "load_definitions",
    "load_definitions_with_issues",
    "load_params",
    "metadata_fingerprint",
    "NotFoundError",
    "ParameterSet",
    "plan_views",
    "render_query",
    "resolve_settings",
    "run_batch",
    "Settings",
    "TransportError",
    "validate_view",
    "ValidationError",
    "ViewDefinition",
    "ViewDiff",
    "ViewMetadata",
    "ViewOutcome",
    "ViewUpdate",
    "Warehouse",
]
