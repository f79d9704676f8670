"""Warehouse backends implementing the live-state accessor contract.

Each backend implements :class:`Warehouse`:
  dataset_exists / create_dataset / get_view / create_view / update_view /
  delete_view / dry_run_query
"""

from bqv_core.warehouse.base import (
    ViewUpdate,
    Warehouse,
    get_warehouse,
    list_warehouses,
    register_warehouse,
)
from bqv_core.warehouse.bigquery import BigQueryWarehouse
from bqv_core.warehouse.memory import InMemoryWarehouse

register_warehouse(BigQueryWarehouse.kind, BigQueryWarehouse)
register_warehouse(InMemoryWarehouse.kind, InMemoryWarehouse)

__all__ = [
    "BigQueryWarehouse",
    "InMemoryWarehouse",
    "ViewUpdate",
    "Warehouse",
    "get_warehouse",
    "list_warehouses",
    "register_warehouse",
]
