"""BigQuery backend tests against a mocked client.

Tables and schema fields are real google-cloud-bigquery objects so the
property mapping is exercised; only the network calls are mocked.
"""

import sys
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))

from google.api_core import exceptions as gexc
from google.cloud import bigquery

from bqv_core.definitions import ColumnDoc
from bqv_core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from bqv_core.warehouse import BigQueryWarehouse, get_warehouse, list_warehouses
from bqv_core.warehouse.base import ViewUpdate


def _view_table(query="SELECT 1", etag="etag-1", labels=None, description=None):
    table = bigquery.Table("proj.d.v")
    table.view_query = query
    table._properties["type"] = "VIEW"
    table._properties["etag"] = etag
    table.schema = [
        bigquery.SchemaField("id", "INTEGER", description="old id"),
        bigquery.SchemaField("amount", "FLOAT"),
    ]
    if labels:
        table.labels = dict(labels)
    if description:
        table.description = description
    return table


class BigQueryWarehouseTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = mock.MagicMock()
        self.client.project = "proj"
        self.warehouse = BigQueryWarehouse(client=self.client)

    def test_registered(self) -> None:
        self.assertIn("bigquery", list_warehouses())
        self.assertIn("memory", list_warehouses())
        self.assertIsInstance(get_warehouse("bigquery", client=self.client), BigQueryWarehouse)
        with self.assertRaises(ValueError):
            get_warehouse("snowflake")

    def test_project_defaults_to_client(self) -> None:
        self.assertEqual("proj", self.warehouse.project)
        self.assertEqual("other", BigQueryWarehouse(project="other", client=self.client).project)

    def test_get_view_maps_table(self) -> None:
        self.client.get_table.return_value = _view_table(labels={"env": "prod"}, description="Orders")
        live = self.warehouse.get_view("d", "v")
        self.client.get_table.assert_called_once_with("proj.d.v", timeout=None)
        self.assertEqual("SELECT 1", live.view_query)
        self.assertEqual("Orders", live.description)
        self.assertEqual((ColumnDoc("id", "old id"), ColumnDoc("amount", "")), live.columns)
        self.assertEqual({"env": "prod"}, live.labels)
        self.assertEqual("etag-1", live.etag)

    def test_get_view_rejects_tables(self) -> None:
        table = _view_table()
        table._properties["type"] = "TABLE"
        self.client.get_table.return_value = table
        with self.assertRaises(TransportError):
            self.warehouse.get_view("d", "v")

    def test_missing_view_and_dataset(self) -> None:
        self.client.get_table.side_effect = gexc.NotFound("Not found: Table proj:d.v")
        with self.assertRaises(NotFoundError) as ctx:
            self.warehouse.get_view("d", "v")
        self.assertEqual("d.v", ctx.exception.fqn)

        self.client.get_dataset.side_effect = gexc.NotFound("Not found: Dataset proj:d")
        self.assertFalse(self.warehouse.dataset_exists("d"))
        self.assertIsNone(self.warehouse.fetch_view("d", "v"))

    def test_dataset_exists_propagates_other_errors(self) -> None:
        self.client.get_dataset.side_effect = gexc.Forbidden("Access Denied")
        with self.assertRaises(TransportError):
            self.warehouse.dataset_exists("d")

    def test_create_dataset_uses_location(self) -> None:
        warehouse = BigQueryWarehouse(client=self.client, location="EU")
        warehouse.create_dataset("d")
        dataset = self.client.create_dataset.call_args[0][0]
        self.assertEqual("d", dataset.dataset_id)
        self.assertEqual("EU", dataset.location)

    def test_create_view_is_standard_sql(self) -> None:
        self.warehouse.create_view("d", "v", "SELECT 1", "Orders")
        table = self.client.create_table.call_args[0][0]
        self.assertEqual("SELECT 1", table.view_query)
        self.assertFalse(table.view_use_legacy_sql)
        self.assertEqual("Orders", table.description)

    def test_update_query_only(self) -> None:
        self.client.get_table.return_value = _view_table(labels={"owner": "ops"})
        self.warehouse.update_view("d", "v", ViewUpdate(query="SELECT 2"), "etag-1")
        table, fields = self.client.update_table.call_args[0]
        self.assertEqual(["view_query"], fields)
        self.assertEqual("SELECT 2", table.view_query)
        self.assertEqual({"owner": "ops"}, table.labels)

    def test_update_metadata_replaces_labels(self) -> None:
        self.client.get_table.return_value = _view_table(labels={"env": "staging", "team": "x"})
        update = ViewUpdate(
            query="SELECT 1",
            description="Orders",
            columns=(ColumnDoc("id", "Identifier"), ColumnDoc("amount", "")),
            labels_to_delete=["env", "team"],
            labels_to_set={"env": "prod"},
        )
        self.warehouse.update_view("d", "v", update, "etag-1")
        table, fields = self.client.update_table.call_args[0]
        self.assertEqual(["view_query", "description", "schema", "labels"], fields)
        self.assertEqual("Orders", table.description)
        self.assertEqual(["Identifier", ""], [f.description or "" for f in table.schema])
        self.assertEqual(["INTEGER", "FLOAT"], [f.field_type for f in table.schema])
        self.assertEqual({"env": "prod", "team": None}, table._properties["labels"])

    def test_update_detects_stale_etag_before_sending(self) -> None:
        self.client.get_table.return_value = _view_table(etag="etag-2")
        with self.assertRaises(ConflictError):
            self.warehouse.update_view("d", "v", ViewUpdate(query="SELECT 2"), "etag-1")
        self.client.update_table.assert_not_called()

    def test_precondition_failed_is_conflict(self) -> None:
        self.client.get_table.return_value = _view_table()
        self.client.update_table.side_effect = gexc.PreconditionFailed("etag mismatch")
        with self.assertRaises(ConflictError) as ctx:
            self.warehouse.update_view("d", "v", ViewUpdate(query="SELECT 2"), "etag-1")
        self.assertEqual("conflict", ctx.exception.kind)

    def test_server_error_is_transport(self) -> None:
        self.client.delete_table.side_effect = gexc.InternalServerError("backend error")
        with self.assertRaises(TransportError):
            self.warehouse.delete_view("d", "v")

    def test_dry_run_success(self) -> None:
        job = mock.MagicMock()
        job.error_result = None
        self.client.query.return_value = job
        self.warehouse.dry_run_query("SELECT 1")
        job_config = self.client.query.call_args[1]["job_config"]
        self.assertTrue(job_config.dry_run)
        self.assertFalse(job_config.use_query_cache)

    def test_dry_run_rejected(self) -> None:
        self.client.query.side_effect = gexc.BadRequest("Syntax error: Unexpected identifier")
        with self.assertRaises(ValidationError) as ctx:
            self.warehouse.dry_run_query("SELEC 1")
        self.assertIn("Syntax error", str(ctx.exception))

    def test_dry_run_error_result(self) -> None:
        job = mock.MagicMock()
        job.error_result = {"message": "Unrecognized name: foo"}
        self.client.query.return_value = job
        with self.assertRaises(ValidationError):
            self.warehouse.dry_run_query("SELECT foo")

    def test_dry_run_transport_failure(self) -> None:
        self.client.query.side_effect = gexc.ServiceUnavailable("try later")
        with self.assertRaises(TransportError):
            self.warehouse.dry_run_query("SELECT 1")


if __name__ == "__main__":
    unittest.main()
