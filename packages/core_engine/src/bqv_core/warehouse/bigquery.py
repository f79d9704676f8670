"""BigQuery backend built on google-cloud-bigquery."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from bqv_core.definitions import ColumnDoc, LiveViewState
from bqv_core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from bqv_core.warehouse.base import ViewUpdate, Warehouse

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(dataset: Optional[str] = None, view: Optional[str] = None) -> Iterator[None]:
    from google.api_core import exceptions as gexc

    try:
        yield
    except gexc.NotFound as e:
        raise NotFoundError(str(e), dataset=dataset, view=view) from e
    except gexc.PreconditionFailed as e:
        raise ConflictError(
            f"View was modified concurrently (etag mismatch): {e}", dataset=dataset, view=view
        ) from e
    except gexc.GoogleAPIError as e:
        raise TransportError(str(e), dataset=dataset, view=view) from e


class BigQueryWarehouse(Warehouse):
    kind = "bigquery"

    def __init__(
        self,
        project: Optional[str] = None,
        location: Optional[str] = None,
        client: Any = None,
        timeout: Optional[float] = None,
    ) -> None:
        if client is None:
            from google.cloud import bigquery

            client = bigquery.Client(project=project or None, location=location or None)
        self.client = client
        self.project = project or client.project
        self.location = location
        self.timeout = timeout

    def _dataset_id(self, dataset: str) -> str:
        return f"{self.project}.{dataset}"

    def _table_id(self, dataset: str, view: str) -> str:
        return f"{self.project}.{dataset}.{view}"

    def dataset_exists(self, dataset: str) -> bool:
        try:
            with _translate_errors(dataset):
                self.client.get_dataset(self._dataset_id(dataset), timeout=self.timeout)
        except NotFoundError:
            return False
        return True

    def create_dataset(self, dataset: str) -> None:
        from google.cloud import bigquery

        ds = bigquery.Dataset(self._dataset_id(dataset))
        if self.location:
            ds.location = self.location
        with _translate_errors(dataset):
            self.client.create_dataset(ds, timeout=self.timeout)

    def get_view(self, dataset: str, view: str) -> LiveViewState:
        with _translate_errors(dataset, view):
            table = self.client.get_table(self._table_id(dataset, view), timeout=self.timeout)
        if table.table_type and table.table_type != "VIEW":
            raise TransportError(
                f"{dataset}.{view} exists but is a {table.table_type}, not a VIEW", dataset=dataset, view=view
            )
        return LiveViewState(
            view_query=table.view_query or "",
            description=table.description or "",
            columns=tuple(ColumnDoc(name=f.name, description=f.description or "") for f in table.schema or []),
            labels=dict(table.labels or {}),
            etag=table.etag or "",
        )

    def create_view(self, dataset: str, view: str, query: str, description: Optional[str] = None) -> None:
        from google.cloud import bigquery

        table = bigquery.Table(self._table_id(dataset, view))
        table.view_query = query
        table.view_use_legacy_sql = False
        if description:
            table.description = description
        with _translate_errors(dataset, view):
            self.client.create_table(table, timeout=self.timeout)

    def update_view(self, dataset: str, view: str, update: ViewUpdate, etag: str) -> None:
        from google.cloud import bigquery

        with _translate_errors(dataset, view):
            table = self.client.get_table(self._table_id(dataset, view), timeout=self.timeout)
        if etag and table.etag != etag:
            raise ConflictError(
                f"View was modified concurrently (etag {etag} != {table.etag})", dataset=dataset, view=view
            )

        fields: List[str] = ["view_query"]
        table.view_query = update.query
        if update.description is not None:
            table.description = update.description
            fields.append("description")
        if update.columns is not None:
            docs = {column.name: column.description for column in update.columns}
            schema = []
            for field in table.schema or []:
                api_repr = field.to_api_repr()
                if field.name in docs:
                    api_repr["description"] = docs[field.name]
                schema.append(bigquery.SchemaField.from_api_repr(api_repr))
            table.schema = schema
            fields.append("schema")
        if update.labels_to_delete or update.labels_to_set:
            # A label set to None is removed by the API.
            labels = {key: None for key in update.labels_to_delete}
            labels.update(update.labels_to_set)
            table.labels = labels
            fields.append("labels")

        # table.etag is sent as If-Match, so a concurrent edit fails with 412.
        with _translate_errors(dataset, view):
            self.client.update_table(table, fields, timeout=self.timeout)

    def delete_view(self, dataset: str, view: str) -> None:
        with _translate_errors(dataset, view):
            self.client.delete_table(self._table_id(dataset, view), timeout=self.timeout)

    def dry_run_query(self, query: str) -> None:
        from google.api_core import exceptions as gexc
        from google.cloud import bigquery

        job_config = bigquery.QueryJobConfig(dry_run=True, use_query_cache=False)
        try:
            job = self.client.query(query, job_config=job_config, timeout=self.timeout)
        except (gexc.BadRequest, gexc.Forbidden, gexc.NotFound) as e:
            raise ValidationError(str(e)) from e
        except gexc.GoogleAPIError as e:
            raise TransportError(str(e)) from e
        # Dry runs complete synchronously; the job state carries any failure.
        if getattr(job, "error_result", None):
            raise ValidationError(job.error_result.get("message", "Dry run failed"))
        logger.debug("Dry run would process %s bytes", getattr(job, "total_bytes_processed", None))
