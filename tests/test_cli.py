import io
import json
import signal
import sys
import tempfile
import threading
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))
sys.path.insert(0, str(ROOT / "packages" / "cli" / "src"))

from bqv_cli.main import _cancellation_flag, build_parser, main
from bqv_core.warehouse.memory import InMemoryWarehouse


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.base = self.root / "views"
        self._view("sales", "orders", "SELECT * FROM `{{ project }}.raw.orders`\n")
        self._view("sales", "refunds", "SELECT * FROM `{{ project }}.raw.refunds`\n")
        self.params = self.root / ".params"
        self.params.write_text(json.dumps({"project": "acme"}), encoding="utf-8")
        self.config = self.root / "bqv.yaml"
        self.config.write_text(f"base_dir: {self.base}\nbackend: memory\n", encoding="utf-8")
        self.warehouse = InMemoryWarehouse()
        patcher = mock.patch("bqv_cli.main._build_warehouse", return_value=self.warehouse)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _view(self, dataset: str, view: str, query: str) -> Path:
        view_dir = self.base / dataset / view
        view_dir.mkdir(parents=True, exist_ok=True)
        (view_dir / "query.sql").write_text(query, encoding="utf-8")
        return view_dir

    def _run(self, *argv: str):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(["--config", str(self.config), "--param-file", str(self.params), *argv])
        return code, out.getvalue(), err.getvalue()

    def test_parser_requires_command(self) -> None:
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args([])
        args = build_parser().parse_args(["--backend", "memory", "apply", "--dry-run", "--max-workers", "3"])
        self.assertTrue(args.dry_run)
        self.assertEqual(3, args.max_workers)

    def test_apply_then_plan_is_clean(self) -> None:
        code, out, _ = self._run("apply")
        self.assertEqual(0, code)
        self.assertIn("sales.orders: changed", out)
        self.assertIn("Total: 2, changed: 2, unchanged: 0, failed: 0, skipped: 0", out)
        self.assertEqual(
            "SELECT * FROM `acme.raw.orders`\n",
            self.warehouse.views[("sales", "orders")].view_query,
        )

        self.warehouse.reset_calls()
        code, out, _ = self._run("plan")
        self.assertEqual(0, code)
        self.assertTrue(out.startswith("No changes.\n"))
        self.assertEqual([], self.warehouse.mutating_calls())

    def test_plan_shows_diff(self) -> None:
        self.warehouse.seed_view("sales", "orders", "SELECT 1")
        code, out, _ = self._run("plan", "--select", "sales.orders")
        self.assertEqual(0, code)
        self.assertIn("## sales.orders\n### Old\n```sql\nSELECT 1\n```", out)
        self.assertIn("Metadata changed: no", out)
        self.assertNotIn("sales.refunds", out)

    def test_dry_run_makes_no_changes(self) -> None:
        code, out, _ = self._run("apply", "--dry-run")
        self.assertEqual(0, code)
        self.assertIn("sales.orders: valid", out)
        self.assertEqual([], self.warehouse.mutating_calls())

    def test_failure_sets_exit_code_and_json_report(self) -> None:
        self._view("sales", "broken", "SELECT {{ nope }}")
        code, out, _ = self._run("apply", "--output-json")
        self.assertEqual(1, code)
        payload = json.loads(out)
        self.assertEqual("failed", payload["status"])
        self.assertEqual("apply", payload["command"])
        self.assertEqual(3, payload["summary"]["total"])
        self.assertEqual(1, payload["summary"]["failed"])
        broken = [view for view in payload["views"] if view["view"] == "broken"][0]
        self.assertEqual("config", broken["error_kind"])
        self.assertIn(("sales", "orders"), self.warehouse.views)

    def test_bad_metadata_fails_the_run(self) -> None:
        view_dir = self._view("sales", "documented", "SELECT 1")
        (view_dir / "meta.json").write_text("{broken", encoding="utf-8")
        code, out, err = self._run("apply")
        self.assertEqual(1, code)
        self.assertIn("sales.documented METADATA_UNREADABLE", err)
        self.assertIn("1 view(s) skipped", err)
        self.assertIn("sales.orders: changed", out)

    def test_destroy(self) -> None:
        self.warehouse.seed_view("sales", "orders", "SELECT 1")
        code, out, _ = self._run("destroy")
        self.assertEqual(0, code)
        self.assertIn("sales.orders: deleted", out)
        self.assertIn("sales.refunds: absent", out)
        self.assertNotIn(("sales", "orders"), self.warehouse.views)

    def test_query_prints_rendered_sql(self) -> None:
        code, out, _ = self._run("query", "sales.orders")
        self.assertEqual(0, code)
        self.assertEqual("SELECT * FROM `acme.raw.orders`\n", out)

    def test_query_argument_errors(self) -> None:
        code, _, err = self._run("query", "orders")
        self.assertEqual(1, code)
        self.assertIn("DATASET.VIEW", err)
        code, _, err = self._run("query", "sales.missing")
        self.assertEqual(1, code)
        self.assertIn("View not found", err)

    def test_query_reports_invalid_metadata(self) -> None:
        view_dir = self._view("sales", "documented", "SELECT 1")
        (view_dir / "meta.json").write_text(json.dumps({"schema": [{"description": "no name"}]}), encoding="utf-8")
        code, out, err = self._run("query", "sales.documented")
        self.assertEqual(1, code)
        self.assertEqual("", out)
        self.assertIn("View sales.documented has invalid configuration", err)
        self.assertIn("sales.documented METADATA_SCHEMA_INVALID", err)
        self.assertNotIn("View not found", err)

    def test_missing_config_file(self) -> None:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(["--config", str(self.root / "nope.yaml"), "plan"])
        self.assertEqual(1, code)
        self.assertIn("Config file not found", err.getvalue())


class CancellationFlagTests(unittest.TestCase):
    def test_first_interrupt_sets_flag_second_aborts(self) -> None:
        previous = signal.getsignal(signal.SIGINT)
        with _cancellation_flag() as cancelled:
            handler = signal.getsignal(signal.SIGINT)
            self.assertIsNot(previous, handler)
            self.assertFalse(cancelled.is_set())
            with redirect_stderr(io.StringIO()):
                handler(signal.SIGINT, None)
            self.assertTrue(cancelled.is_set())
            with self.assertRaises(KeyboardInterrupt):
                handler(signal.SIGINT, None)
        self.assertIs(previous, signal.getsignal(signal.SIGINT))

    def test_worker_thread_leaves_handler_alone(self) -> None:
        previous = signal.getsignal(signal.SIGINT)
        seen = []

        def run():
            with _cancellation_flag() as cancelled:
                seen.append((cancelled.is_set(), signal.getsignal(signal.SIGINT)))

        thread = threading.Thread(target=run)
        thread.start()
        thread.join()
        self.assertEqual([(False, previous)], seen)


if __name__ == "__main__":
    unittest.main()
