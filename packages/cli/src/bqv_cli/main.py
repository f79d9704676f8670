import argparse
import json
import logging
import re
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from bqv_core import (
    BatchReport,
    BqvError,
    DefinitionSet,
    Settings,
    Warehouse,
    apply_views,
    default_config_path,
    destroy_views,
    format_plan,
    format_report,
    get_warehouse,
    list_warehouses,
    load_config,
    load_definitions_with_issues,
    load_params,
    plan_views,
    render_query,
    resolve_settings,
)
from bqv_core.issues import Issue, has_errors, issues_for, to_lines

logger = logging.getLogger("bqv")

_VIEW_NAME_RE = re.compile(r"^([^.]+)\.([^.]+)$")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _settings(args: argparse.Namespace) -> Settings:
    config_path = getattr(args, "config", None) or default_config_path()
    config = load_config(str(config_path)) if config_path else {}
    overrides = {
        "project": getattr(args, "project", None),
        "base_dir": getattr(args, "base_dir", None),
        "param_file": getattr(args, "param_file", None),
        "location": getattr(args, "location", None),
        "backend": getattr(args, "backend", None),
        "max_workers": getattr(args, "max_workers", None),
    }
    return resolve_settings(config, overrides)


def _load_definitions(settings: Settings, args: argparse.Namespace) -> Tuple[DefinitionSet, List[Issue]]:
    definitions, issues = load_definitions_with_issues(settings.base_dir)
    if issues:
        skipped = sorted({issue.fqn for issue in issues if issue.fqn})
        print(f"Configuration issues ({len(skipped)} view(s) skipped):", file=sys.stderr)
        for line in to_lines(issues):
            print(f"  {line}", file=sys.stderr)
    patterns = getattr(args, "select", None) or []
    selected = definitions.filter(patterns)
    logger.debug("Loaded %d view definitions (%d selected)", len(definitions), len(selected))
    return selected, issues


def _build_warehouse(settings: Settings) -> Warehouse:
    options: Dict[str, Any] = {}
    if settings.backend == "bigquery":
        options = {"project": settings.project or None, "location": settings.location or None}
    return get_warehouse(settings.backend, **options)


@contextmanager
def _cancellation_flag() -> Iterator[threading.Event]:
    """Turn the first Ctrl-C into a flag so no further views start."""
    cancelled = threading.Event()

    def _handler(signum, frame):
        if cancelled.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupted: finishing in-flight views, no new views will start.")
        cancelled.set()

    if threading.current_thread() is not threading.main_thread():
        yield cancelled
        return
    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancelled
    finally:
        signal.signal(signal.SIGINT, previous)


def _emit(
    report: BatchReport,
    issues: List[Issue],
    verb: str,
    args: argparse.Namespace,
    text: Optional[str] = None,
) -> int:
    failed = report.failed + (1 if has_errors(issues) else 0)
    if getattr(args, "output_json", False):
        payload = report.to_dict()
        payload["command"] = verb
        payload["config_issues"] = to_lines(issues)
        if has_errors(issues):
            payload["status"] = "failed"
        print(json.dumps(payload, indent=2))
    else:
        if text is not None:
            print(text, end="")
        print(format_report(report, verb), end="")
    if failed:
        print(f"{report.failed} view(s) failed, {len(issues)} configuration issue(s).", file=sys.stderr)
        return 1
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    settings = _settings(args)
    definitions, issues = _load_definitions(settings, args)
    params = load_params(settings.param_file)
    warehouse = _build_warehouse(settings)
    with _cancellation_flag() as cancelled:
        report = plan_views(
            definitions,
            warehouse,
            params,
            max_workers=settings.max_workers,
            cancellation_check=cancelled.is_set,
        )
    return _emit(report, issues, "plan", args, text=format_plan(report.diffs()))


def cmd_apply(args: argparse.Namespace) -> int:
    settings = _settings(args)
    definitions, issues = _load_definitions(settings, args)
    params = load_params(settings.param_file)
    warehouse = _build_warehouse(settings)
    with _cancellation_flag() as cancelled:
        report = apply_views(
            definitions,
            warehouse,
            params,
            dry_run=args.dry_run,
            max_workers=settings.max_workers,
            cancellation_check=cancelled.is_set,
        )
    return _emit(report, issues, "validate" if args.dry_run else "apply", args)


def cmd_destroy(args: argparse.Namespace) -> int:
    settings = _settings(args)
    definitions, issues = _load_definitions(settings, args)
    warehouse = _build_warehouse(settings)
    with _cancellation_flag() as cancelled:
        report = destroy_views(
            definitions,
            warehouse,
            max_workers=settings.max_workers,
            cancellation_check=cancelled.is_set,
        )
    return _emit(report, issues, "destroy", args)


def cmd_query(args: argparse.Namespace) -> int:
    match = _VIEW_NAME_RE.match(args.name)
    if not match:
        print("Argument must be in DATASET.VIEW format.", file=sys.stderr)
        return 1
    settings = _settings(args)
    definitions, issues = load_definitions_with_issues(settings.base_dir)
    definition = definitions.find(match.group(1), match.group(2))
    view_issues = issues_for(issues, match.group(1), match.group(2))
    if definition is None and view_issues:
        print(f"View {args.name} has invalid configuration:", file=sys.stderr)
        for line in to_lines(view_issues):
            print(f"  {line}", file=sys.stderr)
        return 1
    if definition is None:
        print(f"View not found: {args.name}", file=sys.stderr)
        return 1
    params = load_params(settings.param_file)
    print(render_query(definition.query_template, params, definition.dataset, definition.view), end="")
    return 0


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--select", nargs="*", default=[], help="Only views matching DATASET.VIEW glob patterns")
    parser.add_argument("--output-json", action="store_true", help="Print structured report JSON")
    parser.add_argument("--max-workers", type=int, default=None, help="Views processed concurrently (default 1)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bqv", description="Manage BigQuery views as code")
    parser.add_argument("--config", help="Config YAML (default ./bqv.yaml, then ~/.bqv.yaml)")
    parser.add_argument("--base-dir", help="Directory holding <dataset>/<view>/query.sql")
    parser.add_argument("--param-file", help="JSON/YAML file with template parameters (default .params)")
    parser.add_argument("--project", help="GCP project ID")
    parser.add_argument("--location", help="BigQuery location for new datasets")
    parser.add_argument("--backend", choices=list_warehouses(), help="Warehouse backend (default bigquery)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    plan_parser = sub.add_parser("plan", help="Show what apply would change")
    _add_common_options(plan_parser)
    plan_parser.set_defaults(func=cmd_plan)

    apply_parser = sub.add_parser("apply", help="Create or update views to match their definitions")
    _add_common_options(apply_parser)
    apply_parser.add_argument("--dry-run", action="store_true", help="Validate changed queries without applying")
    apply_parser.set_defaults(func=cmd_apply)

    destroy_parser = sub.add_parser("destroy", help="Delete the declared views")
    _add_common_options(destroy_parser)
    destroy_parser.set_defaults(func=cmd_destroy)

    query_parser = sub.add_parser("query", help="Print the rendered query of one view")
    query_parser.add_argument("name", help="DATASET.VIEW")
    query_parser.set_defaults(func=cmd_query)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return args.func(args)
    except BqvError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
