from typing import List

from bqv_core.definitions import ViewDiff
from bqv_core.reconcile import STATUS_CHANGED, STATUS_ERROR, STATUS_SKIPPED, STATUS_UNCHANGED, BatchReport

_STATUS_LABELS = {
    "apply": {STATUS_CHANGED: "changed", STATUS_UNCHANGED: "unchanged"},
    "validate": {STATUS_CHANGED: "valid", STATUS_UNCHANGED: "unchanged"},
    "destroy": {STATUS_CHANGED: "deleted", STATUS_UNCHANGED: "absent"},
    "plan": {STATUS_CHANGED: "will change", STATUS_UNCHANGED: "unchanged"},
}


def format_diff(diff: ViewDiff) -> str:
    header = f"## {diff.fqn} (new view)" if diff.is_create else f"## {diff.fqn}"
    lines = [
        header,
        "### Old",
        "```sql",
        diff.old_query,
        "```",
        "### New",
        "```sql",
        diff.new_query,
        "```",
        f"Metadata changed: {'yes' if diff.metadata_changed else 'no'}",
    ]
    return "\n".join(lines) + "\n"


def format_plan(diffs: List[ViewDiff]) -> str:
    if not diffs:
        return "No changes.\n"
    return "\n".join(format_diff(diff) for diff in diffs)


def format_report(report: BatchReport, verb: str = "apply") -> str:
    labels = _STATUS_LABELS.get(verb, _STATUS_LABELS["apply"])
    lines: List[str] = []
    for outcome in report.outcomes:
        if outcome.status == STATUS_ERROR:
            label = "invalid" if verb == "validate" and outcome.error_kind == "validation" else "error"
            lines.append(f"{outcome.fqn}: {label}: {outcome.error}")
        elif outcome.status == STATUS_SKIPPED:
            lines.append(f"{outcome.fqn}: skipped ({outcome.error or 'not started'})")
        else:
            lines.append(f"{outcome.fqn}: {labels.get(outcome.status, outcome.status)}")
    lines.append(
        f"Total: {len(report.outcomes)}, changed: {report.changed}, unchanged: {report.unchanged}, "
        f"failed: {report.failed}, skipped: {report.skipped}"
    )
    return "\n".join(lines) + "\n"
