from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class Issue:
    """A problem found while loading one view's configuration files.

    ``dataset``/``view`` name the view the file belongs to; the view is left
    out of the definition set when any of its issues is an error.
    """

    severity: str
    code: str
    message: str
    path: str = "/"
    dataset: Optional[str] = None
    view: Optional[str] = None

    @property
    def fqn(self) -> str:
        if self.dataset and self.view:
            return f"{self.dataset}.{self.view}"
        return ""


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == "error" for issue in issues)


def issues_for(issues: Iterable[Issue], dataset: str, view: str) -> List[Issue]:
    return [issue for issue in issues if issue.dataset == dataset and issue.view == view]


def to_lines(issues: List[Issue]) -> List[str]:
    lines = []
    for issue in issues:
        scope = f"{issue.fqn} " if issue.fqn else ""
        lines.append(f"[{issue.severity.upper()}] {scope}{issue.code} {issue.path}: {issue.message}")
    return lines
