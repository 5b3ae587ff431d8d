from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from layersync.executor import ExecutionResult
from layersync.merge_engine import PlannedAction, SyncAction


@dataclass
class FailureLine:
    logical_path: str
    reason: str


@dataclass
class InstallationReport:
    root: str
    dry_run: bool
    counts: Dict[str, int]
    requires_manual_merge: List[str] = field(default_factory=list)
    kept_delete_candidates: List[str] = field(default_factory=list)
    backups: List[str] = field(default_factory=list)
    failures: List[FailureLine] = field(default_factory=list)
    actions: List[PlannedAction] = field(default_factory=list)
    state_recovered: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def count(self, action: SyncAction) -> int:
        return self.counts.get(action.value, 0)

    def to_dict(self) -> dict:
        return {
            "root": self.root,
            "dry_run": self.dry_run,
            "counts": dict(self.counts),
            "requires_manual_merge": list(self.requires_manual_merge),
            "kept_delete_candidates": list(self.kept_delete_candidates),
            "backups": list(self.backups),
            "failures": [{"logical_path": f.logical_path, "reason": f.reason} for f in self.failures],
            "state_recovered": self.state_recovered,
            "actions": [item.to_dict() for item in self.actions],
        }


def build_report(
    root: str,
    plan: Sequence[PlannedAction],
    result: Optional[ExecutionResult] = None,
    state_recovered: bool = False,
) -> InstallationReport:
    counts = {action.value: 0 for action in SyncAction}
    manual: List[str] = []
    kept: List[str] = []
    for item in plan:
        counts[item.action.value] += 1
        if item.action == SyncAction.SKIP_CUSTOMIZED:
            manual.append(item.logical_path)
            if item.removed_upstream:
                kept.append(item.logical_path)
    backups: List[str] = []
    failures: List[FailureLine] = []
    if result is not None:
        for outcome in result.outcomes:
            if outcome.backup_key:
                backups.append(outcome.backup_key)
            if outcome.error is not None:
                failures.append(FailureLine(outcome.planned.logical_path, outcome.error.message))
    return InstallationReport(
        root=root,
        dry_run=result is None,
        counts=counts,
        requires_manual_merge=manual,
        kept_delete_candidates=kept,
        backups=backups,
        failures=failures,
        actions=list(plan),
        state_recovered=state_recovered,
    )


def render_report(report: InstallationReport, verbose: bool = False) -> str:
    title = "Agent OS status (dry run)" if report.dry_run else "Agent OS sync"
    lines = [f"{title}: {report.root}", ""]
    for action in SyncAction:
        lines.append(f"- {action.value}: {report.count(action)}")
    if report.state_recovered:
        lines.extend(["", "Install state was unreadable; existing files were left untouched."])
    if verbose and report.actions:
        lines.extend(["", "Actions:"])
        for item in report.actions:
            lines.append(f"- {item.action.value:<19} {item.logical_path} ({item.reason})")
    if report.requires_manual_merge:
        lines.extend(["", "Requires manual merge:"])
        lines.extend(f"- {path}" for path in report.requires_manual_merge)
    if report.kept_delete_candidates:
        lines.extend(["", "Removed upstream but kept (customized):"])
        lines.extend(f"- {path}" for path in report.kept_delete_candidates)
    if report.backups:
        lines.extend(["", "Backups written:"])
        lines.extend(f"- {path}" for path in report.backups)
    if report.failures:
        lines.extend(["", "Failures:"])
        lines.extend(f"- {failure.logical_path}: {failure.reason}" for failure in report.failures)
    return "\n".join(lines)


def report_rows(report: InstallationReport) -> List[dict]:
    """Flatten actions for tabular display, one row per logical path."""
    failed = {failure.logical_path: failure.reason for failure in report.failures}
    rows: List[dict] = []
    for item in report.actions:
        rows.append(
            {
                "path": item.logical_path,
                "action": item.action.value,
                "layer": item.entry.source_layer.name.value if item.entry else "",
                "reason": item.reason,
                "failed": item.logical_path in failed,
                "error": failed.get(item.logical_path, ""),
            }
        )
    return rows
