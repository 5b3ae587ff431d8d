import os
from typing import List, Optional, Sequence, Tuple

from layersync import settings
from layersync.errors import SelectionRecoveryError, StateCorruptionError
from layersync.executor import ExecutionResult, apply_plan
from layersync.file_store import FileStore, build_file_store
from layersync.install_state import (
    STATE_KEY,
    InstallationState,
    Selection,
    load_state,
    quarantine_state,
    remove_state,
    save_state,
    state_exists,
    untrusted_state,
)
from layersync.layers import LayerName, make_layer, read_layer
from layersync.merge_engine import PlannedAction, plan_sync, plan_uninstall
from layersync.report import FailureLine, InstallationReport, build_report
from layersync.resolver import ResolvedSet, resolve_layers
from layersync.sync_log import LOG_KEY, append_event

EXIT_OK = 0
EXIT_LAYER_MISSING = 1
EXIT_WRITE_ERRORS = 2


def base_selection(source: Optional[str] = None, tools: Optional[Sequence[str]] = None) -> Selection:
    return Selection(
        scope="base",
        layers=[make_layer(LayerName.BASE, source or settings.base_source())],
        tools=list(tools or []),
        prefix="",
    )


def project_selection(
    project_root: str,
    home: Optional[str] = None,
    team_source: Optional[str] = None,
    project_source: Optional[str] = None,
    tools: Optional[Sequence[str]] = None,
) -> Selection:
    """Base from the user-level root, then the team layer when one is configured, then project-local overrides."""
    layers = [make_layer(LayerName.BASE, home or settings.agent_os_home())]
    team = team_source or settings.team_source()
    if team:
        layers.append(make_layer(LayerName.TEAM, team))
    layers.append(make_layer(LayerName.PROJECT, project_source or settings.project_local_source(project_root)))
    return Selection(scope="project", layers=layers, tools=list(tools or []), prefix=settings.PROJECT_PREFIX)


def _load_state(store: FileStore) -> Tuple[InstallationState, Optional[StateCorruptionError]]:
    try:
        return load_state(store), None
    except StateCorruptionError as exc:
        return untrusted_state(), exc


def resolve_selection(root: str, selection: Selection, state: InstallationState) -> ResolvedSet:
    layered = [(layer, read_layer(layer, root, selection.prefix)) for layer in selection.layers]
    return resolve_layers(
        layered,
        previous_paths=state.installed_paths() if state.trusted else (),
        tools=selection.tools,
        install_root=root,
        prefix=selection.prefix,
    )


def _log(store: FileStore, failure_lines: List[FailureLine], stage: str, message: str, **kwargs) -> bool:
    """Append one event; a log that cannot be written becomes a failure line instead of aborting the run."""
    try:
        append_event(store, stage, message, **kwargs)
    except OSError as exc:
        failure_lines.append(FailureLine(LOG_KEY, f"Writing install log failed: {exc}"))
        return False
    return True


def _log_outcome(store: FileStore, report: InstallationReport, stage: str) -> None:
    for failure in list(report.failures):
        if failure.logical_path == LOG_KEY:
            return
        if not _log(store, report.failures, "failure", failure.reason, path=failure.logical_path):
            return
    _log(store, report.failures, stage, f"{stage} finished", counts=report.counts, failures=len(report.failures))


def _finish(store: FileStore, state: InstallationState, report: InstallationReport, stage: str) -> InstallationReport:
    try:
        save_state(store, state)
    except OSError as exc:
        report.failures.append(FailureLine(STATE_KEY, f"Saving install state failed: {exc}"))
    _log_outcome(store, report, stage)
    return report


def run_sync(root: str, selection: Selection, force: bool = False, dry_run: bool = False) -> InstallationReport:
    """
    Resolve the selected layers onto root and apply the resulting plan.

    Raises ManifestReadError before touching the filesystem when a mandatory
    layer is missing. With dry_run the plan is reported and nothing is written.
    """
    root = os.path.abspath(root)
    store = build_file_store(root)
    state, corruption = _load_state(store)
    resolved = resolve_selection(root, selection, state)
    plan = plan_sync(resolved, state, store, force=force)
    if dry_run:
        return build_report(root, plan, None, state_recovered=corruption is not None)

    early: List[FailureLine] = []
    logging_ok = _log(store, early, "start", f"{selection.scope} sync started", force=force, layers=[layer.name.value for layer in selection.layers])
    if corruption is not None:
        try:
            quarantined = quarantine_state(store)
        except (OSError, ValueError) as exc:
            # an unreadable state file is never overwritten without a copy
            report = build_report(root, plan, ExecutionResult(), state_recovered=True)
            report.failures = early + [FailureLine(STATE_KEY, f"Quarantining install state failed: {exc}")]
            return report
        if logging_ok:
            _log(store, early, "state_recovered", corruption.message, quarantined=quarantined)
    state.selection = selection
    result = apply_plan(store, state, plan)
    report = build_report(root, plan, result, state_recovered=corruption is not None)
    report.failures[:0] = early
    return _finish(store, state, report, "sync")


def install_base(
    root: Optional[str] = None,
    source: Optional[str] = None,
    tools: Optional[Sequence[str]] = None,
    force: bool = False,
) -> InstallationReport:
    return run_sync(root or settings.agent_os_home(), base_selection(source, tools), force=force)


def install_project(
    project_root: Optional[str] = None,
    force: bool = False,
    tools: Optional[Sequence[str]] = None,
    team_source: Optional[str] = None,
    project_source: Optional[str] = None,
    home: Optional[str] = None,
) -> InstallationReport:
    project_root = os.path.abspath(project_root or os.getcwd())
    selection = project_selection(project_root, home=home, team_source=team_source, project_source=project_source, tools=tools)
    return run_sync(project_root, selection, force=force)


def recorded_selection(root: str) -> Selection:
    """
    Selection stored by the last install at root, or the default for that root.

    Raises SelectionRecoveryError when the state file exists but is unreadable.
    """
    root = os.path.abspath(root)
    store = build_file_store(root)
    state, corruption = _load_state(store)
    if state.selection is not None:
        return state.selection
    if corruption is not None:
        raise SelectionRecoveryError(store.path_for_key(STATE_KEY), corruption.reason)
    if root == settings.agent_os_home():
        return base_selection()
    return project_selection(root)


def sync(root: Optional[str] = None, force: bool = False) -> InstallationReport:
    root = os.path.abspath(root or os.getcwd())
    return run_sync(root, recorded_selection(root), force=force)


def status(root: Optional[str] = None) -> InstallationReport:
    root = os.path.abspath(root or os.getcwd())
    return run_sync(root, recorded_selection(root), dry_run=True)


def reset(root: Optional[str] = None) -> bool:
    store = build_file_store(os.path.abspath(root or os.getcwd()))
    removed = remove_state(store)
    if removed:
        append_event(store, "reset", "Install state removed")
    return removed


def uninstall(root: Optional[str] = None) -> InstallationReport:
    """
    Delete every installed file that is still unmodified.

    Customized files stay and keep their state entries. The state file is
    removed once nothing is left in it. Raises StateCorruptionError when the
    state cannot be read, since nothing can then be proven unmodified.
    """
    root = os.path.abspath(root or os.getcwd())
    store = build_file_store(root)
    if not state_exists(store):
        return build_report(root, [], ExecutionResult())
    state = load_state(store)
    plan: List[PlannedAction] = plan_uninstall(state, store)
    early: List[FailureLine] = []
    _log(store, early, "start", "uninstall started", files=len(plan))
    result = apply_plan(store, state, plan)
    report = build_report(root, plan, result)
    report.failures[:0] = early
    if state.files:
        return _finish(store, state, report, "uninstall")
    try:
        remove_state(store)
    except OSError as exc:
        report.failures.append(FailureLine(STATE_KEY, f"Removing install state failed: {exc}"))
    _log_outcome(store, report, "uninstall")
    return report


def exit_code(report: InstallationReport) -> int:
    return EXIT_WRITE_ERRORS if report.has_failures else EXIT_OK
