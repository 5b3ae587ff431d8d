from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from layersync.errors import FilesystemWriteError
from layersync.file_store import FileStore, backup_stamp
from layersync.install_state import InstallationState, save_state
from layersync.merge_engine import PlannedAction, SyncAction, WRITING_ACTIONS


@dataclass
class ActionOutcome:
    planned: PlannedAction
    error: Optional[FilesystemWriteError] = None
    backup_key: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExecutionResult:
    outcomes: List[ActionOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[ActionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


def _write_entry(store: FileStore, state: InstallationState, item: PlannedAction) -> None:
    entry = item.entry
    layer = entry.source_layer.name.value
    state.mark_pending(item.logical_path, layer, entry.content_hash)
    save_state(store, state)
    try:
        store.write_bytes(item.logical_path, entry.content)
    except (OSError, ValueError):
        state.discard_pending(item.logical_path)
        save_state(store, state)
        raise
    state.commit(item.logical_path, layer, entry.content_hash)
    save_state(store, state)


def apply_action(store: FileStore, state: InstallationState, item: PlannedAction, stamp: Optional[str] = None) -> ActionOutcome:
    """
    Carry out one planned action.

    The state file is saved as the final step, so an interrupted action is
    classified the same way on the next run. Filesystem errors are returned
    on the outcome instead of raised.
    """
    outcome = ActionOutcome(planned=item)
    operation = item.action.value
    try:
        if item.action == SyncAction.BACKUP_AND_OVERWRITE:
            if store.exists(item.logical_path):
                operation = "Backup"
                outcome.backup_key = store.backup(item.logical_path, stamp=stamp)
                operation = item.action.value
            _write_entry(store, state, item)
        elif item.action in WRITING_ACTIONS:
            _write_entry(store, state, item)
        elif item.action == SyncAction.DELETE:
            store.delete(item.logical_path)
            state.forget(item.logical_path)
            save_state(store, state)
        elif item.action == SyncAction.SKIP_UNMODIFIED and item.removed_upstream:
            state.forget(item.logical_path)
            save_state(store, state)
        elif item.action == SyncAction.SKIP_UNMODIFIED and item.adopt and item.entry is not None:
            state.commit(item.logical_path, item.entry.source_layer.name.value, item.entry.content_hash)
            save_state(store, state)
    except (OSError, ValueError) as exc:
        outcome.error = FilesystemWriteError(item.logical_path, operation, str(exc))
    return outcome


def apply_plan(store: FileStore, state: InstallationState, plan: Sequence[PlannedAction]) -> ExecutionResult:
    """Apply every action in order; one failing path never stops the others."""
    result = ExecutionResult()
    stamp = backup_stamp()
    for item in plan:
        result.outcomes.append(apply_action(store, state, item, stamp=stamp))
    return result
