from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from layersync.file_store import FileStore
from layersync.install_state import InstallationState, StateRecord
from layersync.layers import FileEntry, content_hash
from layersync.resolver import ResolvedSet


class SyncAction(str, Enum):
    CREATE = "Create"
    OVERWRITE = "Overwrite"
    SKIP_UNMODIFIED = "SkipUnmodified"
    SKIP_CUSTOMIZED = "SkipCustomized"
    BACKUP_AND_OVERWRITE = "BackupAndOverwrite"
    DELETE = "Delete"


WRITING_ACTIONS = {SyncAction.CREATE, SyncAction.OVERWRITE, SyncAction.BACKUP_AND_OVERWRITE}


@dataclass
class PlannedAction:
    logical_path: str
    action: SyncAction
    entry: Optional[FileEntry] = None
    recorded_hash: Optional[str] = None
    live_hash: Optional[str] = None
    removed_upstream: bool = False
    adopt: bool = False
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "logical_path": self.logical_path,
            "action": self.action.value,
            "layer": self.entry.source_layer.name.value if self.entry else None,
            "source_hash": self.entry.content_hash if self.entry else None,
            "recorded_hash": self.recorded_hash,
            "live_hash": self.live_hash,
            "removed_upstream": self.removed_upstream,
            "reason": self.reason,
        }


def live_hash(store: FileStore, logical_path: str) -> Optional[str]:
    """Digest of the file currently on disk, or None when absent."""
    if not store.exists(logical_path):
        return None
    return content_hash(store.read_bytes(logical_path))


def _effective_recorded(record: Optional[StateRecord], live: Optional[str]) -> Optional[str]:
    if record is None:
        return None
    # a write that finished before its state commit leaves the live file at pending_hash
    if record.pending_hash and live == record.pending_hash:
        return record.pending_hash
    return record.hash


def classify_entry(
    entry: FileEntry,
    record: Optional[StateRecord],
    live: Optional[str],
    trusted: bool = True,
    force: bool = False,
) -> PlannedAction:
    """
    Decide what to do with one resolved entry.

    Checks run in a fixed order: missing live file, then customization, then
    staleness. A live file that differs from what was last installed is never
    overwritten unless force is set, and then only after a backup.
    """
    path = entry.logical_path
    recorded = _effective_recorded(record, live)

    def planned(action: SyncAction, reason: str, adopt: bool = False) -> PlannedAction:
        return PlannedAction(path, action, entry=entry, recorded_hash=recorded, live_hash=live, adopt=adopt, reason=reason)

    customized = SyncAction.BACKUP_AND_OVERWRITE if force else SyncAction.SKIP_CUSTOMIZED

    if live is None:
        if record is None:
            return planned(SyncAction.CREATE, "new file")
        return planned(SyncAction.CREATE, "installed file was deleted")

    if record is None:
        if trusted and live == entry.content_hash:
            return planned(SyncAction.SKIP_UNMODIFIED, "existing file matches source", adopt=True)
        if not trusted:
            return planned(customized, "install state unreadable; existing file kept")
        return planned(customized, "existing file was not installed by agent-os")

    if live != recorded:
        return planned(customized, "local edits since last install")

    if entry.content_hash == recorded:
        needs_commit = record.pending_hash is not None or record.layer != entry.source_layer.name.value
        return planned(SyncAction.SKIP_UNMODIFIED, "up to date", adopt=needs_commit)

    return planned(SyncAction.OVERWRITE, "upstream changed")


def classify_removed(logical_path: str, record: StateRecord, live: Optional[str]) -> PlannedAction:
    """A path installed before that no current layer provides any more."""
    recorded = _effective_recorded(record, live)
    if live is None:
        # nothing left to delete; the executor only drops the state entry
        return PlannedAction(
            logical_path,
            SyncAction.SKIP_UNMODIFIED,
            recorded_hash=recorded,
            removed_upstream=True,
            reason="removed upstream; already deleted locally",
        )
    if live != recorded:
        return PlannedAction(
            logical_path,
            SyncAction.SKIP_CUSTOMIZED,
            recorded_hash=recorded,
            live_hash=live,
            removed_upstream=True,
            reason="removed upstream but edited locally",
        )
    return PlannedAction(
        logical_path,
        SyncAction.DELETE,
        recorded_hash=recorded,
        live_hash=live,
        removed_upstream=True,
        reason="removed upstream",
    )


def plan_sync(resolved: ResolvedSet, state: InstallationState, store: FileStore, force: bool = False) -> List[PlannedAction]:
    """Classify every resolved and every removed path, ordered by logical path."""
    plan: Dict[str, PlannedAction] = {}
    for entry in resolved.entries:
        record = state.record(entry.logical_path) if state.trusted else None
        try:
            live = live_hash(store, entry.logical_path)
        except OSError as exc:
            plan[entry.logical_path] = _unreadable(entry.logical_path, exc, entry=entry)
            continue
        plan[entry.logical_path] = classify_entry(entry, record, live, trusted=state.trusted, force=force)
    if state.trusted:
        for path in resolved.removed_upstream:
            record = state.record(path)
            if record is None or path in plan:
                continue
            try:
                live = live_hash(store, path)
            except (OSError, ValueError) as exc:
                plan[path] = _unreadable(path, exc, removed_upstream=True)
                continue
            plan[path] = classify_removed(path, record, live)
    return [plan[path] for path in sorted(plan)]


def _unreadable(logical_path: str, exc: Exception, entry: Optional[FileEntry] = None, removed_upstream: bool = False) -> PlannedAction:
    return PlannedAction(
        logical_path,
        SyncAction.SKIP_CUSTOMIZED,
        entry=entry,
        removed_upstream=removed_upstream,
        reason=f"existing file unreadable: {exc}",
    )


def plan_uninstall(state: InstallationState, store: FileStore) -> List[PlannedAction]:
    """Treat every recorded path as removed upstream."""
    plan: List[PlannedAction] = []
    for path in state.installed_paths():
        try:
            live = live_hash(store, path)
        except (OSError, ValueError) as exc:
            plan.append(_unreadable(path, exc, removed_upstream=True))
            continue
        plan.append(classify_removed(path, state.files[path], live))
    return plan
