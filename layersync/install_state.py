import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from layersync.errors import StateCorruptionError
from layersync.file_store import FileStore, backup_stamp
from layersync.layers import LayerDescriptor
from layersync.schema_validate import INSTALL_STATE_SCHEMA, validate_document

STATE_KEY = ".install-state"
STATE_SCHEMA_VERSION = "1.0"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StateRecord:
    layer: str
    hash: str
    synced_at: str
    pending_hash: Optional[str] = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        if payload["pending_hash"] is None:
            payload.pop("pending_hash")
        return payload


@dataclass
class Selection:
    scope: str
    layers: List[LayerDescriptor]
    tools: List[str] = field(default_factory=list)
    prefix: str = ""

    def to_dict(self) -> dict:
        return {
            "scope": self.scope,
            "layers": [layer.to_dict() for layer in self.layers],
            "tools": list(self.tools),
            "prefix": self.prefix,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Selection":
        return cls(
            scope=payload["scope"],
            layers=[LayerDescriptor.from_dict(item) for item in payload.get("layers", [])],
            tools=list(payload.get("tools", [])),
            prefix=payload.get("prefix", ""),
        )


@dataclass
class InstallationState:
    """
    What a previous run wrote under an install root, keyed by logical path.

    ``trusted`` is False when the state file existed but could not be parsed;
    the merge engine then refuses to treat any existing file as unmodified.
    """

    files: Dict[str, StateRecord] = field(default_factory=dict)
    selection: Optional[Selection] = None
    created_at: str = field(default_factory=_utc_now_iso)
    updated_at: str = field(default_factory=_utc_now_iso)
    trusted: bool = True

    def record(self, logical_path: str) -> Optional[StateRecord]:
        return self.files.get(logical_path)

    def installed_paths(self) -> List[str]:
        return sorted(self.files)

    def mark_pending(self, logical_path: str, layer: str, digest: str) -> None:
        existing = self.files.get(logical_path)
        if existing is None:
            # hash stays at the pending value until the write is committed
            self.files[logical_path] = StateRecord(layer=layer, hash=digest, synced_at=_utc_now_iso(), pending_hash=digest)
        else:
            existing.pending_hash = digest

    def discard_pending(self, logical_path: str) -> None:
        existing = self.files.get(logical_path)
        if existing is None or existing.pending_hash is None:
            return
        if existing.hash == existing.pending_hash:
            self.files.pop(logical_path)
        else:
            existing.pending_hash = None

    def commit(self, logical_path: str, layer: str, digest: str) -> None:
        self.files[logical_path] = StateRecord(layer=layer, hash=digest, synced_at=_utc_now_iso())

    def forget(self, logical_path: str) -> None:
        self.files.pop(logical_path, None)

    def to_dict(self) -> dict:
        payload = {
            "schema_version": STATE_SCHEMA_VERSION,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "files": {path: self.files[path].to_dict() for path in sorted(self.files)},
        }
        if self.selection is not None:
            payload["selection"] = self.selection.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "InstallationState":
        files = {
            path: StateRecord(
                layer=item["layer"],
                hash=item["hash"],
                synced_at=item["synced_at"],
                pending_hash=item.get("pending_hash"),
            )
            for path, item in payload.get("files", {}).items()
        }
        selection = Selection.from_dict(payload["selection"]) if payload.get("selection") else None
        return cls(
            files=files,
            selection=selection,
            created_at=payload["created_at"],
            updated_at=payload["updated_at"],
        )


def state_exists(store: FileStore) -> bool:
    return store.exists(STATE_KEY)


def load_state(store: FileStore) -> InstallationState:
    """
    Read the state file, returning an empty trusted state when none exists.

    Raises StateCorruptionError when the file exists but is not a valid state document.
    """
    if not store.exists(STATE_KEY):
        return InstallationState()
    try:
        payload = json.loads(store.read_text(STATE_KEY))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise StateCorruptionError(store.path_for_key(STATE_KEY), str(exc)) from exc
    errors = validate_document(INSTALL_STATE_SCHEMA, payload)
    if errors:
        raise StateCorruptionError(store.path_for_key(STATE_KEY), "; ".join(errors))
    return InstallationState.from_dict(payload)


def untrusted_state() -> InstallationState:
    return InstallationState(trusted=False)


def save_state(store: FileStore, state: InstallationState) -> None:
    state.updated_at = _utc_now_iso()
    state.trusted = True
    store.write_text(STATE_KEY, json.dumps(state.to_dict(), indent=2, ensure_ascii=True) + "\n")


def quarantine_state(store: FileStore) -> Optional[str]:
    """Copy an unreadable state file aside so the next save does not destroy it."""
    if not store.exists(STATE_KEY):
        return None
    target = f"{STATE_KEY}.corrupt.{backup_stamp()}"
    store.write_bytes(target, store.read_bytes(STATE_KEY))
    return target


def remove_state(store: FileStore) -> bool:
    return store.delete(STATE_KEY)
