from typing import Optional


class LayerSyncError(Exception):
    """Base error carrying the logical path or layer it concerns."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(message)


class ManifestReadError(LayerSyncError):
    def __init__(self, layer: str, root_path: str, reason: str):
        self.layer = layer
        self.root_path = root_path
        super().__init__(f"Layer '{layer}' cannot be read at {root_path}: {reason}", path=root_path)


class FilesystemWriteError(LayerSyncError):
    def __init__(self, logical_path: str, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed for {logical_path}: {reason}", path=logical_path)


class StateCorruptionError(LayerSyncError):
    def __init__(self, state_path: str, reason: str):
        self.reason = reason
        super().__init__(f"Install state at {state_path} is unreadable: {reason}", path=state_path)


class SelectionRecoveryError(LayerSyncError):
    def __init__(self, state_path: str, reason: str):
        self.reason = reason
        super().__init__(
            f"Install state at {state_path} is unreadable ({reason}) and the layer selection cannot be recovered. "
            "Re-run 'agent-os install base' or 'agent-os install project' for this root",
            path=state_path,
        )
