import fnmatch
import hashlib
import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from layersync.errors import ManifestReadError
from layersync.file_store import is_backup_name
from layersync.schema_validate import LAYER_MANIFEST_SCHEMA, validate_document

DEFAULT_DIRECTORIES = ("standards", "instructions", "commands")
LAYER_MANIFEST_NAME = "layer.json"


class LayerName(str, Enum):
    BASE = "base"
    TEAM = "team"
    PROJECT = "project"


LAYER_PRECEDENCE = {
    LayerName.BASE: 0,
    LayerName.TEAM: 10,
    LayerName.PROJECT: 20,
}


@dataclass(frozen=True)
class LayerDescriptor:
    name: LayerName
    root_path: str
    precedence: int
    mandatory: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "root": self.root_path,
            "precedence": self.precedence,
            "mandatory": self.mandatory,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "LayerDescriptor":
        """Rebuild from a stored selection; precedence and mandatory always come from the layer name."""
        return make_layer(LayerName(payload["name"]), payload["root"])


def make_layer(name: LayerName, root_path: str) -> LayerDescriptor:
    """Build a descriptor with the fixed precedence for name; only base is mandatory."""
    return LayerDescriptor(
        name=name,
        root_path=os.path.abspath(os.path.expanduser(os.fspath(root_path))),
        precedence=LAYER_PRECEDENCE[name],
        mandatory=name == LayerName.BASE,
    )


@dataclass(frozen=True)
class FileEntry:
    logical_path: str
    source_layer: LayerDescriptor
    content_hash: str
    destination_path: str
    content: bytes = field(repr=False)


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def destination_for(install_root: str, logical_path: str) -> str:
    return os.path.join(os.path.abspath(install_root), *logical_path.split("/"))


def join_logical(prefix: str, rel_path: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/{rel_path}" if prefix else rel_path


@dataclass
class LayerManifest:
    directories: List[str]
    exclude: List[str]


def load_layer_manifest(layer: LayerDescriptor) -> LayerManifest:
    path = os.path.join(layer.root_path, LAYER_MANIFEST_NAME)
    if not os.path.isfile(path):
        return LayerManifest(directories=list(DEFAULT_DIRECTORIES), exclude=[])
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ManifestReadError(layer.name.value, layer.root_path, f"{LAYER_MANIFEST_NAME}: {exc}") from exc
    errors = validate_document(LAYER_MANIFEST_SCHEMA, payload)
    if errors:
        raise ManifestReadError(layer.name.value, layer.root_path, f"{LAYER_MANIFEST_NAME}: {'; '.join(errors)}")
    directories = payload.get("directories", list(DEFAULT_DIRECTORIES))
    for directory in directories:
        if ".." in directory.split("/"):
            raise ManifestReadError(layer.name.value, layer.root_path, f"directory escapes layer root: {directory}")
    return LayerManifest(directories=directories, exclude=payload.get("exclude", []))


def _skip_name(name: str) -> bool:
    return name.startswith(".") or is_backup_name(name)


def _excluded(rel_path: str, patterns: Sequence[str]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern) for pattern in patterns)


def read_layer(layer: LayerDescriptor, install_root: str, prefix: str = "") -> List[FileEntry]:
    """
    Collect the files a layer ships, ordered by logical path.

    A missing root is fatal for a mandatory layer and an empty layer otherwise.
    """
    if not os.path.isdir(layer.root_path):
        if layer.mandatory:
            raise ManifestReadError(layer.name.value, layer.root_path, "directory does not exist")
        return []

    manifest = load_layer_manifest(layer)
    entries: List[FileEntry] = []
    seen = set()
    for directory in manifest.directories:
        top = os.path.join(layer.root_path, *directory.strip("/").split("/"))
        if not os.path.isdir(top):
            continue
        for dirpath, dirnames, filenames in os.walk(top):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in filenames:
                if _skip_name(filename):
                    continue
                absolute = os.path.join(dirpath, filename)
                rel = os.path.relpath(absolute, layer.root_path).replace(os.sep, "/")
                if rel in seen or _excluded(rel, manifest.exclude):
                    continue
                seen.add(rel)
                try:
                    with open(absolute, "rb") as handle:
                        data = handle.read()
                except OSError as exc:
                    raise ManifestReadError(layer.name.value, layer.root_path, f"{rel}: {exc}") from exc
                logical = join_logical(prefix, rel)
                entries.append(
                    FileEntry(
                        logical_path=logical,
                        source_layer=layer,
                        content_hash=content_hash(data),
                        destination_path=destination_for(install_root, logical),
                        content=data,
                    )
                )
    entries.sort(key=lambda entry: entry.logical_path)
    return entries
