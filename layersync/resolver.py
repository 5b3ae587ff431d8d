from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from layersync.integrations import expand_tool_entries
from layersync.layers import FileEntry, LayerDescriptor


@dataclass
class ResolvedSet:
    entries: List[FileEntry]
    shadowed: Dict[str, List[FileEntry]] = field(default_factory=dict)
    removed_upstream: List[str] = field(default_factory=list)

    def by_path(self) -> Dict[str, FileEntry]:
        return {entry.logical_path: entry for entry in self.entries}


def resolve_layers(
    layered: Sequence[Tuple[LayerDescriptor, Sequence[FileEntry]]],
    previous_paths: Iterable[str] = (),
    tools: Sequence[str] = (),
    install_root: str = "",
    prefix: str = "",
) -> ResolvedSet:
    """
    Merge layer candidates into one entry per logical path.

    Layers are applied in ascending precedence; on equal precedence the one
    listed later wins. Entries losing to a higher layer are kept in
    ``shadowed``. Paths recorded by a previous install that no current layer
    provides are listed in ``removed_upstream``.
    """
    ordered = sorted(enumerate(layered), key=lambda item: (item[1][0].precedence, item[0]))
    winners: Dict[str, FileEntry] = {}
    shadowed: Dict[str, List[FileEntry]] = {}
    for _, (_layer, candidates) in ordered:
        for entry in candidates:
            current = winners.get(entry.logical_path)
            if current is not None:
                shadowed.setdefault(entry.logical_path, []).append(current)
            winners[entry.logical_path] = entry

    entries = sorted(winners.values(), key=lambda entry: entry.logical_path)
    if tools:
        for derived in expand_tool_entries(entries, tools, install_root, prefix):
            winners[derived.logical_path] = derived
        entries = sorted(winners.values(), key=lambda entry: entry.logical_path)

    removed = sorted(set(previous_paths) - set(winners))
    return ResolvedSet(entries=entries, shadowed=shadowed, removed_upstream=removed)
