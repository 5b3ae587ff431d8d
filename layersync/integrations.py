from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from layersync.layers import FileEntry, content_hash, destination_for

COMMANDS_DIR = "commands"


def _cursor_rule(body: bytes, name: str) -> bytes:
    header = f"---\ndescription: Agent OS {name} command\nglobs:\nalwaysApply: false\n---\n\n"
    return header.encode("utf-8") + body


@dataclass(frozen=True)
class ToolIntegration:
    name: str
    directory: str
    suffix: str
    render: Optional[Callable[[bytes, str], bytes]] = None


TOOL_INTEGRATIONS: Dict[str, ToolIntegration] = {
    "claude-code": ToolIntegration("claude-code", ".claude/commands", ".md"),
    "cursor": ToolIntegration("cursor", ".cursor/rules", ".mdc", render=_cursor_rule),
    "copilot": ToolIntegration("copilot", ".github/prompts", ".prompt.md"),
}


def known_tools() -> List[str]:
    return sorted(TOOL_INTEGRATIONS)


def parse_tools(raw: Optional[str]) -> List[str]:
    """Split a comma-separated tool list, rejecting unknown names."""
    if not raw:
        return []
    tools = [part.strip() for part in raw.split(",") if part.strip()]
    unknown = [tool for tool in tools if tool not in TOOL_INTEGRATIONS]
    if unknown:
        raise ValueError(f"Unknown tool(s): {', '.join(unknown)}. Choose from {', '.join(known_tools())}.")
    return tools


def _command_name(entry: FileEntry, prefix: str) -> Optional[str]:
    commands_root = f"{prefix.strip('/')}/{COMMANDS_DIR}/" if prefix.strip("/") else f"{COMMANDS_DIR}/"
    if not entry.logical_path.startswith(commands_root):
        return None
    rest = entry.logical_path[len(commands_root) :]
    if "/" in rest or not rest.endswith(".md"):
        return None
    return rest[: -len(".md")]


def expand_tool_entries(entries: Sequence[FileEntry], tools: Sequence[str], install_root: str, prefix: str = "") -> List[FileEntry]:
    """
    Derive per-tool copies of every top-level command file.

    Each copy keeps the layer of the command it was derived from.
    """
    derived: List[FileEntry] = []
    for tool in sorted(set(tools)):
        integration = TOOL_INTEGRATIONS[tool]
        for entry in entries:
            name = _command_name(entry, prefix)
            if name is None:
                continue
            data = integration.render(entry.content, name) if integration.render else entry.content
            logical = f"{integration.directory}/{name}{integration.suffix}"
            derived.append(
                FileEntry(
                    logical_path=logical,
                    source_layer=entry.source_layer,
                    content_hash=content_hash(data),
                    destination_path=destination_for(install_root, logical),
                    content=data,
                )
            )
    return derived
