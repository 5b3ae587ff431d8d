import os
from typing import List, Optional

from layersync.integrations import parse_tools

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
BUNDLED_BASE_DIR = os.path.join(PACKAGE_DIR, "base")
PROJECT_PREFIX = ".agent-os"
PROJECT_LOCAL_DIR = ".agent-os-local"


def agent_os_home() -> str:
    """User-level root: destination of `install base` and base layer of project installs."""
    return os.path.abspath(os.path.expanduser(os.environ.get("AGENT_OS_HOME") or os.path.join("~", ".agent-os")))


def base_source() -> str:
    return os.path.abspath(os.path.expanduser(os.environ.get("AGENT_OS_BASE_SOURCE") or BUNDLED_BASE_DIR))


def team_source() -> Optional[str]:
    value = os.environ.get("AGENT_OS_TEAM_SOURCE")
    return os.path.abspath(os.path.expanduser(value)) if value else None


def default_tools() -> List[str]:
    return parse_tools(os.environ.get("AGENT_OS_TOOLS"))


def project_local_source(project_root: str) -> str:
    return os.path.join(os.path.abspath(project_root), PROJECT_LOCAL_DIR)
