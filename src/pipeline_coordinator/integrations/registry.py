"""Configuration registry for the external tools the coordinator drives."""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOOLS = ("git", "dotnet")


@dataclass
class ToolConfig:
    """Configuration for a single tool."""

    name: str
    path: str
    available: bool = False
    version: Optional[str] = None

    def __post_init__(self):
        if not self.path:
            self.path = self.name
        self.available = os.path.exists(self.path) or shutil.which(self.path) is not None


class ToolRegistry:
    """Resolved executables for git and dotnet."""

    def __init__(self, paths: Optional[Mapping[str, str]] = None):
        """Initialize registry from tool paths.

        Args:
            paths: Mapping of tool name to executable; missing tools fall back
                to their bare name looked up on PATH
        """
        paths = dict(paths or {})
        unknown = sorted(set(paths) - set(DEFAULT_TOOLS))
        if unknown:
            logger.warning(f"Ignoring unknown tool paths: {', '.join(unknown)}")
        self.tools: Dict[str, ToolConfig] = {
            name: ToolConfig(name, paths.get(name, "")) for name in DEFAULT_TOOLS
        }

    @property
    def git(self) -> str:
        return self.tools["git"].path

    @property
    def dotnet(self) -> str:
        return self.tools["dotnet"].path

    def get_tool_path(self, tool_name: str) -> Optional[str]:
        """Get path for a specific tool if it is available.

        Args:
            tool_name: Name of the tool

        Returns:
            Tool path if found and available, None otherwise
        """
        tool_config = self.tools.get(tool_name)
        if tool_config and tool_config.available:
            return tool_config.path
        return None

    def validate_tool_availability(self) -> Dict[str, bool]:
        """Validate availability of all configured tools.

        Returns:
            Dictionary mapping tool -> availability status
        """
        return {name: tool.available for name, tool in self.tools.items()}
