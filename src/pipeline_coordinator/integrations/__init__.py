"""Integrations with the external tools the coordinator drives."""

from .dotnet import DotNetAdapter, create_dotnet_adapter
from .process import CommandSpec, FakeProcessRunner, ProcessResult, ProcessRunner
from .registry import ToolConfig, ToolRegistry
from .vcs import GitAdapter, create_git_adapter

__all__ = [
    "CommandSpec",
    "DotNetAdapter",
    "FakeProcessRunner",
    "GitAdapter",
    "ProcessResult",
    "ProcessRunner",
    "ToolConfig",
    "ToolRegistry",
    "create_dotnet_adapter",
    "create_git_adapter",
]
