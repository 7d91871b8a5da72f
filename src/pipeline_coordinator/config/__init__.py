"""Configuration management for Pipeline Coordinator."""

from .workspace import (
    DEFAULT_CONFIG_FILE,
    BuildStatusConfig,
    CoordinatorConfig,
    RepositoryConfig,
    ToolPaths,
    load_config,
)

__all__ = [
    "BuildStatusConfig",
    "CoordinatorConfig",
    "DEFAULT_CONFIG_FILE",
    "RepositoryConfig",
    "ToolPaths",
    "load_config",
]
