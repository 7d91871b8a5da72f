"""Exception types raised by Pipeline Coordinator."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .integrations.process import ProcessResult


class CoordinatorError(Exception):
    """Base class for all coordinator errors."""


class ConfigurationError(CoordinatorError):
    """Raised when the workspace configuration is missing or invalid."""


class FeatureNotFoundError(CoordinatorError):
    """Raised when a feature directory or feature number cannot be located."""


class ProcessFailedError(CoordinatorError):
    """Raised when a validated command exits with a non-zero code."""

    def __init__(self, command: str, result: "ProcessResult"):
        super().__init__(
            f"Command failed with exit code {result.code}: {command}\n{result.stderr}"
        )
        self.command = command
        self.result = result


class ProcessCancelledError(CoordinatorError):
    """Raised when a running command is cancelled through its cancel event."""


class BuildStatusError(CoordinatorError):
    """Raised when the remote build-status API cannot be queried."""
