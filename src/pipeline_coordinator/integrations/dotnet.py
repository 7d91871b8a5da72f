"""Build tool integration: solution, project and package queries over the dotnet CLI."""

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, List, Optional, Union

from .process import CommandSpec, ProcessResult, Runner

logger = logging.getLogger(__name__)

PROJECT_FILE_PATTERN = re.compile(r"\.(cs|fs|vb)proj$", re.IGNORECASE)

PathLike = Union[str, os.PathLike]


def normalize_path(path: PathLike) -> str:
    """Key used to compare project paths regardless of spelling."""
    return os.path.normcase(os.path.abspath(os.fspath(path)))


def _resolve_listed_path(base_directory: Path, listed: str) -> Path:
    # dotnet prints Windows separators regardless of the host platform
    relative = listed.strip().replace("\\", "/")
    return Path(os.path.normpath(base_directory / relative))


def parse_project_lines(output: str, base_directory: Path) -> List[Path]:
    """Extract project paths from line-oriented dotnet output.

    Headers, separator rules, blank lines and messages are discarded; only
    lines naming a project file survive.
    """
    projects: List[Path] = []
    for line in output.splitlines():
        candidate = line.strip()
        if not candidate or not PROJECT_FILE_PATTERN.search(candidate):
            continue
        projects.append(_resolve_listed_path(base_directory, candidate))
    return projects


def parse_package_json(output: str) -> List[str]:
    """Extract top-level package ids from ``dotnet list package --format json``.

    Returns an empty list for absent or malformed payloads.
    """
    start = output.find("{")
    if start < 0:
        return []
    try:
        payload = json.loads(output[start:])
    except ValueError:
        return []

    packages: List[str] = []
    for project in _dicts(payload, "projects"):
        for framework in _dicts(project, "frameworks"):
            for package in _dicts(framework, "topLevelPackages"):
                package_id = package.get("id")
                if isinstance(package_id, str) and package_id not in packages:
                    packages.append(package_id)
    return packages


def _dicts(container: Any, key: str) -> List[dict]:
    if not isinstance(container, dict):
        return []
    items = container.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class DotNetAdapter:
    """Adapter for dotnet solution and project operations.

    Every command runs with exit-code validation disabled: queries turn
    failures into empty results, mutations return ``False`` and log.
    """

    def __init__(
        self,
        runner: Runner,
        dotnet_path: str = "dotnet",
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize dotnet adapter.

        Args:
            runner: ProcessRunner instance (or a fake)
            dotnet_path: Executable to invoke
            cancel_event: Optional cancellation signal passed to every command
        """
        self.runner = runner
        self.dotnet_path = dotnet_path
        self.cancel_event = cancel_event
        self._command = CommandSpec(dotnet_path).with_validation(False)

    def _run(self, working_directory: PathLike, *arguments: PathLike) -> ProcessResult:
        spec = self._command.with_working_directory(working_directory).with_arguments(
            *arguments
        )
        return self.runner.run(spec, self.cancel_event)

    # Queries

    def list_solution_members(self, solution: PathLike) -> List[Path]:
        """List the projects of a solution as absolute paths, in solution order."""
        solution = Path(solution)
        result = self._run(solution.parent, "sln", solution.name, "list")
        if not result.ok:
            logger.warning(f"Could not list projects of {solution}: {result.details}")
            return []
        return parse_project_lines(result.stdout, solution.parent)

    def list_project_references(self, project: PathLike) -> List[Path]:
        """List the projects a project references directly."""
        project = Path(project)
        result = self._run(project.parent, "list", project.name, "reference")
        if not result.ok:
            logger.warning(f"Could not list references of {project}: {result.details}")
            return []
        return parse_project_lines(result.stdout, project.parent)

    def list_resolved_packages(self, project: PathLike) -> List[str]:
        """List the top-level package ids the build tool resolves for a project."""
        project = Path(project)
        result = self._run(
            project.parent, "list", project.name, "package", "--format", "json"
        )
        if not result.ok:
            logger.debug(f"Package query failed for {project}: {result.details}")
            return []
        return parse_package_json(result.stdout)

    def contains_project(self, solution: PathLike, project: PathLike) -> bool:
        key = normalize_path(project)
        return any(
            normalize_path(member) == key
            for member in self.list_solution_members(solution)
        )

    # Mutations

    def add_project_to_solution(self, solution: PathLike, project: PathLike) -> bool:
        """Add a project to a solution; a project already present is left alone."""
        solution = Path(solution)
        if self.contains_project(solution, project):
            logger.debug(f"{project} already in {solution.name}")
            return True
        result = self._run(solution.parent, "sln", solution.name, "add", project)
        if not result.ok:
            logger.warning(f"Failed to add {project} to {solution.name}: {result.details}")
        return result.ok

    def remove_project_from_solution(self, solution: PathLike, project: PathLike) -> bool:
        """Remove a project from a solution; an absent project is a no-op."""
        solution = Path(solution)
        if not self.contains_project(solution, project):
            logger.debug(f"{project} not in {solution.name}, nothing to remove")
            return True
        result = self._run(solution.parent, "sln", solution.name, "remove", project)
        if not result.ok:
            logger.warning(
                f"Failed to remove {project} from {solution.name}: {result.details}"
            )
        return result.ok

    def create_solution(self, directory: PathLike, name: str) -> bool:
        result = self._run(directory, "new", "sln", "-n", name)
        if not result.ok:
            logger.warning(f"Failed to create solution {name} in {directory}: {result.details}")
        return result.ok

    def restore(self, target: Optional[PathLike] = None) -> bool:
        """Restore packages for a solution/project, or the working directory."""
        if target is None:
            result = self._run(os.getcwd(), "restore")
        else:
            target = Path(target)
            result = self._run(target.parent, "restore", target.name)
        if not result.ok:
            logger.warning(f"Restore failed for {target or os.getcwd()}: {result.details}")
        return result.ok


def create_dotnet_adapter(
    runner: Runner,
    dotnet_path: str = "dotnet",
    cancel_event: Optional[threading.Event] = None,
) -> DotNetAdapter:
    """Create a dotnet adapter instance."""
    return DotNetAdapter(runner, dotnet_path, cancel_event)
