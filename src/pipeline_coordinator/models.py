"""
Core data model for feature workspaces.

Workspace and Repository are immutable inputs built once from configuration.
Feature derives the per-story directory, branch and start-commit message.
SolutionOutcome and WorkspaceBuildResult report what the override-graph
builder did.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

OVERRIDE_MARKER = ".override"


@dataclass(frozen=True)
class Repository:
    """One source repository taking part in a feature."""

    path: str
    remote_url: str
    package_identity: str
    is_package_backed: bool = False


@dataclass(frozen=True)
class Workspace:
    """The configured set of repositories and the root they are cloned under."""

    root_directory: Path
    repositories: tuple[Repository, ...] = ()
    disable_unit_tests: bool = False
    base_branch: str = "develop"
    max_workers: int = 1

    def __post_init__(self):
        seen: dict[str, str] = {}
        for repo in self.repositories:
            key = repo.package_identity.lower()
            if key in seen:
                raise ValueError(
                    f"Duplicate package identity {repo.package_identity!r} "
                    f"for repositories {seen[key]!r} and {repo.path!r}"
                )
            seen[key] = repo.path

    @property
    def package_repositories(self) -> tuple[Repository, ...]:
        """Repositories eligible as override targets, in declared order."""
        return tuple(r for r in self.repositories if r.is_package_backed)

    @property
    def package_identities(self) -> tuple[str, ...]:
        return tuple(r.package_identity for r in self.package_repositories)

    def feature(self, story_id: str) -> Feature:
        return Feature(story_id=str(story_id), root_directory=Path(self.root_directory))

    def __iter__(self) -> Iterator[Repository]:
        return iter(self.repositories)


@dataclass(frozen=True)
class Feature:
    """A unit of work identified by its story id."""

    story_id: str
    root_directory: Path

    @property
    def directory(self) -> Path:
        return self.root_directory / self.story_id

    @property
    def branch(self) -> str:
        return f"feature/story-{self.story_id}"

    @property
    def start_message(self) -> str:
        return f"{self.branch} start"

    def repository_directory(self, repo: Repository) -> Path:
        return self.directory / repo.path


def override_path_for(path: Path) -> Path:
    """``Api.csproj`` -> ``Api.override.csproj``; ``App.sln`` -> ``App.override.sln``."""
    path = Path(path)
    return path.with_name(f"{path.stem}{OVERRIDE_MARKER}{path.suffix}")


def is_override_artifact(path: Path) -> bool:
    return Path(path).stem.endswith(OVERRIDE_MARKER)


@dataclass
class SolutionOutcome:
    """What happened to one solution during an override build."""

    solution: Path
    override_solution: Optional[Path] = None
    overrides_created: list[Path] = field(default_factory=list)
    projects_added: list[Path] = field(default_factory=list)
    projects_removed: list[Path] = field(default_factory=list)
    folders_cleaned: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "solution": str(self.solution),
            "override_solution": str(self.override_solution) if self.override_solution else None,
            "overrides_created": [str(p) for p in self.overrides_created],
            "projects_added": [str(p) for p in self.projects_added],
            "projects_removed": [str(p) for p in self.projects_removed],
            "folders_cleaned": self.folders_cleaned,
            "error": self.error,
        }


@dataclass
class WorkspaceBuildResult:
    """Aggregate result of building every solution of a feature."""

    feature: Feature
    solutions: list[SolutionOutcome] = field(default_factory=list)
    suppressed_test_projects: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.success for outcome in self.solutions)

    @property
    def failed(self) -> list[SolutionOutcome]:
        return [outcome for outcome in self.solutions if not outcome.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "story_id": self.feature.story_id,
            "success": self.success,
            "solutions": [outcome.to_dict() for outcome in self.solutions],
            "suppressed_test_projects": [str(p) for p in self.suppressed_test_projects],
        }
