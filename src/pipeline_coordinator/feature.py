"""
Feature lifecycle: start, build, finish, push, find and build status.

``FeatureService`` sequences the git and dotnet adapters and the override
builder for one story at a time. Repository setup runs one task per
repository on a thread pool; everything after it runs in order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError, FeatureNotFoundError
from .integrations.build_status import BuildInfo, BuildStatusClient
from .integrations.dotnet import DotNetAdapter
from .integrations.vcs import GitAdapter
from .models import Feature, Repository, Workspace, WorkspaceBuildResult
from .overrides.driver import WorkspaceDriver
from .utils.json_logger import story_logger

logger = logging.getLogger(__name__)

IGNORED_ARTIFACTS = ("*.override.sln", "*.override.csproj")


@dataclass
class RepositoryStatus:
    """Outcome of one step for one repository."""

    repository: Repository
    ok: bool
    message: str = ""


@dataclass
class StartResult:
    feature: Feature
    repositories: List[RepositoryStatus] = field(default_factory=list)
    build: Optional[WorkspaceBuildResult] = None
    restored: List[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        build_ok = self.build is None or self.build.success
        return build_ok and all(status.ok for status in self.repositories)


def find_repository_root(path: Path) -> Path:
    """Walk upward from ``path`` to the first directory containing ``.git``.

    Raises:
        FeatureNotFoundError: If no enclosing repository exists
    """
    current = Path(path).resolve()
    if not current.is_dir():
        current = current.parent
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    raise FeatureNotFoundError(f"No .git directory in {path} or any of its parents")


def feature_number(path: Path) -> str:
    """Return the first all-digit component of ``path``.

    ``/work/features/12345/api/src`` -> ``12345``

    Raises:
        FeatureNotFoundError: If no component is a number
    """
    for part in Path(path).parts:
        if part.isdigit():
            return part
    raise FeatureNotFoundError(f"Could not find a feature number in {path}")


class FeatureService:
    """Runs the feature commands against a configured workspace."""

    def __init__(
        self,
        workspace: Workspace,
        git: GitAdapter,
        dotnet: DotNetAdapter,
        driver: Optional[WorkspaceDriver] = None,
        build_status: Optional[BuildStatusClient] = None,
    ):
        self.workspace = workspace
        self.git = git
        self.dotnet = dotnet
        self.driver = driver or WorkspaceDriver(workspace, dotnet)
        self.build_status = build_status

    def start(self, story_id: str) -> StartResult:
        """Clone every repository, build overrides and record the start commit."""
        feature = self.workspace.feature(story_id)
        log = story_logger(__name__, feature.story_id)
        feature.directory.mkdir(parents=True, exist_ok=True)
        log.info(f"Starting {feature.branch} in {feature.directory}")

        result = StartResult(feature=feature)
        repositories = list(self.workspace)
        if repositories:
            with ThreadPoolExecutor(max_workers=len(repositories)) as executor:
                futures = [
                    executor.submit(self._setup_repository, feature, repo)
                    for repo in repositories
                ]
                result.repositories = [future.result() for future in futures]

        result.build = self.driver.build(feature)

        for outcome in result.build.solutions:
            if outcome.success and outcome.override_solution is not None:
                if self.dotnet.restore(outcome.override_solution):
                    result.restored.append(outcome.override_solution)

        for status in result.repositories:
            if status.ok:
                self._record_start(feature, status)
        return result

    def _setup_repository(self, feature: Feature, repo: Repository) -> RepositoryStatus:
        log = story_logger(__name__, feature.story_id, repository=repo.path)
        directory = feature.repository_directory(repo)
        try:
            if (directory / ".git").exists():
                log.info(f"{repo.path} already cloned, skipping clone")
            else:
                cloned = self.git.clone(repo.remote_url, directory)
                if not cloned.ok:
                    log.error(f"Clone of {repo.remote_url} failed: {cloned.details}")
                    return RepositoryStatus(repo, False, f"clone failed: {cloned.details}")

            trusted = self.git.trust(directory)
            if not trusted.ok:
                log.error(f"Could not trust {directory}: {trusted.details}")
                return RepositoryStatus(repo, False, f"trust failed: {trusted.details}")
            branch = self.git.create_branch(directory, feature.branch, self.workspace.base_branch)
            if not branch.ok:
                log.warning(f"Could not create {feature.branch}: {branch.details}")
            self.git.ensure_ignored(directory, IGNORED_ARTIFACTS)
        except OSError as e:
            log.error(f"Setup of {repo.path} failed: {e}")
            return RepositoryStatus(repo, False, str(e))
        return RepositoryStatus(repo, True, "ready")

    def _record_start(self, feature: Feature, status: RepositoryStatus) -> None:
        directory = feature.repository_directory(status.repository)
        self.git.add_all(directory)
        commit = self.git.commit(directory, feature.start_message, allow_empty=True)
        if not commit.ok:
            status.ok = False
            status.message = f"start commit failed: {commit.details}"
            logger.error(f"{status.repository.path}: {status.message}")

    def build(self, story_id: str) -> WorkspaceBuildResult:
        """Re-run the override builder for an existing feature."""
        return self.driver.build(self.workspace.feature(story_id))

    def finish(self, story_id: str) -> List[RepositoryStatus]:
        """Revert the start commit in every cloned repository of the feature.

        The most recent commit whose message equals the start message is
        reverted. A repository without one is reported and skipped.
        """
        feature = self.workspace.feature(story_id)
        if not feature.directory.is_dir():
            raise FeatureNotFoundError(f"Feature directory not found: {feature.directory}")

        statuses: List[RepositoryStatus] = []
        for repo in self.workspace:
            directory = feature.repository_directory(repo)
            if not directory.is_dir():
                statuses.append(RepositoryStatus(repo, False, "not cloned"))
                continue

            commit_hash = self.git.find_commit(directory, feature.start_message)
            if commit_hash is None:
                logger.warning(f"{repo.path}: no '{feature.start_message}' commit found")
                statuses.append(RepositoryStatus(repo, False, "start commit not found"))
                continue

            reverted = self.git.revert(directory, commit_hash)
            if reverted.ok:
                statuses.append(RepositoryStatus(repo, True, f"reverted {commit_hash[:10]}"))
            else:
                statuses.append(
                    RepositoryStatus(repo, False, f"revert failed: {reverted.details}")
                )
        return statuses

    def push(self, path: Path) -> RepositoryStatus:
        """Push the feature branch of the repository enclosing ``path``."""
        repo_root = find_repository_root(path)
        story_id = feature_number(repo_root)
        feature = self.workspace.feature(story_id)

        repository = self._repository_at(feature, repo_root)
        result = self.git.push_upstream(repo_root, feature.branch)
        message = f"pushed {feature.branch}" if result.ok else result.details
        return RepositoryStatus(repository, result.ok, message)

    def _repository_at(self, feature: Feature, directory: Path) -> Repository:
        for repo in self.workspace:
            if feature.repository_directory(repo).resolve() == directory:
                return repo
        return Repository(path=directory.name, remote_url="origin", package_identity=directory.name)

    def find(self, story_id: str) -> List[RepositoryStatus]:
        """Report which repositories have the feature branch on their remote."""
        feature = self.workspace.feature(story_id)
        statuses: List[RepositoryStatus] = []
        for repo in self.workspace:
            directory = feature.repository_directory(repo)
            if (directory / ".git").exists():
                found = self.git.has_remote_branch(directory, feature.branch)
            else:
                found = self.git.has_remote_branch(None, feature.branch, repo.remote_url)
            statuses.append(
                RepositoryStatus(repo, found, "branch found" if found else "no branch")
            )
        return statuses

    def builds(self, story_id: str, count: int = 10) -> List[BuildInfo]:
        if self.build_status is None:
            raise ConfigurationError("No build_status section in the configuration")
        return self.build_status.latest_builds(self.workspace.feature(story_id).branch, count)
