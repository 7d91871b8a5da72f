"""Version Control System integrations."""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from .process import CommandSpec, ProcessResult, Runner

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_GLOBAL_CONFIG_LOCK = threading.Lock()


@dataclass
class VCSVersion:
    """Version information for VCS tools."""

    version: str
    tool: str

    def __str__(self) -> str:
        return f"{self.tool} {self.version}"


class GitAdapter:
    """Adapter for the git operations a feature needs.

    Commands run without exit-code validation, as sequencing continues across
    repositories; callers inspect ``ProcessResult.ok``.
    """

    def __init__(
        self,
        runner: Runner,
        git_path: str = "git",
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize git adapter.

        Args:
            runner: ProcessRunner instance
            git_path: Executable to invoke
            cancel_event: Optional cancellation signal passed to every command
        """
        self.runner = runner
        self.git_path = git_path
        self.cancel_event = cancel_event
        self._command = CommandSpec(git_path).with_validation(False)

    def _run(self, cwd: Optional[PathLike], *arguments: PathLike) -> ProcessResult:
        spec = self._command.with_working_directory(cwd).with_arguments(*arguments)
        return self.runner.run(spec, self.cancel_event)

    def version(self) -> VCSVersion:
        """Get git version information."""
        result = self._run(None, "--version")
        if result.ok:
            version_str = result.stdout.strip()
            # Extract version number from "git version X.Y.Z"
            if "git version" in version_str:
                version_num = version_str.split("git version")[1].strip()
            else:
                version_num = version_str
            return VCSVersion(version=version_num, tool="git")
        return VCSVersion(version="unknown", tool="git")

    def clone(self, url: str, target_dir: PathLike) -> ProcessResult:
        """Clone a repository into ``target_dir``, creating its parent first."""
        target = Path(target_dir)
        target.parent.mkdir(parents=True, exist_ok=True)
        return self._run(target.parent, "clone", url, target)

    def trust(self, repo_dir: PathLike) -> ProcessResult:
        """Mark a directory as safe for git operations.

        The global config file is shared by every repository, so writes to it
        are serialized. A directory already listed is not added again.
        """
        with _GLOBAL_CONFIG_LOCK:
            listed = self._run(
                repo_dir, "config", "--global", "--get-all", "safe.directory"
            )
            if listed.ok and str(repo_dir) in {line.strip() for line in listed.lines()}:
                logger.debug(f"{repo_dir} is already a safe directory")
                return ProcessResult(code=0, stdout="", stderr="", details="Already trusted")
            return self._run(
                repo_dir, "config", "--global", "--add", "safe.directory", repo_dir
            )

    def create_branch(self, repo_dir: PathLike, branch: str, base: str) -> ProcessResult:
        return self._run(repo_dir, "checkout", "-b", branch, base)

    def add_all(self, repo_dir: PathLike) -> ProcessResult:
        return self._run(repo_dir, "add", ".")

    def commit(
        self, repo_dir: PathLike, message: str, allow_empty: bool = False
    ) -> ProcessResult:
        """Create a commit with ``message``."""
        arguments = ["commit", "-m", message]
        if allow_empty:
            arguments.append("--allow-empty")
        return self._run(repo_dir, *arguments)

    def find_commit(self, repo_dir: PathLike, message: str) -> Optional[str]:
        """Return the hash of the most recent commit with a message line equal to ``message``."""
        result = self._run(
            repo_dir,
            "log",
            f"--grep=^{message}$",
            "-n",
            "1",
            "--pretty=format:%H",
        )
        commit_hash = result.stdout.strip() if result.ok else ""
        return commit_hash or None

    def revert(self, repo_dir: PathLike, commit_hash: str) -> ProcessResult:
        return self._run(repo_dir, "revert", "--no-edit", commit_hash)

    def push_upstream(self, repo_dir: PathLike, branch: str) -> ProcessResult:
        """Publish ``branch`` to origin and track it."""
        return self._run(repo_dir, "push", "--set-upstream", "origin", branch)

    def has_remote_branch(
        self, repo_dir: Optional[PathLike], branch: str, remote: str = "origin"
    ) -> bool:
        """Check whether ``remote`` (a remote name or URL) has ``branch``."""
        result = self._run(repo_dir, "ls-remote", "--heads", remote, branch)
        return result.ok and bool(result.stdout.strip())

    def ensure_ignored(self, repo_dir: PathLike, patterns: Iterable[str]) -> bool:
        """Append missing ``patterns`` to the repository .gitignore.

        Returns:
            True if the file was changed
        """
        ignore_file = Path(repo_dir) / ".gitignore"
        existing = ignore_file.read_text(encoding="utf-8") if ignore_file.exists() else ""
        present = {line.strip() for line in existing.splitlines()}
        missing = [p for p in patterns if p not in present]
        if not missing:
            return False

        lines = []
        if existing and not existing.endswith("\n"):
            lines.append("")
        lines.extend(missing)
        with open(ignore_file, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        logger.info(f"Added {', '.join(missing)} to {ignore_file}")
        return True


def create_git_adapter(
    runner: Runner,
    git_path: str = "git",
    cancel_event: Optional[threading.Event] = None,
) -> GitAdapter:
    """Create a git adapter instance.

    Args:
        runner: ProcessRunner instance
        git_path: Executable to invoke
        cancel_event: Optional cancellation signal

    Returns:
        GitAdapter instance
    """
    return GitAdapter(runner, git_path, cancel_event)
