"""
Solution graph rewriting.

For one solution the rewriter walks the states
Scanned -> Overridden -> Closed -> Cleaned:

* Scanned: member projects are listed through the build tool.
* Overridden: every member referencing workspace packages is replaced in the
  override solution by an override project importing it.
* Closed: project references of everything added are added too, breadth
  first, with a visited set so cyclic graphs terminate.
* Cleaned: solution-folder entries that ``dotnet sln add`` creates as a side
  effect are stripped, leaving a flat solution.

Build tool mutations that fail are logged and skipped. Filesystem errors
propagate to the caller and abort this solution only.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections import deque
from pathlib import Path
from typing import Optional

from ..integrations.dotnet import DotNetAdapter, normalize_path
from ..models import (
    Feature,
    SolutionOutcome,
    Workspace,
    is_override_artifact,
    override_path_for,
)
from ..utils.locks import KeyedLocks
from .inspector import PackageDependencyInspector
from .synthesizer import OverrideProjectSynthesizer, locate_package_project

logger = logging.getLogger(__name__)

SOLUTION_FOLDER_TYPE = "2150E333-8FDC-42A3-9474-1A3956D46DE8"

PROJECT_ENTRY = re.compile(
    r'^Project\("\{(?P<type>[0-9A-Fa-f-]+)\}"\)\s*=\s*"(?P<name>[^"]*)"\s*,'
    r'\s*"(?P<path>[^"]*)"\s*,\s*"\{(?P<guid>[0-9A-Fa-f-]+)\}"'
)
NESTING_ENTRY = re.compile(r"^\{(?P<child>[0-9A-Fa-f-]+)\}\s*=\s*\{(?P<parent>[0-9A-Fa-f-]+)\}")
PROJECT_FILE = re.compile(r"\.\w*proj$", re.IGNORECASE)


def _is_folder_entry(match: re.Match) -> bool:
    return (
        match.group("type").upper() == SOLUTION_FOLDER_TYPE
        or not PROJECT_FILE.search(match.group("path"))
    )


def clean_solution_text(text: str) -> tuple[str, int]:
    """Drop solution-folder entries from solution file text.

    Each folder block runs from its ``Project(...)`` line through the matching
    ``EndProject``; ``NestedProjects`` lines that mention a removed folder go
    too. Line endings are preserved and the function is idempotent.

    Returns:
        The cleaned text and the number of folder entries removed
    """
    lines = text.splitlines(keepends=True)
    kept: list[str] = []
    removed: set[str] = set()

    i = 0
    while i < len(lines):
        match = PROJECT_ENTRY.match(lines[i].lstrip())
        if match is None or not _is_folder_entry(match):
            kept.append(lines[i])
            i += 1
            continue

        removed.add(match.group("guid").upper())
        end = i + 1
        while end < len(lines):
            stripped = lines[end].strip()
            if stripped == "EndProject" or PROJECT_ENTRY.match(stripped):
                break
            end += 1
        if end < len(lines) and lines[end].strip() == "EndProject":
            end += 1
        i = end

    if not removed:
        return text, 0

    result: list[str] = []
    in_nesting = False
    for line in kept:
        stripped = line.strip()
        if stripped.startswith("GlobalSection(NestedProjects)"):
            in_nesting = True
        elif stripped == "EndGlobalSection":
            in_nesting = False
        elif in_nesting:
            nesting = NESTING_ENTRY.match(stripped)
            if nesting and (
                nesting.group("child").upper() in removed
                or nesting.group("parent").upper() in removed
            ):
                continue
        result.append(line)

    return "".join(result), len(removed)


def clean_solution_file(path: Path) -> int:
    """Clean a solution file in place; returns the number of folders removed."""
    with open(path, encoding="utf-8-sig", newline="") as f:
        original = f.read()
    cleaned, removed = clean_solution_text(original)
    if removed:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(cleaned)
        logger.info(f"Removed {removed} solution folder entries from {path.name}")
    return removed


class SolutionGraphRewriter:
    """Builds the override solution next to an original solution."""

    def __init__(
        self,
        workspace: Workspace,
        dotnet: DotNetAdapter,
        inspector: Optional[PackageDependencyInspector] = None,
        synthesizer: Optional[OverrideProjectSynthesizer] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.workspace = workspace
        self.dotnet = dotnet
        self.locks = locks or KeyedLocks()
        self.inspector = inspector or PackageDependencyInspector(dotnet)
        self.synthesizer = synthesizer or OverrideProjectSynthesizer(self.locks)

    def rewrite(self, solution: Path, feature: Feature) -> SolutionOutcome:
        """Run every state for ``solution`` while holding its lock."""
        solution = Path(solution)
        outcome = SolutionOutcome(solution=solution)

        with self.locks.hold(solution):
            override_solution = self.prepare_override_solution(solution)
            outcome.override_solution = override_solution

            with self.locks.hold(override_solution):
                members = self.dotnet.list_solution_members(solution)
                logger.info(f"{solution.name}: {len(members)} member projects")
                existing = {
                    normalize_path(p)
                    for p in self.dotnet.list_solution_members(override_solution)
                }

                present, overridden, frontier = self.apply_overrides(
                    override_solution, members, feature, outcome, existing
                )
                self.close_graph(
                    override_solution, frontier, present, overridden, outcome, existing
                )
                outcome.folders_cleaned = clean_solution_file(override_solution)

        return outcome

    def prepare_override_solution(self, solution: Path) -> Path:
        """Create ``X.override.sln`` next to ``X.sln`` unless it already exists.

        When the build tool does not produce the file, the original solution
        is copied instead so the rewrite still has a solution to work on.
        """
        override = override_path_for(solution)
        if override.exists():
            logger.debug(f"Reusing override solution {override}")
            return override

        self.dotnet.create_solution(solution.parent, override.stem)
        if not override.exists():
            shutil.copyfile(solution, override)
            logger.info(f"Copied {solution.name} to {override.name}")
        return override

    def apply_overrides(
        self,
        override_solution: Path,
        members: list[Path],
        feature: Feature,
        outcome: SolutionOutcome,
        existing: Optional[set[str]] = None,
    ) -> tuple[dict[str, Path], set[str], list[Path]]:
        """Swap members that use workspace packages for their override projects.

        Only changes to the override solution are recorded in ``outcome``;
        ``existing`` holds the normalized paths it already contained.

        Returns:
            Projects present in the override solution keyed by normalized
            path, normalized paths of overridden originals, and the projects
            added (the starting frontier of the closure)
        """
        existing = existing or set()
        identities = self.workspace.package_identities
        present: dict[str, Path] = {}
        overridden: set[str] = set()
        frontier: list[Path] = []

        for project in members:
            if is_override_artifact(project):
                continue

            matches = self.inspector.matching_identities(project, identities)
            if not matches:
                self.dotnet.add_project_to_solution(override_solution, project)
                present[normalize_path(project)] = project
                frontier.append(project)
                continue

            logger.info(f"{project.name} uses workspace packages: {', '.join(matches)}")
            references = self._local_references(project, matches, feature)
            override, created = self.synthesizer.ensure_override(project, identities, references)
            if created:
                outcome.overrides_created.append(override)

            self._add(override_solution, override, existing, outcome)
            removed = self.dotnet.remove_project_from_solution(override_solution, project)
            if removed and normalize_path(project) in existing:
                outcome.projects_removed.append(project)

            present[normalize_path(override)] = override
            overridden.add(normalize_path(project))
            frontier.append(override)

        return present, overridden, frontier

    def _local_references(
        self, project: Path, matches: list[str], feature: Feature
    ) -> list[Path]:
        wanted = {identity.lower() for identity in matches}
        references: list[Path] = []
        for repo in self.workspace.package_repositories:
            if repo.package_identity.lower() not in wanted:
                continue
            location = locate_package_project(feature.directory, repo)
            if location is None:
                logger.warning(
                    f"No {repo.package_identity}.csproj found in {feature.directory}; "
                    f"{project.name} will not reference it from source"
                )
                continue
            if normalize_path(location) != normalize_path(project):
                references.append(location)
        return references

    def close_graph(
        self,
        override_solution: Path,
        frontier: list[Path],
        present: dict[str, Path],
        overridden: set[str],
        outcome: SolutionOutcome,
        existing: Optional[set[str]] = None,
    ) -> set[str]:
        """Add every project transitively referenced from ``frontier``.

        Returns:
            The normalized paths visited, each queried exactly once
        """
        existing = existing or set()
        visited: set[str] = set()
        queue = deque(frontier)

        while queue:
            project = queue.popleft()
            key = normalize_path(project)
            if key in visited:
                continue
            visited.add(key)

            for reference in self.dotnet.list_project_references(project):
                ref_key = normalize_path(reference)
                if ref_key in present or ref_key in overridden:
                    continue
                if not reference.exists():
                    logger.warning(f"{project.name} references missing project {reference}")
                    continue
                self._add(override_solution, reference, existing, outcome)
                present[ref_key] = reference
                queue.append(reference)

        return visited

    def _add(
        self,
        override_solution: Path,
        project: Path,
        existing: set[str],
        outcome: SolutionOutcome,
    ) -> None:
        added = self.dotnet.add_project_to_solution(override_solution, project)
        if added and normalize_path(project) not in existing:
            outcome.projects_added.append(project)
