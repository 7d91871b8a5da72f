"""Workspace driver: runs the override-graph builder over a feature directory."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from ..errors import FeatureNotFoundError
from ..integrations.dotnet import DotNetAdapter
from ..models import (
    Feature,
    SolutionOutcome,
    Workspace,
    WorkspaceBuildResult,
    is_override_artifact,
)
from ..utils.json_logger import story_logger
from ..utils.locks import KeyedLocks
from .inspector import PackageDependencyInspector
from .solution import SolutionGraphRewriter
from .synthesizer import OverrideProjectSynthesizer
from .test_suppression import TestSuppressor

logger = logging.getLogger(__name__)


class WorkspaceDriver:
    """Builds override solutions for every solution of a feature.

    Solutions run one after another unless ``max_workers`` is above one; in
    that case distinct solutions run on a thread pool and the per-path locks
    shared by the rewriter and synthesizer serialize access to the same files.
    """

    def __init__(
        self,
        workspace: Workspace,
        dotnet: DotNetAdapter,
        max_workers: Optional[int] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.workspace = workspace
        self.dotnet = dotnet
        self.max_workers = max_workers or workspace.max_workers
        self.locks = locks or KeyedLocks()
        self.inspector = PackageDependencyInspector(dotnet)
        self.synthesizer = OverrideProjectSynthesizer(self.locks)
        self.rewriter = SolutionGraphRewriter(
            workspace, dotnet, self.inspector, self.synthesizer, self.locks
        )
        self.suppressor = TestSuppressor(workspace.disable_unit_tests)

    def find_solutions(self, feature: Feature) -> list[Path]:
        return sorted(
            path
            for path in feature.directory.rglob("*.sln")
            if not is_override_artifact(path)
        )

    def build(self, feature: Feature) -> WorkspaceBuildResult:
        """Rewrite every solution of ``feature`` and then disable tests if configured."""
        if not feature.directory.is_dir():
            raise FeatureNotFoundError(f"Feature directory not found: {feature.directory}")

        solutions = self.find_solutions(feature)
        logger.info(f"Story {feature.story_id}: {len(solutions)} solutions to process")
        result = WorkspaceBuildResult(feature=feature)

        if self.max_workers <= 1 or len(solutions) <= 1:
            result.solutions = [self._build_solution(s, feature) for s in solutions]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._build_solution, s, feature) for s in solutions
                ]
                result.solutions = [future.result() for future in futures]

        result.suppressed_test_projects = self.suppressor.suppress_all(feature.directory)

        if result.failed:
            logger.warning(f"Story {feature.story_id}: {len(result.failed)} solutions failed")
        return result

    def _build_solution(self, solution: Path, feature: Feature) -> SolutionOutcome:
        try:
            return self.rewriter.rewrite(solution, feature)
        except (OSError, UnicodeError) as e:
            log = story_logger(__name__, feature.story_id, solution=str(solution))
            log.error(f"Override build failed for {solution}: {e}")
            return SolutionOutcome(solution=solution, error=str(e))
