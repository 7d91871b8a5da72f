"""Workspace override-graph builder."""

from .driver import WorkspaceDriver
from .inspector import PackageDependencyInspector
from .solution import SolutionGraphRewriter, clean_solution_file, clean_solution_text
from .synthesizer import OverrideProjectSynthesizer, locate_package_project
from .test_suppression import TestSuppressor

__all__ = [
    "OverrideProjectSynthesizer",
    "PackageDependencyInspector",
    "SolutionGraphRewriter",
    "TestSuppressor",
    "WorkspaceDriver",
    "clean_solution_file",
    "clean_solution_text",
    "locate_package_project",
]
