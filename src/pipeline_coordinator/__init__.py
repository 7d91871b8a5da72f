"""
Pipeline Coordinator: feature-branch development across dependent repositories

Clones the repositories that make up one feature, branches them together, and
rewrites each solution's build graph so that package dependencies between the
repositories are satisfied by the sibling repository's in-progress source
instead of the published package.
"""

__version__ = "1.0.0"
__author__ = "Pipeline Coordinator Team"
__description__ = "Feature workspace coordinator with override build graphs"
