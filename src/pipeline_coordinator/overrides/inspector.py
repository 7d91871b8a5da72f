"""Package dependency inspection for projects."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from ..errors import ProcessCancelledError
from ..integrations.dotnet import DotNetAdapter

logger = logging.getLogger(__name__)


class PackageDependencyInspector:
    """Answers whether a project currently depends on a package.

    Fail-open: any failure of the underlying package query (missing file,
    tool error, malformed output, an exception from the runner) is reported as
    "package not found" and logged. Cancellation still propagates.
    """

    def __init__(self, dotnet: DotNetAdapter):
        self.dotnet = dotnet

    def resolved_packages(self, project: Path) -> set[str]:
        try:
            packages = self.dotnet.list_resolved_packages(project)
        except ProcessCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Package query failed for {project}, treating as no packages: {e}")
            return set()
        return {package.lower() for package in packages}

    def has_package_reference(self, project: Path, package_identity: str) -> bool:
        return package_identity.lower() in self.resolved_packages(project)

    def matching_identities(
        self, project: Path, package_identities: Iterable[str]
    ) -> list[str]:
        """All of ``package_identities`` the project references, in the given order."""
        resolved = self.resolved_packages(project)
        if not resolved:
            return []
        return [identity for identity in package_identities if identity.lower() in resolved]
