"""
Override project synthesis.

An override project sits next to the original project file, imports it
unconditionally and removes the package references that the workspace
provides from source. Removing a package the original never referenced is a
no-op for MSBuild, so every workspace package identity is removed without
first checking which ones the project uses.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, Optional

from ..models import Repository, is_override_artifact, override_path_for
from ..utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

PROJECT_SDK = "Microsoft.NET.Sdk"


def _relative(target: Path, start: Path) -> str:
    try:
        return os.path.relpath(target, start)
    except ValueError:
        # different drive on Windows
        return str(target)


def render_override_project(
    original: Path,
    package_identities: Iterable[str],
    local_references: Iterable[Path] = (),
) -> str:
    """Build the override document text for ``original``."""
    original = Path(original)
    directory = original.parent

    root = ET.Element("Project", {"Sdk": PROJECT_SDK})
    ET.SubElement(root, "Import", {"Project": _relative(original, directory)})

    removals = ET.SubElement(root, "ItemGroup")
    for identity in package_identities:
        ET.SubElement(removals, "PackageReference", {"Remove": identity})

    references = [Path(p) for p in local_references]
    if references:
        group = ET.SubElement(root, "ItemGroup")
        for reference in references:
            ET.SubElement(
                group, "ProjectReference", {"Include": _relative(reference, directory)}
            )

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode") + "\n"


class OverrideProjectSynthesizer:
    """Creates override projects, reusing any that already exist on disk."""

    def __init__(self, locks: Optional[KeyedLocks] = None):
        self.locks = locks or KeyedLocks()

    def create_override(
        self,
        original: Path,
        package_identities: Iterable[str],
        local_references: Iterable[Path] = (),
    ) -> Path:
        """Return the override path for ``original``, writing it if absent.

        An existing override file is returned untouched: its presence is the
        only signal that the work was already done.
        """
        return self.ensure_override(original, package_identities, local_references)[0]

    def ensure_override(
        self,
        original: Path,
        package_identities: Iterable[str],
        local_references: Iterable[Path] = (),
    ) -> tuple[Path, bool]:
        """Like ``create_override``, also telling whether this call wrote the file."""
        override = override_path_for(original)
        with self.locks.hold(override):
            if override.exists():
                logger.debug(f"Reusing override project {override}")
                return override, False

            content = render_override_project(original, package_identities, local_references)
            override.write_text(content, encoding="utf-8")
            logger.info(f"Created override project {override}")
            return override, True


def locate_package_project(feature_directory: Path, repo: Repository) -> Optional[Path]:
    """Find the project file that builds ``repo``'s package inside a feature.

    The repository's own directory is searched before the whole feature.
    """
    file_name = f"{repo.package_identity}.csproj".lower()
    for base in (feature_directory / repo.path, feature_directory):
        if not base.is_dir():
            continue
        for candidate in sorted(base.rglob("*.csproj")):
            if candidate.name.lower() == file_name and not is_override_artifact(candidate):
                return candidate
    return None
