"""
Shared fixtures for Pipeline Coordinator tests.

``FakeDotnet`` plays the dotnet CLI on top of ``FakeProcessRunner``: solution
membership, project references and resolved packages live in memory while
solution and project files are real files under ``tmp_path``.
"""

from __future__ import annotations

import json
import os
import uuid
import xml.etree.ElementTree as ET
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Iterable, List

import pytest

from pipeline_coordinator.integrations.dotnet import DotNetAdapter, normalize_path
from pipeline_coordinator.integrations.process import (
    CommandSpec,
    FakeProcessRunner,
    ProcessResult,
)
from pipeline_coordinator.models import Repository, Workspace, is_override_artifact

SOLUTION_HEADER = (
    "\r\n"
    "Microsoft Visual Studio Solution File, Format Version 12.00\r\n"
    "# Visual Studio Version 17\r\n"
    "Global\r\n"
    "EndGlobal\r\n"
)

PROJECT_TEMPLATE = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
  </PropertyGroup>
</Project>
"""

FOLDER_TYPE = "2150E333-8FDC-42A3-9474-1A3956D46DE8"


def _ok(stdout: str = "") -> ProcessResult:
    return ProcessResult(code=0, stdout=stdout, stderr="")


def _failed(stderr: str) -> ProcessResult:
    return ProcessResult(code=1, stdout="", stderr=stderr)


class FakeDotnet:
    """In-memory dotnet CLI for solution/project graph tests."""

    def __init__(self, runner: FakeProcessRunner, folder_entries: bool = False):
        self.runner = runner
        self.folder_entries = folder_entries
        self.members: Dict[str, List[Path]] = {}
        self.references: Dict[str, List[Path]] = {}
        self.packages: Dict[str, List[str]] = {}
        runner.respond("dotnet", handler=self.handle)

    # layout helpers

    def solution(self, path: Path, *projects: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(SOLUTION_HEADER, encoding="utf-8")
        self.members[normalize_path(path)] = [Path(p) for p in projects]
        return path

    def project(
        self, path: Path, references: Iterable[Path] = (), packages: Iterable[str] = ()
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(PROJECT_TEMPLATE, encoding="utf-8")
        self.references[normalize_path(path)] = [Path(r) for r in references]
        self.packages[normalize_path(path)] = list(packages)
        return path

    def members_of(self, solution: Path) -> List[Path]:
        return list(self.members.get(normalize_path(solution), []))

    def member_names(self, solution: Path) -> List[str]:
        return sorted(p.name for p in self.members_of(solution))

    # command handling

    def handle(self, spec: CommandSpec) -> ProcessResult:
        args = list(spec.arguments)
        cwd = Path(spec.working_directory or os.getcwd())
        if args[0] == "new":
            return self._new_solution(cwd / f"{args[args.index('-n') + 1]}.sln")
        if args[0] == "sln":
            return self._sln(cwd / args[1], args[2], args[3:])
        if args[0] == "list":
            return self._list(cwd / args[1], args[2])
        return _ok()

    def _new_solution(self, path: Path) -> ProcessResult:
        path.write_text(SOLUTION_HEADER, encoding="utf-8")
        self.members[normalize_path(path)] = []
        return _ok('The template "Solution File" was created successfully.\n')

    def _sln(self, solution: Path, action: str, rest: List[str]) -> ProcessResult:
        if not solution.exists():
            return _failed(f"Could not find solution or directory `{solution}`.")
        members = self.members.setdefault(normalize_path(solution), [])

        if action == "list":
            lines = ["Project(s)", "----------"]
            lines += [_listed(p, solution.parent) for p in members]
            return _ok("\n".join(lines) + "\n")

        project = Path(rest[0])
        if not project.is_absolute():
            project = solution.parent / project
        key = normalize_path(project)

        if action == "add":
            if all(normalize_path(m) != key for m in members):
                members.append(Path(os.path.normpath(project)))
                if self.folder_entries:
                    self._append_folder(solution, project.parent.name)
            return _ok(f"Project `{project}` added to the solution.\n")
        if action == "remove":
            members[:] = [m for m in members if normalize_path(m) != key]
            return _ok(f"Project `{project}` removed from the solution.\n")
        return _failed(f"Unknown sln action {action}")

    def _append_folder(self, solution: Path, name: str) -> None:
        guid = str(uuid.uuid4()).upper()
        block = (
            f'Project("{{{FOLDER_TYPE}}}") = "{name}", "{name}", "{{{guid}}}"\r\n'
            "EndProject\r\n"
        )
        text = solution.read_bytes().decode("utf-8")
        solution.write_bytes(text.replace("Global\r\n", block + "Global\r\n", 1).encode("utf-8"))

    def _list(self, project: Path, what: str) -> ProcessResult:
        if not project.exists():
            return _failed(f"Could not find project or directory `{project}`.")
        key = normalize_path(project)

        if what == "reference":
            references = self._references(project)
            if not references:
                return _ok("There are no Project to Project references in project.\n")
            lines = ["Project reference(s)", "--------------------"]
            lines += [_listed(p, project.parent) for p in references]
            return _ok("\n".join(lines) + "\n")

        if what == "package":
            packages = [
                {"id": pkg, "requestedVersion": "1.0.0", "resolvedVersion": "1.0.0"}
                for pkg in self.packages.get(key, [])
            ]
            payload = {
                "version": 1,
                "parameters": "",
                "projects": [
                    {
                        "path": str(project),
                        "frameworks": [{"framework": "net8.0", "topLevelPackages": packages}],
                    }
                ],
            }
            return _ok(json.dumps(payload, indent=2))
        return _failed(f"Unknown list target {what}")

    def _references(self, project: Path) -> List[Path]:
        if not is_override_artifact(project):
            return list(self.references.get(normalize_path(project), []))

        root = ET.parse(project).getroot()
        references: List[Path] = []
        for element in root.iter():
            if element.tag == "Import":
                original = project.parent / element.get("Project")
                references.extend(self.references.get(normalize_path(original), []))
            elif element.tag == "ProjectReference" and element.get("Include"):
                references.append(
                    Path(os.path.normpath(project.parent / element.get("Include")))
                )
        return references


def _listed(path: Path, base: Path) -> str:
    return os.path.relpath(path, base).replace("/", "\\")


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def fake_dotnet(fake_runner: FakeProcessRunner) -> FakeDotnet:
    return FakeDotnet(fake_runner)


@pytest.fixture
def dotnet(fake_runner: FakeProcessRunner) -> DotNetAdapter:
    return DotNetAdapter(fake_runner)


@pytest.fixture
def features_root(tmp_path: Path) -> Path:
    root = tmp_path / "features"
    root.mkdir()
    return root


@pytest.fixture
def override_scenario(features_root: Path, fake_dotnet: FakeDotnet) -> SimpleNamespace:
    """RepoA (``a``) uses package Contracts, built from source by RepoB (``b``)."""
    workspace = Workspace(
        root_directory=features_root,
        repositories=(
            Repository("a", "https://example.com/a.git", "App"),
            Repository("b", "https://example.com/b.git", "Contracts", is_package_backed=True),
        ),
    )
    feature = workspace.feature("42")
    a = feature.directory / "a"
    b = feature.directory / "b"

    contracts = fake_dotnet.project(b / "src" / "Contracts" / "Contracts.csproj")
    api = fake_dotnet.project(a / "src" / "Api" / "Api.csproj", packages=["Contracts", "Serilog"])
    app_sln = fake_dotnet.solution(a / "App.sln", api)
    contracts_sln = fake_dotnet.solution(b / "Contracts.sln", contracts)

    return SimpleNamespace(
        workspace=workspace,
        feature=feature,
        api=api,
        contracts=contracts,
        app_sln=app_sln,
        contracts_sln=contracts_sln,
    )
