"""
Workspace configuration loader.

Reads ``pipeline-coordinator.yaml``, applies ``PIPELINE_COORDINATOR_``
environment overrides and validates the result with pydantic before the
immutable ``Workspace`` is built from it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigurationError
from ..models import Repository, Workspace

DEFAULT_CONFIG_FILE = "pipeline-coordinator.yaml"
ENV_PREFIX = "PIPELINE_COORDINATOR_"
TOKEN_VARIABLE = f"{ENV_PREFIX}AZURE_TOKEN"
ENV_OVERRIDES = ("root_directory", "disable_unit_tests", "base_branch", "max_workers")
BOOLEAN_OVERRIDES = ("disable_unit_tests",)
INTEGER_OVERRIDES = ("max_workers",)


class RepositoryConfig(BaseModel):
    path: str
    remote_url: str
    package_identity: str
    is_package_backed: bool = False

    @field_validator("path", "package_identity")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class ToolPaths(BaseModel):
    git: str = "git"
    dotnet: str = "dotnet"


class BuildStatusConfig(BaseModel):
    organization_url: str
    project: str
    token: Optional[str] = None


class CoordinatorConfig(BaseModel):
    """Validated coordinator configuration."""

    root_directory: Path
    disable_unit_tests: bool = False
    base_branch: str = "develop"
    max_workers: int = Field(default=1, ge=1)
    paths: ToolPaths = Field(default_factory=ToolPaths)
    build_status: Optional[BuildStatusConfig] = None
    repositories: List[RepositoryConfig] = Field(default_factory=list)

    @field_validator("repositories")
    @classmethod
    def unique_identities(cls, repositories: List[RepositoryConfig]) -> List[RepositoryConfig]:
        seen: Dict[str, str] = {}
        for repo in repositories:
            key = repo.package_identity.lower()
            if key in seen:
                raise ValueError(
                    f"duplicate package identity {repo.package_identity!r} "
                    f"({seen[key]} and {repo.path})"
                )
            seen[key] = repo.path
        return repositories

    def to_workspace(self) -> Workspace:
        return Workspace(
            root_directory=self.root_directory,
            repositories=tuple(
                Repository(
                    path=r.path,
                    remote_url=r.remote_url,
                    package_identity=r.package_identity,
                    is_package_backed=r.is_package_backed,
                )
                for r in self.repositories
            ),
            disable_unit_tests=self.disable_unit_tests,
            base_branch=self.base_branch,
            max_workers=self.max_workers,
        )


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in ENV_OVERRIDES:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        # Convert boolean strings
        if name in BOOLEAN_OVERRIDES and value.lower() in ("true", "false"):
            overrides[name] = value.lower() == "true"
        # Convert numeric strings
        elif name in INTEGER_OVERRIDES and value.isdigit():
            overrides[name] = int(value)
        else:
            overrides[name] = value
    return overrides


def load_config(
    path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None
) -> CoordinatorConfig:
    """Load and validate the coordinator configuration.

    Args:
        path: Configuration file; defaults to ``pipeline-coordinator.yaml`` in
            the current directory
        environ: Environment to read overrides from; defaults to ``os.environ``

    Raises:
        ConfigurationError: If the file is missing or its content is invalid
    """
    config_path = Path(path) if path is not None else Path.cwd() / DEFAULT_CONFIG_FILE
    environ = dict(os.environ if environ is None else environ)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    data = _read_yaml(config_path)
    data.update(_env_overrides(environ))

    token = environ.get(TOKEN_VARIABLE)
    if token and isinstance(data.get("build_status"), dict):
        data["build_status"] = {**data["build_status"], "token": token}

    try:
        return CoordinatorConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}:\n{e}") from e
